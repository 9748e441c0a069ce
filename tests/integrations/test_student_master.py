import json
from decimal import Decimal

import httpx
import pytest

from src.core.exceptions import StudentMasterError
from src.integrations.student_master.client import StudentMasterClient


def _client(handler) -> StudentMasterClient:
    return StudentMasterClient("http://master.test/", transport=httpx.MockTransport(handler))


class TestStudentMasterClient:
    """Tests for the student-master HTTP adapter."""

    async def test_fetch_students_bare_list(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/students"
            return httpx.Response(200, json=[{"stuid": "S1"}, "junk", {"stuid": "S2"}])

        assert await _client(handler).fetch_students() == [{"stuid": "S1"}, {"stuid": "S2"}]

    async def test_fetch_students_envelope(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"success": True, "data": {"students": [{"id": 7}]}})

        assert await _client(handler).fetch_students() == [{"id": 7}]

    async def test_fetch_students_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(500, json={"message": "down"})

        with pytest.raises(StudentMasterError):
            await _client(handler).fetch_students()

    async def test_fetch_students_bad_json(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=b"<html>")

        with pytest.raises(StudentMasterError):
            await _client(handler).fetch_students()

    async def test_put_balance_dedicated_endpoint(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append((request.method, request.url.path, json.loads(request.content)))
            return httpx.Response(200, json={"ok": True})

        assert await _client(handler).put_balance("S1", Decimal("75000.00")) is True
        assert seen == [("PUT", "/students/balance", {"stuid": "S1", "balance": 75000.0})]

    async def test_put_balance_probes_update_routes(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            body = json.loads(request.content)
            seen.append((request.url.path, sorted(body)))
            if request.url.path == "/students/S1" and "student_id" in body:
                return httpx.Response(200)
            return httpx.Response(404)

        assert await _client(handler).put_balance("S1", Decimal("10")) is True
        assert seen[0] == ("/students/balance", ["balance", "stuid"])
        assert seen[1] == ("/students/update", ["balance", "stuid"])
        assert seen[-1] == ("/students/S1", ["balance", "student_id"])

    async def test_put_due_tries_methods_and_keys(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            body = json.loads(request.content)
            seen.append((request.method, request.url.path, sorted(body)))
            if request.method == "POST" and "fees_due" in body:
                return httpx.Response(201)
            return httpx.Response(405)

        assert await _client(handler).put_due("S1", Decimal("65000")) is True
        assert seen[:3] == [
            ("PATCH", "/students/update-fees", ["due_amount", "stuid"]),
            ("PUT", "/students/update-fees", ["due_amount", "stuid"]),
            ("POST", "/students/update-fees", ["due_amount", "stuid"]),
        ]
        assert seen[-1] == ("POST", "/students/update-fees", ["fees_due", "stuid"])

    async def test_put_due_all_rejected(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(404)

        assert await _client(handler).put_due("S1", Decimal("1")) is False
        assert len(calls) == 4 * 6 * 3

    async def test_transport_errors_are_not_raised(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        client = _client(handler)
        assert await client.put_balance("S1", Decimal("1")) is False
        assert await client.settle_semester("S1", 1, Decimal("1")) is False
