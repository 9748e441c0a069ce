"""
Client for the external student-master system.

The legacy student master exposes several endpoints and accepts several
payload shapes for the same update; writes probe them in order and stop at
the first 2xx answer.
"""

import logging
from decimal import Decimal
from typing import Any

import httpx

from src.core.config import settings
from src.core.exceptions import StudentMasterError

logger = logging.getLogger(__name__)

STUDENTS_ROUTE = "/students"

# Methods tried for each endpoint/payload pair when pushing a due amount
DUE_METHODS = ("PATCH", "PUT", "POST")

DUE_KEYS = (
    "due_amount",
    "fees_due",
    "balance_due",
    "semfees_due",
    "remaining_fees",
    "outstanding",
)


def _amount(value: Decimal) -> float:
    return float(value)


def _records(payload: Any) -> list[dict[str, Any]]:
    """Student list from a bare array or a {"data"|"students"|"items": [...]} envelope."""
    if isinstance(payload, list):
        return [r for r in payload if isinstance(r, dict)]
    if isinstance(payload, dict):
        for key in ("data", "students", "items", "results"):
            nested = payload.get(key)
            if isinstance(nested, list):
                return [r for r in nested if isinstance(r, dict)]
            if isinstance(nested, dict):
                return _records(nested)
    return []


class StudentMasterClient:
    """Async HTTP adapter for the student master."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.transport = transport

    @classmethod
    def from_settings(cls) -> "StudentMasterClient | None":
        """Client for the configured student master, or None when none is configured."""
        if not settings.use_student_master:
            return None
        return cls(settings.student_master_url, timeout=settings.student_master_timeout)

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            transport=self.transport,
            headers={"Content-Type": "application/json"},
        )

    async def fetch_students(self) -> list[dict[str, Any]]:
        """All student records as returned by the student master."""
        try:
            async with self._client() as client:
                response = await client.get(STUDENTS_ROUTE)
                response.raise_for_status()
                payload = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.error("Student master fetch failed: %s", exc)
            raise StudentMasterError(f"Could not fetch students: {exc}") from exc
        return _records(payload)

    async def settle_semester(
        self,
        student_id: str,
        semester: int,
        amount: Decimal,
        invoice_number: str | None = None,
    ) -> bool:
        """Ask the student master to settle a semester. False on any failure."""
        body = {
            "stuid": student_id,
            "semester": semester,
            "amount": _amount(amount),
            "invoice_number": invoice_number,
        }
        async with self._client() as client:
            return await self._attempt(client, "POST", f"{STUDENTS_ROUTE}/settle-semester", body)

    async def put_balance(self, student_id: str, balance: Decimal) -> bool:
        """Overwrite the balance on the dedicated endpoint, then by probing update routes."""
        value = _amount(balance)
        async with self._client() as client:
            if await self._attempt(
                client, "PUT", f"{STUDENTS_ROUTE}/balance", {"stuid": student_id, "balance": value}
            ):
                return True

            endpoints = [
                f"{STUDENTS_ROUTE}/update",
                f"{STUDENTS_ROUTE}/{student_id}",
                f"{STUDENTS_ROUTE}/set-balance",
            ]
            payloads = [
                {"stuid": student_id, "balance": value},
                {"stuid": student_id, "fees_due": value},
                {"student_id": student_id, "balance": value},
                {"id": student_id, "balance": value},
            ]
            for url in endpoints:
                for body in payloads:
                    if await self._attempt(client, "PUT", url, body):
                        return True

        logger.warning("Student master rejected every balance update for %s", student_id)
        return False

    async def put_due(self, student_id: str, due: Decimal) -> bool:
        """Push the displayed due amount, probing endpoints, key names and methods."""
        value = _amount(due)
        endpoints = [
            f"{STUDENTS_ROUTE}/update-fees",
            f"{STUDENTS_ROUTE}/update",
            f"{STUDENTS_ROUTE}/{student_id}",
            f"{STUDENTS_ROUTE}/set-fees",
        ]
        async with self._client() as client:
            for url in endpoints:
                for key in DUE_KEYS:
                    body = {"stuid": student_id, key: value}
                    for method in DUE_METHODS:
                        if await self._attempt(client, method, url, body):
                            return True

        logger.warning("Student master rejected every due update for %s", student_id)
        return False

    async def _attempt(
        self, client: httpx.AsyncClient, method: str, url: str, body: dict[str, Any]
    ) -> bool:
        try:
            response = await client.request(method, url, json=body)
        except httpx.HTTPError as exc:
            logger.debug("%s %s failed: %s", method, url, exc)
            return False
        if response.is_success:
            logger.info("Student master accepted %s %s (%s)", method, url, sorted(body))
            return True
        logger.debug("%s %s -> %s", method, url, response.status_code)
        return False
