from datetime import datetime, timezone
from decimal import Decimal

import httpx
import pytest
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.exceptions import ValidationError
from src.integrations.student_master.client import StudentMasterClient
from src.modules.students.schemas import StudentFeeProfileIn, collect_semester_fees
from src.modules.students.service import StudentService


class TestStudentFeeProfileIn:
    """Tests for accepting the student master's key variants."""

    def test_alias_keys(self):
        record = StudentFeeProfileIn.model_validate(
            {
                "stuid": " 21BBA001 ",
                "stuname": "Asha Rao",
                "stu_course_id": "bba",
                "stuadmissiondt": "2021-07-15T00:00:00",
                "semfees": "1,00,000",
                "scholrshipfees": None,
                "stu_curr_semester": "3",
                "fees_due": "4500",
            }
        )
        assert record.student_id == "21BBA001"
        assert record.program_id == "BBA"
        assert record.admission_date.isoformat() == "2021-07-15"
        assert record.total_program_fee == Decimal("100000.00")
        assert record.scholarship_amount == Decimal("0.00")
        assert record.current_semester == 3
        assert record.due_amount == Decimal("4500.00")
        assert record.balance is None

    def test_bad_semester_defaults_to_one(self):
        assert StudentFeeProfileIn.model_validate({"semester_no": "n/a"}).current_semester == 1
        assert StudentFeeProfileIn.model_validate({"semester_no": 0}).current_semester == 1

    def test_semester_fee_layouts(self):
        assert collect_semester_fees({"sem1": 25000, "semester_2_fee": "30000"}) == {
            1: Decimal("25000.00"),
            2: Decimal("30000.00"),
        }
        assert collect_semester_fees({"semester_fees": {"sem3": 1000, "semester_4": 2000}}) == {
            3: Decimal("1000.00"),
            4: Decimal("2000.00"),
        }
        assert collect_semester_fees(
            {"semester_fees": [{"semester": "5", "amount": 500}, {"semester": "x"}, "junk"]}
        ) == {5: Decimal("500.00")}


class TestStudentService:
    """Tests for StudentService."""

    async def test_upsert_keeps_settled_entries(self, db_session: AsyncSession):
        service = StudentService(db_session)
        await service.upsert_profile(
            StudentFeeProfileIn(student_id="S1", semester_fees={1: Decimal("25000")})
        )
        profile = await service.get_profile("S1")
        profile.semester_fees[0].outstanding = Decimal("0.00")
        profile.semester_fees[0].settled_invoice_number = "INV-0001"
        profile.semester_fees[0].settled_at = datetime.now(timezone.utc)
        await db_session.commit()

        profile = await service.upsert_profile(
            StudentFeeProfileIn(
                student_id="S1", semester_fees={1: Decimal("26000"), 2: Decimal("30000")}
            )
        )

        first, second = profile.semester_fees
        assert first.amount == Decimal("26000.00")
        assert first.outstanding == Decimal("0.00")
        assert second.outstanding == Decimal("30000.00")

    async def test_semester_never_moves_backwards(self, db_session: AsyncSession):
        service = StudentService(db_session)
        await service.upsert_profile(StudentFeeProfileIn(student_id="S1", current_semester=3))
        profile = await service.upsert_profile(
            StudentFeeProfileIn(student_id="S1", current_semester=2)
        )
        assert profile.current_semester == 3

        with pytest.raises(ValidationError) as exc_info:
            await service.advance_semester(profile, 1)
        assert exc_info.value.details == {"field": "current_semester"}

    async def test_sync_from_records(self, db_session: AsyncSession):
        service = StudentService(db_session)
        await service.upsert_profile(StudentFeeProfileIn(student_id="S1"))

        result = await service.sync_from_records(
            [
                {"stuid": "S1", "stuname": "Asha Rao"},
                {"stuid": "S2", "semfees": 90000},
                {"stuname": "No Id"},
                {"stuid": "S3", "scholrshipfees": "-500"},
            ]
        )

        assert (result.created, result.updated, result.skipped) == (1, 1, 2)
        assert await service.list_student_ids() == ["S1", "S2"]
        assert (await service.get_profile("S1")).student_name == "Asha Rao"


class TestStudentEndpoints:
    """API tests for profiles, balances and academic years."""

    async def test_upsert_and_get(self, client: AsyncClient, db_session: AsyncSession):
        res = await client.put(
            "/api/v1/students/S1",
            json={"name": "Asha Rao", "courseid": "bba", "sem1": 25000, "balance": 100000},
        )
        assert res.status_code == 200
        data = res.json()["data"]
        assert data["program_id"] == "BBA"
        assert data["semester_fees"][0]["outstanding"] == 25000.0

        res = await client.get("/api/v1/students/S1")
        assert res.json()["data"]["balance"] == 100000.0

        res = await client.get("/api/v1/students", params={"search": "asha"})
        assert res.json()["data"]["total"] == 1

        res = await client.get("/api/v1/students/NOPE")
        assert res.status_code == 404

    async def test_balances(self, client: AsyncClient, db_session: AsyncSession):
        await client.put("/api/v1/students/S1", json={"balance": 100000, "sem1": 25000})

        res = await client.get("/api/v1/students/balances", params={"student_ids": "S1,UNKNOWN"})
        assert res.json()["data"]["balances"] == {"S1": 100000.0, "UNKNOWN": None}

        res = await client.put("/api/v1/students/balance", json={"stuid": "S1", "balance": 5000})
        assert res.status_code == 200
        assert res.json()["data"]["source"] == "ledger"

        res = await client.get("/api/v1/students/S1/balance")
        assert res.json()["data"] == {"student_id": "S1", "balance": 5000.0, "source": "ledger"}

        res = await client.post(
            "/api/v1/students/settle-semester",
            json={"stuid": "S1", "semester": 1, "amount": 2000, "invoice_number": "INV-0001"},
        )
        assert res.json()["data"]["status"] == "settled"
        assert res.json()["data"]["balance_after"] == 3000.0

        res = await client.post(
            "/api/v1/students/settle-semester",
            json={"stuid": "S1", "semester": 1, "amount": 2000},
        )
        assert res.json()["success"] is True
        assert res.json()["data"]["status"] == "already_settled"
        assert res.json()["data"]["balance_after"] == 3000.0

    async def test_negative_balance_rejected(self, client: AsyncClient, db_session: AsyncSession):
        await client.put("/api/v1/students/S1", json={})
        res = await client.put("/api/v1/students/balance", json={"stuid": "S1", "balance": -1})
        assert res.status_code == 422

    async def test_academic_years(self, client: AsyncClient, db_session: AsyncSession):
        await client.put("/api/v1/students/S1", json={})

        res = await client.put("/api/v1/student-academic-year/S1", json={"label": "2024-2025"})
        assert res.status_code == 200

        res = await client.get("/api/v1/student-academic-year")
        assert res.json()["data"]["academic_years"] == {"S1": "2024-2025"}

        res = await client.put("/api/v1/student-academic-year/NOPE", json={"label": "2024-2025"})
        assert res.status_code == 404

    async def test_sync_from_student_master(
        self, client: AsyncClient, db_session: AsyncSession, monkeypatch
    ):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"data": [{"stuid": "S9", "sem1": 1000}]})

        master = StudentMasterClient("http://master.test", transport=httpx.MockTransport(handler))
        monkeypatch.setattr(StudentMasterClient, "from_settings", lambda: master)

        res = await client.post("/api/v1/students/sync")

        assert res.status_code == 200
        assert res.json()["data"] == {"created": 1, "updated": 0, "skipped": 0}

    async def test_sync_without_student_master(
        self, client: AsyncClient, db_session: AsyncSession, monkeypatch
    ):
        monkeypatch.setattr(StudentMasterClient, "from_settings", lambda: None)

        res = await client.post("/api/v1/students/sync")

        assert res.status_code == 502
        assert res.json()["kind"] == "student_master_unavailable"
