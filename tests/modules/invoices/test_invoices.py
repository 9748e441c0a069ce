from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

STUDENT_RECORD = {
    "stuname": "Asha Rao",
    "stu_course_id": "bba",
    "stuadmissiondt": "2025-12-01",
    "semfees": 100000,
    "scholrshipfees": 10000,
    "balance": 100000,
    "sem1": "25,000",
    "sem2": 30000,
}


async def _create_student(client: AsyncClient, student_id: str = "S1") -> None:
    res = await client.put(f"/api/v1/students/{student_id}", json=STUDENT_RECORD)
    assert res.status_code == 200


class TestInvoiceEndpoints:
    """API tests for invoice create/update/list/get."""

    async def test_create_paid_invoice(self, client: AsyncClient, db_session: AsyncSession):
        await _create_student(client)

        res = await client.post(
            "/api/v1/invoices",
            json={"stuid": "S1", "is_paid": True, "payment_mode": "Cash"},
        )

        assert res.status_code == 201
        body = res.json()
        assert body["success"] is True
        assert body["message"] == "Invoice created."
        data = body["data"]
        assert data["state"] == "reconciled"
        assert data["invoice"]["invoice_number"] == "INV-0001"
        assert data["invoice"]["student_name"] == "Asha Rao"
        assert data["invoice"]["academic_year_label"] == "2025-2026"
        assert data["invoice"]["components"][0]["code"] == "tuition"
        assert data["due_after_payment"] == 65000.0
        assert data["balance_after"] == 75000.0
        assert data["settlement"]["status"] == "settled"

    async def test_create_unpaid_then_mark_paid(
        self, client: AsyncClient, db_session: AsyncSession
    ):
        await _create_student(client)
        res = await client.post(
            "/api/v1/invoices",
            json={
                "student_id": "S1",
                "semester": 1,
                "due_date": "2099-01-31",
                "payment_mode": "",
                "doc_type": "",
            },
        )
        assert res.status_code == 201
        number = res.json()["data"]["invoice"]["invoice_number"]
        assert res.json()["data"]["balance_after"] == 100000.0

        res = await client.put(
            f"/api/v1/invoices/{number}",
            json={
                "semester": 1,
                "is_paid": True,
                "payment_mode": "Online(NEFT)",
                "transaction_ref": "NEFT0042",
                "doc_type": "PAN",
                "doc_number": "ABCDE1234F",
            },
        )

        assert res.status_code == 200
        body = res.json()
        assert body["message"] == "Invoice updated."
        assert body["data"]["invoice"]["is_paid"] is True
        assert body["data"]["invoice"]["transaction_ref"] == "NEFT0042"
        assert body["data"]["invoice"]["doc_number"] == "ABCDE1234F"
        assert body["data"]["balance_after"] == 75000.0

    async def test_validation_messages(self, client: AsyncClient, db_session: AsyncSession):
        await _create_student(client)

        res = await client.post(
            "/api/v1/invoices",
            json={"student_id": "S1", "is_paid": True, "payment_mode": "Online(UPI)"},
        )

        assert res.status_code == 422
        body = res.json()
        assert body["success"] is False
        assert body["kind"] == "validation"
        assert body["message"] == "Enter the required reference/transaction number."
        assert body["errors"][0]["field"] == "transaction_ref"

    async def test_missing_fee_schedule(self, client: AsyncClient, db_session: AsyncSession):
        await _create_student(client)

        res = await client.post("/api/v1/invoices", json={"student_id": "S1", "semester": 6})

        assert res.status_code == 422
        assert res.json()["kind"] == "fee_schedule_not_found"

    async def test_unknown_student(self, client: AsyncClient, db_session: AsyncSession):
        res = await client.post("/api/v1/invoices", json={"student_id": "NOPE"})
        assert res.status_code == 404
        assert res.json()["kind"] == "not_found"

    async def test_list_and_get(self, client: AsyncClient, db_session: AsyncSession):
        await _create_student(client, "S1")
        await _create_student(client, "S2")
        await client.post("/api/v1/invoices", json={"student_id": "S1", "due_date": "2099-01-20"})
        await client.post("/api/v1/invoices", json={"student_id": "S2", "due_date": "2099-02-20"})

        res = await client.get("/api/v1/invoices")
        assert res.status_code == 200
        page = res.json()["data"]
        assert page["total"] == 2
        assert [i["invoice_number"] for i in page["items"]] == ["INV-0002", "INV-0001"]

        res = await client.get("/api/v1/invoices", params={"student_id": "S1"})
        assert [i["student_id"] for i in res.json()["data"]["items"]] == ["S1"]

        res = await client.get("/api/v1/invoices", params={"search": "0002"})
        assert res.json()["data"]["total"] == 1

        res = await client.get("/api/v1/invoices/INV-0001")
        assert res.status_code == 200
        assert res.json()["data"]["tuition_amount"] == 25000.0

        res = await client.get("/api/v1/invoices/INV-9999")
        assert res.status_code == 404


class TestFeeEndpoints:
    """API tests for drafts and the next-semester run."""

    async def test_draft(self, client: AsyncClient, db_session: AsyncSession):
        await _create_student(client)

        res = await client.post(
            "/api/v1/fees/drafts",
            json={"stuid": "S1", "components": [{"code": "exam", "amount": 1500}]},
        )

        assert res.status_code == 200
        data = res.json()["data"]
        assert data["fee_amount"] == 25000.0
        assert data["fee_source"] == "student_profile"
        assert data["amount"] == 26500.0
        assert data["due_after_payment"] == 65000.0
        assert data["first_semester_locked"] is False
        assert data["components"][1]["label"] == "Examination Fee"

    async def test_next_semester_run(self, client: AsyncClient, db_session: AsyncSession):
        await _create_student(client)

        res = await client.post("/api/v1/fees/next-semester", params={"today": "2026-06-15"})

        assert res.status_code == 200
        data = res.json()["data"]
        assert data["evaluated"] == 1
        assert data["generated"] == 1
        assert data["outcomes"][0]["next_semester"] == 2
        assert data["outcomes"][0]["amount"] == 30000.0

        res = await client.post("/api/v1/fees/next-semester/S1", params={"today": "2026-06-15"})
        assert res.json()["data"]["triggered"] is False
        assert res.json()["data"]["days_elapsed"] == 0


class TestErrorEnvelope:
    """Tests for how request errors are reported."""

    async def test_single_body_error_is_promoted(
        self, client: AsyncClient, db_session: AsyncSession
    ):
        res = await client.post("/api/v1/invoices", json={"student_id": "S1", "semester": "x"})

        assert res.status_code == 422
        body = res.json()
        assert body["kind"] == "validation"
        assert body["errors"][0]["field"] == "semester"
        assert body["message"] == body["errors"][0]["message"]
