from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession


class TestFeeStructureEndpoints:
    """API tests for fee structure rows."""

    async def test_create_program_row(self, client: AsyncClient, db_session: AsyncSession):
        res = await client.post(
            "/api/v1/fee-structures",
            json={"course_id": " bba ", "semester": 1, "amount": 20000},
        )

        assert res.status_code == 201
        data = res.json()["data"]
        assert data["program_id"] == "BBA"
        assert data["fee_head"] == "Tuition Fee"
        assert data["amount"] == 20000.0
        assert data["student_id"] is None

    async def test_student_row_inherits_program(
        self, client: AsyncClient, db_session: AsyncSession
    ):
        await client.put("/api/v1/students/S1", json={"program_id": "mba"})

        res = await client.post(
            "/api/v1/fee-structures",
            json={"stuid": "S1", "semester": 2, "fee_head": "Laptop", "amount": 45000},
        )

        assert res.status_code == 201
        assert res.json()["data"]["program_id"] == "MBA"
        assert res.json()["data"]["student_id"] == "S1"

    async def test_program_or_student_required(
        self, client: AsyncClient, db_session: AsyncSession
    ):
        res = await client.post("/api/v1/fee-structures", json={"semester": 1, "amount": 100})
        assert res.status_code == 422
        assert res.json()["message"] == "Either program_id or student_id is required"

    async def test_unknown_student(self, client: AsyncClient, db_session: AsyncSession):
        res = await client.post(
            "/api/v1/fee-structures", json={"stuid": "NOPE", "semester": 1, "amount": 100}
        )
        assert res.status_code == 404

    async def test_invalid_rows_rejected(self, client: AsyncClient, db_session: AsyncSession):
        res = await client.post(
            "/api/v1/fee-structures", json={"program_id": "BBA", "semester": 0, "amount": 100}
        )
        assert res.status_code == 422
        res = await client.post(
            "/api/v1/fee-structures", json={"program_id": "BBA", "semester": 1, "amount": -5}
        )
        assert res.status_code == 422

    async def test_list_with_filters(self, client: AsyncClient, db_session: AsyncSession):
        for semester, amount in ((1, 20000), (2, 30000)):
            await client.post(
                "/api/v1/fee-structures",
                json={"program_id": "BBA", "semester": semester, "amount": amount},
            )
        await client.post(
            "/api/v1/fee-structures", json={"program_id": "MBA", "semester": 1, "amount": 50000}
        )

        res = await client.get("/api/v1/fee-structures", params={"program_id": "bba"})
        data = res.json()["data"]
        assert data["total"] == 2
        assert [r["semester"] for r in data["items"]] == [1, 2]

        res = await client.get("/api/v1/fee-structures", params={"semester": 1})
        assert res.json()["data"]["total"] == 2

        res = await client.get("/api/v1/fee-structures", params={"limit": 1, "page": 2})
        assert res.json()["data"]["pages"] == 3
        assert len(res.json()["data"]["items"]) == 1
