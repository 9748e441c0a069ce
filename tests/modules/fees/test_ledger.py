from decimal import Decimal

import httpx
import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.audit.models import AuditLog
from src.core.exceptions import NotFoundError
from src.integrations.student_master.client import StudentMasterClient
from src.modules.fees.ledger import BalanceLedger, BalanceSource
from src.modules.fees.schemas import SettlementStatus
from src.modules.students.models import SemesterFee, StudentBalance, StudentFeeProfile
from src.modules.students.schemas import StudentFeeProfileIn
from src.modules.students.service import StudentService


async def _create_student(db_session: AsyncSession, student_id: str = "S1", **record):
    data = {"student_id": student_id, "balance": 100000, "sem1": 25000, **record}
    service = StudentService(db_session)
    return await service.upsert_profile(StudentFeeProfileIn.model_validate(data))


def _db_error() -> OperationalError:
    return OperationalError("UPDATE student_balances", {}, Exception("database is locked"))


class TestBalanceReads:
    """Tests for reading balances."""

    async def test_profile_balance_until_ledger_row_exists(self, db_session: AsyncSession):
        await _create_student(db_session)
        ledger = BalanceLedger(db_session)

        assert await ledger.read("S1") == (Decimal("100000.00"), BalanceSource.PROFILE)

        await ledger.set("S1", Decimal("80000"))
        assert await ledger.read("S1") == (Decimal("80000.00"), BalanceSource.LEDGER)

    async def test_unknown_student(self, db_session: AsyncSession):
        with pytest.raises(NotFoundError):
            await BalanceLedger(db_session).get("NOPE")

    async def test_get_many(self, db_session: AsyncSession):
        await _create_student(db_session, "S1")
        await _create_student(db_session, "S2", balance=5000)
        ledger = BalanceLedger(db_session, batch_size=2)
        await ledger.set("S2", Decimal("4000"))

        balances = await ledger.get_many(["S1", " S2 ", "S1", "UNKNOWN", ""])
        assert balances == {
            "S1": Decimal("100000.00"),
            "S2": Decimal("4000.00"),
            "UNKNOWN": None,
        }

    async def test_failed_batch_maps_to_none(self, db_session: AsyncSession, monkeypatch):
        """One failing batch does not lose the others."""
        for student_id in ("S1", "S2", "S3"):
            await _create_student(db_session, student_id)
        ledger = BalanceLedger(db_session, batch_size=2)
        read_batch = ledger._read_batch

        async def flaky_read_batch(student_ids):
            if "S3" in student_ids:
                raise _db_error()
            return await read_batch(student_ids)

        monkeypatch.setattr(ledger, "_read_batch", flaky_read_batch)

        balances = await ledger.get_many(["S1", "S2", "S3"])
        assert balances == {
            "S1": Decimal("100000.00"),
            "S2": Decimal("100000.00"),
            "S3": None,
        }


class TestSetBalance:
    async def test_set_mirrors_profile_and_clamps(self, db_session: AsyncSession):
        await _create_student(db_session)
        ledger = BalanceLedger(db_session)

        assert await ledger.set("S1", Decimal("-50"), actor="bursar") == Decimal("0.00")

        record = await db_session.scalar(
            select(StudentBalance).where(StudentBalance.student_id == "S1")
        )
        profile = await db_session.scalar(
            select(StudentFeeProfile).where(StudentFeeProfile.student_id == "S1")
        )
        assert record.balance == Decimal("0.00")
        assert profile.balance == Decimal("0.00")

        log = await db_session.scalar(
            select(AuditLog).where(AuditLog.action == "ledger.set_balance")
        )
        assert log.actor == "bursar"
        assert log.old_values == {"balance": "100000.00"}


class TestSettle:
    """Tests for semester settlement."""

    async def test_settle_zeroes_entry_and_reduces_balance(self, db_session: AsyncSession):
        await _create_student(db_session)
        ledger = BalanceLedger(db_session)

        outcome = await ledger.settle("S1", 1, Decimal("25000"), invoice_number="INV-0001")

        assert outcome.status == SettlementStatus.SETTLED
        assert outcome.balance_before == Decimal("100000.00")
        assert outcome.balance_after == Decimal("75000.00")
        assert outcome.amount_applied == Decimal("25000.00")
        assert await ledger.read("S1") == (Decimal("75000.00"), BalanceSource.LEDGER)

        entry = await db_session.scalar(
            select(SemesterFee).where(SemesterFee.student_id == "S1", SemesterFee.semester == 1)
        )
        assert entry.outstanding == Decimal("0.00")
        assert entry.amount == Decimal("25000.00")
        assert entry.settled_invoice_number == "INV-0001"
        assert entry.is_settled

    async def test_settle_is_idempotent(self, db_session: AsyncSession):
        await _create_student(db_session)
        ledger = BalanceLedger(db_session)
        await ledger.settle("S1", 1, Decimal("25000"), invoice_number="INV-0001")

        again = await ledger.settle("S1", 1, Decimal("25000"), invoice_number="INV-0002")

        assert again.status == SettlementStatus.ALREADY_SETTLED
        assert again.balance_before == again.balance_after == Decimal("75000.00")
        assert again.invoice_number == "INV-0001"
        assert await ledger.get("S1") == Decimal("75000.00")

    async def test_settle_creates_missing_entry(self, db_session: AsyncSession):
        await _create_student(db_session)
        ledger = BalanceLedger(db_session)

        outcome = await ledger.settle("S1", 3, Decimal("30000"))

        assert outcome.status == SettlementStatus.SETTLED
        entry = await db_session.scalar(
            select(SemesterFee).where(SemesterFee.student_id == "S1", SemesterFee.semester == 3)
        )
        assert entry.amount == Decimal("30000.00")
        assert entry.outstanding == Decimal("0.00")

    async def test_balance_never_negative(self, db_session: AsyncSession):
        await _create_student(db_session, balance=10000)
        outcome = await BalanceLedger(db_session).settle("S1", 1, Decimal("25000"))
        assert outcome.balance_after == Decimal("0.00")

    async def test_fallback_when_locked_update_fails(self, db_session: AsyncSession, monkeypatch):
        await _create_student(db_session)
        ledger = BalanceLedger(db_session)

        async def failing_settle(*args, **kwargs):
            raise _db_error()

        monkeypatch.setattr(ledger, "_settle_locked", failing_settle)

        outcome = await ledger.settle(
            "S1", 1, Decimal("25000"), invoice_number="INV-0001", due_after_payment=Decimal("65000")
        )

        assert outcome.status == SettlementStatus.FALLBACK
        assert outcome.succeeded
        assert outcome.balance_after == Decimal("75000.00")
        profile = await db_session.scalar(
            select(StudentFeeProfile).where(StudentFeeProfile.student_id == "S1")
        )
        await db_session.refresh(profile)
        assert profile.balance == Decimal("75000.00")
        assert profile.due_amount == Decimal("65000.00")

    async def test_fallback_settles_the_entry(self, db_session: AsyncSession, monkeypatch):
        """A retry after a fallback settlement does not charge the semester again."""
        await _create_student(db_session)
        ledger = BalanceLedger(db_session)

        async def failing_settle(*args, **kwargs):
            raise _db_error()

        with monkeypatch.context() as patch:
            patch.setattr(ledger, "_settle_locked", failing_settle)
            first = await ledger.settle("S1", 1, Decimal("25000"), invoice_number="INV-0001")
        assert first.status == SettlementStatus.FALLBACK

        entry = await db_session.scalar(
            select(SemesterFee).where(SemesterFee.student_id == "S1", SemesterFee.semester == 1)
        )
        await db_session.refresh(entry)
        assert entry.outstanding == Decimal("0.00")
        assert entry.settled_invoice_number == "INV-0001"

        second = await ledger.settle("S1", 1, Decimal("25000"), invoice_number="INV-0001")

        assert second.status == SettlementStatus.ALREADY_SETTLED
        assert await ledger.get("S1") == Decimal("75000.00")

    async def test_fallback_creates_missing_entry(self, db_session: AsyncSession, monkeypatch):
        await _create_student(db_session)
        ledger = BalanceLedger(db_session)

        async def failing_settle(*args, **kwargs):
            raise _db_error()

        monkeypatch.setattr(ledger, "_settle_locked", failing_settle)

        outcome = await ledger.settle("S1", 3, Decimal("10000"))
        again = await ledger.settle("S1", 3, Decimal("10000"))

        assert outcome.status == SettlementStatus.FALLBACK
        assert again.status == SettlementStatus.ALREADY_SETTLED
        assert again.balance_after == Decimal("90000.00")

    async def test_failed_when_nothing_can_be_written(
        self, db_session: AsyncSession, monkeypatch
    ):
        await _create_student(db_session)
        ledger = BalanceLedger(db_session)

        async def failing(*args, **kwargs):
            raise _db_error()

        monkeypatch.setattr(ledger, "_settle_locked", failing)
        monkeypatch.setattr(ledger, "get", failing)

        outcome = await ledger.settle("S1", 1, Decimal("25000"))

        assert outcome.status == SettlementStatus.FAILED
        assert not outcome.succeeded
        assert outcome.balance_before is None

    async def test_remote_fallback_when_local_writes_fail(
        self, db_session: AsyncSession, monkeypatch
    ):
        await _create_student(db_session)
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append((request.method, request.url.path))
            return httpx.Response(200, json={"ok": True})

        master = StudentMasterClient("http://master.test", transport=httpx.MockTransport(handler))
        ledger = BalanceLedger(db_session, student_master=master)

        async def failing(*args, **kwargs):
            raise _db_error()

        monkeypatch.setattr(ledger, "_settle_locked", failing)
        monkeypatch.setattr(ledger.audit, "log", failing)

        outcome = await ledger.settle(
            "S1", 1, Decimal("25000"), invoice_number="INV-0001", due_after_payment=Decimal("65000")
        )

        assert outcome.status == SettlementStatus.FALLBACK
        assert outcome.balance_after == Decimal("75000.00")
        assert seen == [
            ("POST", "/students/settle-semester"),
            ("PATCH", "/students/update-fees"),
        ]


class TestRecordDue:
    async def test_record_due(self, db_session: AsyncSession):
        await _create_student(db_session)
        ledger = BalanceLedger(db_session)

        assert await ledger.record_due("S1", Decimal("65000")) is True
        assert await ledger.record_due("NOPE", Decimal("1")) is False

        profile = await db_session.scalar(
            select(StudentFeeProfile).where(StudentFeeProfile.student_id == "S1")
        )
        await db_session.refresh(profile)
        assert profile.due_amount == Decimal("65000.00")
