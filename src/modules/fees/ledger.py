"""Student balance ledger: reads, overwrites and semester settlement."""

import logging
from collections.abc import Sequence
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.audit.service import AuditAction, AuditService
from src.core.config import settings
from src.core.exceptions import NotFoundError
from src.integrations.student_master.client import StudentMasterClient
from src.modules.fees.schemas import SettlementOutcome, SettlementStatus
from src.modules.students.models import SemesterFee, StudentBalance, StudentFeeProfile
from src.shared.utils.money import ZERO, non_negative, round_money

logger = logging.getLogger(__name__)


class BalanceSource:
    LEDGER = "ledger"
    PROFILE = "profile"


class BalanceLedger:
    """
    Owns a student's running balance (amount still owed).

    The student_balances row is authoritative; when a student has none the
    profile's cached balance is used. Every write mirrors the new value onto
    the profile.
    """

    def __init__(
        self,
        db: AsyncSession,
        student_master: StudentMasterClient | None = None,
        batch_size: int | None = None,
    ):
        self.db = db
        self.audit = AuditService(db)
        self.student_master = student_master
        self.batch_size = batch_size if batch_size is not None else settings.balance_batch_size

    # --- Reads ---

    async def read(self, student_id: str) -> tuple[Decimal, str]:
        """Balance and where it came from."""
        record = await self.db.scalar(
            select(StudentBalance.balance).where(StudentBalance.student_id == student_id)
        )
        if record is not None:
            return round_money(record), BalanceSource.LEDGER

        cached = await self.db.scalar(
            select(StudentFeeProfile.balance).where(StudentFeeProfile.student_id == student_id)
        )
        if cached is None:
            raise NotFoundError("Student", student_id)
        return round_money(cached), BalanceSource.PROFILE

    async def get(self, student_id: str) -> Decimal:
        balance, _ = await self.read(student_id)
        return balance

    async def get_many(self, student_ids: Sequence[str]) -> dict[str, Decimal | None]:
        """
        Balances for many students, read in batches.

        A failing batch is logged and its students map to None; the remaining
        batches are still read. Unknown students also map to None.
        """
        ids = list(dict.fromkeys(s.strip() for s in student_ids if s and s.strip()))
        balances: dict[str, Decimal | None] = {}
        for start in range(0, len(ids), self.batch_size):
            chunk = ids[start : start + self.batch_size]
            try:
                balances.update(await self._read_batch(chunk))
            except SQLAlchemyError:
                logger.exception("Balance batch failed for %s students", len(chunk))
                await self.db.rollback()
                balances.update({student_id: None for student_id in chunk})
        return balances

    async def _read_batch(self, student_ids: list[str]) -> dict[str, Decimal | None]:
        found: dict[str, Decimal | None] = {student_id: None for student_id in student_ids}

        result = await self.db.execute(
            select(StudentFeeProfile.student_id, StudentFeeProfile.balance).where(
                StudentFeeProfile.student_id.in_(student_ids)
            )
        )
        for student_id, balance in result.all():
            found[student_id] = round_money(balance or ZERO)

        result = await self.db.execute(
            select(StudentBalance.student_id, StudentBalance.balance).where(
                StudentBalance.student_id.in_(student_ids)
            )
        )
        for student_id, balance in result.all():
            found[student_id] = round_money(balance or ZERO)
        return found

    # --- Writes ---

    async def set(self, student_id: str, balance: Decimal, actor: str | None = None) -> Decimal:
        """Overwrite a student's balance (clamped at zero) and commit."""
        value = non_negative(round_money(balance))
        profile = await self._locked_profile(student_id)
        record = await self._locked_balance(student_id)

        old = record.balance if record is not None else profile.balance
        if record is None:
            record = StudentBalance(student_id=student_id, balance=value)
            self.db.add(record)
        else:
            record.balance = value
        profile.balance = value
        await self.db.flush()

        await self.audit.log(
            action=AuditAction.SET_BALANCE,
            entity_type="Student",
            entity_identifier=student_id,
            actor=actor,
            old_values={"balance": str(old)},
            new_values={"balance": str(value)},
        )
        await self.db.commit()
        return value

    async def settle(
        self,
        student_id: str,
        semester: int,
        tuition_amount: Decimal,
        invoice_number: str | None = None,
        due_after_payment: Decimal | None = None,
        actor: str | None = None,
    ) -> SettlementOutcome:
        """
        Zero a semester's ledger entry and subtract `tuition_amount` from the balance.

        One locked read-modify-write, committed here. Settling an entry that
        is already settled changes nothing. If the database rejects the
        settlement, the entry, balance and due are written with plain updates,
        and as a last resort pushed to the student master.
        """
        amount = non_negative(round_money(tuition_amount))
        try:
            outcome = await self._settle_locked(
                student_id, semester, amount, invoice_number, actor
            )
            await self.db.commit()
        except SQLAlchemyError:
            logger.exception(
                "Settlement of %s semester %s failed, falling back to plain updates",
                student_id,
                semester,
            )
            await self.db.rollback()
            return await self._settle_fallback(
                student_id, semester, amount, invoice_number, due_after_payment
            )

        logger.info(
            "Settled %s semester %s: %s (%s -> %s)",
            student_id,
            semester,
            outcome.status,
            outcome.balance_before,
            outcome.balance_after,
        )
        return outcome

    async def _settle_locked(
        self,
        student_id: str,
        semester: int,
        amount: Decimal,
        invoice_number: str | None,
        actor: str | None,
    ) -> SettlementOutcome:
        profile = await self._locked_profile(student_id)
        record = await self._locked_balance(student_id)

        result = await self.db.execute(
            select(SemesterFee)
            .where(SemesterFee.student_id == student_id, SemesterFee.semester == semester)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        entry = result.scalar_one_or_none()

        if entry is not None and entry.is_settled:
            current = record.balance if record is not None else profile.balance
            if invoice_number and entry.settled_invoice_number != invoice_number:
                logger.warning(
                    "Semester %s of %s already settled by %s, ignoring %s",
                    semester,
                    student_id,
                    entry.settled_invoice_number,
                    invoice_number,
                )
            return SettlementOutcome(
                student_id=student_id,
                semester=semester,
                status=SettlementStatus.ALREADY_SETTLED,
                balance_before=round_money(current),
                balance_after=round_money(current),
                invoice_number=entry.settled_invoice_number,
            )

        if entry is None:
            entry = SemesterFee(
                student_id=student_id, semester=semester, amount=amount, outstanding=amount
            )
            self.db.add(entry)
        if record is None:
            record = StudentBalance(student_id=student_id, balance=profile.balance or ZERO)
            self.db.add(record)

        before = round_money(record.balance)
        after = non_negative(round_money(before - amount))

        entry.outstanding = ZERO
        entry.settled_at = datetime.now(timezone.utc)
        entry.settled_invoice_number = invoice_number
        record.balance = after
        profile.balance = after
        await self.db.flush()

        await self.audit.log(
            action=AuditAction.SETTLE_SEMESTER,
            entity_type="Student",
            entity_identifier=student_id,
            actor=actor,
            old_values={"balance": str(before), "semester": semester},
            new_values={"balance": str(after), "invoice_number": invoice_number},
        )
        return SettlementOutcome(
            student_id=student_id,
            semester=semester,
            status=SettlementStatus.SETTLED,
            balance_before=before,
            balance_after=after,
            amount_applied=amount,
            invoice_number=invoice_number,
        )

    async def _settle_fallback(
        self,
        student_id: str,
        semester: int,
        amount: Decimal,
        invoice_number: str | None,
        due_after_payment: Decimal | None,
    ) -> SettlementOutcome:
        before: Decimal | None = None
        after: Decimal | None = None
        try:
            before = await self.get(student_id)
            entry = await self.db.scalar(
                select(SemesterFee).where(
                    SemesterFee.student_id == student_id, SemesterFee.semester == semester
                )
            )
            if entry is not None and entry.is_settled:
                return SettlementOutcome(
                    student_id=student_id,
                    semester=semester,
                    status=SettlementStatus.ALREADY_SETTLED,
                    balance_before=before,
                    balance_after=before,
                    invoice_number=entry.settled_invoice_number,
                )

            after = non_negative(round_money(before - amount))
            settled = {
                "outstanding": ZERO,
                "settled_at": datetime.now(timezone.utc),
                "settled_invoice_number": invoice_number,
            }
            if entry is None:
                self.db.add(
                    SemesterFee(student_id=student_id, semester=semester, amount=amount, **settled)
                )
            else:
                await self.db.execute(
                    update(SemesterFee).where(SemesterFee.id == entry.id).values(**settled)
                )
            await self.db.execute(
                update(StudentBalance)
                .where(StudentBalance.student_id == student_id)
                .values(balance=after)
            )
            values = {"balance": after}
            if due_after_payment is not None:
                values["due_amount"] = non_negative(round_money(due_after_payment))
            await self.db.execute(
                update(StudentFeeProfile)
                .where(StudentFeeProfile.student_id == student_id)
                .values(**values)
            )
            await self.audit.log(
                action=AuditAction.SETTLE_FALLBACK,
                entity_type="Student",
                entity_identifier=student_id,
                old_values={"balance": str(before), "semester": semester},
                new_values={"balance": str(after), "invoice_number": invoice_number},
            )
            await self.db.commit()
            logger.warning("Fallback balance update for %s: %s -> %s", student_id, before, after)
            return SettlementOutcome(
                student_id=student_id,
                semester=semester,
                status=SettlementStatus.FALLBACK,
                balance_before=before,
                balance_after=after,
                amount_applied=amount,
                invoice_number=invoice_number,
            )
        except SQLAlchemyError:
            logger.exception("Fallback balance update failed for %s", student_id)
            await self.db.rollback()

        if self.student_master is not None and before is not None:
            after = non_negative(round_money(before - amount))
            pushed = await self.student_master.settle_semester(
                student_id, semester, amount, invoice_number
            ) or await self.student_master.put_balance(student_id, after)
            if pushed and due_after_payment is not None:
                await self.student_master.put_due(student_id, due_after_payment)
            if pushed:
                return SettlementOutcome(
                    student_id=student_id,
                    semester=semester,
                    status=SettlementStatus.FALLBACK,
                    balance_before=before,
                    balance_after=after,
                    amount_applied=amount,
                    invoice_number=invoice_number,
                )

        logger.error("Balance of %s not reconciled for semester %s", student_id, semester)
        return SettlementOutcome(
            student_id=student_id,
            semester=semester,
            status=SettlementStatus.FAILED,
            balance_before=before,
            invoice_number=invoice_number,
        )

    async def record_due(self, student_id: str, due: Decimal) -> bool:
        """Store the displayed due on the profile. False instead of raising."""
        value = non_negative(round_money(due))
        try:
            result = await self.db.execute(
                update(StudentFeeProfile)
                .where(StudentFeeProfile.student_id == student_id)
                .values(due_amount=value)
            )
            await self.db.commit()
        except SQLAlchemyError:
            logger.exception("Could not record due for %s", student_id)
            await self.db.rollback()
            if self.student_master is not None:
                return await self.student_master.put_due(student_id, value)
            return False
        return result.rowcount > 0

    # --- Locked reads ---

    async def _locked_profile(self, student_id: str) -> StudentFeeProfile:
        result = await self.db.execute(
            select(StudentFeeProfile)
            .where(StudentFeeProfile.student_id == student_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        profile = result.scalar_one_or_none()
        if profile is None:
            raise NotFoundError("Student", student_id)
        return profile

    async def _locked_balance(self, student_id: str) -> StudentBalance | None:
        result = await self.db.execute(
            select(StudentBalance)
            .where(StudentBalance.student_id == student_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()
