"""Fee engine tables: profiles, semester ledger, balances, fee structures, invoices

Revision ID: 001_fee_engine
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "001_fee_engine"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    ]


def upgrade() -> None:
    # Audit logs table
    op.create_table(
        "audit_logs",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column("actor", sa.String(100), nullable=True),
        sa.Column("action", sa.String(100), nullable=False),
        sa.Column("entity_type", sa.String(100), nullable=False),
        sa.Column("entity_identifier", sa.String(200), nullable=False),
        sa.Column("old_values", sa.JSON(), nullable=True),
        sa.Column("new_values", sa.JSON(), nullable=True),
        sa.Column("comment", sa.Text(), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_audit_logs_action", "audit_logs", ["action"])
    op.create_index("ix_audit_logs_entity_type", "audit_logs", ["entity_type"])
    op.create_index("ix_audit_logs_entity_identifier", "audit_logs", ["entity_identifier"])
    op.create_index("ix_audit_logs_created_at", "audit_logs", ["created_at"])

    # Student fee profiles table
    op.create_table(
        "student_fee_profiles",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column("student_id", sa.String(50), nullable=False),
        sa.Column("student_name", sa.String(200), nullable=True),
        sa.Column("program_id", sa.String(50), nullable=True),
        sa.Column("admission_date", sa.Date(), nullable=True),
        sa.Column("total_program_fee", sa.Numeric(15, 2), nullable=False, server_default="0.00"),
        sa.Column("scholarship_amount", sa.Numeric(15, 2), nullable=False, server_default="0.00"),
        sa.Column("balance", sa.Numeric(15, 2), nullable=False, server_default="0.00"),
        sa.Column("due_amount", sa.Numeric(15, 2), nullable=False, server_default="0.00"),
        sa.Column("current_semester", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("first_semester_invoice_number", sa.String(50), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_student_fee_profiles_student_id", "student_fee_profiles", ["student_id"], unique=True
    )
    op.create_index("ix_student_fee_profiles_program_id", "student_fee_profiles", ["program_id"])

    # Per-semester fees / ledger entries
    op.create_table(
        "student_semester_fees",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column("student_id", sa.String(50), nullable=False),
        sa.Column("semester", sa.Integer(), nullable=False),
        sa.Column("amount", sa.Numeric(15, 2), nullable=False, server_default="0.00"),
        sa.Column("outstanding", sa.Numeric(15, 2), nullable=False, server_default="0.00"),
        sa.Column("settled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("settled_invoice_number", sa.String(50), nullable=True),
        sa.ForeignKeyConstraint(
            ["student_id"], ["student_fee_profiles.student_id"], ondelete="CASCADE"
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("student_id", "semester", name="uq_student_semester_fee"),
    )
    op.create_index(
        "ix_student_semester_fees_student_id", "student_semester_fees", ["student_id"]
    )

    # Authoritative balances
    op.create_table(
        "student_balances",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column("student_id", sa.String(50), nullable=False),
        sa.Column("balance", sa.Numeric(15, 2), nullable=False, server_default="0.00"),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.ForeignKeyConstraint(
            ["student_id"], ["student_fee_profiles.student_id"], ondelete="CASCADE"
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_student_balances_student_id", "student_balances", ["student_id"], unique=True
    )

    # Academic-year labels
    op.create_table(
        "student_academic_years",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column("student_id", sa.String(50), nullable=False),
        sa.Column("label", sa.String(20), nullable=False),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.ForeignKeyConstraint(
            ["student_id"], ["student_fee_profiles.student_id"], ondelete="CASCADE"
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_student_academic_years_student_id",
        "student_academic_years",
        ["student_id"],
        unique=True,
    )

    # Fee structures table
    op.create_table(
        "fee_structures",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column("program_id", sa.String(50), nullable=True),
        sa.Column("semester", sa.Integer(), nullable=False),
        sa.Column("fee_head", sa.String(100), nullable=False, server_default="Tuition Fee"),
        sa.Column("amount", sa.Numeric(15, 2), nullable=False, server_default="0.00"),
        sa.Column("student_id", sa.String(50), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(
            ["student_id"], ["student_fee_profiles.student_id"], ondelete="CASCADE"
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_fee_structures_program_id", "fee_structures", ["program_id"])
    op.create_index("ix_fee_structures_semester", "fee_structures", ["semester"])
    op.create_index("ix_fee_structures_student_id", "fee_structures", ["student_id"])

    # Invoices table
    op.create_table(
        "invoices",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column("invoice_number", sa.String(50), nullable=False),
        sa.Column("student_id", sa.String(50), nullable=False),
        sa.Column("semester", sa.Integer(), nullable=True),
        sa.Column("academic_year_label", sa.String(20), nullable=False, server_default="NA"),
        sa.Column("fee_head", sa.String(100), nullable=True),
        sa.Column("amount", sa.Numeric(15, 2), nullable=False, server_default="0.00"),
        sa.Column("tuition_amount", sa.Numeric(15, 2), nullable=False, server_default="0.00"),
        sa.Column("added_due", sa.Numeric(15, 2), nullable=False, server_default="0.00"),
        sa.Column("late_fine", sa.Numeric(15, 2), nullable=False, server_default="0.00"),
        sa.Column("due_date", sa.Date(), nullable=True),
        sa.Column("paid_date", sa.Date(), nullable=True),
        sa.Column("is_paid", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("payment_mode", sa.String(30), nullable=True),
        sa.Column("transaction_ref", sa.String(100), nullable=True),
        sa.Column("doc_type", sa.String(30), nullable=True),
        sa.Column("doc_number", sa.String(32), nullable=True),
        sa.Column("remarks", sa.Text(), nullable=True),
        sa.Column("is_system_generated", sa.Boolean(), nullable=False, server_default="false"),
        *_timestamps(),
        sa.ForeignKeyConstraint(
            ["student_id"], ["student_fee_profiles.student_id"], ondelete="CASCADE"
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_invoices_invoice_number", "invoices", ["invoice_number"], unique=True)
    op.create_index("ix_invoices_student_id", "invoices", ["student_id"])
    op.create_index("ix_invoices_semester", "invoices", ["semester"])
    op.create_index("ix_invoices_is_paid", "invoices", ["is_paid"])

    # Invoice components table
    op.create_table(
        "invoice_components",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column("invoice_id", sa.BigInteger(), nullable=False),
        sa.Column("code", sa.String(30), nullable=False),
        sa.Column("label", sa.String(100), nullable=False),
        sa.Column("amount", sa.Numeric(15, 2), nullable=False),
        sa.Column("is_deduction", sa.Boolean(), nullable=False, server_default="false"),
        sa.ForeignKeyConstraint(["invoice_id"], ["invoices.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_invoice_components_invoice_id", "invoice_components", ["invoice_id"])


def downgrade() -> None:
    op.drop_table("invoice_components")
    op.drop_table("invoices")
    op.drop_table("fee_structures")
    op.drop_table("student_academic_years")
    op.drop_table("student_balances")
    op.drop_table("student_semester_fees")
    op.drop_table("student_fee_profiles")
    op.drop_table("audit_logs")
