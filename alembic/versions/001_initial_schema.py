"""Initial intake schema: cases, sequence counters and idempotency keys.

Revision ID: 001
Revises:
Create Date: 2025-07-02

"""

from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Create intake schema."""
    # Named sequence counters; one row per counter
    op.create_table(
        "case_sequences",
        sa.Column("name", sa.String(64), nullable=False),
        sa.Column("next_value", sa.BigInteger(), nullable=False),
        sa.PrimaryKeyConstraint("name", name=op.f("pk_case_sequences")),
    )

    op.create_table(
        "fnol_cases",
        sa.Column("case_id", sa.String(40), nullable=False),
        sa.Column("correlation_id", sa.String(64), nullable=False),
        sa.Column("jurisdiction", sa.String(2), nullable=False),
        sa.Column("attributes", sa.JSON(), nullable=False),
        sa.Column("drivable", sa.Boolean(), nullable=False),
        sa.Column("has_injury", sa.Boolean(), nullable=False),
        sa.Column("coverage_class", sa.String(16), nullable=False),
        sa.Column("fleet_flag", sa.Boolean(), nullable=False),
        sa.Column("severity_level", sa.String(16), nullable=False),
        sa.Column("route", sa.String(16), nullable=False),
        sa.Column("severity_flags", sa.JSON(), nullable=False),
        sa.Column("workflow_handle", sa.String(128), nullable=True),
        sa.Column("status", sa.String(32), nullable=False),
        sa.Column("submitted_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("case_id", name=op.f("pk_fnol_cases")),
    )
    op.create_index(
        "ix_fnol_cases_submitted_at",
        "fnol_cases",
        ["submitted_at"],
        unique=False,
    )

    # Only digests of idempotency tokens are stored
    op.create_table(
        "idempotency_keys",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("key_digest", sa.String(64), nullable=False),
        sa.Column("case_id", sa.String(40), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_idempotency_keys")),
        sa.UniqueConstraint(
            "key_digest", name=op.f("uq_idempotency_keys_key_digest")
        ),
    )
    op.create_index(
        "ix_idempotency_keys_expires_at",
        "idempotency_keys",
        ["expires_at"],
        unique=False,
    )


def downgrade() -> None:
    """Drop intake schema."""
    op.drop_index("ix_idempotency_keys_expires_at", table_name="idempotency_keys")
    op.drop_table("idempotency_keys")
    op.drop_index("ix_fnol_cases_submitted_at", table_name="fnol_cases")
    op.drop_table("fnol_cases")
    op.drop_table("case_sequences")
