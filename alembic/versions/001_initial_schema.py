"""Initial document store schema.

Revision ID: 001
Revises:
Create Date: 2026-10-19

Creates the cases table (one row per case with denormalized index
columns), the documents table (reminders and settings blobs), and the
inbound_events dedup ledger.
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "cases",
        sa.Column("position", sa.Integer(), autoincrement=False, nullable=False),
        sa.Column("case_id", sa.Text(), nullable=False),
        sa.Column("accident_date", sa.Text(), nullable=True),
        sa.Column("client_name", sa.Text(), server_default="", nullable=True),
        sa.Column("plate", sa.Text(), server_default="", nullable=True),
        sa.Column("status", sa.Text(), server_default="Waiting", nullable=True),
        sa.Column("document", sa.Text(), nullable=False),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=True,
        ),
        sa.PrimaryKeyConstraint("position", name=op.f("pk_cases")),
    )
    op.create_index("idx_cases_case_id", "cases", ["case_id"])
    op.create_index("idx_cases_status", "cases", ["status"])

    op.create_table(
        "documents",
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("body", sa.Text(), nullable=False),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=True,
        ),
        sa.PrimaryKeyConstraint("name", name=op.f("pk_documents")),
    )

    op.create_table(
        "inbound_events",
        sa.Column("event_key", sa.Text(), nullable=False),
        sa.Column("received_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("event_key", name=op.f("pk_inbound_events")),
    )
    op.create_index("idx_inbound_events_received_at", "inbound_events", ["received_at"])


def downgrade() -> None:
    op.drop_index("idx_inbound_events_received_at", table_name="inbound_events")
    op.drop_table("inbound_events")
    op.drop_table("documents")
    op.drop_index("idx_cases_status", table_name="cases")
    op.drop_index("idx_cases_case_id", table_name="cases")
    op.drop_table("cases")
