"""SQLAlchemy Core table definitions for the document store."""

from sqlalchemy import (
    Column,
    DateTime,
    Index,
    Integer,
    MetaData,
    Table,
    Text,
    func,
)

# Naming convention for constraints (helps Alembic generate better names)
convention = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}
metadata = MetaData(naming_convention=convention)


# =====================================================
# 1. CASES
# One row per case: denormalized index columns plus the full document
# =====================================================
cases = Table(
    "cases",
    metadata,
    Column("position", Integer, primary_key=True, autoincrement=False),
    Column("case_id", Text, nullable=False),
    Column("accident_date", Text),
    Column("client_name", Text, server_default=""),
    Column("plate", Text, server_default=""),
    Column("status", Text, server_default="Waiting"),
    Column("document", Text, nullable=False),
    Column("updated_at", DateTime(timezone=True), server_default=func.now()),
    Index("idx_cases_case_id", "case_id"),
    Index("idx_cases_status", "status"),
)


# =====================================================
# 2. DOCUMENTS
# Named single-blob collections: "reminders", "settings"
# =====================================================
documents = Table(
    "documents",
    metadata,
    Column("name", Text, primary_key=True),
    Column("body", Text, nullable=False),
    Column("updated_at", DateTime(timezone=True), server_default=func.now()),
)


# =====================================================
# 3. INBOUND EVENTS
# Dedup ledger for chat webhook deliveries
# =====================================================
inbound_events = Table(
    "inbound_events",
    metadata,
    Column("event_key", Text, primary_key=True),
    Column("received_at", DateTime(timezone=True), nullable=False),
    Index("idx_inbound_events_received_at", "received_at"),
)
