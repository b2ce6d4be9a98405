"""Create assistant request, audit and outbox tables."""

from __future__ import annotations

import sqlalchemy as sa

revision = "0001_initial_schema"
down_revision = None


def _define_tables(metadata: sa.MetaData) -> None:
    sa.Table(
        "assistant_requests",
        metadata,
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("stylist_id", sa.String(64), nullable=False),
        sa.Column("assistant_id", sa.String(64), nullable=True),
        sa.Column("location_id", sa.String(64), nullable=True),
        sa.Column("client_name", sa.String(160), nullable=False),
        sa.Column("service_id", sa.String(64), nullable=False),
        sa.Column("notes", sa.Text, nullable=True),
        sa.Column("request_date", sa.Date, nullable=False),
        sa.Column("start_time", sa.Time, nullable=False),
        sa.Column("end_time", sa.Time, nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default=sa.text("'pending'")),
        sa.Column("assigned_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("accepted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("response_deadline_hours", sa.Integer, nullable=False, server_default=sa.text("2")),
        sa.Column("response_time_seconds", sa.Integer, nullable=True),
        sa.Column("parent_request_id", sa.Integer, nullable=True),
        sa.Column("recurrence_type", sa.String(16), nullable=True),
        sa.Column("recurrence_end_date", sa.Date, nullable=True),
        sa.Column("version", sa.Integer, nullable=False, server_default=sa.text("1")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(
            ["parent_request_id"],
            ["assistant_requests.id"],
            name="fk_assistant_requests_parent",
            ondelete="SET NULL",
        ),
        sa.CheckConstraint("start_time < end_time", name="ck_assistant_requests_time_range"),
        sa.CheckConstraint(
            "status IN ('pending', 'assigned', 'completed', 'cancelled')",
            name="ck_assistant_requests_status",
        ),
    )
    sa.Index("ix_assistant_requests_stylist_id", metadata.tables["assistant_requests"].c.stylist_id)
    sa.Index("ix_assistant_requests_assistant_id", metadata.tables["assistant_requests"].c.assistant_id)
    sa.Index(
        "ix_assistant_requests_date_status",
        metadata.tables["assistant_requests"].c.request_date,
        metadata.tables["assistant_requests"].c.status,
    )

    sa.Table(
        "audit_log",
        metadata,
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("username", sa.String(100), nullable=True),
        sa.Column("action", sa.String(100), nullable=False),
        sa.Column("entity_type", sa.String(50), nullable=True),
        sa.Column("entity_id", sa.String(64), nullable=True),
        sa.Column("changes", sa.JSON, nullable=True),
    )
    sa.Index("ix_audit_log_entity", metadata.tables["audit_log"].c.entity_type, metadata.tables["audit_log"].c.entity_id)

    sa.Table(
        "outbox_notifications",
        metadata,
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("type", sa.String(50), nullable=False),
        sa.Column("request_id", sa.Integer, nullable=True),
        sa.Column("recipient_id", sa.String(64), nullable=True),
        sa.Column("payload_json", sa.JSON, nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'pending'")),
        sa.Column("attempts", sa.Integer, nullable=False, server_default=sa.text("0")),
        sa.Column("last_error", sa.Text, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    sa.Index("ix_outbox_notifications_status", metadata.tables["outbox_notifications"].c.status)


def upgrade(conn):
    metadata = sa.MetaData()
    _define_tables(metadata)
    metadata.create_all(conn)


def downgrade(conn):  # pragma: no cover - provided for completeness
    metadata = sa.MetaData()
    _define_tables(metadata)
    metadata.drop_all(conn)
