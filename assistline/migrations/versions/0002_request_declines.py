"""Add the append-only decline log for assistant requests."""

from __future__ import annotations

import sqlalchemy as sa
from sqlalchemy.engine import Connection

from assistline.migrations.utils import table_exists

revision = "0002_request_declines"
down_revision = "0001_initial_schema"

TABLE_NAME = "assistant_request_declines"


def _define(metadata: sa.MetaData) -> sa.Table:
    # assistant_requests is reflected only so the foreign key can resolve.
    sa.Table("assistant_requests", metadata, sa.Column("id", sa.Integer, primary_key=True))
    return sa.Table(
        TABLE_NAME,
        metadata,
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("request_id", sa.Integer, nullable=False),
        sa.Column("assistant_id", sa.String(64), nullable=False),
        sa.Column("reason", sa.String(16), nullable=False, server_default=sa.text("'declined'")),
        sa.Column("declined_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(
            ["request_id"],
            ["assistant_requests.id"],
            name="fk_request_declines_request",
            ondelete="CASCADE",
        ),
        sa.UniqueConstraint("request_id", "assistant_id", name="uq_request_decline_assistant"),
    )


def upgrade(conn: Connection) -> None:
    if table_exists(conn, TABLE_NAME):
        return
    _define(sa.MetaData()).create(conn)


def downgrade(conn: Connection) -> None:  # pragma: no cover - provided for completeness
    if table_exists(conn, TABLE_NAME):
        _define(sa.MetaData()).drop(conn)
