"""Add round-robin bookkeeping for automatic assistant matching."""

from __future__ import annotations

import sqlalchemy as sa
from sqlalchemy.engine import Connection

from assistline.migrations.utils import index_exists, table_exists

revision = "0003_assistant_rotation"
down_revision = "0002_request_declines"

TABLE_NAME = "assistant_rotation"
ORDER_INDEX = "ix_assistant_rotation_order"


def _define(metadata: sa.MetaData) -> sa.Table:
    return sa.Table(
        TABLE_NAME,
        metadata,
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("assistant_id", sa.String(64), nullable=False, unique=True),
        sa.Column("location_id", sa.String(64), nullable=True),
        sa.Column("total_assignments", sa.Integer, nullable=False, server_default=sa.text("0")),
        sa.Column("last_assigned_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )


def upgrade(conn: Connection) -> None:
    if not table_exists(conn, TABLE_NAME):
        table = _define(sa.MetaData())
        table.create(conn)
    if not index_exists(conn, TABLE_NAME, ORDER_INDEX):
        table = _define(sa.MetaData())
        sa.Index(ORDER_INDEX, table.c.total_assignments, table.c.last_assigned_at).create(conn)


def downgrade(conn: Connection) -> None:  # pragma: no cover - provided for completeness
    if table_exists(conn, TABLE_NAME):
        _define(sa.MetaData()).drop(conn)
