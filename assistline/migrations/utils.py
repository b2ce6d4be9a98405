from __future__ import annotations

from sqlalchemy import inspect
from sqlalchemy.engine import Connection


def table_exists(conn: Connection, table_name: str) -> bool:
    return table_name in inspect(conn).get_table_names()


def index_exists(conn: Connection, table_name: str, index_name: str) -> bool:
    return any(idx.get("name") == index_name for idx in inspect(conn).get_indexes(table_name))
