"""Versioned schema migrations.

Migration modules live in ``assistline.migrations.versions``. Each exposes
``revision``, ``down_revision`` and an ``upgrade(conn)`` callable taking a
synchronous SQLAlchemy connection. The applied revision is stored in the
``alembic_version`` table so the schema can later be handed over to Alembic.
"""

from __future__ import annotations

import importlib
import logging
import pkgutil
from dataclasses import dataclass
from types import ModuleType
from typing import List, Optional

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Connection, Engine

MIGRATIONS_PACKAGE = "assistline.migrations.versions"
VERSION_TABLE = "alembic_version"
VERSION_COLUMN = "version_num"

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MigrationModule:
    revision: str
    down_revision: Optional[str]
    module: ModuleType


def discover_migrations() -> List[MigrationModule]:
    """Return migration modules ordered by revision, validating the chain."""
    package = importlib.import_module(MIGRATIONS_PACKAGE)
    found: List[MigrationModule] = []
    for info in pkgutil.iter_modules(package.__path__):
        if info.ispkg or info.name.startswith("_"):
            continue
        module = importlib.import_module(f"{MIGRATIONS_PACKAGE}.{info.name}")
        revision = getattr(module, "revision", None)
        if revision is None:
            raise RuntimeError(f"Migration {info.name} is missing 'revision'")
        found.append(MigrationModule(revision, getattr(module, "down_revision", None), module))

    found.sort(key=lambda item: item.revision)
    previous: Optional[str] = None
    for migration in found:
        if migration.down_revision != previous:
            raise RuntimeError(
                f"Migration chain broken at {migration.revision}: "
                f"down_revision={migration.down_revision!r}, expected {previous!r}"
            )
        previous = migration.revision
    return found


def _current_revision(conn: Connection) -> Optional[str]:
    conn.execute(
        text(
            f"CREATE TABLE IF NOT EXISTS {VERSION_TABLE} "
            f"({VERSION_COLUMN} VARCHAR(64) PRIMARY KEY)"
        )
    )
    row = conn.execute(text(f"SELECT {VERSION_COLUMN} FROM {VERSION_TABLE} LIMIT 1")).first()
    return row[0] if row else None


def _store_revision(conn: Connection, revision: str) -> None:
    conn.execute(text(f"DELETE FROM {VERSION_TABLE}"))
    conn.execute(
        text(f"INSERT INTO {VERSION_TABLE} ({VERSION_COLUMN}) VALUES (:revision)"),
        {"revision": revision},
    )


def _pending(migrations: List[MigrationModule], current: Optional[str]) -> List[MigrationModule]:
    if current is None:
        return migrations
    revisions = [item.revision for item in migrations]
    if current not in revisions:
        raise RuntimeError(f"Database is at unknown migration revision {current!r}.")
    return migrations[revisions.index(current) + 1 :]


def apply_migrations(conn: Connection) -> List[str]:
    """Apply pending migrations on an open connection; the caller owns the transaction."""

    migrations = discover_migrations()
    applied: List[str] = []
    for migration in _pending(migrations, _current_revision(conn)):
        upgrade = getattr(migration.module, "upgrade", None)
        if upgrade is None:
            raise RuntimeError(f"Migration {migration.revision} is missing upgrade()")
        logger.info("Applying migration %s", migration.revision)
        upgrade(conn)
        _store_revision(conn, migration.revision)
        applied.append(migration.revision)
    return applied


def upgrade_to_head(engine_or_url: Engine | str) -> List[str]:
    """Apply every pending migration over a synchronous engine or URL.

    The application itself migrates through ``core.db.init_models``; this
    entry point serves tooling that already has a sync driver.
    """

    if isinstance(engine_or_url, Engine):
        engine, owned = engine_or_url, False
    else:
        engine, owned = create_engine(engine_or_url, future=True), True

    try:
        with engine.begin() as conn:
            return apply_migrations(conn)
    finally:
        if owned:
            engine.dispose()
