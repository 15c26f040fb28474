"""
sessions/store.py -- SQLAlchemy Core persistence for ExternalSessionRecord.

Pattern: Repository + Data Mapper (same as auth/store.py).
SessionStore is the repository; _row_to_record is the mapper. The service
layer never touches SQL directly.

Atomic upsert:
  upsert() is one INSERT .. ON CONFLICT (user_id, site) DO UPDATE statement,
  built with the dialect's own insert() (SQLite and PostgreSQL share the
  on_conflict_do_update API). Two concurrent uploads for the same key
  serialize inside the database, and because ciphertext and meta are written
  by the same statement a row can never pair one upload's blob with another
  upload's metadata.

Security: all queries use bound parameters. No f-strings in SQL.

DB path: sessions/radarone_sessions.db unless SESSIONS_DATABASE_URL is set.

Layer rule: imports core/ and sessions/ only.
"""

from __future__ import annotations

import json
from dataclasses import asdict, fields
from pathlib import Path

from sqlalchemy import (
    Column,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    UniqueConstraint,
    create_engine,
    event,
    select,
    text,
)
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.engine import Engine

from core.config import now_iso
from sessions.models import ExternalSessionRecord, SessionMeta, SessionStatus

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).parent / 'radarone_sessions.db'}"

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

metadata = MetaData()

_sessions = Table(
    "user_sessions",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, nullable=False, index=True),
    Column("site", String(50), nullable=False),
    Column("domain", String(255), nullable=False),
    Column("encrypted_storage_state", Text, nullable=False),  # iv:tag:ciphertext hex
    Column("status", String(20), nullable=False, server_default=SessionStatus.ACTIVE.value),
    Column("account_label", String(255)),
    Column("meta", Text),  # JSON SessionMeta, plaintext
    Column("expires_at", String(32)),
    Column("last_used_at", String(32)),
    Column("last_error_at", String(32)),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
    UniqueConstraint("user_id", "site", name="uq_user_site"),
)

# Columns replaced wholesale when an upload hits an existing (user_id, site).
_OVERWRITE_COLUMNS = (
    "domain",
    "encrypted_storage_state",
    "status",
    "account_label",
    "meta",
    "expires_at",
    "last_used_at",
    "last_error_at",
    "updated_at",
)

_META_FIELDS = {f.name for f in fields(SessionMeta)}


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode so status reads do not block on upload writes."""
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _dump_meta(meta: SessionMeta | None) -> str | None:
    return json.dumps(asdict(meta)) if meta is not None else None


def _load_meta(raw: str | None) -> SessionMeta | None:
    if not raw:
        return None
    data = json.loads(raw)
    return SessionMeta(**{k: v for k, v in data.items() if k in _META_FIELDS})


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class SessionStore:
    """Repository for ExternalSessionRecord, keyed by (user_id, site).

    Usage:
        store = SessionStore()
        session_id = store.upsert(record)
        store.get(user_id, "MERCADO_LIVRE")
        store.delete(user_id, "MERCADO_LIVRE")
        store.close()
    """

    def __init__(self, db_url: str = _DEFAULT_DB_URL) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        metadata.create_all(self.engine)

    def _insert(self):
        if self.engine.dialect.name == "postgresql":
            return postgresql.insert(_sessions)
        return sqlite.insert(_sessions)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def upsert(self, record: ExternalSessionRecord) -> int:
        """Create or fully overwrite the record for (user_id, site); return its ID.

        created_at survives an overwrite; every other column takes the new
        upload's value.
        """
        now = now_iso()
        values = {
            "user_id": record.user_id,
            "site": record.site,
            "domain": record.domain,
            "encrypted_storage_state": record.encrypted_storage_state,
            "status": SessionStatus(record.status).value,
            "account_label": record.account_label,
            "meta": _dump_meta(record.meta),
            "expires_at": record.expires_at,
            "last_used_at": record.last_used_at,
            "last_error_at": record.last_error_at,
            "created_at": now,
            "updated_at": now,
        }
        stmt = self._insert().values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=[_sessions.c.user_id, _sessions.c.site],
            set_={col: stmt.excluded[col] for col in _OVERWRITE_COLUMNS},
        )
        with self.engine.connect() as conn:
            conn.execute(stmt)
            session_id = conn.execute(
                select(_sessions.c.id).where(
                    (_sessions.c.user_id == record.user_id) & (_sessions.c.site == record.site)
                )
            ).scalar_one()
            conn.commit()
        return session_id

    def update_status(
        self,
        user_id: int,
        site: str,
        status: SessionStatus,
        meta: SessionMeta | None = None,
        last_error_at: str | None = None,
    ) -> bool:
        """Set status (and optionally meta / last_error_at). Returns False if no record."""
        values: dict = {"status": SessionStatus(status).value, "updated_at": now_iso()}
        if meta is not None:
            values["meta"] = _dump_meta(meta)
        if last_error_at is not None:
            values["last_error_at"] = last_error_at
        with self.engine.connect() as conn:
            result = conn.execute(
                _sessions.update()
                .where((_sessions.c.user_id == user_id) & (_sessions.c.site == site))
                .values(**values)
            )
            conn.commit()
        return result.rowcount > 0

    def touch_last_used(self, user_id: int, site: str) -> bool:
        """Stamp last_used_at after the scraper replayed the session successfully."""
        with self.engine.connect() as conn:
            result = conn.execute(
                _sessions.update()
                .where((_sessions.c.user_id == user_id) & (_sessions.c.site == site))
                .values(last_used_at=now_iso())
            )
            conn.commit()
        return result.rowcount > 0

    def delete(self, user_id: int, site: str) -> bool:
        """Remove the record. Returns True if deleted, False if none existed."""
        with self.engine.connect() as conn:
            result = conn.execute(
                _sessions.delete().where((_sessions.c.user_id == user_id) & (_sessions.c.site == site))
            )
            conn.commit()
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, user_id: int, site: str) -> ExternalSessionRecord | None:
        with self.engine.connect() as conn:
            row = conn.execute(
                _sessions.select().where((_sessions.c.user_id == user_id) & (_sessions.c.site == site))
            ).fetchone()
        return _row_to_record(row) if row is not None else None

    def list_for_user(self, user_id: int) -> list[ExternalSessionRecord]:
        """All records for a user, most recently updated first."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                _sessions.select().where(_sessions.c.user_id == user_id).order_by(_sessions.c.updated_at.desc())
            ).fetchall()
        return [_row_to_record(r) for r in rows]

    def count(self) -> int:
        with self.engine.connect() as conn:
            return conn.execute(text("SELECT COUNT(*) FROM user_sessions")).scalar() or 0

    def ping(self) -> bool:
        """Return True if the database answers a trivial query. Used by /health."""
        with self.engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return True

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_record(row) -> ExternalSessionRecord:
    return ExternalSessionRecord(
        id=row.id,
        user_id=row.user_id,
        site=row.site,
        domain=row.domain,
        encrypted_storage_state=row.encrypted_storage_state,
        status=SessionStatus(row.status),
        meta=_load_meta(row.meta),
        account_label=row.account_label,
        expires_at=row.expires_at,
        last_used_at=row.last_used_at,
        last_error_at=row.last_error_at,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )
