"""
auth/store.py -- SQLAlchemy Core persistence layer for user accounts.

Pattern: Repository + Data Mapper (same as sessions/store.py).
UserStore is the repository; _row_to_user is the mapper.
Route and dependency code never touches SQL directly.

CPF columns:
  cpf_hash carries a UNIQUE constraint. SQLite and PostgreSQL both treat
  NULLs as distinct, so any number of users without a CPF can coexist while
  two users with the same CPF cannot. Routes check find_by_cpf_hash() first
  for a friendly 409 and still catch IntegrityError for the concurrent case.

Security:
  All queries use bound parameters. No f-strings in SQL.

DB path: auth/radarone_auth.db unless AUTH_DATABASE_URL is set.

Layer rule: no imports from api/ or sessions/.
"""

from __future__ import annotations

from pathlib import Path

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, create_engine, event, text
from sqlalchemy.engine import Engine

from auth.models import User
from core.config import now_iso

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).parent / 'radarone_auth.db'}"

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("email", String(255), nullable=False, unique=True),
    Column("name", String(255), nullable=False),
    Column("hashed_password", Text),
    Column("cpf_encrypted", Text),  # iv:tag:ciphertext hex
    Column("cpf_last4", String(4)),  # display only
    Column("cpf_hash", String(64), unique=True),  # SHA-256 hex, uniqueness key
    Column("created_at", String(32), nullable=False),
    Column("is_active", Integer, nullable=False, server_default="1"),
    Column("last_login", Text),
)


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User entities.

    Usage:
        store = UserStore()
        store.create_user(User(email="ana@example.com", name="Ana", hashed_password=hash_password("secret")))
        user = store.get_by_email("ana@example.com")
        store.close()
    """

    def __init__(self, db_url: str = _DEFAULT_DB_URL) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # User queries
    # ------------------------------------------------------------------

    def create_user(self, user: User) -> int:
        """Insert a new user and return its assigned database ID.

        Raises sqlalchemy.exc.IntegrityError if the email or cpf_hash already
        exists. POST /auth/register catches it as a concurrent duplicate.
        """
        with self.engine.connect() as conn:
            result = conn.execute(
                _users.insert().values(
                    email=user.email.lower(),
                    name=user.name,
                    hashed_password=user.hashed_password,
                    cpf_encrypted=user.cpf_encrypted,
                    cpf_last4=user.cpf_last4,
                    cpf_hash=user.cpf_hash,
                    created_at=now_iso(),
                    is_active=1 if user.is_active else 0,
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get_by_email(self, email: str) -> User | None:
        """Look up a user by email (case-insensitive). Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.email == email.lower())).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_id(self, user_id: int) -> User | None:
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def find_by_cpf_hash(self, cpf_hash: str) -> User | None:
        """Look up the user holding a CPF by its hash. O(1) via the UNIQUE index."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.cpf_hash == cpf_hash)).fetchone()
        return _row_to_user(row) if row is not None else None

    def users_missing_cpf_hash(self) -> list[User]:
        """Users with an encrypted CPF but no hash (rows written before cpf_hash existed)."""
        missing = _users.c.cpf_hash.is_(None) | (_users.c.cpf_hash == "")
        with self.engine.connect() as conn:
            rows = conn.execute(
                _users.select().where(_users.c.cpf_encrypted.is_not(None) & missing).order_by(_users.c.id)
            ).fetchall()
        return [_row_to_user(r) for r in rows]

    def set_cpf_hash(self, user_id: int, cpf_hash: str) -> bool:
        """Fill in cpf_hash for an existing user. Only used by the backfill command."""
        with self.engine.connect() as conn:
            result = conn.execute(_users.update().where(_users.c.id == user_id).values(cpf_hash=cpf_hash))
            conn.commit()
        return result.rowcount > 0

    def update_last_login(self, user_id: int) -> None:
        with self.engine.connect() as conn:
            conn.execute(_users.update().where(_users.c.id == user_id).values(last_login=now_iso()))
            conn.commit()

    def ping(self) -> bool:
        with self.engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return True

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        email=row.email,
        name=row.name,
        hashed_password=row.hashed_password,
        cpf_encrypted=row.cpf_encrypted,
        cpf_last4=row.cpf_last4,
        cpf_hash=row.cpf_hash,
        created_at=row.created_at,
        last_login=row.last_login,
        is_active=bool(row.is_active),
    )
