"""
auth/store.py -- SQLAlchemy Core persistence layer for auth entities.

Pattern: Repository + Data Mapper (same as inventory/store.py).
UserStore is the repository; the _row_to_* functions are the mappers.
Route and authenticator code never touches SQL directly.

UserStore also satisfies the SessionStore protocol (auth/sessions.py): the
auth_sessions table is keyed by HMAC(token), never by the raw token.

Security:
  All queries use bound parameters. No f-strings in SQL.
  revoke_session() is a single UPDATE, so a logout racing with an in-flight
  request is serialized by the database: any get_session() that runs after
  the UPDATE commits sees revoked=1.

DB path: auth/lotdesk_auth.db unless DATABASE_URL is set.

Layer rule: no imports from api/ or inventory/.
"""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, create_engine, event, func, select
from sqlalchemy.engine import Engine

from auth.models import Identity, LoginState, Session

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).parent / 'lotdesk_auth.db'}"

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("username", String(255), nullable=False, unique=True),
    Column("number", String(32)),  # public login identifier (phone)
    Column("password", Text),  # scrypt record, legacy plaintext, or ""
    Column("access_level", String(30), nullable=False, server_default="viewer"),
    Column("auth_user_id", String(64)),  # identity provider id, set by migration
    Column("auth_email", String(255)),
    Column("created_at", String(32), nullable=False),
)

_sessions = Table(
    "auth_sessions",
    _metadata,
    Column("token_hash", String(64), primary_key=True),  # HMAC-SHA256 hex
    Column("user_id", Integer),  # NULL for guest sessions
    Column("issued_at", String(32), nullable=False),
    Column("expires_at", String(32), nullable=False),
    Column("revoked", Integer, nullable=False, server_default="0"),
)

_login_state = Table(
    "auth_login_state",
    _metadata,
    Column("number", String(64), primary_key=True),
    Column("fail_count", Integer, nullable=False, server_default="0"),
    Column("post_first_ban", Integer, nullable=False, server_default="0"),
    Column("locked_until", String(32)),
)

_login_events = Table(
    "auth_login_logs",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("number", String(64), nullable=False),
    Column("user_id", Integer),
    Column("lock_hours", Integer, nullable=False),
    Column("lock_until", String(32), nullable=False),
    Column("reason", Text, nullable=False),
    Column("created_at", String(32), nullable=False),
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


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for Identity, Session and LoginState entities.

    Usage:
        store = UserStore()
        uid = store.create_identity(Identity(username="ana", role="admin", display_number="5550100"))
        identity = store.get_by_id(uid)
        store.close()

    max_rows caps every multi-row select, the same way InventoryStore does.
    Callers that need every identity page through page_identities() with
    core/pagination.fetch_all().
    """

    def __init__(self, db_url: str = _DEFAULT_DB_URL, max_rows: int = 1000) -> None:
        if max_rows < 1:
            raise ValueError("max_rows must be >= 1")
        self.max_rows = max_rows
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

    def _cap(self, limit: int) -> int:
        return max(0, min(limit, self.max_rows))

    # ------------------------------------------------------------------
    # Identities
    # ------------------------------------------------------------------

    def create_identity(self, identity: Identity) -> int:
        """Insert a new identity and return its assigned database ID.

        Raises sqlalchemy.exc.IntegrityError if the username already exists.
        """
        with self.engine.connect() as conn:
            result = conn.execute(
                _users.insert().values(
                    username=identity.username,
                    number=identity.display_number,
                    password=identity.password or "",
                    access_level=identity.role,
                    auth_user_id=identity.auth_user_id,
                    auth_email=identity.auth_email,
                    created_at=_now_iso(),
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get_by_id(self, identity_id: int) -> Optional[Identity]:
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == identity_id)).fetchone()
        return _row_to_identity(row) if row is not None else None

    def get_by_username(self, username: str) -> Optional[Identity]:
        """Look up an identity by exact username (case-sensitive). Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.username == username)).fetchone()
        return _row_to_identity(row) if row is not None else None

    def find_by_numbers(self, candidates: list[str]) -> Optional[Identity]:
        """Return the first identity whose number is any of the candidates.

        Ordered by id so the choice is deterministic when legacy data holds
        the same number in two formats.
        """
        if not candidates:
            return None
        with self.engine.connect() as conn:
            row = conn.execute(
                _users.select().where(_users.c.number.in_(candidates)).order_by(_users.c.id).limit(1)
            ).fetchone()
        return _row_to_identity(row) if row is not None else None

    def page_identities(self, after_id: Optional[int], limit: int) -> list[Identity]:
        """One page of identities with id > after_id, ascending by id."""
        stmt = _users.select().order_by(_users.c.id).limit(self._cap(limit))
        if after_id is not None:
            stmt = stmt.where(_users.c.id > after_id)
        with self.engine.connect() as conn:
            rows = conn.execute(stmt).fetchall()
        return [_row_to_identity(r) for r in rows]

    def username_taken(self, username: str, exclude_id: Optional[int] = None) -> bool:
        stmt = select(_users.c.id).where(_users.c.username == username)
        if exclude_id is not None:
            stmt = stmt.where(_users.c.id != exclude_id)
        with self.engine.connect() as conn:
            return conn.execute(stmt.limit(1)).fetchone() is not None

    def update_identity(self, identity_id: int, **fields) -> bool:
        """Update mutable fields on an existing identity.

        Accepted fields: username, display_number, password, role,
        auth_user_id, auth_email. Domain names are mapped to column names here
        so callers never see the legacy schema.

        Returns True if a row was updated, False if identity_id was not found.
        """
        column_map = {"display_number": "number", "role": "access_level"}
        values = {column_map.get(k, k): v for k, v in fields.items()}
        with self.engine.connect() as conn:
            result = conn.execute(_users.update().where(_users.c.id == identity_id).values(**values))
            conn.commit()
        return result.rowcount > 0

    def delete_identity(self, identity_id: int) -> bool:
        """Delete an identity and revoke its sessions. Returns False if not found."""
        with self.engine.connect() as conn:
            conn.execute(_sessions.update().where(_sessions.c.user_id == identity_id).values(revoked=1))
            result = conn.execute(_users.delete().where(_users.c.id == identity_id))
            conn.commit()
        return result.rowcount > 0

    def count_identities(self) -> int:
        with self.engine.connect() as conn:
            return conn.execute(select(func.count()).select_from(_users)).scalar() or 0

    # ------------------------------------------------------------------
    # Sessions (SessionStore protocol)
    # ------------------------------------------------------------------

    def create_session(self, session: Session) -> None:
        with self.engine.connect() as conn:
            conn.execute(
                _sessions.insert().values(
                    token_hash=session.token_hash,
                    user_id=session.identity_id,
                    issued_at=session.issued_at,
                    expires_at=session.expires_at,
                    revoked=1 if session.revoked else 0,
                )
            )
            conn.commit()

    def get_session(self, token_hash: str) -> Optional[Session]:
        with self.engine.connect() as conn:
            row = conn.execute(_sessions.select().where(_sessions.c.token_hash == token_hash)).fetchone()
        return _row_to_session(row) if row is not None else None

    def revoke_session(self, token_hash: str) -> None:
        """Mark a session revoked. No-op for unknown or already-revoked hashes."""
        with self.engine.connect() as conn:
            conn.execute(_sessions.update().where(_sessions.c.token_hash == token_hash).values(revoked=1))
            conn.commit()

    # ------------------------------------------------------------------
    # Login throttling
    # ------------------------------------------------------------------

    def get_login_state(self, number: str) -> LoginState:
        with self.engine.connect() as conn:
            row = conn.execute(_login_state.select().where(_login_state.c.number == number)).fetchone()
        if row is None:
            return LoginState(number=number)
        return LoginState(
            number=row.number,
            fail_count=row.fail_count,
            post_first_ban=bool(row.post_first_ban),
            locked_until=row.locked_until,
        )

    def save_login_state(self, state: LoginState) -> None:
        """Upsert the throttle row for one identifier."""
        values = {
            "fail_count": state.fail_count,
            "post_first_ban": 1 if state.post_first_ban else 0,
            "locked_until": state.locked_until,
        }
        with self.engine.connect() as conn:
            result = conn.execute(_login_state.update().where(_login_state.c.number == state.number).values(**values))
            if result.rowcount == 0:
                conn.execute(_login_state.insert().values(number=state.number, **values))
            conn.commit()

    def log_lockout(self, number: str, identity_id: Optional[int], lock_hours: int, lock_until: str, reason: str) -> None:
        with self.engine.connect() as conn:
            conn.execute(
                _login_events.insert().values(
                    number=number,
                    user_id=identity_id,
                    lock_hours=lock_hours,
                    lock_until=lock_until,
                    reason=reason,
                    created_at=_now_iso(),
                )
            )
            conn.commit()

    def list_lockouts(self, number: str) -> list[dict]:
        with self.engine.connect() as conn:
            rows = conn.execute(
                _login_events.select()
                .where(_login_events.c.number == number)
                .order_by(_login_events.c.id)
                .limit(self.max_rows)
            ).fetchall()
        return [{"lock_hours": r.lock_hours, "lock_until": r.lock_until, "reason": r.reason} for r in rows]

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_identity(row) -> Identity:
    # access_level is stored with legacy casing ("Viewer") on old rows.
    return Identity(
        id=row.id,
        username=row.username,
        display_number=row.number,
        password=row.password,
        role=(row.access_level or "").strip().lower(),
        auth_user_id=row.auth_user_id,
        auth_email=row.auth_email,
        created_at=row.created_at,
    )


def _row_to_session(row) -> Session:
    return Session(
        token_hash=row.token_hash,
        identity_id=row.user_id,
        issued_at=row.issued_at,
        expires_at=row.expires_at,
        revoked=bool(row.revoked),
    )
