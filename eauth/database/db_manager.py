import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from typing import Iterator, Optional

from eauth.core.accounts import Account, AccountState
from eauth.core.errors import AlreadyExists, NotFound
from eauth.database.setup_database import setup_database

logger = logging.getLogger(__name__)

DATABASE_FILE = "eauth.db"


def _to_text(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _from_text(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


class SqliteAccountStore:
    """
    Account store backed by a SQLite file.

    Each operation opens its own short-lived connection, so one store can be
    shared by threads. Create the schema with ``setup_database`` (done by
    the constructor unless ``initialize=False``).
    """

    def __init__(self, database_file: str = DATABASE_FILE, timeout: float = 5.0, initialize: bool = True):
        self.database_file = database_file
        self.timeout = timeout
        if initialize:
            setup_database(database_file)

    @contextmanager
    def connect(self) -> Iterator[sqlite3.Connection]:
        """Connection scoped to one unit of work: commit on success, rollback on error."""
        conn = sqlite3.connect(self.database_file, timeout=self.timeout)
        conn.row_factory = sqlite3.Row  # rows behave like dictionaries
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    @staticmethod
    def _row_to_account(row: sqlite3.Row) -> Account:
        return Account(
            identifier=row["identifier"],
            secret=row["secret"],
            state=AccountState(row["state"]),
            created_at=_from_text(row["created_at"]),
            last_matched_step=row["last_matched_step"],
            verified_at=_from_text(row["verified_at"]),
        )

    # --- CRUD ----------------------------------------------------------------
    def find_by_identifier(self, identifier: str) -> Optional[Account]:
        """Return the account, or None when it does not exist."""
        with self.connect() as conn:
            row = conn.execute(
                "SELECT * FROM accounts WHERE identifier = ?", (identifier,)
            ).fetchone()
        return self._row_to_account(row) if row else None

    def create(self, account: Account) -> None:
        try:
            with self.connect() as conn:
                conn.execute(
                    """INSERT INTO accounts
                           (identifier, secret, state, created_at, verified_at, last_matched_step)
                       VALUES (?, ?, ?, ?, ?, ?)""",
                    (
                        account.identifier,
                        account.secret,
                        account.state.value,
                        _to_text(account.created_at),
                        _to_text(account.verified_at),
                        account.last_matched_step,
                    ),
                )
        except sqlite3.IntegrityError as e:
            raise AlreadyExists(f"User '{account.identifier}' already exists") from e
        logger.debug("Account '%s' added", account.identifier)

    def update(self, account: Account) -> None:
        """
        Persist state changes. The secret is immutable and the anti-replay
        marker only moves through ``consume_step``, so neither is written here.
        """
        with self.connect() as conn:
            cursor = conn.execute(
                "UPDATE accounts SET state = ?, verified_at = ? WHERE identifier = ?",
                (account.state.value, _to_text(account.verified_at), account.identifier),
            )
            if cursor.rowcount == 0:
                raise NotFound(f"User '{account.identifier}' not found")

    def consume_step(self, identifier: str, step: int) -> bool:
        """
        Atomically advance the anti-replay marker to ``step``.

        Returns False when the marker is already at or past ``step`` (the
        step was consumed by someone else in the meantime).
        """
        with self.connect() as conn:
            cursor = conn.execute(
                """UPDATE accounts SET last_matched_step = ?
                   WHERE identifier = ?
                     AND (last_matched_step IS NULL OR last_matched_step < ?)""",
                (step, identifier, step),
            )
            return cursor.rowcount == 1

    # --- Attempt log -----------------------------------------------------------
    def log_attempt(self, identifier: str, success: bool, outcome: str, attempted_at: float) -> None:
        with self.connect() as conn:
            conn.execute(
                "INSERT INTO otp_attempts (identifier, success, outcome, attempted_at) VALUES (?, ?, ?, ?)",
                (identifier, success, outcome, attempted_at),
            )

    def recent_failures(self, identifier: str, since: float) -> int:
        """Failed attempts at or after ``since`` that came after the last success."""
        with self.connect() as conn:
            row = conn.execute(
                """SELECT COUNT(*) FROM otp_attempts
                   WHERE identifier = ?
                     AND success = 0
                     AND attempted_at >= ?
                     AND id > COALESCE(
                         (SELECT MAX(id) FROM otp_attempts WHERE identifier = ? AND success = 1), 0)""",
                (identifier, since, identifier),
            ).fetchone()
        return row[0]

    def attempts(self, identifier: str) -> list:
        """All attempts for an account, oldest first."""
        with self.connect() as conn:
            rows = conn.execute(
                "SELECT success, outcome, attempted_at FROM otp_attempts WHERE identifier = ? ORDER BY id",
                (identifier,),
            ).fetchall()
        return [dict(row) for row in rows]
