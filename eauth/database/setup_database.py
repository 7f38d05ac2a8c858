import logging
import os
import sqlite3

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS accounts (
    identifier TEXT PRIMARY KEY,
    secret TEXT NOT NULL,
    state TEXT NOT NULL DEFAULT 'registered',
    created_at TIMESTAMP NOT NULL,
    verified_at TIMESTAMP,
    last_matched_step INTEGER
);

-- one row per verification attempt; the submitted code itself is not kept
CREATE TABLE IF NOT EXISTS otp_attempts (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    identifier TEXT NOT NULL,
    success BOOLEAN NOT NULL,
    outcome TEXT NOT NULL,
    attempted_at REAL NOT NULL,
    FOREIGN KEY (identifier) REFERENCES accounts (identifier)
);

CREATE INDEX IF NOT EXISTS idx_otp_attempts_identifier
    ON otp_attempts (identifier, id);
"""


def setup_database(database_file: str) -> None:
    """Create the accounts and otp_attempts tables if they do not exist."""
    directory = os.path.dirname(database_file)
    if directory:
        os.makedirs(directory, exist_ok=True)

    conn = sqlite3.connect(database_file)
    try:
        conn.executescript(SCHEMA)
        conn.commit()
    finally:
        conn.close()
    logger.info("Database ready at %s", database_file)
