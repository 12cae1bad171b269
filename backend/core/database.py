import json
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from contextlib import contextmanager
from .config import settings
from .errors import PersistenceError


SCHEMA = """
    CREATE TABLE IF NOT EXISTS leads (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        email TEXT UNIQUE,
        phone TEXT UNIQUE,
        status TEXT NOT NULL DEFAULT 'new',
        source_url TEXT NOT NULL,
        date_scraped TIMESTAMP,
        last_contacted TIMESTAMP,
        notes TEXT,
        created_at TIMESTAMP NOT NULL,
        updated_at TIMESTAMP NOT NULL
    );

    CREATE TABLE IF NOT EXISTS responses (
        id TEXT PRIMARY KEY,
        lead_id TEXT NOT NULL,
        channel TEXT NOT NULL,
        direction TEXT NOT NULL,
        content TEXT NOT NULL,
        status TEXT NOT NULL,
        external_message_id TEXT,
        created_at TIMESTAMP NOT NULL,
        FOREIGN KEY (lead_id) REFERENCES leads(id)
    );

    CREATE TABLE IF NOT EXISTS jobs (
        id TEXT PRIMARY KEY,
        job_type TEXT NOT NULL,
        status TEXT NOT NULL DEFAULT 'pending',
        date TIMESTAMP NOT NULL,
        leads_processed INTEGER DEFAULT 0,
        leads_sent INTEGER DEFAULT 0,
        error_message TEXT,
        details TEXT,
        created_at TIMESTAMP NOT NULL,
        updated_at TIMESTAMP NOT NULL
    );

    CREATE TABLE IF NOT EXISTS logs (
        id TEXT PRIMARY KEY,
        level TEXT NOT NULL DEFAULT 'info',
        module TEXT NOT NULL,
        message TEXT NOT NULL,
        metadata TEXT,
        timestamp TIMESTAMP NOT NULL
    );

    CREATE TABLE IF NOT EXISTS summaries (
        lead_id TEXT PRIMARY KEY,
        conversation_summary TEXT NOT NULL,
        key_points TEXT NOT NULL DEFAULT '[]',
        created_at TIMESTAMP NOT NULL,
        updated_at TIMESTAMP NOT NULL,
        FOREIGN KEY (lead_id) REFERENCES leads(id)
    );

    CREATE INDEX IF NOT EXISTS idx_leads_status ON leads(status);
    CREATE INDEX IF NOT EXISTS idx_responses_lead ON responses(lead_id);
    CREATE INDEX IF NOT EXISTS idx_responses_external ON responses(external_message_id);
    CREATE INDEX IF NOT EXISTS idx_jobs_type_created ON jobs(job_type, created_at);
"""


def get_db_path():
    """Extract SQLite path from database URL."""
    db_url = settings.database_url
    if db_url.startswith("sqlite:///"):
        return db_url.replace("sqlite:///", "")
    return "database/leadbot.db"


@contextmanager
def get_db_connection():
    """Context manager for SQLite connections.

    Integrity errors propagate unchanged so stores can map them to conflicts;
    every other SQLite failure surfaces as PersistenceError.
    """
    db_path = get_db_path()
    Path(db_path).parent.mkdir(parents=True, exist_ok=True)

    try:
        conn = sqlite3.connect(db_path)
    except sqlite3.Error as e:
        raise PersistenceError(f"Database unavailable: {e}") from e

    conn.row_factory = sqlite3.Row  # Return rows as dictionaries
    try:
        yield conn
        conn.commit()
    except sqlite3.IntegrityError:
        conn.rollback()
        raise
    except sqlite3.Error as e:
        conn.rollback()
        raise PersistenceError(f"Database error: {e}") from e
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_json(value) -> str:
    return json.dumps(value if value is not None else {}, default=str)


def from_json(value, default=None):
    if not value:
        return default
    return json.loads(value)


def init_database():
    """Create tables and indexes if they do not exist."""
    with get_db_connection() as conn:
        conn.executescript(SCHEMA)


def ping_database() -> bool:
    """Return True when the database answers a trivial query."""
    try:
        with get_db_connection() as conn:
            conn.execute("SELECT 1")
        return True
    except PersistenceError:
        return False
