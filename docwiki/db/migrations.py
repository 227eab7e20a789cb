"""
Database migrations and initialization for docwiki.
SQLite, one connection per operation.
"""

import logging
import sqlite3
from pathlib import Path

from ..config import DB_PATH

logger = logging.getLogger(__name__)

# Increment this when adding new migration blocks.
_SCHEMA_VERSION = 2

# Paths whose schema has been checked by this process
_ready: set[str] = set()

_SCHEMA = """
CREATE TABLE IF NOT EXISTS users (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    email TEXT DEFAULT '',
    avatar_url TEXT DEFAULT '',
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS pages (
    id TEXT PRIMARY KEY,
    title TEXT,
    icon TEXT,
    content TEXT,
    text_content TEXT,
    ydoc BLOB,
    position TEXT COLLATE BINARY NOT NULL,
    parent_page_id TEXT REFERENCES pages(id) ON DELETE CASCADE,
    space_id TEXT NOT NULL,
    workspace_id TEXT NOT NULL,
    creator_id TEXT,
    last_updated_by_id TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_pages_siblings ON pages(space_id, parent_page_id, position);
CREATE INDEX IF NOT EXISTS idx_pages_parent ON pages(parent_page_id);

CREATE TABLE IF NOT EXISTS comments (
    id TEXT PRIMARY KEY,
    page_id TEXT NOT NULL REFERENCES pages(id) ON DELETE CASCADE,
    content TEXT,
    selection TEXT,
    creator_id TEXT,
    parent_comment_id TEXT REFERENCES comments(id) ON DELETE CASCADE,
    resolved_at TEXT,
    resolved_by_id TEXT,
    workspace_id TEXT NOT NULL,
    created_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_comments_page ON comments(page_id, created_at);

CREATE TABLE IF NOT EXISTS events (
    id             TEXT PRIMARY KEY,
    event_type     TEXT NOT NULL,
    aggregate_type TEXT NOT NULL,
    aggregate_id   TEXT NOT NULL,
    actor          TEXT DEFAULT 'system',
    payload        TEXT DEFAULT '{}',
    timestamp      REAL NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_events_aggregate ON events(aggregate_type, aggregate_id);
CREATE INDEX IF NOT EXISTS idx_events_type ON events(event_type);
"""


def get_schema_version(db_path: Path = DB_PATH) -> int:
    """Return the schema version recorded in the DB (0 if not yet tracked)."""
    conn = get_db(db_path)
    try:
        row = conn.execute(
            "SELECT version FROM schema_version ORDER BY version DESC LIMIT 1"
        ).fetchone()
        return row[0] if row else 0
    except sqlite3.OperationalError:
        return 0
    finally:
        conn.close()


def _bump_schema_version(conn, version: int) -> None:
    """Record the applied schema version (idempotent)."""
    conn.execute(
        "CREATE TABLE IF NOT EXISTS schema_version (version INTEGER PRIMARY KEY, applied_at TEXT DEFAULT (datetime('now')))"
    )
    conn.execute(
        "INSERT OR REPLACE INTO schema_version (version) VALUES (?)", (version,)
    )


def _connect(db_path: Path) -> sqlite3.Connection:
    conn = sqlite3.connect(str(db_path))
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA foreign_keys=ON")
    return conn


def init_db(db_path: Path = DB_PATH):
    """Initialize database with schema. Safe to call multiple times."""
    db_path = Path(db_path)
    db_path.parent.mkdir(parents=True, exist_ok=True)
    conn = _connect(db_path)
    conn.executescript(_SCHEMA)
    _migrate(conn)
    conn.commit()
    _ready.add(str(db_path))
    logger.info("DB (SQLite) schema v%s ready at %s", _SCHEMA_VERSION, db_path)
    return conn


def _migrate(conn):
    """Run incremental migrations. Safe to call multiple times."""
    # v2: soft delete for pages, edit tracking for comments
    cols = {r[1] for r in conn.execute("PRAGMA table_info(pages)").fetchall()}
    if "deleted_at" not in cols:
        conn.execute("ALTER TABLE pages ADD COLUMN deleted_at TEXT")
    conn.execute(
        "CREATE INDEX IF NOT EXISTS idx_pages_recent ON pages(space_id, updated_at)"
    )

    cols = {r[1] for r in conn.execute("PRAGMA table_info(comments)").fetchall()}
    if "edited_at" not in cols:
        conn.execute("ALTER TABLE comments ADD COLUMN edited_at TEXT")

    _bump_schema_version(conn, _SCHEMA_VERSION)


def get_db(db_path: Path = DB_PATH):
    """Get a database connection, creating the schema on first use."""
    db_path = Path(db_path)
    if str(db_path) not in _ready or not db_path.exists():
        return init_db(db_path)
    return _connect(db_path)
