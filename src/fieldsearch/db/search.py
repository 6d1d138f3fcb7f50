"""
Search Database Module

Schema definitions and connection handling for the search index.

Supports both:
- PostgreSQL (production): Set DATABASE_URL environment variable
- Local SQLite (development): Uses SEARCH_DB path or default
"""

import os
from contextlib import contextmanager
from typing import Any, Iterator, Sequence

from fieldsearch.core.config import Environment, settings

SCHEMA_SQL = """
-- Lexicon: exact words and Porter stems live in separate id spaces
CREATE TABLE IF NOT EXISTS search_words (
  word_id SERIAL PRIMARY KEY,
  word_text TEXT NOT NULL UNIQUE
);

CREATE TABLE IF NOT EXISTS search_stems (
  stem_id SERIAL PRIMARY KEY,
  stem_text TEXT NOT NULL UNIQUE
);

-- Weighted inverted index (heart of the search engine)
CREATE TABLE IF NOT EXISTS search_word_counts (
  term_kind TEXT NOT NULL,       -- 'word' or 'stem'
  term_id INTEGER NOT NULL,
  item_id INTEGER NOT NULL,
  field_id INTEGER NOT NULL,
  weighted_count INTEGER NOT NULL DEFAULT 1,
  PRIMARY KEY (term_kind, term_id, item_id, field_id)
);
CREATE INDEX IF NOT EXISTS idx_word_counts_item ON search_word_counts(item_id);
CREATE INDEX IF NOT EXISTS idx_word_counts_field ON search_word_counts(field_id);

-- Item type recorded for every indexed item
CREATE TABLE IF NOT EXISTS search_item_types (
  item_id INTEGER PRIMARY KEY,
  item_type INTEGER NOT NULL
);

-- Undirected synonym edges (one row per unordered pair)
CREATE TABLE IF NOT EXISTS search_word_synonyms (
  word_id_a INTEGER NOT NULL,
  word_id_b INTEGER NOT NULL
);
CREATE UNIQUE INDEX IF NOT EXISTS idx_synonym_pair
  ON search_word_synonyms (LEAST(word_id_a, word_id_b), GREATEST(word_id_a, word_id_b));
CREATE INDEX IF NOT EXISTS idx_synonym_b ON search_word_synonyms(word_id_b);
"""

# SQLite schema for local development
SQLITE_SCHEMA_SQL = """
PRAGMA journal_mode=WAL;
PRAGMA synchronous=NORMAL;

CREATE TABLE IF NOT EXISTS search_words (
  word_id INTEGER PRIMARY KEY AUTOINCREMENT,
  word_text TEXT NOT NULL UNIQUE
);

CREATE TABLE IF NOT EXISTS search_stems (
  stem_id INTEGER PRIMARY KEY AUTOINCREMENT,
  stem_text TEXT NOT NULL UNIQUE
);

CREATE TABLE IF NOT EXISTS search_word_counts (
  term_kind TEXT NOT NULL,
  term_id INTEGER NOT NULL,
  item_id INTEGER NOT NULL,
  field_id INTEGER NOT NULL,
  weighted_count INTEGER NOT NULL DEFAULT 1,
  PRIMARY KEY (term_kind, term_id, item_id, field_id)
);
CREATE INDEX IF NOT EXISTS idx_word_counts_item ON search_word_counts(item_id);
CREATE INDEX IF NOT EXISTS idx_word_counts_field ON search_word_counts(field_id);

CREATE TABLE IF NOT EXISTS search_item_types (
  item_id INTEGER PRIMARY KEY,
  item_type INTEGER NOT NULL
);

CREATE TABLE IF NOT EXISTS search_word_synonyms (
  word_id_a INTEGER NOT NULL,
  word_id_b INTEGER NOT NULL
);
CREATE UNIQUE INDEX IF NOT EXISTS idx_synonym_pair
  ON search_word_synonyms (min(word_id_a, word_id_b), max(word_id_a, word_id_b));
CREATE INDEX IF NOT EXISTS idx_synonym_b ON search_word_synonyms(word_id_b);
"""


def is_postgres_mode() -> bool:
    """Check if we're using PostgreSQL."""
    return os.getenv("DATABASE_URL") is not None


def sql_placeholder() -> str:
    """Return parameter placeholder for current database driver."""
    return "%s" if is_postgres_mode() else "?"


def sql_placeholders(count: int) -> str:
    """Return comma-separated placeholders for IN clauses."""
    if count <= 0:
        raise ValueError("count must be greater than zero")
    ph = sql_placeholder()
    return ",".join([ph] * count)


def get_connection(db_path: str | None = None) -> Any:
    """Get database connection (PostgreSQL or local SQLite).

    Args:
        db_path: Optional path to SQLite database. Ignored if DATABASE_URL is set.

    Returns a connection object.
    - If DATABASE_URL is set: connects to PostgreSQL (production)
    - Otherwise: connects to local SQLite (development/test only)

    Raises:
        RuntimeError: If ENVIRONMENT is 'production' but DATABASE_URL is not set.
    """
    database_url = os.getenv("DATABASE_URL")

    if settings.ENVIRONMENT == Environment.PRODUCTION and not database_url:
        raise RuntimeError(
            "DATABASE_URL is required in production environment. "
            "Set DATABASE_URL environment variable."
        )

    if database_url:
        # PostgreSQL (production)
        import psycopg2

        return psycopg2.connect(database_url)
    else:
        # Local SQLite (development)
        import sqlite3

        path = db_path or os.getenv("SEARCH_DB", settings.DB_PATH)
        return sqlite3.connect(path)


@contextmanager
def connection_scope(db_path: str | None = None, conn: Any | None = None) -> Iterator[Any]:
    """Yield the caller's connection, or open one that commits on success.

    A borrowed connection is left to its owner: no commit, rollback or close.
    """
    if conn is not None:
        yield conn
        return

    conn = get_connection(db_path)
    try:
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


def execute(conn: Any, sql: str, params: Sequence[Any] = ()) -> int:
    """Run a statement and return the affected row count."""
    cur = conn.cursor()
    try:
        cur.execute(sql, tuple(params))
        return cur.rowcount
    finally:
        cur.close()


def fetch_all(conn: Any, sql: str, params: Sequence[Any] = ()) -> list[tuple]:
    """Run a query and return all rows in order."""
    cur = conn.cursor()
    try:
        cur.execute(sql, tuple(params))
        return list(cur.fetchall())
    finally:
        cur.close()


def fetch_value(conn: Any, sql: str, params: Sequence[Any] = ()) -> Any:
    """Run a query and return the first column of the first row, or None."""
    cur = conn.cursor()
    try:
        cur.execute(sql, tuple(params))
        row = cur.fetchone()
        return row[0] if row else None
    finally:
        cur.close()


def _execute_schema_statements(con: Any, schema: str, is_postgres: bool) -> None:
    """Execute schema statements one by one for PostgreSQL compatibility."""
    if is_postgres:
        cur = con.cursor()
        statements = [s.strip() for s in schema.split(";") if s.strip()]
        # Serialize schema initialization across concurrent indexers.
        # Without this lock, concurrent CREATE TABLE IF NOT EXISTS can still race
        # on PostgreSQL catalogs and raise duplicate key errors.
        lock_id = 906115424
        error: Exception | None = None
        cur.execute("SELECT pg_advisory_lock(%s)", (lock_id,))
        try:
            for stmt in statements:
                cur.execute(stmt)
            con.commit()
        except Exception as e:
            error = e
            con.rollback()
        finally:
            try:
                cur.execute("SELECT pg_advisory_unlock(%s)", (lock_id,))
                con.commit()
            except Exception:
                con.rollback()
                if error is None:
                    raise
            finally:
                cur.close()

        if error is not None:
            raise error
    else:
        con.executescript(schema)


def open_db(path: str = settings.DB_PATH) -> Any:
    """Open database connection and ensure schema exists.

    Note: If DATABASE_URL is set, the path parameter is ignored
    and PostgreSQL connection is used instead.
    """
    con = get_connection(path)
    postgres_mode = is_postgres_mode()

    if postgres_mode:
        _execute_schema_statements(con, SCHEMA_SQL, is_postgres=True)
    else:
        _execute_schema_statements(con, SQLITE_SCHEMA_SQL, is_postgres=False)

    return con


def ensure_db(path: str = settings.DB_PATH) -> None:
    """Ensure database file exists with correct schema."""
    con = open_db(path)
    con.close()
