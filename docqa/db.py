"""SQLite helpers for persisted conversation history.

One table of turns keyed by framework. The query pipeline never writes
here; the HTTP layer records exchanges on behalf of the UI.
"""
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, List, Dict, Any
import structlog

from docqa import config

logger = structlog.get_logger()


def get_connection(db_path: Path = None) -> sqlite3.Connection:
    """Get a connection to the SQLite database.

    Returns:
        sqlite3.Connection with row_factory set to sqlite3.Row
    """
    conn = sqlite3.connect(db_path or config.HISTORY_DB_PATH)
    conn.row_factory = sqlite3.Row
    return conn


def init_database(db_path: Path = None) -> None:
    """Create the history schema if it doesn't exist."""
    db_path = Path(db_path or config.HISTORY_DB_PATH)
    db_path.parent.mkdir(parents=True, exist_ok=True)

    conn = get_connection(db_path)
    cursor = conn.cursor()

    try:
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS conversation_turns (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                framework TEXT NOT NULL,
                role TEXT NOT NULL CHECK (role IN ('user', 'assistant')),
                content TEXT NOT NULL,
                created_at TEXT NOT NULL
            )
        """)

        cursor.execute("""
            CREATE INDEX IF NOT EXISTS idx_turns_framework
            ON conversation_turns(framework, id)
        """)

        conn.commit()
        logger.info("database_initialized", db_path=str(db_path))

    except Exception as e:
        conn.rollback()
        logger.error("database_init_failed", error=str(e))
        raise
    finally:
        conn.close()


def add_turn(framework: str, role: str, content: str, db_path: Path = None) -> int:
    """Insert one conversation turn.

    Returns:
        ID of the inserted row
    """
    conn = get_connection(db_path)
    cursor = conn.cursor()

    try:
        cursor.execute(
            """
            INSERT INTO conversation_turns (framework, role, content, created_at)
            VALUES (?, ?, ?, ?)
            """,
            (framework, role, content, datetime.now(timezone.utc).isoformat()),
        )
        conn.commit()
        return cursor.lastrowid

    except Exception as e:
        conn.rollback()
        logger.error("turn_insert_failed", error=str(e), framework=framework)
        raise
    finally:
        conn.close()


def get_turns(
    framework: str, limit: Optional[int] = None, db_path: Path = None
) -> List[Dict[str, Any]]:
    """Get turns for a framework in chronological order.

    Args:
        framework: Framework key
        limit: Only the most recent ``limit`` turns when given
    """
    conn = get_connection(db_path)
    cursor = conn.cursor()

    try:
        if limit is None:
            cursor.execute(
                """
                SELECT id, role, content, created_at FROM conversation_turns
                WHERE framework = ? ORDER BY id
                """,
                (framework,),
            )
            rows = cursor.fetchall()
        else:
            cursor.execute(
                """
                SELECT id, role, content, created_at FROM conversation_turns
                WHERE framework = ? ORDER BY id DESC LIMIT ?
                """,
                (framework, limit),
            )
            rows = list(reversed(cursor.fetchall()))

        return [dict(row) for row in rows]

    except Exception as e:
        logger.error("turns_retrieval_failed", error=str(e), framework=framework)
        raise
    finally:
        conn.close()


def delete_turns(framework: str, db_path: Path = None) -> int:
    """Delete every turn of a framework.

    Returns:
        Number of turns deleted
    """
    conn = get_connection(db_path)
    cursor = conn.cursor()

    try:
        cursor.execute("DELETE FROM conversation_turns WHERE framework = ?", (framework,))
        conn.commit()
        logger.info("turns_cleared", framework=framework, count=cursor.rowcount)
        return cursor.rowcount

    except Exception as e:
        conn.rollback()
        logger.error("turns_clear_failed", error=str(e), framework=framework)
        raise
    finally:
        conn.close()
