"""SQLite database holding rules, plans and the audit log."""

import json
import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Generator

from inbox_rules.errors import DuplicateError

logger = logging.getLogger(__name__)


def safe_json_loads(data: str | None, default: Any = None) -> Any:
    """Safely parse JSON, returning default on error."""
    if not data:
        return default
    try:
        return json.loads(data)
    except (json.JSONDecodeError, TypeError) as e:
        logger.warning("Failed to parse JSON in database: %s", e)
        return default


def now() -> str:
    return datetime.now().isoformat()


class Database:
    """SQLite database shared by the rule and plan stores."""

    def __init__(self, db_path: Path) -> None:
        """
        Initialize the database and create the schema.

        Args:
            db_path: Path to the SQLite database file.
        """
        self.db_path = db_path
        self._ensure_schema()

    @contextmanager
    def connection(self) -> Generator[sqlite3.Connection, None, None]:
        """
        Context manager for database connections.

        Commits on success and rolls back on error. Unique constraint
        violations surface as ``DuplicateError``.
        """
        conn = sqlite3.connect(self.db_path, timeout=30)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        try:
            yield conn
            conn.commit()
        except sqlite3.IntegrityError as e:
            conn.rollback()
            if "UNIQUE" in str(e):
                raise DuplicateError(str(e), field=_unique_field(str(e))) from e
            raise
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _ensure_schema(self) -> None:
        """Create database tables if they don't exist."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        with self.connection() as conn:
            conn.executescript("""
                CREATE TABLE IF NOT EXISTS users (
                    id TEXT PRIMARY KEY,
                    email TEXT NOT NULL,
                    about TEXT,
                    created_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS rule_groups (
                    id TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
                    name TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    UNIQUE (user_id, name)
                );

                CREATE TABLE IF NOT EXISTS group_items (
                    id TEXT PRIMARY KEY,
                    group_id TEXT NOT NULL REFERENCES rule_groups(id) ON DELETE CASCADE,
                    type TEXT NOT NULL,
                    value TEXT NOT NULL,
                    UNIQUE (group_id, type, value)
                );

                -- A group belongs to at most one rule
                CREATE TABLE IF NOT EXISTS rules (
                    id TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
                    name TEXT NOT NULL,
                    type TEXT NOT NULL,
                    instructions TEXT NOT NULL DEFAULT '',
                    enabled INTEGER NOT NULL DEFAULT 1,
                    from_address TEXT,
                    to_address TEXT,
                    subject TEXT,
                    group_id TEXT UNIQUE REFERENCES rule_groups(id) ON DELETE SET NULL,
                    category_filters TEXT NOT NULL DEFAULT '[]',
                    automate INTEGER NOT NULL DEFAULT 0,
                    run_on_threads INTEGER NOT NULL DEFAULT 0,
                    position INTEGER NOT NULL DEFAULT 0,
                    created_at TEXT NOT NULL,
                    UNIQUE (user_id, name)
                );

                CREATE TABLE IF NOT EXISTS actions (
                    id TEXT PRIMARY KEY,
                    rule_id TEXT NOT NULL REFERENCES rules(id) ON DELETE CASCADE,
                    position INTEGER NOT NULL,
                    type TEXT NOT NULL,
                    fields TEXT NOT NULL DEFAULT '{}'
                );

                CREATE TABLE IF NOT EXISTS categories (
                    user_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
                    name TEXT NOT NULL,
                    description TEXT,
                    PRIMARY KEY (user_id, name)
                );

                CREATE TABLE IF NOT EXISTS sender_categories (
                    user_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
                    sender TEXT NOT NULL,
                    category TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    PRIMARY KEY (user_id, sender)
                );

                -- One decision per message; the unique key arbitrates concurrent runs
                CREATE TABLE IF NOT EXISTS executed_rules (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id TEXT NOT NULL,
                    thread_id TEXT NOT NULL,
                    message_id TEXT NOT NULL,
                    rule_id TEXT REFERENCES rules(id) ON DELETE SET NULL,
                    status TEXT NOT NULL,
                    reason TEXT,
                    automated INTEGER NOT NULL DEFAULT 0,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    executed_at TEXT,
                    UNIQUE (user_id, thread_id, message_id)
                );

                CREATE TABLE IF NOT EXISTS action_items (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    executed_rule_id INTEGER NOT NULL
                        REFERENCES executed_rules(id) ON DELETE CASCADE,
                    position INTEGER NOT NULL,
                    type TEXT NOT NULL,
                    args TEXT NOT NULL,
                    outcome TEXT,
                    error TEXT,
                    error_kind TEXT,
                    detail TEXT
                );

                -- Audit log for all transitions and executions
                CREATE TABLE IF NOT EXISTS audit_log (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id TEXT NOT NULL,
                    executed_rule_id INTEGER,
                    message_id TEXT,
                    action TEXT NOT NULL,
                    source TEXT NOT NULL,
                    timestamp TEXT NOT NULL,
                    details TEXT
                );

                CREATE INDEX IF NOT EXISTS idx_rules_user
                    ON rules(user_id, position);
                CREATE INDEX IF NOT EXISTS idx_executed_status
                    ON executed_rules(user_id, status);
                CREATE INDEX IF NOT EXISTS idx_action_items_plan
                    ON action_items(executed_rule_id, position);
                CREATE INDEX IF NOT EXISTS idx_audit_timestamp
                    ON audit_log(timestamp);
            """)

    # ─── Audit Log ────────────────────────────────────────────────────────

    def log_action(
        self,
        user_id: str,
        action: str,
        source: str,
        *,
        executed_rule_id: int | None = None,
        message_id: str | None = None,
        details: dict[str, Any] | None = None,
        conn: sqlite3.Connection | None = None,
    ) -> None:
        """
        Write an entry to the audit log.

        Args:
            user_id: Owner of the affected plan.
            action: What happened (e.g. "created", "approved", "executed").
            source: Who triggered it ("automation", "user", ...).
            executed_rule_id: Affected plan, if any.
            message_id: Affected message, if any.
            details: Extra JSON-serializable context.
            conn: Existing connection to write within, so the entry shares
                its transaction.
        """
        params = (
            user_id,
            executed_rule_id,
            message_id,
            action,
            source,
            now(),
            json.dumps(details) if details else None,
        )
        sql = """
            INSERT INTO audit_log
            (user_id, executed_rule_id, message_id, action, source, timestamp, details)
            VALUES (?, ?, ?, ?, ?, ?, ?)
        """
        if conn is not None:
            conn.execute(sql, params)
            return
        with self.connection() as own:
            own.execute(sql, params)

    def get_audit_log(
        self,
        user_id: str,
        *,
        executed_rule_id: int | None = None,
        limit: int = 100,
    ) -> list[dict[str, Any]]:
        """Get recent audit log entries, newest first."""
        query = """
            SELECT id, user_id, executed_rule_id, message_id, action, source,
                   timestamp, details
            FROM audit_log WHERE user_id = ?
        """
        params: list[Any] = [user_id]
        if executed_rule_id is not None:
            query += " AND executed_rule_id = ?"
            params.append(executed_rule_id)
        query += " ORDER BY id DESC LIMIT ?"
        params.append(limit)

        with self.connection() as conn:
            cursor = conn.execute(query, params)
            return [
                {
                    "id": row["id"],
                    "user_id": row["user_id"],
                    "executed_rule_id": row["executed_rule_id"],
                    "message_id": row["message_id"],
                    "action": row["action"],
                    "source": row["source"],
                    "timestamp": row["timestamp"],
                    "details": safe_json_loads(row["details"]),
                }
                for row in cursor.fetchall()
            ]


def _unique_field(message: str) -> str | None:
    """Column list from a sqlite UNIQUE failure message."""
    # "UNIQUE constraint failed: rules.user_id, rules.name"
    _, _, columns = message.partition(":")
    columns = columns.strip()
    return columns or None
