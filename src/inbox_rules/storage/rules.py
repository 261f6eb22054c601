"""Persistence for users, rules, groups and sender categories."""

import json
import sqlite3
import uuid
from typing import Any

from inbox_rules.actions.catalog import Action
from inbox_rules.errors import NotFoundError
from inbox_rules.models import User
from inbox_rules.rules.models import Group, GroupItem, Rule
from inbox_rules.storage.database import Database, now, safe_json_loads

RULE_FLAGS = ("enabled", "automate", "run_on_threads")


def new_id() -> str:
    return uuid.uuid4().hex


class RuleStore:
    """Users, rules and everything rules reference."""

    def __init__(self, db: Database) -> None:
        self.db = db

    # ─── Users ────────────────────────────────────────────────────────────

    def add_user(self, user: User) -> User:
        """Insert or update a user."""
        with self.db.connection() as conn:
            conn.execute(
                """
                INSERT INTO users (id, email, about, created_at) VALUES (?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET email = excluded.email, about = excluded.about
                """,
                (user.id, user.email, user.about, now()),
            )
        return user

    def get_user(self, user_id: str) -> User:
        with self.db.connection() as conn:
            row = conn.execute(
                "SELECT id, email, about FROM users WHERE id = ?", (user_id,)
            ).fetchone()
        if row is None:
            raise NotFoundError("User", user_id)
        return User(id=row["id"], email=row["email"], about=row["about"])

    # ─── Rules ────────────────────────────────────────────────────────────

    def create_rule(self, rule: Rule) -> Rule:
        """
        Insert a rule and its actions, appended after the user's other rules.

        Raises:
            DuplicateError: The user already has a rule with this name, or the
                group already belongs to another rule.
        """
        with self.db.connection() as conn:
            position = conn.execute(
                "SELECT COALESCE(MAX(position), -1) + 1 FROM rules WHERE user_id = ?",
                (rule.user_id,),
            ).fetchone()[0]
            conn.execute(
                """
                INSERT INTO rules
                (id, user_id, name, type, instructions, enabled, from_address, to_address,
                 subject, group_id, category_filters, automate, run_on_threads, position,
                 created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    rule.id,
                    rule.user_id,
                    rule.name,
                    rule.type.value,
                    rule.instructions,
                    int(rule.enabled),
                    rule.from_address,
                    rule.to_address,
                    rule.subject,
                    rule.group_id,
                    json.dumps(rule.category_filters),
                    int(rule.automate),
                    int(rule.run_on_threads),
                    position,
                    now(),
                ),
            )
            actions = self._insert_actions(conn, rule.id, rule.actions)
        return rule.model_copy(update={"actions": actions})

    def _insert_actions(
        self, conn: sqlite3.Connection, rule_id: str, actions: list[Action]
    ) -> list[Action]:
        stored = []
        for position, action in enumerate(actions):
            action_id = action.id or new_id()
            fields = {
                f.value: v.model_dump(mode="json") for f, v in action.fields.items()
            }
            conn.execute(
                """
                INSERT INTO actions (id, rule_id, position, type, fields)
                VALUES (?, ?, ?, ?, ?)
                """,
                (action_id, rule_id, position, action.type.value, json.dumps(fields)),
            )
            stored.append(action.model_copy(update={"id": action_id}))
        return stored

    def replace_actions(self, rule_id: str, user_id: str, actions: list[Action]) -> Rule:
        """Replace a rule's actions, keeping their order."""
        self.get_rule(rule_id, user_id)
        with self.db.connection() as conn:
            conn.execute("DELETE FROM actions WHERE rule_id = ?", (rule_id,))
            self._insert_actions(conn, rule_id, actions)
        return self.get_rule(rule_id, user_id)

    def _load_actions(self, conn: sqlite3.Connection, rule_ids: list[str]) -> dict[str, list[Action]]:
        by_rule: dict[str, list[Action]] = {rid: [] for rid in rule_ids}
        if not rule_ids:
            return by_rule
        placeholders = ", ".join("?" for _ in rule_ids)
        cursor = conn.execute(
            f"""
            SELECT id, rule_id, type, fields FROM actions
            WHERE rule_id IN ({placeholders})
            ORDER BY rule_id, position
            """,
            rule_ids,
        )
        for row in cursor.fetchall():
            by_rule[row["rule_id"]].append(
                Action(
                    id=row["id"],
                    type=row["type"],
                    fields=safe_json_loads(row["fields"], {}),
                )
            )
        return by_rule

    @staticmethod
    def _rule_from_row(row: sqlite3.Row, actions: list[Action]) -> Rule:
        return Rule(
            id=row["id"],
            user_id=row["user_id"],
            name=row["name"],
            type=row["type"],
            instructions=row["instructions"],
            enabled=bool(row["enabled"]),
            from_address=row["from_address"],
            to_address=row["to_address"],
            subject=row["subject"],
            group_id=row["group_id"],
            category_filters=safe_json_loads(row["category_filters"], []),
            actions=actions,
            automate=bool(row["automate"]),
            run_on_threads=bool(row["run_on_threads"]),
        )

    def get_rule(self, rule_id: str, user_id: str) -> Rule:
        """Get one of the user's rules."""
        with self.db.connection() as conn:
            row = conn.execute(
                "SELECT * FROM rules WHERE id = ? AND user_id = ?", (rule_id, user_id)
            ).fetchone()
            if row is None:
                raise NotFoundError("Rule", rule_id)
            actions = self._load_actions(conn, [rule_id])
        return self._rule_from_row(row, actions[rule_id])

    def list_rules(self, user_id: str, *, enabled_only: bool = False) -> list[Rule]:
        """The user's rules in priority order."""
        query = "SELECT * FROM rules WHERE user_id = ?"
        if enabled_only:
            query += " AND enabled = 1"
        query += " ORDER BY position, created_at"

        with self.db.connection() as conn:
            rows = conn.execute(query, (user_id,)).fetchall()
            actions = self._load_actions(conn, [row["id"] for row in rows])
        return [self._rule_from_row(row, actions[row["id"]]) for row in rows]

    def _set_flag(self, rule_id: str, user_id: str, column: str, value: bool) -> Rule:
        if column not in RULE_FLAGS:
            raise ValueError(f"Not a rule flag: {column}")
        with self.db.connection() as conn:
            cursor = conn.execute(
                f"UPDATE rules SET {column} = ? WHERE id = ? AND user_id = ?",
                (int(value), rule_id, user_id),
            )
            if cursor.rowcount == 0:
                raise NotFoundError("Rule", rule_id)
        return self.get_rule(rule_id, user_id)

    def set_enabled(self, rule_id: str, user_id: str, enabled: bool) -> Rule:
        return self._set_flag(rule_id, user_id, "enabled", enabled)

    def set_automate(self, rule_id: str, user_id: str, automate: bool) -> Rule:
        """Execute matches immediately (True) or store them for approval."""
        return self._set_flag(rule_id, user_id, "automate", automate)

    def set_run_on_threads(self, rule_id: str, user_id: str, run_on_threads: bool) -> Rule:
        """Also apply the rule to replies in multi-message threads."""
        return self._set_flag(rule_id, user_id, "run_on_threads", run_on_threads)

    def delete_rule(self, rule_id: str, user_id: str) -> None:
        with self.db.connection() as conn:
            cursor = conn.execute(
                "DELETE FROM rules WHERE id = ? AND user_id = ?", (rule_id, user_id)
            )
            if cursor.rowcount == 0:
                raise NotFoundError("Rule", rule_id)

    # ─── Groups ───────────────────────────────────────────────────────────

    def create_group(
        self, user_id: str, name: str, items: list[GroupItem] | None = None
    ) -> Group:
        """Create a group; raises ``DuplicateError`` if the name is taken."""
        group_id = new_id()
        with self.db.connection() as conn:
            conn.execute(
                "INSERT INTO rule_groups (id, user_id, name, created_at) VALUES (?, ?, ?, ?)",
                (group_id, user_id, name, now()),
            )
            stored = self._insert_group_items(conn, group_id, items or [])
        return Group(id=group_id, user_id=user_id, name=name, items=stored)

    @staticmethod
    def _insert_group_items(
        conn: sqlite3.Connection, group_id: str, items: list[GroupItem]
    ) -> list[GroupItem]:
        stored = []
        for item in items:
            item_id = item.id or new_id()
            conn.execute(
                """
                INSERT OR IGNORE INTO group_items (id, group_id, type, value)
                VALUES (?, ?, ?, ?)
                """,
                (item_id, group_id, item.type.value, item.value),
            )
            stored.append(item.model_copy(update={"id": item_id}))
        return stored

    def add_group_items(self, group_id: str, user_id: str, items: list[GroupItem]) -> Group:
        """Add items to a group, ignoring ones it already has."""
        self.get_group(group_id, user_id)
        with self.db.connection() as conn:
            self._insert_group_items(conn, group_id, items)
        return self.get_group(group_id, user_id)

    def _load_groups(self, conn: sqlite3.Connection, query: str, params: tuple[Any, ...]) -> list[Group]:
        groups = []
        for row in conn.execute(query, params).fetchall():
            items = [
                GroupItem(id=item["id"], type=item["type"], value=item["value"])
                for item in conn.execute(
                    "SELECT id, type, value FROM group_items WHERE group_id = ? ORDER BY rowid",
                    (row["id"],),
                ).fetchall()
            ]
            groups.append(
                Group(id=row["id"], user_id=row["user_id"], name=row["name"], items=items)
            )
        return groups

    def get_group(self, group_id: str, user_id: str) -> Group:
        with self.db.connection() as conn:
            groups = self._load_groups(
                conn,
                "SELECT id, user_id, name FROM rule_groups WHERE id = ? AND user_id = ?",
                (group_id, user_id),
            )
        if not groups:
            raise NotFoundError("Group", group_id)
        return groups[0]

    def list_groups(self, user_id: str) -> dict[str, Group]:
        """The user's groups keyed by id."""
        with self.db.connection() as conn:
            groups = self._load_groups(
                conn,
                "SELECT id, user_id, name FROM rule_groups WHERE user_id = ? ORDER BY created_at",
                (user_id,),
            )
        return {g.id: g for g in groups}

    def find_group(self, user_id: str, name_contains: str) -> Group | None:
        """First group whose name contains ``name_contains`` (case-insensitive)."""
        with self.db.connection() as conn:
            groups = self._load_groups(
                conn,
                """
                SELECT id, user_id, name FROM rule_groups
                WHERE user_id = ? AND LOWER(name) LIKE ?
                ORDER BY created_at LIMIT 1
                """,
                (user_id, f"%{name_contains.lower()}%"),
            )
        return groups[0] if groups else None

    def rule_for_group(self, group_id: str) -> str | None:
        """Id of the rule that owns a group, if any."""
        with self.db.connection() as conn:
            row = conn.execute(
                "SELECT id FROM rules WHERE group_id = ?", (group_id,)
            ).fetchone()
        return row["id"] if row else None

    # ─── Categories ───────────────────────────────────────────────────────

    def add_category(self, user_id: str, name: str, description: str | None = None) -> None:
        with self.db.connection() as conn:
            conn.execute(
                """
                INSERT INTO categories (user_id, name, description) VALUES (?, ?, ?)
                ON CONFLICT(user_id, name) DO UPDATE SET description = excluded.description
                """,
                (user_id, name, description),
            )

    def list_categories(self, user_id: str) -> dict[str, str | None]:
        """Category name to description."""
        with self.db.connection() as conn:
            rows = conn.execute(
                "SELECT name, description FROM categories WHERE user_id = ? ORDER BY name",
                (user_id,),
            ).fetchall()
        return {row["name"]: row["description"] for row in rows}

    def set_sender_category(self, user_id: str, sender: str, category: str) -> None:
        with self.db.connection() as conn:
            conn.execute(
                """
                INSERT INTO sender_categories (user_id, sender, category, updated_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(user_id, sender) DO UPDATE
                SET category = excluded.category, updated_at = excluded.updated_at
                """,
                (user_id, sender.lower(), category, now()),
            )

    def get_sender_category(self, user_id: str, sender: str) -> str | None:
        with self.db.connection() as conn:
            row = conn.execute(
                "SELECT category FROM sender_categories WHERE user_id = ? AND sender = ?",
                (user_id, sender.lower()),
            ).fetchone()
        return row["category"] if row else None
