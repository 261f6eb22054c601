"""Persistence and lifecycle of executed rules (plans)."""

import sqlite3
from typing import Any

from inbox_rules.actions.models import ActionItem, action_item_adapter
from inbox_rules.engine.models import (
    ActionOutcome,
    ExecutedRule,
    OutcomeStatus,
    PlanStatus,
    PlannedAction,
)
from inbox_rules.errors import NotFoundError, PlanStateError
from inbox_rules.storage.database import Database, now, safe_json_loads


class PlanStore:
    """Stores one plan per (user, thread, message) and moves it through its lifecycle.

    The unique key on ``executed_rules`` is what keeps concurrent runs for the
    same message from both acting: the second insert raises ``DuplicateError``.
    """

    def __init__(self, db: Database) -> None:
        self.db = db

    def create_plan(
        self,
        user_id: str,
        thread_id: str,
        message_id: str,
        *,
        status: PlanStatus,
        rule_id: str | None = None,
        reason: str | None = None,
        automated: bool = False,
        items: list[ActionItem] | None = None,
        source: str = "automation",
    ) -> ExecutedRule:
        """
        Insert a plan with its action items.

        Raises:
            DuplicateError: A plan already exists for this message.
        """
        timestamp = now()
        with self.db.connection() as conn:
            cursor = conn.execute(
                """
                INSERT INTO executed_rules
                (user_id, thread_id, message_id, rule_id, status, reason, automated,
                 created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    user_id,
                    thread_id,
                    message_id,
                    rule_id,
                    status.value,
                    reason,
                    int(automated),
                    timestamp,
                    timestamp,
                ),
            )
            plan_id = cursor.lastrowid
            if plan_id is None:
                raise RuntimeError("Failed to insert plan - no lastrowid returned")

            for position, item in enumerate(items or []):
                conn.execute(
                    """
                    INSERT INTO action_items (executed_rule_id, position, type, args)
                    VALUES (?, ?, ?, ?)
                    """,
                    (plan_id, position, item.type.value, item.model_dump_json()),
                )

            self.db.log_action(
                user_id,
                "created",
                source,
                executed_rule_id=plan_id,
                message_id=message_id,
                details={"status": status.value, "rule_id": rule_id, "reason": reason},
                conn=conn,
            )

        return self.get_plan(plan_id, user_id)

    # ─── Reads ────────────────────────────────────────────────────────────

    def _load_plan(self, conn: sqlite3.Connection, row: sqlite3.Row) -> ExecutedRule:
        items = []
        for item_row in conn.execute(
            """
            SELECT id, position, type, args, outcome, error, error_kind, detail
            FROM action_items WHERE executed_rule_id = ? ORDER BY position
            """,
            (row["id"],),
        ).fetchall():
            outcome = None
            if item_row["outcome"]:
                outcome = ActionOutcome(
                    action_type=item_row["type"],
                    status=item_row["outcome"],
                    detail=item_row["detail"],
                    error=item_row["error"],
                    error_kind=item_row["error_kind"],
                )
            items.append(
                PlannedAction(
                    id=item_row["id"],
                    position=item_row["position"],
                    item=action_item_adapter.validate_python(
                        safe_json_loads(item_row["args"], {"type": item_row["type"]})
                    ),
                    outcome=outcome,
                )
            )

        return ExecutedRule(
            id=row["id"],
            user_id=row["user_id"],
            thread_id=row["thread_id"],
            message_id=row["message_id"],
            rule_id=row["rule_id"],
            status=row["status"],
            reason=row["reason"],
            automated=bool(row["automated"]),
            action_items=items,
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            executed_at=row["executed_at"],
        )

    def get_plan(self, plan_id: int, user_id: str) -> ExecutedRule:
        """Get a plan owned by ``user_id``; other users' plans are not found."""
        with self.db.connection() as conn:
            row = conn.execute(
                "SELECT * FROM executed_rules WHERE id = ? AND user_id = ?",
                (plan_id, user_id),
            ).fetchone()
            if row is None:
                raise NotFoundError("Plan", str(plan_id))
            return self._load_plan(conn, row)

    def find_plan(self, user_id: str, thread_id: str, message_id: str) -> ExecutedRule | None:
        """The plan for a message, if one was already made."""
        with self.db.connection() as conn:
            row = conn.execute(
                """
                SELECT * FROM executed_rules
                WHERE user_id = ? AND thread_id = ? AND message_id = ?
                """,
                (user_id, thread_id, message_id),
            ).fetchone()
            return self._load_plan(conn, row) if row else None

    def list_plans(
        self,
        user_id: str,
        *,
        status: PlanStatus | None = None,
        executed_only: bool = False,
        limit: int = 50,
    ) -> list[ExecutedRule]:
        """The user's plans, newest first."""
        query = "SELECT * FROM executed_rules WHERE user_id = ?"
        params: list[Any] = [user_id]
        if status is not None:
            query += " AND status = ?"
            params.append(status.value)
        if executed_only:
            query += " AND executed_at IS NOT NULL"
        query += " ORDER BY id DESC LIMIT ?"
        params.append(limit)

        with self.db.connection() as conn:
            return [self._load_plan(conn, row) for row in conn.execute(query, params).fetchall()]

    def get_pending_count(self, user_id: str) -> int:
        with self.db.connection() as conn:
            cursor = conn.execute(
                "SELECT COUNT(*) FROM executed_rules WHERE user_id = ? AND status = ?",
                (user_id, PlanStatus.PENDING.value),
            )
            return cursor.fetchone()[0]

    # ─── Transitions ──────────────────────────────────────────────────────

    def transition(
        self,
        plan_id: int,
        user_id: str,
        to_status: PlanStatus,
        *,
        from_status: PlanStatus = PlanStatus.PENDING,
        source: str = "user",
    ) -> ExecutedRule:
        """
        Atomically move a plan from ``from_status`` to ``to_status``.

        Only one caller can win the transition; everyone else sees the
        updated status and gets ``PlanStateError``.

        Raises:
            NotFoundError: No such plan for this user.
            PlanStateError: The plan is not in ``from_status``.
        """
        with self.db.connection() as conn:
            cursor = conn.execute(
                """
                UPDATE executed_rules SET status = ?, updated_at = ?
                WHERE id = ? AND user_id = ? AND status = ?
                """,
                (to_status.value, now(), plan_id, user_id, from_status.value),
            )
            if cursor.rowcount == 0:
                row = conn.execute(
                    "SELECT status FROM executed_rules WHERE id = ? AND user_id = ?",
                    (plan_id, user_id),
                ).fetchone()
                if row is None:
                    raise NotFoundError("Plan", str(plan_id))
                raise PlanStateError(plan_id, row["status"], to_status.value.lower())

            self.db.log_action(
                user_id,
                to_status.value.lower(),
                source,
                executed_rule_id=plan_id,
                details={"from": from_status.value},
                conn=conn,
            )

        return self.get_plan(plan_id, user_id)

    def record_outcomes(
        self,
        plan: ExecutedRule,
        outcomes: list[ActionOutcome],
        *,
        source: str = "automation",
    ) -> ExecutedRule:
        """Store per-action outcomes and mark the plan executed."""
        timestamp = now()
        with self.db.connection() as conn:
            for planned, outcome in zip(plan.action_items, outcomes):
                conn.execute(
                    """
                    UPDATE action_items
                    SET outcome = ?, error = ?, error_kind = ?, detail = ?
                    WHERE id = ?
                    """,
                    (
                        outcome.status.value,
                        outcome.error,
                        outcome.error_kind,
                        outcome.detail,
                        planned.id,
                    ),
                )
            conn.execute(
                "UPDATE executed_rules SET executed_at = ?, updated_at = ? WHERE id = ?",
                (timestamp, timestamp, plan.id),
            )

            failed = [o for o in outcomes if o.status == OutcomeStatus.FAILED]
            self.db.log_action(
                plan.user_id,
                "executed",
                source,
                executed_rule_id=plan.id,
                message_id=plan.message_id,
                details={
                    "actions": [o.action_type.value for o in outcomes],
                    "failed": len(failed),
                },
                conn=conn,
            )

        return self.get_plan(plan.id, plan.user_id)

    def history(self, user_id: str, limit: int = 50) -> list[dict[str, Any]]:
        """Executed action items, newest first, for display."""
        with self.db.connection() as conn:
            cursor = conn.execute(
                """
                SELECT e.id AS plan_id, e.message_id, e.executed_at, e.rule_id,
                       r.name AS rule_name, a.type, a.outcome, a.error, a.detail
                FROM action_items a
                JOIN executed_rules e ON e.id = a.executed_rule_id
                LEFT JOIN rules r ON r.id = e.rule_id
                WHERE e.user_id = ? AND e.executed_at IS NOT NULL
                ORDER BY e.executed_at DESC, a.position
                LIMIT ?
                """,
                (user_id, limit),
            )
            return [dict(row) for row in cursor.fetchall()]

