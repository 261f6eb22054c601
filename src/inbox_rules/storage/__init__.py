"""SQLite persistence."""

from inbox_rules.storage.database import Database
from inbox_rules.storage.plans import PlanStore
from inbox_rules.storage.rules import RuleStore, new_id

__all__ = ["Database", "PlanStore", "RuleStore", "new_id"]
