"""Action catalog: action kinds, field schemas and executors."""

from inbox_rules.actions.catalog import (
    ACTION_DEFINITIONS,
    Action,
    ActionDefinition,
    build_item,
    get_definition,
    missing_fields,
)
from inbox_rules.actions.executors import run_action
from inbox_rules.actions.models import (
    ActionField,
    ActionItem,
    ActionType,
    GenerateAtRuntime,
    LiteralValue,
    action_item_adapter,
)

__all__ = [
    "ACTION_DEFINITIONS",
    "Action",
    "ActionDefinition",
    "ActionField",
    "ActionItem",
    "ActionType",
    "GenerateAtRuntime",
    "LiteralValue",
    "action_item_adapter",
    "build_item",
    "get_definition",
    "missing_fields",
    "run_action",
]
