"""Import and export rules as YAML definitions."""

import logging
from typing import Any, NamedTuple

from pydantic import BaseModel, Field

from inbox_rules.actions.catalog import Action
from inbox_rules.actions.models import GenerateAtRuntime, LiteralValue
from inbox_rules.errors import DuplicateError, GroupInUseError
from inbox_rules.rules.models import GroupItem, Rule, RuleType
from inbox_rules.storage.rules import RuleStore, new_id

logger = logging.getLogger(__name__)


class GroupDefinition(BaseModel):
    """A group declared inline with a rule."""

    name: str
    items: list[GroupItem] = Field(default_factory=list)


class RuleDefinition(BaseModel):
    """One entry under ``rules:`` in a rules file."""

    name: str
    type: RuleType | None = Field(default=None, description="Inferred when omitted")
    instructions: str = ""
    enabled: bool = True
    from_address: str | None = None
    to_address: str | None = None
    subject: str | None = None
    group: GroupDefinition | None = None
    category_filters: list[str] = Field(default_factory=list)
    actions: list[Action] = Field(default_factory=list)
    automate: bool = False
    run_on_threads: bool = False

    def inferred_type(self) -> RuleType:
        if self.type is not None:
            return self.type
        if self.group:
            return RuleType.GROUP
        if any(v and v.strip() for v in (self.from_address, self.to_address, self.subject)):
            return RuleType.STATIC
        if self.category_filters:
            return RuleType.CATEGORY
        return RuleType.AI


class ImportResult(NamedTuple):
    """Outcome of importing a rules file."""

    created: list[Rule]
    skipped: list[str]
    conflicts: list[GroupInUseError]


def import_rules(
    store: RuleStore, user_id: str, definitions: list[dict[str, Any]]
) -> ImportResult:
    """
    Create rules for a user from raw definitions.

    Rules whose name the user already has are skipped. Rules naming a group
    that already belongs to another rule are reported as conflicts; a group
    has at most one rule.

    Raises:
        pydantic.ValidationError: A definition is malformed.
    """
    parsed = [RuleDefinition.model_validate(d) for d in definitions]
    groups = {g.name.lower(): g for g in store.list_groups(user_id).values()}
    existing_names = {r.name for r in store.list_rules(user_id)}

    result = ImportResult([], [], [])
    for definition in parsed:
        if definition.name in existing_names:
            logger.info("Skipping rule '%s': name already exists", definition.name)
            result.skipped.append(definition.name)
            continue

        group_id = None
        if definition.group:
            group = groups.get(definition.group.name.lower())
            if group is None:
                group = store.create_group(user_id, definition.group.name, definition.group.items)
                groups[group.name.lower()] = group
            else:
                owner = store.rule_for_group(group.id)
                if owner is not None:
                    conflict = GroupInUseError(group.name, owner)
                    logger.warning("Not importing rule '%s': %s", definition.name, conflict)
                    result.conflicts.append(conflict)
                    continue
                if definition.group.items:
                    group = store.add_group_items(group.id, user_id, definition.group.items)
            group_id = group.id

        rule = Rule(
            id=new_id(),
            user_id=user_id,
            name=definition.name,
            type=definition.inferred_type(),
            instructions=definition.instructions,
            enabled=definition.enabled,
            from_address=definition.from_address,
            to_address=definition.to_address,
            subject=definition.subject,
            group_id=group_id,
            category_filters=definition.category_filters,
            actions=definition.actions,
            automate=definition.automate,
            run_on_threads=definition.run_on_threads,
        )
        for warning in rule.configuration_warnings():
            logger.warning(warning)

        try:
            result.created.append(store.create_rule(rule))
        except DuplicateError as e:
            # Lost a race with another writer
            logger.info("Skipping rule '%s': %s", definition.name, e)
            result.skipped.append(definition.name)
            continue
        existing_names.add(rule.name)

    return result


def _field_value(value: LiteralValue | GenerateAtRuntime) -> Any:
    if isinstance(value, GenerateAtRuntime):
        return {"kind": "generate"}
    return value.value


def export_rules(store: RuleStore, user_id: str) -> list[dict[str, Any]]:
    """A user's rules as definitions ``import_rules`` accepts."""
    groups = store.list_groups(user_id)
    definitions = []
    for rule in store.list_rules(user_id):
        definition: dict[str, Any] = {"name": rule.name, "type": rule.type.value}
        if rule.instructions:
            definition["instructions"] = rule.instructions
        if not rule.enabled:
            definition["enabled"] = False
        for key in ("from_address", "to_address", "subject"):
            if getattr(rule, key):
                definition[key] = getattr(rule, key)
        if rule.group_id and rule.group_id in groups:
            group = groups[rule.group_id]
            definition["group"] = {
                "name": group.name,
                "items": [{"type": i.type.value, "value": i.value} for i in group.items],
            }
        if rule.category_filters:
            definition["category_filters"] = rule.category_filters
        definition["actions"] = [
            {"type": a.type.value, "fields": {f.value: _field_value(v) for f, v in a.fields.items()}}
            if a.fields
            else {"type": a.type.value}
            for a in rule.actions
        ]
        definition["automate"] = rule.automate
        definition["run_on_threads"] = rule.run_on_threads
        definitions.append(definition)
    return definitions
