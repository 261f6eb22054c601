"""Rule, group and category definitions."""

from enum import Enum

from pydantic import BaseModel, Field, field_validator

from inbox_rules.actions.catalog import Action


class RuleType(str, Enum):
    """Matching strategy of a rule, in priority order."""

    STATIC = "STATIC"
    GROUP = "GROUP"
    CATEGORY = "CATEGORY"
    AI = "AI"


class GroupItemType(str, Enum):
    """What a group item is compared against."""

    FROM = "FROM"
    SUBJECT = "SUBJECT"
    BODY = "BODY"


class GroupItem(BaseModel):
    """One membership entry of a group."""

    id: str | None = None
    type: GroupItemType
    value: str


class Group(BaseModel):
    """A named set of senders or patterns, e.g. "Newsletters"."""

    id: str
    user_id: str
    name: str
    items: list[GroupItem] = Field(default_factory=list)


class Rule(BaseModel):
    """A user-defined automation rule."""

    id: str
    user_id: str
    name: str = Field(description="Human-readable rule name, unique per user")
    type: RuleType = RuleType.AI
    instructions: str = Field(default="", description="Free-text description used by the AI matcher")
    enabled: bool = Field(default=True, description="Whether the rule is active")

    # Static conditions
    from_address: str | None = Field(default=None, description="Matches within the From header")
    to_address: str | None = Field(default=None, description="Matches within the To header")
    subject: str | None = Field(default=None, description="Matches within the subject")

    group_id: str | None = None
    category_filters: list[str] = Field(
        default_factory=list, description="Sender categories this rule applies to"
    )

    actions: list[Action] = Field(default_factory=list)
    automate: bool = Field(default=False, description="Execute without approval")
    run_on_threads: bool = Field(
        default=False, description="Also apply to messages in multi-message threads"
    )

    @field_validator("from_address", "to_address", "subject")
    @classmethod
    def blank_condition_is_none(cls, value: str | None) -> str | None:
        # Blank conditions are absent, not match-all
        if value is None or not value.strip():
            return None
        return value.strip()

    @property
    def has_static_conditions(self) -> bool:
        return any((self.from_address, self.to_address, self.subject))

    def eligible_tiers(self) -> list[RuleType]:
        """Tiers this rule's configuration could match at."""
        tiers = []
        if self.has_static_conditions:
            tiers.append(RuleType.STATIC)
        if self.group_id:
            tiers.append(RuleType.GROUP)
        if self.category_filters:
            tiers.append(RuleType.CATEGORY)
        if self.type == RuleType.AI and self.instructions.strip():
            tiers.append(RuleType.AI)
        return tiers

    def configuration_warnings(self) -> list[str]:
        """Problems with how this rule is configured for its type."""
        warnings = []
        tiers = self.eligible_tiers()
        if self.type not in tiers:
            warnings.append(
                f"Rule '{self.name}' is {self.type.value} but has no "
                f"{self.type.value.lower()} configuration; it can never match"
            )
        extra = [t.value for t in tiers if t != self.type]
        if extra:
            warnings.append(
                f"Rule '{self.name}' is {self.type.value} but is also configured for "
                f"{', '.join(extra)}; only {self.type.value} is evaluated"
            )
        return warnings
