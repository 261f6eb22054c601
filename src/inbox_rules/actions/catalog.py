"""Static registry of action kinds and their parameter schemas."""

from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel, Field, create_model, field_validator, model_validator

from inbox_rules.actions.models import (
    ActionField,
    ActionItem,
    ActionType,
    ArchiveItem,
    DraftEmailItem,
    FieldValue,
    ForwardItem,
    GenerateAtRuntime,
    LabelItem,
    LiteralValue,
    MarkSpamItem,
    ReplyItem,
    SendEmailItem,
    SummarizeItem,
)


@dataclass(frozen=True)
class ActionDefinition:
    """Schema for one action kind."""

    type: ActionType
    name: str
    description: str
    item_model: type[BaseModel]
    fields: dict[ActionField, str] = field(default_factory=dict)
    required: tuple[ActionField, ...] = ()


ACTION_DEFINITIONS: dict[ActionType, ActionDefinition] = {
    ActionType.ARCHIVE: ActionDefinition(
        type=ActionType.ARCHIVE,
        name="archive",
        description="Archive an email",
        item_model=ArchiveItem,
    ),
    ActionType.LABEL: ActionDefinition(
        type=ActionType.LABEL,
        name="label",
        description="Label an email",
        item_model=LabelItem,
        fields={ActionField.LABEL: "The name of the label."},
        required=(ActionField.LABEL,),
    ),
    ActionType.DRAFT_EMAIL: ActionDefinition(
        type=ActionType.DRAFT_EMAIL,
        name="draft",
        description="Draft an email.",
        item_model=DraftEmailItem,
        fields={
            ActionField.TO: "The email address of the recipient.",
            ActionField.SUBJECT: "The subject of the email.",
            ActionField.CONTENT: "The content of the email.",
        },
        required=(ActionField.CONTENT,),
    ),
    ActionType.REPLY: ActionDefinition(
        type=ActionType.REPLY,
        name="reply",
        description="Reply to an email.",
        item_model=ReplyItem,
        fields={
            ActionField.CC: "Comma separated email addresses of the cc recipients.",
            ActionField.BCC: "Comma separated email addresses of the bcc recipients.",
            ActionField.CONTENT: "The content of the email.",
        },
        required=(ActionField.CONTENT,),
    ),
    ActionType.SEND_EMAIL: ActionDefinition(
        type=ActionType.SEND_EMAIL,
        name="send_email",
        description="Send an email.",
        item_model=SendEmailItem,
        fields={
            ActionField.TO: "Comma separated email addresses of the recipients.",
            ActionField.CC: "Comma separated email addresses of the cc recipients.",
            ActionField.BCC: "Comma separated email addresses of the bcc recipients.",
            ActionField.SUBJECT: "The subject of the email.",
            ActionField.CONTENT: "The content of the email.",
        },
        required=(ActionField.TO, ActionField.SUBJECT, ActionField.CONTENT),
    ),
    ActionType.FORWARD: ActionDefinition(
        type=ActionType.FORWARD,
        name="forward",
        description="Forward an email.",
        item_model=ForwardItem,
        fields={
            ActionField.TO: "Comma separated email addresses of the recipients to forward the email to.",
            ActionField.CC: "Comma separated email addresses of the cc recipients to forward the email to.",
            ActionField.BCC: "Comma separated email addresses of the bcc recipients to forward the email to.",
            ActionField.CONTENT: "Extra content to add to the forwarded email.",
        },
        required=(ActionField.TO,),
    ),
    ActionType.SUMMARIZE: ActionDefinition(
        type=ActionType.SUMMARIZE,
        name="summarize",
        description="Summarize an email as a few short bullet points.",
        item_model=SummarizeItem,
        fields={
            ActionField.CONTENT: "The summary as at most 5 short bullet points, about 5 words each.",
        },
        required=(ActionField.CONTENT,),
    ),
    ActionType.MARK_SPAM: ActionDefinition(
        type=ActionType.MARK_SPAM,
        name="mark_spam",
        description="Mark an email as spam",
        item_model=MarkSpamItem,
    ),
}


def get_definition(action_type: ActionType) -> ActionDefinition:
    """Look up the definition for an action type."""
    return ACTION_DEFINITIONS[ActionType(action_type)]


def missing_fields(item: ActionItem) -> list[str]:
    """Required fields of a resolved item that are empty."""
    definition = get_definition(item.type)
    return [
        f.value for f in definition.required if not str(getattr(item, f.value, "")).strip()
    ]


def build_item(action_type: ActionType, values: dict[str, str]) -> ActionItem:
    """Create the resolved item variant for ``action_type``."""
    definition = get_definition(action_type)
    return definition.item_model(**values)


def generation_model(action_type: ActionType, fields: list[ActionField]) -> type[BaseModel]:
    """Response model for generating ``fields`` of one action in a single call."""
    definition = get_definition(action_type)
    model_fields: dict[str, Any] = {
        f.value: (str, Field(description=definition.fields[f])) for f in fields
    }
    return create_model(f"{definition.item_model.__name__}Args", **model_fields)


class Action(BaseModel):
    """A configured action of a rule, as stored."""

    id: str | None = None
    type: ActionType
    fields: dict[ActionField, FieldValue] = Field(default_factory=dict)

    @field_validator("fields", mode="before")
    @classmethod
    def coerce_plain_values(cls, value: Any) -> Any:
        """Accept plain strings (and None) as literal values."""
        if not isinstance(value, dict):
            return value
        coerced = {}
        for key, item in value.items():
            if item is None:
                coerced[key] = LiteralValue()
            elif isinstance(item, str):
                coerced[key] = LiteralValue(value=item)
            else:
                coerced[key] = item
        return coerced

    @model_validator(mode="after")
    def check_fields_for_type(self) -> "Action":
        allowed = set(get_definition(self.type).fields)
        unexpected = [f.value for f in self.fields if f not in allowed]
        if unexpected:
            raise ValueError(
                f"{self.type.value} does not accept fields: {', '.join(unexpected)}"
            )
        return self

    @classmethod
    def create(cls, action_type: ActionType, **values: "str | GenerateAtRuntime | None") -> "Action":
        """Shorthand: ``Action.create(ActionType.LABEL, label="Receipts")``."""
        return cls(type=action_type, fields={ActionField(k): v for k, v in values.items()})

    def generated_fields(self) -> list[ActionField]:
        """Fields marked for generation at run time, in catalog order."""
        definition = get_definition(self.type)
        return [
            f for f in definition.fields
            if isinstance(self.fields.get(f), GenerateAtRuntime)
        ]

    def literal_values(self) -> dict[str, str]:
        """Values of the literal fields, keyed by field name."""
        return {
            f.value: v.value for f, v in self.fields.items() if isinstance(v, LiteralValue)
        }
