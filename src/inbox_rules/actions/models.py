"""Action types, stored field values and resolved action items."""

from enum import Enum
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


class ActionType(str, Enum):
    """Actions a rule can take on an email."""

    ARCHIVE = "ARCHIVE"
    LABEL = "LABEL"
    DRAFT_EMAIL = "DRAFT_EMAIL"
    REPLY = "REPLY"
    SEND_EMAIL = "SEND_EMAIL"
    FORWARD = "FORWARD"
    SUMMARIZE = "SUMMARIZE"
    MARK_SPAM = "MARK_SPAM"


class ActionField(str, Enum):
    """Named parameters an action may carry."""

    LABEL = "label"
    TO = "to"
    CC = "cc"
    BCC = "bcc"
    SUBJECT = "subject"
    CONTENT = "content"


# ─── Stored Field Values ──────────────────────────────────────────────


class LiteralValue(BaseModel):
    """A field value used exactly as stored (may be empty)."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["literal"] = "literal"
    value: str = ""


class GenerateAtRuntime(BaseModel):
    """A field the LLM fills in when the rule runs."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["generate"] = "generate"


FieldValue = Annotated[Union[LiteralValue, GenerateAtRuntime], Field(discriminator="kind")]


# ─── Resolved Action Items ────────────────────────────────────────────


class _ItemBase(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)


class ArchiveItem(_ItemBase):
    type: Literal[ActionType.ARCHIVE] = ActionType.ARCHIVE


class LabelItem(_ItemBase):
    type: Literal[ActionType.LABEL] = ActionType.LABEL
    label: str = ""


class DraftEmailItem(_ItemBase):
    type: Literal[ActionType.DRAFT_EMAIL] = ActionType.DRAFT_EMAIL
    to: str = ""
    subject: str = ""
    content: str = ""


class ReplyItem(_ItemBase):
    type: Literal[ActionType.REPLY] = ActionType.REPLY
    cc: str = ""
    bcc: str = ""
    content: str = ""


class SendEmailItem(_ItemBase):
    type: Literal[ActionType.SEND_EMAIL] = ActionType.SEND_EMAIL
    to: str = ""
    cc: str = ""
    bcc: str = ""
    subject: str = ""
    content: str = ""


class ForwardItem(_ItemBase):
    type: Literal[ActionType.FORWARD] = ActionType.FORWARD
    to: str = ""
    cc: str = ""
    bcc: str = ""
    content: str = ""


class SummarizeItem(_ItemBase):
    type: Literal[ActionType.SUMMARIZE] = ActionType.SUMMARIZE
    content: str = ""


class MarkSpamItem(_ItemBase):
    type: Literal[ActionType.MARK_SPAM] = ActionType.MARK_SPAM


ActionItem = Annotated[
    Union[
        ArchiveItem,
        LabelItem,
        DraftEmailItem,
        ReplyItem,
        SendEmailItem,
        ForwardItem,
        SummarizeItem,
        MarkSpamItem,
    ],
    Field(discriminator="type"),
]

action_item_adapter: TypeAdapter[ActionItem] = TypeAdapter(ActionItem)
