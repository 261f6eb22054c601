"""Error classes shared across the rule pipeline."""


class InboxRulesError(Exception):
    """Base class for all inbox-rules errors."""


class NotLoggedInError(InboxRulesError):
    """Raised when an operation requires a session and none was given."""

    def __init__(self, message: str = "Not logged in") -> None:
        super().__init__(message)


class NotFoundError(InboxRulesError):
    """Raised when a rule, plan, user or email does not exist for the caller."""

    def __init__(self, resource: str, identifier: str) -> None:
        super().__init__(f"{resource} not found: {identifier}")
        self.resource = resource
        self.identifier = identifier


class ActionValidationError(InboxRulesError):
    """Raised when a resolved action item is missing required fields."""

    def __init__(self, action_type: str, missing: list[str]) -> None:
        super().__init__(
            f"{action_type} action is missing required fields: {', '.join(missing)}"
        )
        self.action_type = action_type
        self.missing = missing


class ProviderError(InboxRulesError):
    """Raised when the mail provider or LLM provider fails."""

    def __init__(self, message: str, provider: str | None = None) -> None:
        super().__init__(message)
        self.provider = provider


class TransientProviderError(ProviderError):
    """Network or rate-limit failure that may succeed on retry."""


class PermissionDeniedError(ProviderError):
    """The provider refused the request for the connected account."""


class MailNotFoundError(ProviderError, NotFoundError):
    """The mail provider has no such message, thread or label."""

    def __init__(self, resource: str, identifier: str) -> None:
        NotFoundError.__init__(self, resource, identifier)
        self.provider = "mail"


class DuplicateError(InboxRulesError):
    """Raised when a unique constraint is violated."""

    def __init__(self, message: str, field: str | None = None) -> None:
        super().__init__(message)
        self.field = field


class LLMSchemaError(InboxRulesError):
    """Structured LLM output did not match the expected schema."""

    def __init__(self, message: str, raw: str | None = None) -> None:
        super().__init__(message)
        self.raw = raw


class PlanStateError(InboxRulesError):
    """Raised when a plan transition is not allowed from its current status."""

    def __init__(self, plan_id: int, status: str, attempted: str) -> None:
        super().__init__(
            f"Plan {plan_id} cannot be {attempted} (status: {status})"
        )
        self.plan_id = plan_id
        self.status = status
        self.attempted = attempted


class GroupInUseError(DuplicateError):
    """Raised when a group already belongs to another rule."""

    def __init__(self, group_name: str, existing_rule_id: str) -> None:
        super().__init__(f"{group_name} group already has a rule", field="group_id")
        self.group_name = group_name
        self.existing_rule_id = existing_rule_id
