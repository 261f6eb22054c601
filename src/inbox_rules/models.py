"""Users and sessions."""

from pydantic import BaseModel, Field

from inbox_rules.errors import NotLoggedInError


class User(BaseModel):
    """The mailbox owner rules run for."""

    id: str
    email: str
    about: str | None = Field(default=None, description="Free-text profile shown to the LLM")


class Session(BaseModel):
    """An authenticated caller."""

    user_id: str
    email: str | None = None


def require_session(session: Session | None) -> Session:
    """Return the session or raise ``NotLoggedInError``."""
    if session is None or not session.user_id:
        raise NotLoggedInError()
    return session
