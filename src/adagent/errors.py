"""Error taxonomy for the chat pipeline.

Components raise these; only the orchestrator converts them into
caller-safe messages (see USER_MESSAGES).
"""


class AdAgentError(Exception):
    """Base exception for pipeline failures."""

    kind: str = "unhandled"

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ValidationError(AdAgentError):
    """Generated query text is unsafe or malformed."""

    kind = "validation"


class ExecutionError(AdAgentError):
    """Records could not be fetched for the requested period."""

    kind = "execution"


class RenderError(AdAgentError):
    """The answer renderer failed or returned unusable text."""

    kind = "render"


USER_MESSAGES = {
    "validation": (
        "I couldn't turn that into a safe query against the campaign data. "
        "Could you rephrase your question?"
    ),
    "execution": (
        "I had trouble retrieving the campaign data for that question. "
        "Try rephrasing it, for example: \"Which platform has the best ROAS?\" "
        "or \"Compare CTR by region.\""
    ),
    "unhandled": (
        "Sorry, I encountered an error processing your request. Please try again."
    ),
}


def user_message_for(error: BaseException) -> str:
    """Return the caller-safe message for an exception."""
    kind = getattr(error, "kind", "unhandled")
    return USER_MESSAGES.get(kind, USER_MESSAGES["unhandled"])
