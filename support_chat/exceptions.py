from typing import Optional


class ChatError(Exception):
    """Base for every failure the service reports to a caller."""

    status_code = 500
    category = "unexpected_error"
    default_message = "An unexpected error occurred. Please try again."

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(ChatError):
    status_code = 400
    category = "validation_error"
    default_message = "Invalid request"


class SessionNotFound(ChatError):
    status_code = 404
    category = "session_not_found"
    default_message = "Session not found"


class MissingCredential(ChatError):
    status_code = 503
    category = "service_unavailable"
    default_message = "The assistant is not configured right now. Please contact support."

    def __init__(self, variable: str):
        # The variable name is for logs; callers only ever see default_message.
        self.variable = variable
        super().__init__()

    def __str__(self):
        return f"{self.variable} environment variable is not set"


class ProviderUnavailable(ChatError):
    status_code = 503
    category = "provider_unavailable"
    default_message = "AI service temporarily unavailable. Please try again later."

    def __init__(self, kind: str):
        self.kind = kind
        super().__init__()


class UnexpectedError(ChatError):
    pass


class UnknownConversation(LookupError):
    """A store write or read named a conversation that does not exist."""

    def __init__(self, conversation_id: int):
        self.conversation_id = conversation_id
        super().__init__(f"Conversation {conversation_id} does not exist")


# ── Provider failures ─────────────────────────────────────────────────────────
# Raised by reply providers; the orchestrator collapses all of them into
# ProviderUnavailable and keeps `kind` for the logs.

class ProviderError(Exception):
    kind = "provider_error"

    def __init__(self, provider: str, detail: str = "", status_code: Optional[int] = None):
        self.provider = provider
        self.detail = detail
        self.status_code = status_code
        super().__init__(f"[{provider}] {self.kind}: {detail}" if detail else f"[{provider}] {self.kind}")


class ProviderAuthError(ProviderError):
    kind = "auth"


class ProviderRateLimited(ProviderError):
    kind = "rate_limited"


class ProviderUnreachable(ProviderError):
    kind = "unreachable"


class ProviderTimeout(ProviderError):
    kind = "timeout"


class EmptyProviderResponse(ProviderError):
    kind = "empty_response"


def error_for_status(provider: str, status_code: int, detail: str = "") -> ProviderError:
    """Pick the provider failure class for a non-success HTTP status."""
    if status_code in (401, 403):
        return ProviderAuthError(provider, detail, status_code)
    if status_code == 429:
        return ProviderRateLimited(provider, detail, status_code)
    return ProviderError(provider, detail, status_code)
