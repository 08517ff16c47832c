"""Error taxonomy shared by the API layer and the chat pipeline.

Every error carries a short machine-readable ``reason`` and the HTTP status it
maps to. The API renders them as ``{"error": reason, "detail": detail}``.
"""


class ChatHomeError(Exception):
    status_code = 500
    reason = "internal_error"

    def __init__(self, detail: str = ""):
        super().__init__(detail or self.reason)
        self.detail = detail or self.reason


class Unauthenticated(ChatHomeError):
    """Bad, missing or expired credential. Never says which check failed."""

    status_code = 401
    reason = "unauthenticated"


class NotFound(ChatHomeError):
    """Resource absent or not owned by the caller."""

    status_code = 404
    reason = "not_found"


class ValidationFailed(ChatHomeError):
    status_code = 400
    reason = "validation_failed"


class UpstreamUnavailable(ChatHomeError):
    """Model or search provider error or timeout."""

    status_code = 502
    reason = "upstream_unavailable"


class PersistenceFailed(ChatHomeError):
    status_code = 500
    reason = "persistence_failed"
