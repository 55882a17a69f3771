
class LibrisAPIError(Exception):
    """Base for every error the circulation engine surfaces to callers."""

    code = "libris_error"

    def __init__(self, message="", **details):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self):
        return {"error": self.code, "message": self.message, **self.details}


class NotFoundError(LibrisAPIError):
    code = "not_found"


class InvalidStateError(LibrisAPIError):
    code = "invalid_state"

    def __init__(self, message="", state=None, **details):
        super().__init__(message, state=state, **details)
        self.state = state


class LimitExceededError(LibrisAPIError):
    code = "limit_exceeded"

    def __init__(self, message="", limit=None, **details):
        super().__init__(message, limit=limit, **details)
        self.limit = limit


class ConflictError(LibrisAPIError):
    code = "conflict"


class TransientStoreConflict(LibrisAPIError):
    code = "transient_conflict"


class RetryExhaustedError(LibrisAPIError):
    code = "retry_exhausted"


class ReconciliationError(LibrisAPIError):
    code = "reconciliation_failed"


class PermissionDeniedError(LibrisAPIError):
    code = "forbidden"
