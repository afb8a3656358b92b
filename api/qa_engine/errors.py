"""Domain exceptions raised by the reputation and answer-quality services.

Services raise these; routers translate them to HTTP responses with
to_http_exception(). RecomputeFailure never reaches a client: the recompute
entry points log it and leave the previous score in place.
"""

from fastapi import HTTPException


class QAEngineError(Exception):
    """Base class for all engine errors."""

    status_code = 400

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class ValidationError(QAEngineError):
    """Invalid trigger kind, reaction type, flag reason, or a forbidden self-action."""

    status_code = 422


class PermissionDeniedError(QAEngineError):
    """Caller is authenticated but not allowed to perform this action."""

    status_code = 403


class NotFoundError(QAEngineError):
    """Answer, question, user or badge missing (or hidden)."""

    status_code = 404


class ConcurrencyError(QAEngineError):
    """Row conflict that persisted after the bounded retry budget."""

    status_code = 409


class RecomputeFailure(QAEngineError):
    """Score recompute failed after the triggering mutation committed."""

    status_code = 500

    def __init__(self, message: str, trigger: str | None = None) -> None:
        self.trigger = trigger
        super().__init__(message)


def to_http_exception(exc: QAEngineError) -> HTTPException:
    return HTTPException(status_code=exc.status_code, detail=exc.message)
