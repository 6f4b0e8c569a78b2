"""
Domain error taxonomy.

Every error carries the HTTP status it surfaces as and a short machine-readable
kind. Services raise these; the application renders them as
``{"error": kind, "detail": message}``.
"""


class FreightError(Exception):
    """Base class for all workflow errors"""
    status_code = 500
    kind = "internal_error"

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message or self.__class__.__name__

    def to_dict(self) -> dict:
        return {"error": self.kind, "detail": self.message}


class ValidationError(FreightError):
    status_code = 400
    kind = "validation_error"


class Unauthorized(FreightError):
    status_code = 401
    kind = "unauthorized"


class Forbidden(FreightError):
    status_code = 403
    kind = "forbidden"


class NotFound(FreightError):
    status_code = 404
    kind = "not_found"


class NotReady(FreightError):
    status_code = 400
    kind = "not_ready"


class NoWinningQuote(NotReady):
    kind = "no_winning_quote"


class InvalidStateTransition(FreightError):
    status_code = 409
    kind = "invalid_state_transition"


class InvalidAmendmentState(FreightError):
    status_code = 409
    kind = "invalid_amendment_state"


class AmendmentAlreadyOpen(FreightError):
    status_code = 409
    kind = "amendment_already_open"


class StorageUnavailable(FreightError):
    status_code = 503
    kind = "storage_unavailable"


class ExternalIntegrationFailure(FreightError):
    status_code = 502
    kind = "external_integration_failure"
