from flask import current_app, jsonify
from sqlalchemy.exc import DisconnectionError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError


class AuthError(Exception):
    status_code = 400
    code = "AUTH_ERROR"
    message = "Request could not be completed"

    def __init__(self, message=None, *, status_code=None, code=None):
        super().__init__(message or self.message)
        self.message = message or self.message
        if status_code is not None:
            self.status_code = status_code
        if code is not None:
            self.code = code

    def to_dict(self) -> dict:
        return {"error": self.message, "code": self.code}


class ValidationError(AuthError):
    """Malformed input, rejected before any state is touched."""

    code = "VALIDATION"
    message = "Invalid input"

    def __init__(self, message=None, *, field=None, **kwargs):
        super().__init__(message, **kwargs)
        self.field = field

    def to_dict(self) -> dict:
        data = super().to_dict()
        if self.field:
            data["field"] = self.field
        return data


class PolicyRejection(AuthError):
    """User-facing denial: lockout, cooldown, reuse, weak password, expiry."""

    status_code = 403
    code = "POLICY"
    message = "Request denied by security policy"

    def __init__(self, message=None, *, retry_after=None, details=None, **kwargs):
        super().__init__(message, **kwargs)
        self.retry_after = retry_after
        self.details = details

    def to_dict(self) -> dict:
        data = super().to_dict()
        if self.retry_after is not None:
            data["retry_after_seconds"] = self.retry_after
        if self.details:
            data["details"] = self.details
        return data


class SecurityAnomaly(AuthError):
    # Message stays generic so callers cannot tell which check failed
    code = "SECURITY"
    message = "Request could not be verified"

    def __init__(self, reason=None, **kwargs):
        super().__init__(None, **kwargs)
        self.reason = reason


class TransientInfraError(AuthError):
    status_code = 503
    code = "UNAVAILABLE"
    message = "Service temporarily unavailable. Please try again."
    retry_after = 5


class StorageUnavailable(TransientInfraError):
    code = "STORAGE_UNAVAILABLE"


class EmailDeliveryError(TransientInfraError):
    code = "EMAIL_UNAVAILABLE"
    message = "We could not send the email. Please try again."


class BotCheckUnavailable(TransientInfraError):
    code = "BOT_CHECK_UNAVAILABLE"


def _handle_auth_error(error: AuthError):
    if isinstance(error, TransientInfraError):
        current_app.logger.error("Transient failure (%s): %s", error.code, error.__cause__ or error)
    elif isinstance(error, SecurityAnomaly):
        current_app.logger.warning("Security anomaly: %s", error.reason or error.code)

    resp = jsonify(error.to_dict())
    resp.status_code = error.status_code
    retry_after = getattr(error, "retry_after", None)
    if retry_after:
        resp.headers["Retry-After"] = str(int(retry_after))
    return resp


def _handle_storage_error(error):
    # Storage faults raised outside atomic() still answer as a retryable 503
    wrapped = StorageUnavailable()
    wrapped.__cause__ = error
    return _handle_auth_error(wrapped)


def register_error_handlers(app):
    app.register_error_handler(AuthError, _handle_auth_error)
    for exc_type in (OperationalError, DisconnectionError, PoolTimeoutError):
        app.register_error_handler(exc_type, _handle_storage_error)
