"""
Error Taxonomy
==============

Every failure the gateway reports to a caller is a GatewayError subclass.
The HTTP layer renders them uniformly; services raise them directly.
"""

from typing import Any, Dict, Optional


class GatewayError(Exception):
    """Base class for errors with a stable type and an HTTP status."""

    status_code: int = 500
    error: str = "internal_error"
    # True when to_dict() is a foreign body that must not be decorated.
    verbatim: bool = False

    def __init__(self, message: str, **extra: Any):
        super().__init__(message)
        self.message = message
        self.extra: Dict[str, Any] = extra

    def to_dict(self) -> Dict[str, Any]:
        body = {"error": self.error, "message": self.message}
        body.update(self.extra)
        return body


# =============================================================================
# Authentication / Authorization
# =============================================================================

class AuthenticationError(GatewayError):
    status_code = 401
    error = "unauthorized"


class MissingCredential(AuthenticationError):
    error = "missing_credential"


class MalformedCredential(AuthenticationError):
    error = "malformed_credential"


class InvalidCredential(AuthenticationError):
    error = "invalid_credential"


class AuthorizationError(GatewayError):
    status_code = 403
    error = "forbidden"


# =============================================================================
# Request / Resource
# =============================================================================

class ValidationError(GatewayError):
    status_code = 400
    error = "validation_error"


class NotFoundError(GatewayError):
    status_code = 404
    error = "not_found"


class AccountNotFound(NotFoundError):
    error = "account_not_found"

    def __init__(self, message: str = "Account not found", **extra: Any):
        super().__init__(message, **extra)


class KeyNotFound(NotFoundError):
    error = "api_key_not_found"

    def __init__(self, message: str = "API key not found", **extra: Any):
        super().__init__(message, **extra)


class TokenNotFound(NotFoundError):
    error = "token_not_found"

    def __init__(self, message: str = "Token not found", **extra: Any):
        super().__init__(message, **extra)


class ConflictError(GatewayError):
    status_code = 409
    error = "conflict"


class TokenStateError(GatewayError):
    """Token exists but cannot be used or deleted in its current state."""

    status_code = 400
    error = "bad_request"


# =============================================================================
# Credits and Upstream
# =============================================================================

class InsufficientCreditsError(GatewayError):
    status_code = 400
    error = "insufficient_credits"

    def __init__(self, required: int, available: Optional[int] = None):
        message = f"Insufficient credits. Required: {required}"
        if available is not None:
            message += f", Available: {available}"
        super().__init__(message)
        self.required = required
        self.available = available


class UpstreamUnavailableError(GatewayError):
    """No usable response came back from the upstream operation."""

    status_code = 502
    error = "upstream_unavailable"


class UpstreamSemanticFailure(GatewayError):
    """
    The upstream answered well-formed JSON with success=false.

    API key callers get the upstream body back untouched (``verbatim``);
    signed-token callers get the translated envelope with the raw body
    attached as ``originalResponse``.
    """

    status_code = 400
    error = "bad_request"

    def __init__(
        self,
        message: str,
        technical_message: str,
        raw_response: Dict[str, Any],
        translation: Optional[Any] = None,
        verbatim: bool = False,
    ):
        super().__init__(message)
        self.technical_message = technical_message
        self.raw_response = raw_response
        self.translation = translation
        self.verbatim = verbatim

    def to_dict(self) -> Dict[str, Any]:
        if self.verbatim:
            return dict(self.raw_response)
        body = super().to_dict()
        if self.translation is not None:
            body.update(self.translation.to_dict())
        body["originalResponse"] = self.raw_response
        return body


class SettlementError(GatewayError):
    """
    The upstream call completed but the ledger write failed.

    Nothing is compensated automatically; operators reconcile from the
    usage record and logs.
    """

    status_code = 500
    error = "settlement_failed"


class InternalError(GatewayError):
    status_code = 500
    error = "internal_error"
