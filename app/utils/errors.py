"""Error kinds and HTTP error definitions for the auth surface."""
import enum
import logging

from fastapi import HTTPException
from starlette import status

logger = logging.getLogger(__name__)


class AuthErrorKind(str, enum.Enum):
    # credential verifier
    INVALID_CREDENTIAL = "invalid_credential"
    ACCOUNT_DEACTIVATED = "account_deactivated"
    EMAIL_UNVERIFIED = "email_unverified"
    # rotation engine / session governor
    INVALID_TOKEN = "invalid_token"
    TOKEN_REVOKED = "token_revoked"
    TOKEN_EXPIRED = "token_expired"
    SESSION_EXPIRED = "session_expired"
    TOKEN_REUSE_DETECTED = "token_reuse_detected"
    SESSION_LIMIT_REACHED = "session_limit_reached"


_FORBIDDEN_KINDS = {
    AuthErrorKind.ACCOUNT_DEACTIVATED,
    AuthErrorKind.EMAIL_UNVERIFIED,
    AuthErrorKind.SESSION_LIMIT_REACHED,
}


class StoreUnavailableError(Exception):
    """The session store could not complete an operation (timeout, lost connection)."""


class Unauthorized(HTTPException):
    def __init__(self, detail: str = "Unauthorized"):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            headers={"WWW-Authenticate": "Bearer"},
        )


class Forbidden(HTTPException):
    def __init__(self, detail: str = "Forbidden"):
        super().__init__(status_code=status.HTTP_403_FORBIDDEN, detail=detail)


class NotFound(HTTPException):
    def __init__(self, detail: str = "Not found"):
        super().__init__(status_code=status.HTTP_404_NOT_FOUND, detail=detail)


class TooManyRequests(HTTPException):
    def __init__(self, retry_after: int, detail: str = "Too many requests. Please slow down."):
        super().__init__(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail=detail,
            headers={"Retry-After": str(retry_after)},
        )


class ServiceUnavailable(HTTPException):
    def __init__(self, detail: str = "Service temporarily unavailable"):
        super().__init__(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=detail)


def http_error_for(kind: AuthErrorKind) -> HTTPException:
    """Map an error kind to a generic client-facing error.

    The response never says whether a token was expired, revoked or replayed.
    """
    if kind in _FORBIDDEN_KINDS:
        return Forbidden()
    return Unauthorized()


def raise_for_error(err, *, operation: str, user_id=None) -> None:
    logger.warning(
        "%s rejected: kind=%s user_id=%s detail=%s",
        operation, err.kind.value, user_id, err.detail or "-",
    )
    raise http_error_for(err.kind)
