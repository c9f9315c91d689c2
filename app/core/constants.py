"""Application constants such as user roles, statuses and token kinds."""
from enum import Enum


class UserRole(str, Enum):
    LEARNER = "learner"
    INSTRUCTOR = "instructor"
    ADMIN = "admin"


class UserStatus(str, Enum):
    PENDING_ACTIVATION = "pending_activation"
    ACTIVE = "active"
    DEACTIVATED = "deactivated"


class TokenRepresentation(str, Enum):
    SIGNED = "signed"
    OPAQUE = "opaque"


class RevokeReason(str, Enum):
    LOGOUT = "logout"
    ROTATED = "rotated"
    USER_REVOKED = "user_revoked"
    TOKEN_REUSE = "token_reuse"
    ABSOLUTE_LIFETIME = "absolute_lifetime"
    SESSION_LIMIT = "session_limit"
    ACCOUNT_DEACTIVATED = "account_deactivated"
