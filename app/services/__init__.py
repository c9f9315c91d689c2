"""Service layer package."""

__all__ = [
    "auth_service",
    "credential_verifier",
    "token_issuer",
    "refresh_token_store",
    "rotation_engine",
    "session_governor",
    "user_directory",
    "oauth_client",
    "email_service",
    "security_notifier",
]
