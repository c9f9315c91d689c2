import os
from datetime import timedelta
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, model_validator

from app.core.constants import TokenRepresentation

load_dotenv()


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


class SessionPolicy(BaseModel):
    """Typed refresh-session policy, validated once at startup."""

    model_config = ConfigDict(frozen=True)

    refresh_lifetime: timedelta
    absolute_lifetime_cap: Optional[timedelta] = None
    max_sessions_per_user: Optional[int] = Field(None, ge=1)
    prune_oldest_on_limit: bool = False
    token_representation: TokenRepresentation = TokenRepresentation.SIGNED

    @model_validator(mode="after")
    def check_lifetimes(self):
        if self.refresh_lifetime <= timedelta(0):
            raise ValueError("refresh_lifetime must be positive")
        if self.absolute_lifetime_cap is not None and self.absolute_lifetime_cap < self.refresh_lifetime:
            raise ValueError("absolute_lifetime_cap must not be shorter than refresh_lifetime")
        return self


class Settings:
    ENV: str = os.getenv("ENV", "local")
    APP_NAME: str = os.getenv("APP_NAME", "Tokenward")
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    # Database
    DATABASE_URL: Optional[str] = os.getenv("DATABASE_URL")
    DATABASE_ECHO: bool = _env_bool("DATABASE_ECHO", "False")
    DATABASE_POOL_SIZE: int = int(os.getenv("DATABASE_POOL_SIZE", 20))
    DATABASE_MAX_OVERFLOW: int = int(os.getenv("DATABASE_MAX_OVERFLOW", 10))
    DATABASE_TIMEOUT_SECONDS: int = int(os.getenv("DATABASE_TIMEOUT_SECONDS", 5))

    # JWT / Security
    SECRET_KEY: Optional[str] = os.getenv("SECRET_KEY")
    ALGORITHM: str = os.getenv("ALGORITHM", "HS256")
    JWT_REFRESH_SECRET: Optional[str] = os.getenv("JWT_REFRESH_SECRET")
    JWT_ISSUER: Optional[str] = os.getenv("JWT_ISSUER") or None
    JWT_AUDIENCE: Optional[str] = os.getenv("JWT_AUDIENCE") or None
    ACCESS_TOKEN_EXPIRE_MINUTES: int = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", 15))
    REFRESH_TOKEN_EXPIRE_DAYS: int = int(os.getenv("REFRESH_TOKEN_EXPIRE_DAYS", 7))

    # Session policy (0 disables the absolute cap / session limit)
    REFRESH_ABSOLUTE_LIFETIME_DAYS: int = int(os.getenv("REFRESH_ABSOLUTE_LIFETIME_DAYS", 30))
    MAX_SESSIONS_PER_USER: int = int(os.getenv("MAX_SESSIONS_PER_USER", 0))
    SESSION_LIMIT_PRUNE_OLDEST: bool = _env_bool("SESSION_LIMIT_PRUNE_OLDEST", "True")
    REFRESH_TOKEN_REPRESENTATION: str = os.getenv("REFRESH_TOKEN_REPRESENTATION", "signed")
    REQUIRE_EMAIL_VERIFIED_FOR_LOGIN: bool = _env_bool("REQUIRE_EMAIL_VERIFIED_FOR_LOGIN", "False")

    # Retention sweep
    REFRESH_EXPIRED_GRACE_HOURS: int = int(os.getenv("REFRESH_EXPIRED_GRACE_HOURS", 0))
    REVOKED_RETENTION_DAYS: int = int(os.getenv("REVOKED_RETENTION_DAYS", 7))

    # Refresh cookie
    REFRESH_COOKIE_NAME: str = os.getenv("REFRESH_COOKIE_NAME", "refresh_token")
    REFRESH_COOKIE_PATH: str = os.getenv("REFRESH_COOKIE_PATH", "/auth")
    REFRESH_COOKIE_SAMESITE: str = os.getenv("REFRESH_COOKIE_SAMESITE", "lax").lower()
    COOKIE_SECURE: bool = _env_bool("COOKIE_SECURE", "True" if ENV == "production" else "False")
    COOKIE_DOMAIN: Optional[str] = os.getenv("COOKIE_DOMAIN") or None
    REFRESH_REQUIRED_HEADER: str = os.getenv("REFRESH_REQUIRED_HEADER", "X-Requested-With")

    # Google OAuth
    GOOGLE_CLIENT_ID: Optional[str] = os.getenv("GOOGLE_CLIENT_ID")
    GOOGLE_CLIENT_SECRET: Optional[str] = os.getenv("GOOGLE_CLIENT_SECRET")
    GOOGLE_REDIRECT_URL: Optional[str] = os.getenv("GOOGLE_REDIRECT_URL")

    # Email
    SENDER_NAME: str = os.getenv("SENDER_NAME", "Tokenward Security")
    SMTP_HOST: Optional[str] = os.getenv("SMTP_HOST")
    SMTP_PORT: int = int(os.getenv("SMTP_PORT", 587))
    SMTP_USER: Optional[str] = os.getenv("SMTP_USER")
    SMTP_PASSWORD: Optional[str] = os.getenv("SMTP_PASSWORD")

    # Rate limiting (per client IP and path, on login, provider exchange and refresh)
    RATE_LIMIT_ENABLED: bool = _env_bool("RATE_LIMIT_ENABLED", "True")
    RATE_LIMIT_REQUESTS: int = int(os.getenv("RATE_LIMIT_REQUESTS", 5))
    RATE_LIMIT_PERIOD_SECONDS: int = int(os.getenv("RATE_LIMIT_PERIOD_SECONDS", 900))

    # Redis (Celery broker)
    REDIS_URL: str = os.getenv("REDIS_URL", "redis://localhost:6379/0")

    def session_policy(self) -> SessionPolicy:
        cap_days = self.REFRESH_ABSOLUTE_LIFETIME_DAYS
        return SessionPolicy(
            refresh_lifetime=timedelta(days=self.REFRESH_TOKEN_EXPIRE_DAYS),
            absolute_lifetime_cap=timedelta(days=cap_days) if cap_days > 0 else None,
            max_sessions_per_user=self.MAX_SESSIONS_PER_USER or None,
            prune_oldest_on_limit=self.SESSION_LIMIT_PRUNE_OLDEST,
            token_representation=TokenRepresentation(self.REFRESH_TOKEN_REPRESENTATION),
        )

    @property
    def refresh_secret(self) -> str:
        return self.JWT_REFRESH_SECRET or self.SECRET_KEY

    def validate(self) -> SessionPolicy:
        """Fail fast on missing secrets or an inconsistent session policy."""
        if not self.SECRET_KEY:
            raise RuntimeError("SECRET_KEY is not configured.")
        if self.ALGORITHM not in ("HS256", "HS384", "HS512"):
            raise RuntimeError(f"Unsupported ALGORITHM {self.ALGORITHM!r}; use an HMAC algorithm.")
        if self.REFRESH_COOKIE_SAMESITE not in ("lax", "strict", "none"):
            raise RuntimeError("REFRESH_COOKIE_SAMESITE must be lax, strict or none.")
        if self.REFRESH_COOKIE_SAMESITE == "none" and not self.COOKIE_SECURE:
            raise RuntimeError("SameSite=None cookies require COOKIE_SECURE=true.")
        if self.ACCESS_TOKEN_EXPIRE_MINUTES <= 0 or self.ACCESS_TOKEN_EXPIRE_MINUTES > 60:
            raise RuntimeError("ACCESS_TOKEN_EXPIRE_MINUTES must be between 1 and 60.")
        if self.RATE_LIMIT_ENABLED and (self.RATE_LIMIT_REQUESTS <= 0 or self.RATE_LIMIT_PERIOD_SECONDS <= 0):
            raise RuntimeError("RATE_LIMIT_REQUESTS and RATE_LIMIT_PERIOD_SECONDS must be positive.")
        return self.session_policy()


settings = Settings()
