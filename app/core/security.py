from datetime import datetime, timezone
from typing import Optional, Dict, Any
from jose import JWTError, jwt
from passlib.context import CryptContext
import secrets
import hashlib
import hmac

pwd_context = CryptContext(
    schemes=["argon2"],
    deprecated="auto",
)


def hash_password(password: str) -> str:
    if not password or not isinstance(password, str):
        raise ValueError("Password must be a non-empty string")
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: Optional[str]) -> bool:
    """Constant-time password check.

    Runs a dummy verification when there is no stored hash so an unknown
    account costs the same as a wrong password.
    """
    if not plain_password or not isinstance(plain_password, str) or not hashed_password:
        pwd_context.dummy_verify()
        return False
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except (ValueError, TypeError):
        return False


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def token_hash_matches(secret: str, stored_hash: Optional[str]) -> bool:
    if not secret or not stored_hash:
        return False
    return hmac.compare_digest(hash_token(secret), stored_hash)


def new_jti() -> str:
    return secrets.token_urlsafe(32)


def new_opaque_secret() -> str:
    return secrets.token_urlsafe(48)


def utc_timestamp(value: datetime) -> int:
    """Seconds since the epoch for a naive-UTC or aware datetime."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return int(value.timestamp())


def encode_jwt(
    payload: Dict[str, Any],
    *,
    secret: str,
    algorithm: str,
    issued_at: datetime,
    expires_at: datetime,
) -> str:
    claims = dict(payload)
    claims.update({
        "iat": utc_timestamp(issued_at),
        "exp": utc_timestamp(expires_at),
    })
    return jwt.encode(claims, secret, algorithm=algorithm)


def decode_jwt(
    token: str,
    *,
    secret: str,
    algorithm: str,
    expected_type: str,
    issuer: Optional[str] = None,
    audience: Optional[str] = None,
    verify_exp: bool = True,
) -> Optional[Dict[str, Any]]:
    """Decode a JWT pinned to a single key, algorithm, issuer and audience.

    Returns None on any signature, claim or type mismatch.
    """
    if not token:
        return None
    try:
        payload = jwt.decode(
            token,
            secret,
            algorithms=[algorithm],
            issuer=issuer,
            audience=audience,
            options={
                "verify_exp": verify_exp,
                "require_aud": audience is not None,
                "require_iss": issuer is not None,
            },
        )
    except JWTError:
        return None
    if payload.get("type") != expected_type or not payload.get("sub") or not payload.get("jti"):
        return None
    return payload
