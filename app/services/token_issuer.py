"""Access-token minting/verification and the refresh-token wire formats.

Access tokens are stateless signed JWTs. Refresh tokens come in two shapes:

* ``signed``: a JWT carrying ``sub``/``jti``/``fid``, verifiable by signature.
* ``opaque``: ``<jti>.<secret>``; only ``sha256(secret)`` is persisted.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from app.core.constants import TokenRepresentation
from app.core.result import Err, Ok, Result
from app.core.security import (
    decode_jwt,
    encode_jwt,
    hash_token,
    new_jti,
    new_opaque_secret,
    token_hash_matches,
)
from app.services.user_directory import Identity
from app.utils.errors import AuthErrorKind
from app.utils.helpers import utcnow


class AccessTokenIssuer:
    def __init__(
        self,
        secret: str,
        *,
        algorithm: str = "HS256",
        lifetime: timedelta = timedelta(minutes=15),
        issuer: Optional[str] = None,
        audience: Optional[str] = None,
        clock=utcnow,
    ):
        self._secret = secret
        self._algorithm = algorithm
        self._lifetime = lifetime
        self._issuer = issuer
        self._audience = audience
        self._clock = clock

    @classmethod
    def from_settings(cls, settings, clock=utcnow) -> "AccessTokenIssuer":
        return cls(
            settings.SECRET_KEY,
            algorithm=settings.ALGORITHM,
            lifetime=timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES),
            issuer=settings.JWT_ISSUER,
            audience=settings.JWT_AUDIENCE,
            clock=clock,
        )

    @property
    def expires_in(self) -> int:
        return int(self._lifetime.total_seconds())

    def issue(self, identity: Identity, session_id: Optional[str] = None) -> tuple[str, int]:
        now = self._clock()
        payload: Dict[str, Any] = {
            "sub": str(identity.user_id),
            "email": identity.email,
            "role": identity.role,
            "status": identity.status,
            "type": "access",
            "jti": new_jti(),
        }
        if session_id:
            payload["sid"] = session_id
        if self._issuer:
            payload["iss"] = self._issuer
        if self._audience:
            payload["aud"] = self._audience
        token = encode_jwt(
            payload,
            secret=self._secret,
            algorithm=self._algorithm,
            issued_at=now,
            expires_at=now + self._lifetime,
        )
        return token, self.expires_in

    def verify(self, token: str) -> Result[Dict[str, Any]]:
        payload = decode_jwt(
            token,
            secret=self._secret,
            algorithm=self._algorithm,
            expected_type="access",
            issuer=self._issuer,
            audience=self._audience,
        )
        if payload is None:
            return Err(AuthErrorKind.INVALID_TOKEN, "access token rejected")
        if self._issuer is None and "iss" in payload:
            return Err(AuthErrorKind.INVALID_TOKEN, "unexpected issuer")
        if self._audience is not None and "aud" not in payload:
            return Err(AuthErrorKind.INVALID_TOKEN, "missing audience")
        return Ok(payload)


@dataclass(frozen=True)
class MintedRefreshToken:
    token: str
    jti: str
    token_type: TokenRepresentation
    token_hash: Optional[str]


@dataclass(frozen=True)
class PresentedRefreshToken:
    """What could be read from a refresh token before the store lookup."""

    jti: str
    token_type: TokenRepresentation
    user_id: Optional[int] = None
    family_id: Optional[str] = None
    secret: Optional[str] = None


class RefreshTokenCodec:
    def __init__(
        self,
        secret: str,
        *,
        algorithm: str = "HS256",
        representation: TokenRepresentation = TokenRepresentation.SIGNED,
    ):
        self._secret = secret
        self._algorithm = algorithm
        self.representation = representation

    def mint(self, *, user_id: int, family_id: Optional[str], issued_at: datetime, expires_at: datetime) -> MintedRefreshToken:
        """Produce a new refresh token; a root token starts its own family (family_id=None)."""
        jti = new_jti()
        if self.representation is TokenRepresentation.OPAQUE:
            secret = new_opaque_secret()
            return MintedRefreshToken(
                token=f"{jti}.{secret}",
                jti=jti,
                token_type=TokenRepresentation.OPAQUE,
                token_hash=hash_token(secret),
            )

        token = encode_jwt(
            {"sub": str(user_id), "jti": jti, "fid": family_id or jti, "type": "refresh"},
            secret=self._secret,
            algorithm=self._algorithm,
            issued_at=issued_at,
            expires_at=expires_at,
        )
        return MintedRefreshToken(token=token, jti=jti, token_type=TokenRepresentation.SIGNED, token_hash=None)

    def parse(self, token: Optional[str]) -> Optional[PresentedRefreshToken]:
        """Read a refresh token of either shape; None if it is malformed or badly signed.

        Expiry is not checked here: the stored record is authoritative.
        """
        if not token or not isinstance(token, str):
            return None

        if token.count(".") == 2:
            payload = decode_jwt(
                token,
                secret=self._secret,
                algorithm=self._algorithm,
                expected_type="refresh",
                verify_exp=False,
            )
            if payload is None:
                return None
            try:
                user_id = int(payload["sub"])
            except (TypeError, ValueError):
                return None
            return PresentedRefreshToken(
                jti=payload["jti"],
                token_type=TokenRepresentation.SIGNED,
                user_id=user_id,
                family_id=payload.get("fid"),
            )

        jti, sep, secret = token.partition(".")
        if not sep or not jti or not secret:
            return None
        return PresentedRefreshToken(jti=jti, token_type=TokenRepresentation.OPAQUE, secret=secret)

    @staticmethod
    def matches(presented: PresentedRefreshToken, record) -> bool:
        """Check a parsed token against its stored record."""
        if record.token_type != presented.token_type.value:
            return False
        if presented.token_type is TokenRepresentation.OPAQUE:
            return token_hash_matches(presented.secret, record.token_hash)
        if presented.user_id != record.user_id:
            return False
        return presented.family_id is None or presented.family_id == record.family_id
