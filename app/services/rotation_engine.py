"""Refresh-token rotation state machine.

Per family tip the states are LIVE -> ROTATED (normal refresh), LIVE -> REVOKED
(logout/administrative), and LIVE -> REUSED -> FAMILY_REVOKED (a rotated token
presented again). Expiry is checked at read time and never stored.
"""
from dataclasses import dataclass
from datetime import datetime
import logging
from typing import Optional

from app.core.config import SessionPolicy
from app.core.constants import RevokeReason
from app.core.result import Err, Ok, Result
from app.models.session import RefreshSession
from app.services.refresh_token_store import RefreshTokenStore
from app.services.security_notifier import SecurityNotifier
from app.services.token_issuer import PresentedRefreshToken, RefreshTokenCodec
from app.services.user_directory import Identity, UserDirectory
from app.utils.errors import AuthErrorKind
from app.utils.helpers import ClientInfo, utcnow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IssuedRefreshToken:
    record: RefreshSession
    token: str


@dataclass(frozen=True)
class Rotation:
    identity: Identity
    record: RefreshSession
    token: str


class RotationEngine:
    def __init__(
        self,
        store: RefreshTokenStore,
        users: UserDirectory,
        codec: RefreshTokenCodec,
        policy: SessionPolicy,
        notifier: SecurityNotifier,
        clock=utcnow,
    ):
        self.store = store
        self.users = users
        self.codec = codec
        self.policy = policy
        self.notifier = notifier
        self.clock = clock

    def family_cutoff(self, now: datetime) -> Optional[datetime]:
        """Families issued before this instant are past the absolute cap."""
        if self.policy.absolute_lifetime_cap is None:
            return None
        return now - self.policy.absolute_lifetime_cap

    def _new_record(
        self,
        *,
        user_id: int,
        now: datetime,
        client: ClientInfo,
        parent: Optional[RefreshSession] = None,
    ) -> IssuedRefreshToken:
        expires_at = now + self.policy.refresh_lifetime
        minted = self.codec.mint(
            user_id=user_id,
            family_id=parent.family_id if parent else None,
            issued_at=now,
            expires_at=expires_at,
        )
        record = RefreshSession(
            user_id=user_id,
            jti=minted.jti,
            family_id=parent.family_id if parent else minted.jti,
            parent_jti=parent.jti if parent else None,
            token_type=minted.token_type.value,
            token_hash=minted.token_hash,
            issued_at=now,
            expires_at=expires_at,
            family_issued_at=parent.family_issued_at if parent else now,
            device_id=client.device_id or (parent.device_id if parent else None),
            user_agent=client.user_agent,
            ip_address=client.ip_address,
        )
        return IssuedRefreshToken(record=record, token=minted.token)

    def issue_root(self, identity: Identity, client: ClientInfo) -> IssuedRefreshToken:
        """Start a new family at login or provider exchange."""
        issued = self._new_record(user_id=identity.user_id, now=self.clock(), client=client)
        self.store.create(issued.record)
        logger.info("Issued session family %s for user %s", issued.record.family_id[:8], identity.user_id)
        return issued

    def resolve(self, presented: Optional[str], claimed_user_id: Optional[int] = None) -> Result[tuple[PresentedRefreshToken, RefreshSession]]:
        """Map a presented token to its record, verifying signature or secret."""
        parsed = self.codec.parse(presented)
        if parsed is None:
            return Err(AuthErrorKind.INVALID_TOKEN, "malformed or badly signed token")
        record = self.store.find_by_jti(parsed.jti)
        if record is None:
            return Err(AuthErrorKind.INVALID_TOKEN, "unknown jti")
        if not self.codec.matches(parsed, record):
            return Err(AuthErrorKind.INVALID_TOKEN, "token does not match record")
        if claimed_user_id is not None and record.user_id != claimed_user_id:
            return Err(AuthErrorKind.INVALID_TOKEN, "token belongs to another user")
        return Ok((parsed, record))

    def _kill_family(self, record: RefreshSession, now: datetime, reason: RevokeReason) -> int:
        revoked = self.store.revoke_family(record.user_id, record.family_id, now, reason)
        logger.warning(
            "Revoked session family %s for user %s (%s, %s records)",
            record.family_id[:8], record.user_id, reason.value, revoked,
        )
        return revoked

    def _handle_reuse(self, record: RefreshSession, now: datetime, client: ClientInfo) -> Err:
        self.store.mark_reused(record.jti, now)
        self._kill_family(record, now, RevokeReason.TOKEN_REUSE)
        logger.warning(
            "Refresh token reuse detected for user %s family %s from ip=%s",
            record.user_id, record.family_id[:8], client.ip_address,
        )
        self.notifier.token_reuse_detected(
            user_id=record.user_id,
            family_id=record.family_id,
            ip_address=client.ip_address,
            user_agent=client.user_agent,
        )
        return Err(AuthErrorKind.TOKEN_REUSE_DETECTED, "rotated token presented again")

    def rotate(
        self,
        presented: Optional[str],
        client: ClientInfo = ClientInfo(),
        claimed_user_id: Optional[int] = None,
    ) -> Result[Rotation]:
        now = self.clock()

        resolved = self.resolve(presented, claimed_user_id)
        if not resolved.ok:
            return resolved
        _, record = resolved.value

        if now > record.expires_at:
            return Err(AuthErrorKind.TOKEN_EXPIRED)

        if record.rotated_at is not None:
            return self._handle_reuse(record, now, client)

        if record.revoked_at is not None:
            return Err(AuthErrorKind.TOKEN_REVOKED, record.revoked_reason or "")

        cutoff = self.family_cutoff(now)
        if cutoff is not None and record.family_issued_at < cutoff:
            self._kill_family(record, now, RevokeReason.ABSOLUTE_LIFETIME)
            return Err(AuthErrorKind.SESSION_EXPIRED)

        user = self.users.get_by_id(record.user_id)
        if user is None:
            return Err(AuthErrorKind.INVALID_TOKEN, "owner no longer exists")
        if user.identity.is_deactivated:
            self._kill_family(record, now, RevokeReason.ACCOUNT_DEACTIVATED)
            return Err(AuthErrorKind.ACCOUNT_DEACTIVATED)

        child = self._new_record(user_id=record.user_id, now=now, client=client, parent=record)
        committed = self.store.mark_rotated(record.jti, child.record, now)
        if committed is None:
            # Lost the conditional write: someone rotated or revoked it first.
            current = self.store.find_by_jti(record.jti)
            if current is not None and current.rotated_at is not None:
                return self._handle_reuse(current, now, client)
            if current is not None and current.revoked_at is not None:
                return Err(AuthErrorKind.TOKEN_REVOKED, current.revoked_reason or "")
            return Err(AuthErrorKind.INVALID_TOKEN, "record vanished during rotation")

        return Ok(Rotation(identity=user.identity, record=committed, token=child.token))

    def revoke_presented(self, presented: Optional[str], reason: RevokeReason = RevokeReason.LOGOUT) -> bool:
        """Revoke the record behind a presented token; False if nothing was revoked."""
        resolved = self.resolve(presented)
        if not resolved.ok:
            return False
        _, record = resolved.value
        return self.store.revoke_by_jti(record.jti, self.clock(), reason)
