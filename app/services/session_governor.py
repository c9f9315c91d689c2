import logging
from typing import Optional

from app.core.config import SessionPolicy
from app.core.constants import RevokeReason
from app.core.result import Err, Ok, Result
from app.models.session import RefreshSession
from app.services.refresh_token_store import RefreshTokenStore
from app.utils.errors import AuthErrorKind
from app.utils.helpers import utcnow

logger = logging.getLogger(__name__)


class SessionGovernor:
    """Caps concurrent session families per user and manages them on request."""

    def __init__(self, store: RefreshTokenStore, policy: SessionPolicy, clock=utcnow):
        self.store = store
        self.policy = policy
        self.clock = clock

    def _family_cutoff(self, now):
        cap = self.policy.absolute_lifetime_cap
        return now - cap if cap is not None else None

    def admit(self, user_id: int) -> Result[list[str]]:
        """Make room for a new family root.

        Returns the family ids evicted to stay under the cap, or
        SESSION_LIMIT_REACHED when the policy refuses instead of pruning.
        """
        limit = self.policy.max_sessions_per_user
        if limit is None:
            return Ok([])

        now = self.clock()
        cutoff = self._family_cutoff(now)
        live = self.store.count_live(user_id, now, family_issued_after=cutoff)
        if live < limit:
            return Ok([])

        if not self.policy.prune_oldest_on_limit:
            logger.info("Session limit %s reached for user %s; refusing new session", limit, user_id)
            return Err(AuthErrorKind.SESSION_LIMIT_REACHED)

        evicted = []
        for record in self.store.find_oldest_live(user_id, live - limit + 1, now, family_issued_after=cutoff):
            self.store.revoke_family(user_id, record.family_id, now, RevokeReason.SESSION_LIMIT)
            evicted.append(record.family_id)
        logger.warning("Session limit %s reached for user %s; evicted %s families", limit, user_id, len(evicted))
        return Ok(evicted)

    def list_sessions(self, user_id: int) -> list[RefreshSession]:
        now = self.clock()
        return self.store.list_live(user_id, now, family_issued_after=self._family_cutoff(now))

    def revoke_session(self, user_id: int, session_id: str) -> bool:
        """Revoke one of the caller's live sessions. False when it is not theirs or not live."""
        now = self.clock()
        record = self.store.find_by_id(session_id)
        if record is None or record.user_id != user_id or not record.is_live(now):
            return False
        return self.store.revoke_by_id(record.id, now, RevokeReason.USER_REVOKED)

    def revoke_other_sessions(self, user_id: int, keep_family_id: Optional[str]) -> int:
        revoked = self.store.revoke_all_for_user(
            user_id, self.clock(), RevokeReason.USER_REVOKED, except_family_id=keep_family_id,
        )
        logger.info("Revoked %s other sessions for user %s", revoked, user_id)
        return revoked
