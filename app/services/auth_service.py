from dataclasses import dataclass
import logging
from typing import Optional

from app.core.config import SessionPolicy, Settings
from app.core.database import Database
from app.core.result import Err, Ok, Result
from app.models.session import RefreshSession
from app.services.credential_verifier import CredentialVerifier, VerifiedIdentity
from app.services.oauth_client import GoogleOAuthClient
from app.services.refresh_token_store import RefreshTokenStore
from app.services.rotation_engine import RotationEngine
from app.services.security_notifier import SecurityNotifier
from app.services.session_governor import SessionGovernor
from app.services.token_issuer import AccessTokenIssuer, RefreshTokenCodec
from app.services.user_directory import Identity, UserDirectory
from app.utils.helpers import ClientInfo, utcnow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IssuedSession:
    """Everything a successful login/refresh hands back to the transport layer."""

    user_id: int
    session_id: str
    access_token: str
    expires_in: int
    refresh_token: str
    refresh_max_age: int


class AuthService:
    def __init__(
        self,
        verifier: CredentialVerifier,
        access_issuer: AccessTokenIssuer,
        engine: RotationEngine,
        governor: SessionGovernor,
    ):
        self.verifier = verifier
        self.access_issuer = access_issuer
        self.engine = engine
        self.governor = governor

    def _bundle(self, identity: Identity, record: RefreshSession, refresh_token: str) -> IssuedSession:
        access_token, expires_in = self.access_issuer.issue(identity, session_id=record.family_id)
        max_age = int((record.expires_at - self.engine.clock()).total_seconds())
        return IssuedSession(
            user_id=identity.user_id,
            session_id=record.family_id,
            access_token=access_token,
            expires_in=expires_in,
            refresh_token=refresh_token,
            refresh_max_age=max(max_age, 0),
        )

    def _start_session(self, verified: Result[VerifiedIdentity], client: ClientInfo) -> Result[IssuedSession]:
        if not verified.ok:
            return verified
        identity = verified.value.identity

        admitted = self.governor.admit(identity.user_id)
        if not admitted.ok:
            return admitted

        issued = self.engine.issue_root(identity, client)
        return Ok(self._bundle(identity, issued.record, issued.token))

    def login(self, email: str, password: str, client: ClientInfo) -> Result[IssuedSession]:
        """
        Email/password login
        - Verify credentials
        - Enforce the per-user session cap
        - Start a new token family
        """
        return self._start_session(self.verifier.verify_password(email, password), client)

    def exchange(
        self,
        code: str,
        client: ClientInfo,
        redirect_uri: Optional[str] = None,
        code_verifier: Optional[str] = None,
    ) -> Result[IssuedSession]:
        """Provider (Google) authorization-code login."""
        return self._start_session(self.verifier.verify_provider(code, redirect_uri, code_verifier), client)

    def refresh(self, refresh_token: Optional[str], client: ClientInfo) -> Result[IssuedSession]:
        """Rotate the presented refresh token and mint a fresh access token."""
        rotated = self.engine.rotate(refresh_token, client)
        if not rotated.ok:
            return rotated
        rotation = rotated.value
        return Ok(self._bundle(rotation.identity, rotation.record, rotation.token))

    def logout(self, refresh_token: Optional[str]) -> bool:
        """Idempotent: an unknown, expired or already-revoked token is not an error."""
        if not refresh_token:
            return False
        return self.engine.revoke_presented(refresh_token)

    def list_sessions(self, user_id: int) -> list[RefreshSession]:
        return self.governor.list_sessions(user_id)

    def revoke_session(self, user_id: int, session_id: str) -> bool:
        return self.governor.revoke_session(user_id, session_id)

    def revoke_other_sessions(self, user_id: int, keep_family_id: Optional[str]) -> int:
        return self.governor.revoke_other_sessions(user_id, keep_family_id)


def build_auth_service(
    settings: Settings,
    database: Database,
    *,
    policy: Optional[SessionPolicy] = None,
    notifier: Optional[SecurityNotifier] = None,
    oauth_client: Optional[GoogleOAuthClient] = None,
    clock=utcnow,
) -> AuthService:
    policy = policy or settings.session_policy()
    users = UserDirectory(database)
    store = RefreshTokenStore(database)
    codec = RefreshTokenCodec(
        settings.refresh_secret,
        algorithm=settings.ALGORITHM,
        representation=policy.token_representation,
    )
    return AuthService(
        verifier=CredentialVerifier(
            users,
            oauth_client=oauth_client or GoogleOAuthClient.from_settings(settings),
            require_verified_email=settings.REQUIRE_EMAIL_VERIFIED_FOR_LOGIN,
        ),
        access_issuer=AccessTokenIssuer.from_settings(settings, clock=clock),
        engine=RotationEngine(store, users, codec, policy, notifier or SecurityNotifier(), clock=clock),
        governor=SessionGovernor(store, policy, clock=clock),
    )
