from dataclasses import dataclass
import logging
from typing import Optional

from app.core.result import Err, Ok, Result
from app.core.security import verify_password
from app.services.oauth_client import GoogleOAuthClient, ProviderExchangeError
from app.services.user_directory import Identity, UserDirectory, UserRecord
from app.utils.errors import AuthErrorKind

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VerifiedIdentity:
    identity: Identity
    email_verified: bool


class CredentialVerifier:
    """Turns a primary credential into a canonical identity. Read-only."""

    def __init__(
        self,
        users: UserDirectory,
        oauth_client: Optional[GoogleOAuthClient] = None,
        require_verified_email: bool = False,
    ):
        self.users = users
        self.oauth_client = oauth_client
        self.require_verified_email = require_verified_email

    def _check_status(self, identity: Identity) -> Optional[Err]:
        if identity.is_deactivated:
            return Err(AuthErrorKind.ACCOUNT_DEACTIVATED)
        if self.require_verified_email and not identity.is_active:
            return Err(AuthErrorKind.EMAIL_UNVERIFIED)
        return None

    def verify_password(self, email: str, password: str) -> Result[VerifiedIdentity]:
        user = self.users.get_by_email(email) if email else None
        # verify_password burns a dummy hash when there is nothing to compare against
        if not verify_password(password, user.password_hash if user else None) or user is None:
            return Err(AuthErrorKind.INVALID_CREDENTIAL)

        failure = self._check_status(user.identity)
        if failure:
            return failure
        return Ok(VerifiedIdentity(identity=user.identity, email_verified=user.identity.is_active))

    def verify_provider(
        self,
        code: str,
        redirect_uri: Optional[str] = None,
        code_verifier: Optional[str] = None,
    ) -> Result[VerifiedIdentity]:
        if self.oauth_client is None:
            return Err(AuthErrorKind.INVALID_CREDENTIAL, "provider exchange disabled")
        try:
            profile = self.oauth_client.exchange_code(code, redirect_uri, code_verifier)
        except ProviderExchangeError as e:
            logger.info("Provider exchange failed: %s", e)
            return Err(AuthErrorKind.INVALID_CREDENTIAL, str(e))

        user: Optional[UserRecord] = self.users.get_by_google_id(profile.subject)
        if user is None and profile.email and profile.email_verified:
            user = self.users.get_by_email(profile.email)
            if user is not None and user.google_id and user.google_id != profile.subject:
                user = None
        if user is None:
            return Err(AuthErrorKind.INVALID_CREDENTIAL, "no account linked to provider identity")

        failure = self._check_status(user.identity)
        if failure:
            return failure
        return Ok(VerifiedIdentity(identity=user.identity, email_verified=profile.email_verified))
