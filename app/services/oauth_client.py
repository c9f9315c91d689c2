"""Google authorization-code exchange.

The code is swapped for tokens at Google's token endpoint, and the returned
ID token is verified (signature, audience, issuer, expiry) with google-auth.
"""
from dataclasses import dataclass
import logging
from typing import Optional

import httpx
from google.auth.transport import requests as google_requests
from google.oauth2 import id_token

logger = logging.getLogger(__name__)

GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_ISSUERS = ("accounts.google.com", "https://accounts.google.com")


class ProviderExchangeError(Exception):
    """The provider rejected the code or returned an unverifiable identity."""


@dataclass(frozen=True)
class ProviderIdentity:
    subject: str
    email: Optional[str]
    email_verified: bool


class GoogleOAuthClient:
    def __init__(
        self,
        client_id: Optional[str],
        client_secret: Optional[str],
        redirect_uri: Optional[str] = None,
        timeout: float = 5.0,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings) -> "GoogleOAuthClient":
        return cls(settings.GOOGLE_CLIENT_ID, settings.GOOGLE_CLIENT_SECRET, settings.GOOGLE_REDIRECT_URL)

    def exchange_code(
        self,
        code: str,
        redirect_uri: Optional[str] = None,
        code_verifier: Optional[str] = None,
    ) -> ProviderIdentity:
        if not self.client_id or not self.client_secret:
            raise ProviderExchangeError("Google OAuth is not configured")

        form = {
            "grant_type": "authorization_code",
            "code": code,
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "redirect_uri": redirect_uri or self.redirect_uri or "",
        }
        if code_verifier:
            form["code_verifier"] = code_verifier

        try:
            response = httpx.post(GOOGLE_TOKEN_URL, data=form, timeout=self.timeout)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise ProviderExchangeError(f"token exchange failed: {e}") from e

        raw_id_token = response.json().get("id_token")
        if not raw_id_token:
            raise ProviderExchangeError("token response carried no id_token")
        return self.verify_id_token(raw_id_token)

    def verify_id_token(self, raw_id_token: str) -> ProviderIdentity:
        try:
            idinfo = id_token.verify_oauth2_token(
                raw_id_token,
                google_requests.Request(),
                self.client_id,
            )
        except ValueError as e:
            raise ProviderExchangeError(f"id_token verification failed: {e}") from e

        if idinfo.get("iss") not in GOOGLE_ISSUERS:
            raise ProviderExchangeError("unexpected id_token issuer")

        return ProviderIdentity(
            subject=idinfo["sub"],
            email=(idinfo.get("email") or "").lower() or None,
            email_verified=bool(idinfo.get("email_verified")),
        )
