from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from app.core.config import Settings
from app.services.auth_service import AuthService
from app.utils.errors import Unauthorized, raise_for_error

security = HTTPBearer(auto_error=False)


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_auth_service(request: Request) -> AuthService:
    return request.app.state.auth_service


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
    auth_service: AuthService = Depends(get_auth_service),
):
    """Verify the bearer access token and return its claims.

    Access tokens are stateless: no store lookup happens here.
    """
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise Unauthorized()

    verified = auth_service.access_issuer.verify(credentials.credentials)
    if not verified.ok:
        raise_for_error(verified, operation="access token")

    payload = verified.value
    try:
        user_id = int(payload["sub"])
    except (KeyError, TypeError, ValueError):
        raise Unauthorized()

    return {
        **payload,
        "user_id": user_id,
    }
