import logging
from typing import Dict, Optional

import httpx

from app.settings import settings
from domain.errors import AuthError

logger = logging.getLogger(__name__)


def bearer_token(authorization: Optional[str]) -> str:
    if not authorization or not authorization.startswith("Bearer "):
        raise AuthError()
    token = authorization[len("Bearer "):].strip()
    if not token:
        raise AuthError()
    return token


class IdentityVerifier:
    """Validates bearer tokens against the hosted identity service."""

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None, timeout: int = 10):
        self._transport = transport
        self._timeout = timeout

    async def verify(self, authorization: Optional[str]) -> Dict:
        token = bearer_token(authorization)
        if not settings.IDENTITY_URL:
            if settings.ENV == "development":
                return {"id": "dev-user"}
            raise AuthError("Identity service is not configured")
        headers = {"Authorization": f"Bearer {token}"}
        if settings.IDENTITY_API_KEY:
            headers["apikey"] = settings.IDENTITY_API_KEY
        url = f"{settings.IDENTITY_URL.rstrip('/')}/auth/v1/user"
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                response = await client.get(url, headers=headers)
        except httpx.RequestError as exc:
            logger.warning("Identity service unreachable: %s", exc)
            raise AuthError() from exc
        if response.status_code != 200:
            raise AuthError()
        try:
            user = response.json()
        except ValueError as exc:
            raise AuthError() from exc
        if not isinstance(user, dict) or not user.get("id"):
            raise AuthError()
        return user
