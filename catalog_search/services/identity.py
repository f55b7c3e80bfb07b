"""
Identity Providers

Bearer tokens are verified by the external authentication service. Two
interchangeable providers exist and one is chosen at startup:

- HttpIdentityProvider asks the auth service (GET /auth/me) and caches
  verified tokens for a short time.
- FixtureIdentityProvider accepts any non-empty token as the fixture user.
"""

import json
import logging
import time
from abc import ABC, abstractmethod
from pathlib import Path

import httpx
from pydantic import BaseModel, ConfigDict
from pydantic import ValidationError as PydanticValidationError

logger = logging.getLogger(__name__)

DEFAULT_USER_FIXTURE = Path(__file__).resolve().parent.parent / "data" / "user_fixture.json"


class UserInfo(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    first_name: str = ""
    last_name: str = ""
    email: str = ""
    roles: list[str] = []
    permissions: list[str] = []
    active: bool = True


class IdentityProvider(ABC):
    @abstractmethod
    async def verify(self, token: str) -> UserInfo | None:
        """Return the user behind ``token`` or None when it is not valid."""


class HttpIdentityProvider(IdentityProvider):
    """Verifies tokens against the auth service with a small in-process cache"""

    def __init__(
        self,
        base_url: str,
        timeout: float = 5.0,
        cache_seconds: int = 300,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.cache_seconds = cache_seconds
        self._transport = transport
        self._cache: dict[str, tuple[UserInfo, float]] = {}

    def _cached(self, token: str) -> UserInfo | None:
        entry = self._cache.get(token)
        if entry is None:
            return None
        user, stored_at = entry
        if time.monotonic() - stored_at >= self.cache_seconds:
            self._cache.pop(token, None)
            return None
        return user

    async def verify(self, token: str) -> UserInfo | None:
        if not token or not token.strip():
            return None

        cached = self._cached(token)
        if cached is not None:
            return cached

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.get(
                    f"{self.base_url}/auth/me",
                    headers={"Authorization": f"Bearer {token}"},
                )
        except httpx.TimeoutException:
            logger.error("Timed out verifying token with the auth service")
            return None
        except httpx.RequestError as e:
            logger.error(f"Could not reach the auth service: {e}")
            return None

        if response.status_code != 200:
            if response.status_code == 401:
                logger.warning("Token rejected by the auth service")
            else:
                logger.warning(f"Auth service answered HTTP {response.status_code}")
            return None

        try:
            user = UserInfo.model_validate(response.json())
        except (ValueError, PydanticValidationError):
            logger.warning("Auth service returned an unusable user payload")
            return None

        self._cache[token] = (user, time.monotonic())
        logger.info(f"Token verified for user {user.id}")
        return user


class FixtureIdentityProvider(IdentityProvider):
    """Treats every non-empty token as the fixture user"""

    def __init__(self, path: Path | str = DEFAULT_USER_FIXTURE):
        with Path(path).open(encoding="utf-8") as f:
            self.user = UserInfo.model_validate(json.load(f))

    async def verify(self, token: str) -> UserInfo | None:
        if not token or not token.strip():
            return None
        return self.user
