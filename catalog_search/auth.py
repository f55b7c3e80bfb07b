"""
Request Identity

Every owner-scoped endpoint needs to know whose records it is touching.
Callers are identified in this order:

1. ``Authorization: Bearer <token>`` verified by the identity provider.
   The owner id is the authenticated user's id.
2. Otherwise an anonymous session, resolved from the ``X-Session-Id``
   header (refreshed when still active, minted when missing or expired).
   The owner id is ``anonymous_<sessionId>`` and the session id is echoed
   back in the ``X-Session-Id`` response header.

An invalid or unverifiable token is not an error: the caller simply
continues as anonymous.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Header, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from catalog_search.exceptions import UnauthorizedError
from catalog_search.services.identity import UserInfo
from catalog_search.services.session_registry import anonymous_owner_id

logger = logging.getLogger(__name__)

SESSION_HEADER = "X-Session-Id"

bearer_scheme = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class Identity:
    owner_id: str
    is_anonymous: bool
    session_id: Optional[str] = None
    user: Optional[UserInfo] = None


async def resolve_identity(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    x_session_id: Optional[str] = Header(None, alias=SESSION_HEADER),
) -> Optional[Identity]:
    """
    Resolve the caller's identity, or None when anonymous sessions are disabled
    and no valid token was presented.
    """
    if credentials is not None and credentials.credentials:
        user = await request.app.state.identity_provider.verify(credentials.credentials)
        if user is not None and user.active:
            request.state.owner_id = user.id
            return Identity(owner_id=user.id, is_anonymous=False, user=user)
        logger.info("Bearer token not accepted, continuing as anonymous")

    if not request.app.state.allow_anonymous_sessions:
        return None

    resolution = request.app.state.session_registry.resolve(x_session_id)
    owner_id = anonymous_owner_id(resolution.session_id)
    request.state.session_id = resolution.session_id
    request.state.owner_id = owner_id
    return Identity(owner_id=owner_id, is_anonymous=True, session_id=resolution.session_id)


async def require_identity(identity: Optional[Identity] = Depends(resolve_identity)) -> Identity:
    if identity is None:
        raise UnauthorizedError()
    return identity
