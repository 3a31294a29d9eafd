"""
API Dependencies
Common dependencies for API routes
"""

from typing import Optional

from fastapi import Depends, Header, Query
from sqlalchemy.ext.asyncio import AsyncSession

from media_access.core.exceptions import AuthenticationException
from media_access.db.session import get_db_session
from media_access.services.access import AccessCodeRegistry, AccessResolver


async def get_requester(x_user_id: Optional[str] = Header(None)) -> Optional[str]:
    """
    Identity supplied by the upstream identity provider

    Returns:
        The stable user id, or None for anonymous requests
    """
    if x_user_id is None or not x_user_id.strip():
        return None
    return x_user_id.strip()


async def require_requester(requester: Optional[str] = Depends(get_requester)) -> str:
    """Dependency for routes that need an authenticated user"""
    if requester is None:
        raise AuthenticationException(message="Missing user identity")
    return requester


async def get_presented_code(
    code: Optional[str] = Query(None, description="Access code"),
    x_access_code: Optional[str] = Header(None),
) -> Optional[str]:
    """Access code from the query string, falling back to the X-Access-Code header"""
    return code or x_access_code or None


async def get_resolver(db: AsyncSession = Depends(get_db_session)) -> AccessResolver:
    return AccessResolver(db)


async def get_registry(db: AsyncSession = Depends(get_db_session)) -> AccessCodeRegistry:
    return AccessCodeRegistry(db)
