"""
Access Check API Routes
Ask whether a permission is granted on a resource
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query

from media_access.api.dependencies import get_presented_code, get_requester, get_resolver
from media_access.core.exceptions import NotFoundException
from media_access.core.permissions import Permission
from media_access.models.access import AccessCheckResponse, ResourceType
from media_access.services.access import AccessResolver

router = APIRouter()


@router.get("/{resource_type}/{resource_id}", response_model=AccessCheckResponse)
async def check_access(
    resource_type: ResourceType,
    resource_id: str,
    permission: str = Query("read", description="read, download, edit, delete or admin"),
    requester: Optional[str] = Depends(get_requester),
    presented_code: Optional[str] = Depends(get_presented_code),
    resolver: AccessResolver = Depends(get_resolver),
):
    """
    Check one permission on one resource

    A missing resource answers exactly like a denial.
    """
    requested = Permission.parse(permission)

    try:
        decision = await resolver.resolve_reference(
            requester, presented_code, resource_type, resource_id, requested
        )
    except NotFoundException:
        message = "Invalid or expired access code" if presented_code else "Access denied"
        return AccessCheckResponse(granted=False, permission=None, message=message)

    return AccessCheckResponse(
        granted=decision.granted,
        permission=requested.label if decision.granted else None,
        message=decision.user_message,
    )
