"""
Access Code API Routes
Create, list, inspect, revoke and delete shareable access codes
"""

from fastapi import APIRouter, Depends, Response, status

from media_access.api.dependencies import get_registry, require_requester
from media_access.core.clock import utc_now
from media_access.core.exceptions import NotFoundException, ValidationException
from media_access.models.access_code import (
    AccessCodeListResponse,
    AccessCodeResponse,
    CreateAccessCodeRequest,
)
from media_access.services.access import AccessCodeRegistry

router = APIRouter()


@router.post("", response_model=AccessCodeResponse, status_code=status.HTTP_201_CREATED)
async def create_access_code(
    request: CreateAccessCodeRequest,
    requester: str = Depends(require_requester),
    registry: AccessCodeRegistry = Depends(get_registry),
):
    """
    Create an access code

    The caller must administer every linked resource (or the group for a
    group-wide code). Duplicate code strings are rejected with 409.
    """
    try:
        scope = request.to_scope()
    except ValueError as e:
        raise ValidationException(message="Invalid access code scope", details={"error": str(e)})

    access_code = await registry.create(
        code=request.code,
        creator=requester,
        scope=scope,
        expires_at=request.expires_at,
        description=request.description,
    )
    return AccessCodeResponse.from_access_code(access_code, utc_now())


@router.get("", response_model=AccessCodeListResponse)
async def list_access_codes(
    requester: str = Depends(require_requester),
    registry: AccessCodeRegistry = Depends(get_registry),
):
    """List access codes created by the caller"""
    now = utc_now()
    codes = await registry.list_for_owner(requester)
    return AccessCodeListResponse(
        access_codes=[AccessCodeResponse.from_access_code(c, now) for c in codes]
    )


@router.get("/{code}", response_model=AccessCodeResponse)
async def get_access_code(
    code: str,
    requester: str = Depends(require_requester),
    registry: AccessCodeRegistry = Depends(get_registry),
):
    """Show one of the caller's access codes"""
    access_code = await registry.get(code)
    # Other users' codes look exactly like missing ones
    if access_code.created_by != requester:
        raise NotFoundException("Access code")
    return AccessCodeResponse.from_access_code(access_code, utc_now())


@router.post("/{code}/revoke", response_model=AccessCodeResponse)
async def revoke_access_code(
    code: str,
    requester: str = Depends(require_requester),
    registry: AccessCodeRegistry = Depends(get_registry),
):
    """Deactivate an access code permanently"""
    access_code = await registry.revoke(code, requester)
    return AccessCodeResponse.from_access_code(access_code, utc_now())


@router.delete("/{code}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_access_code(
    code: str,
    requester: str = Depends(require_requester),
    registry: AccessCodeRegistry = Depends(get_registry),
):
    """Hard-delete an access code"""
    await registry.delete(code, requester)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
