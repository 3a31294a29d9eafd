# API v1 routes
from fastapi import APIRouter

from media_access.api.v1 import access, access_codes

router = APIRouter()

router.include_router(access.router, prefix="/access", tags=["access"])
router.include_router(access_codes.router, prefix="/access-codes", tags=["access-codes"])
