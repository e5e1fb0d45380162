"""
API v1 router aggregation
"""
from fastapi import APIRouter

from verifylens.api.v1.endpoints import verify, account, usage, admin

api_router = APIRouter()

# Include endpoint routers
api_router.include_router(verify.router, prefix="/verify", tags=["verification"])
api_router.include_router(account.router, prefix="/account", tags=["account"])
api_router.include_router(usage.router, prefix="/usage", tags=["usage"])
api_router.include_router(admin.router, prefix="/admin", tags=["admin"])
