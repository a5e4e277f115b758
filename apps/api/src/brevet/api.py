from fastapi import APIRouter

from brevet.modules.admin import router as admin_router
from brevet.modules.auth import router as auth_router

api_router = APIRouter()

api_router.include_router(auth_router, prefix="/auth", tags=["Authentication"])

api_router.include_router(admin_router, prefix="/admin", tags=["Admin - Jobs"])
