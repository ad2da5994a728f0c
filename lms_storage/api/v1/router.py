from fastapi import APIRouter

from lms_storage.api.v1.endpoints import health, uploads

api_router = APIRouter()
api_router.include_router(uploads.router)
api_router.include_router(health.router)
