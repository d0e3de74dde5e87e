from fastapi import APIRouter
from reportdesk.api.v1 import dashboard, health, reports, updates
from reportdesk.core.config import settings

api_router = APIRouter(prefix=settings.API_V1_PREFIX)

api_router.include_router(health.router, tags=['health'])
api_router.include_router(dashboard.router)
api_router.include_router(reports.router)
api_router.include_router(updates.router)
