"""Top-level API router."""

from fastapi import APIRouter

from staffplan.api.routes.assignments import router as assignments_router
from staffplan.api.routes.dashboards import router as dashboards_router
from staffplan.api.routes.exports import router as exports_router
from staffplan.api.routes.health import router as health_router
from staffplan.api.routes.members import router as members_router
from staffplan.api.routes.projects import router as projects_router
from staffplan.api.routes.summary import router as summary_router

api_router = APIRouter()
api_router.include_router(health_router, tags=["health"])
api_router.include_router(members_router)
api_router.include_router(projects_router)
api_router.include_router(assignments_router)
api_router.include_router(summary_router)
api_router.include_router(dashboards_router)
api_router.include_router(exports_router)
