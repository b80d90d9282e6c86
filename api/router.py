from fastapi import APIRouter
from api.endpoints.role_definition import router as role_definition_router
from api.endpoints.projects import router as projects_router
from api.endpoints.audition import router as audition_router
from api.endpoints.health import router as health_router

api_router = APIRouter()
api_router.include_router(projects_router, tags=["projects"])
api_router.include_router(role_definition_router, tags=["role-definition"])
api_router.include_router(audition_router, tags=["audition"])
api_router.include_router(health_router, tags=["health"])
