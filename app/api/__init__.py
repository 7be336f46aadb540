# app/api/__init__.py
"""
Router principal de la API
"""
from fastapi import APIRouter, Request

from . import medications

# Router principal de la API
api_router = APIRouter()

api_router.include_router(
    medications.router,
    prefix="/medications",
    tags=["medications"]
)


# Endpoints adicionales de la API
@api_router.get("/health")
async def api_health(request: Request):
    """Health check específico de la API"""
    supervisor = getattr(request.app.state, "supervisor", None)
    return {
        "status": "healthy",
        "service": "Supervisión de Cuidados API",
        "version": "1.0.0",
        "scheduler": {
            "running": bool(supervisor and supervisor.is_running),
            "jobs": len(supervisor.timers.get_jobs_info()) if supervisor and supervisor.is_running else 0
        }
    }
