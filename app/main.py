"""
Archivo principal de la aplicación FastAPI - Supervisión de Cuidados
"""
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
from typing import Optional

from app.core.config import get_settings
from app.core import database
from app.api import api_router
from app.scheduler.supervisor import MedicationSupervisor
from app.utils.timezone import utcnow
import logging

settings = get_settings()

# Configurar logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Gestión del ciclo de vida de la aplicación"""
    # Startup
    logger.info("🚀 Iniciando Supervisión de Cuidados API...")
    logger.info(f"🌍 Ambiente: {settings.ENVIRONMENT}")
    logger.info(f"🔑 Debug: {settings.DEBUG}")

    if database.test_connection():
        logger.info("✅ Conexión a la base de datos exitosa")
        try:
            database.create_tables()
            logger.info("✅ Esquema de base de datos verificado")
        except Exception as e:
            logger.error(f"❌ Error al verificar esquema: {e}")
    else:
        logger.error("❌ Error de conexión a la base de datos")
        logger.warning("⚠️ La aplicación continuará pero sin base de datos")

    supervisor = getattr(app.state, "supervisor", None)
    if supervisor is None and database.SessionLocal is not None:
        supervisor = MedicationSupervisor(database.SessionLocal, settings)
        app.state.supervisor = supervisor

    if supervisor is not None and settings.SCHEDULER_ENABLED:
        try:
            report = await supervisor.start()
            logger.info(
                f"💊 Programador de medicamentos activo "
                f"({report.created} dosis recuperadas, {report.notified} escalamientos)"
            )
        except Exception as e:
            logger.error(f"❌ Error iniciando programador de medicamentos: {e}")
    else:
        logger.warning("⚠️ Programador de medicamentos deshabilitado")

    logger.info("🎯 Supervisión de Cuidados API lista para recibir requests")
    yield

    # Shutdown
    logger.info("🛑 Cerrando Supervisión de Cuidados API...")
    if supervisor is not None:
        await supervisor.stop()


def create_application(supervisor: Optional[MedicationSupervisor] = None) -> FastAPI:
    """Factory function para crear la aplicación FastAPI"""

    # Configuración de la aplicación
    app_config = {
        "title": settings.PROJECT_NAME,
        "description": """
## Supervisión de Cuidados API

Programador de medicamentos para el cuidado de adultos mayores.

### Características principales:
- 💊 Configuración de medicamentos y horarios
- ⏰ Recordatorios a la cuidadora de turno
- 🚨 Escalamiento de dosis atrasadas a la familia
- ✅ Registro de administración con evidencia
        """,
        "version": settings.VERSION,
        "lifespan": lifespan,
    }

    app = FastAPI(**app_config)
    if supervisor is not None:
        app.state.supervisor = supervisor

    # Configurar middlewares
    setup_middlewares(app)

    # Configurar rutas
    setup_routes(app)

    return app


def setup_middlewares(app: FastAPI):
    """Configurar middlewares de la aplicación"""

    cors_config = {
        "allow_origins": settings.CORS_ORIGINS,
        "allow_credentials": True,
        "allow_methods": ["GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS"],
        "allow_headers": ["*"],
    }

    logger.info(f"🌐 Orígenes permitidos: {cors_config['allow_origins']}")
    app.add_middleware(CORSMiddleware, **cors_config)


def setup_routes(app: FastAPI):
    """Configurar rutas de la aplicación"""

    # Endpoint raíz
    @app.get("/")
    async def root():
        return {
            "message": "🏥 Supervisión de Cuidados API",
            "version": settings.VERSION,
            "environment": settings.ENVIRONMENT,
            "documentation": "/docs",
            "health": "/health",
            "api": "/api"
        }

    # Health check general
    @app.get("/health")
    async def health_check():
        """Health check completo de la aplicación"""
        db_status = "connected" if database.test_connection() else "disconnected"
        supervisor = getattr(app.state, "supervisor", None)

        return {
            "status": "healthy" if db_status == "connected" else "degraded",
            "service": settings.PROJECT_NAME,
            "version": settings.VERSION,
            "environment": settings.ENVIRONMENT,
            "database": {
                "status": db_status
            },
            "scheduler": {
                "running": bool(supervisor and supervisor.is_running)
            },
            "timestamp": utcnow().isoformat() + "Z"
        }

    # Incluir router principal de la API
    app.include_router(
        api_router,
        prefix="/api"
    )

    logger.info("🛣️ Rutas configuradas correctamente")


# Crear la aplicación
app = create_application()


# Solo para desarrollo con uvicorn run
if __name__ == "__main__":
    import uvicorn

    uvicorn_config = {
        "app": "app.main:app",
        "host": settings.HOST,
        "port": settings.PORT,
        "reload": settings.DEBUG,
        "log_level": settings.LOG_LEVEL.lower(),
        "access_log": settings.DEBUG,
    }

    logger.info("🚀 Iniciando servidor de desarrollo...")
    logger.info(f"🌐 URL: http://{settings.HOST}:{settings.PORT}")
    logger.info(f"📚 Docs: http://{settings.HOST}:{settings.PORT}/docs")

    uvicorn.run(**uvicorn_config)
