"""
Configuración de base de datos con SQLAlchemy
"""
from sqlalchemy import create_engine, text
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool
import logging

# Crear Base ANTES de importar config para evitar import circular
Base = declarative_base()

from app.core.config import get_settings

logger = logging.getLogger(__name__)


def build_engine(database_url: str, echo: bool = False):
    """
    Crear engine según el motor (MySQL en producción, SQLite en pruebas)
    """
    if database_url.startswith("sqlite"):
        return create_engine(
            database_url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
            echo=echo,
        )

    return create_engine(
        database_url,
        poolclass=QueuePool,
        pool_size=20,
        max_overflow=30,
        pool_pre_ping=True,
        pool_recycle=3600,  # Reciclar conexiones cada hora
        echo=echo,
    )


def build_session_factory(bind) -> sessionmaker:
    """Fábrica de sesiones usada por los servicios y el programador"""
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=bind)


settings = get_settings()

try:
    engine = build_engine(settings.database_url, echo=settings.DEBUG)
except Exception as e:
    logger.warning(f"No se pudo crear engine: {e}")
    engine = None

SessionLocal = build_session_factory(engine) if engine else None


def get_db():
    """
    Dependency para obtener sesión de base de datos
    """
    if not SessionLocal:
        raise RuntimeError("Base de datos no configurada")

    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def create_tables(bind=None):
    """
    Crear todas las tablas si no existen
    """
    bind = bind or engine
    if bind is None:
        raise RuntimeError("Engine de base de datos no configurado")

    try:
        # Importar todos los modelos para que se registren
        import app.models  # noqa: F401

        Base.metadata.create_all(bind=bind)
        logger.info("✅ Tablas creadas/verificadas exitosamente")

    except Exception as e:
        logger.error(f"❌ Error al crear tablas: {e}")
        raise


def drop_tables(bind=None):
    """
    Eliminar todas las tablas (usar con cuidado)
    """
    bind = bind or engine
    if bind is None:
        raise RuntimeError("Engine de base de datos no configurado")

    Base.metadata.drop_all(bind=bind)
    logger.warning("⚠️ Todas las tablas han sido eliminadas")


def test_connection() -> bool:
    """
    Probar conexión a la base de datos
    """
    if not engine:
        logger.error("❌ Engine no configurado")
        return False

    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1")).fetchone()
        return True
    except Exception as e:
        logger.error(f"❌ Error de conexión a la base de datos: {e}")
        return False
