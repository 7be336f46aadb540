"""
Configuración de la aplicación para MySQL y el programador de medicamentos
"""
from functools import lru_cache
from typing import List, Optional
from pydantic_settings import BaseSettings
from pydantic import Field


class Settings(BaseSettings):
    """Configuración de la aplicación"""

    # Información del proyecto
    PROJECT_NAME: str = Field(default="Supervisión de Cuidados API", env="PROJECT_NAME")
    VERSION: str = "1.0.0"
    ENVIRONMENT: str = Field(default="production", env="ENVIRONMENT")
    DEBUG: bool = Field(default=False, env="DEBUG")

    # Configuración del servidor
    HOST: str = Field(default="0.0.0.0", env="HOST")
    PORT: int = Field(default=8081, env="PORT")

    # Base de datos MySQL
    DB_HOST: str = Field(default="localhost", env="DB_HOST")
    DB_PORT: int = Field(default=3306, env="DB_PORT")
    DB_NAME: str = Field(default="supervision_cuidados", env="DB_NAME")
    DB_USER: str = Field(default="cuidados_user", env="DB_USER")
    DB_PASSWORD: str = Field(default="", env="DB_PASSWORD")
    DB_CHARSET: str = Field(default="utf8mb4", env="DB_CHARSET")

    # URL completa (tiene prioridad sobre DB_*, p.ej. sqlite en pruebas)
    DATABASE_URL: Optional[str] = Field(default=None, env="DATABASE_URL")

    # CORS
    CORS_ORIGINS: List[str] = Field(
        default=[
            "http://localhost:3000",
            "http://localhost:5173"
        ],
        env="CORS_ORIGINS"
    )

    # Umbrales de escalamiento por defecto (minutos)
    CRITICAL_ALERT_AFTER_MINUTES: int = Field(default=10, env="CRITICAL_ALERT_AFTER_MINUTES")
    CRITICAL_ESCALATE_AFTER_MINUTES: int = Field(default=20, env="CRITICAL_ESCALATE_AFTER_MINUTES")
    REGULAR_ALERT_AFTER_MINUTES: int = Field(default=15, env="REGULAR_ALERT_AFTER_MINUTES")
    REGULAR_ESCALATE_AFTER_MINUTES: int = Field(default=30, env="REGULAR_ESCALATE_AFTER_MINUTES")
    REMINDER_BEFORE_MINUTES: int = Field(default=10, env="REMINDER_BEFORE_MINUTES")

    # Barrido de reconciliación
    SCHEDULER_ENABLED: bool = Field(default=True, env="SCHEDULER_ENABLED")
    SWEEP_INTERVAL_MINUTES: int = Field(default=5, env="SWEEP_INTERVAL_MINUTES")
    SWEEP_LOOKBACK_HOURS: int = Field(default=24, env="SWEEP_LOOKBACK_HOURS")

    # Logging
    LOG_LEVEL: str = Field(default="INFO", env="LOG_LEVEL")

    # Timezone
    DEFAULT_TIMEZONE: str = Field(default="America/Santiago", env="DEFAULT_TIMEZONE")

    @property
    def database_url(self) -> str:
        """Construir URL de conexión MySQL"""
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return (
            f"mysql+pymysql://{self.DB_USER}:{self.DB_PASSWORD}"
            f"@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}"
            f"?charset={self.DB_CHARSET}"
        )

    @property
    def is_production(self) -> bool:
        """Verificar si estamos en producción"""
        return self.ENVIRONMENT.lower() == "production"

    def default_thresholds(self, critical: bool) -> tuple:
        """Umbrales (alerta, escalamiento) según criticidad"""
        if critical:
            return self.CRITICAL_ALERT_AFTER_MINUTES, self.CRITICAL_ESCALATE_AFTER_MINUTES
        return self.REGULAR_ALERT_AFTER_MINUTES, self.REGULAR_ESCALATE_AFTER_MINUTES

    class Config:
        env_file = ".env"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    """Obtener configuración con cache"""
    return Settings()
