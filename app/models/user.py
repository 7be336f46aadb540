"""
Modelo de Usuario para el sistema
"""
from sqlalchemy import Column, Integer, String, Boolean, DateTime, Enum
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
import enum

from app.core.database import Base


class UserRole(str, enum.Enum):
    """Roles de usuario (DB en MAYÚSCULAS)"""
    ADMIN = "ADMIN"
    CAREGIVER = "CAREGIVER"
    OBSERVER = "OBSERVER"


class User(Base):
    """Modelo de Usuario (familiar o cuidadora)"""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    name = Column(String(255), nullable=False)
    phone = Column(String(20), nullable=True)

    role = Column(
        Enum(UserRole, name="userrole"),
        nullable=False,
        default=UserRole.CAREGIVER
    )
    is_active = Column(Boolean, default=True)

    timezone = Column(String(50), default="America/Santiago")

    # Preferencias de notificación
    push_notifications = Column(Boolean, default=True)
    email_notifications = Column(Boolean, default=True)
    sms_notifications = Column(Boolean, default=True)
    quiet_hours_start = Column(String(5), nullable=True)  # "22:00"
    quiet_hours_end = Column(String(5), nullable=True)  # "07:00"
    critical_override_quiet = Column(Boolean, default=True)

    # Metadatos
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, onupdate=func.now())

    # Relaciones
    patient_access = relationship("PatientAccess", back_populates="user", cascade="all, delete-orphan")
    attendances = relationship("Attendance", back_populates="caregiver")

    def __repr__(self):
        return f"<User(id={self.id}, email='{self.email}', role='{self.role.value}')>"

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    @property
    def is_caregiver(self) -> bool:
        return self.role == UserRole.CAREGIVER

