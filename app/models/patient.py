"""
Modelo de Paciente y acceso familiar
"""
from sqlalchemy import Column, Integer, String, DateTime, Enum, ForeignKey, UniqueConstraint
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
import enum

from app.core.database import Base


class AccessLevel(str, enum.Enum):
    """Nivel de acceso de un familiar al paciente"""
    OWNER = "owner"
    OBSERVER = "observer"


class Patient(Base):
    """Modelo de Paciente"""
    __tablename__ = "patients"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False, index=True)

    # Los horarios de medicamentos se interpretan en esta zona
    timezone = Column(String(50), default="America/Santiago", nullable=False)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, onupdate=func.now())

    # Relaciones
    family = relationship("PatientAccess", back_populates="patient", cascade="all, delete-orphan")
    medications = relationship("Medication", back_populates="patient", cascade="all, delete-orphan")
    attendances = relationship("Attendance", back_populates="patient", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<Patient(id={self.id}, name='{self.name}')>"


class PatientAccess(Base):
    """Familiar (dueño u observador) asociado a un paciente"""
    __tablename__ = "patient_access"
    __table_args__ = (UniqueConstraint("patient_id", "user_id", name="uq_patient_access"),)

    id = Column(Integer, primary_key=True, index=True)
    patient_id = Column(Integer, ForeignKey("patients.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    access_level = Column(Enum(AccessLevel), nullable=False, default=AccessLevel.OBSERVER)

    patient = relationship("Patient", back_populates="family")
    user = relationship("User", back_populates="patient_access")
