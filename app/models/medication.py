"""
Modelo de Medicamento
"""
from sqlalchemy import Column, Integer, String, Text, DateTime, JSON, Boolean, ForeignKey
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship

from app.core.database import Base


class Medication(Base):
    """Medicamento de un paciente con sus horarios diarios"""
    __tablename__ = "medications"

    id = Column(Integer, primary_key=True, index=True)
    patient_id = Column(Integer, ForeignKey("patients.id"), nullable=False, index=True)

    # Información básica
    name = Column(String(255), nullable=False, index=True)
    dose = Column(String(100), nullable=False)  # ej: "10mg", "1 comprimido"
    instructions = Column(Text, nullable=True)

    # Horarios locales del paciente, ej: ["08:00", "20:00"]
    schedule_times = Column(JSON, nullable=False, default=list)

    # Escalamiento
    critical = Column(Boolean, default=False, nullable=False)
    alert_after_minutes = Column(Integer, nullable=False)
    escalate_after_minutes = Column(Integer, nullable=False)
    reminder_before_minutes = Column(Integer, nullable=False, default=10)

    # Desactivación lógica
    active = Column(Boolean, default=True, nullable=False)
    created_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)

    # Metadatos
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, onupdate=func.now())

    # Relaciones
    patient = relationship("Patient", back_populates="medications")
    dose_records = relationship("DoseRecord", back_populates="medication", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<Medication(id={self.id}, name='{self.name}', dose='{self.dose}', critical={self.critical})>"

    @property
    def full_name(self) -> str:
        """Nombre completo del medicamento"""
        return f"{self.name} ({self.dose})"
