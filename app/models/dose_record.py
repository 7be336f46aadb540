# app/models/dose_record.py
"""
Modelo de Registro de Dosis
"""
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Enum, UniqueConstraint
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
import enum
from app.core.database import Base


class DoseStatus(str, enum.Enum):
    """Estados de dosis"""
    PENDING = "pending"
    LATE = "late"
    CRITICAL_MISSED = "critical_missed"
    GIVEN = "given"


class DoseRecord(Base):
    """Una administración programada de un medicamento en un día"""
    __tablename__ = "dose_records"
    __table_args__ = (
        UniqueConstraint("medication_id", "scheduled_time", name="uq_dose_slot"),
    )

    id = Column(Integer, primary_key=True, index=True)
    medication_id = Column(Integer, ForeignKey("medications.id"), nullable=False, index=True)
    patient_id = Column(Integer, ForeignKey("patients.id"), nullable=False, index=True)

    # Instante absoluto en UTC (naive)
    scheduled_time = Column(DateTime, nullable=False, index=True)

    given_at = Column(DateTime, nullable=True)
    given_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    evidence_ref = Column(String(255), nullable=True)  # hash de la foto
    status = Column(Enum(DoseStatus), default=DoseStatus.PENDING, nullable=False)

    # Niveles ya notificados
    alert_notified_at = Column(DateTime, nullable=True)
    critical_notified_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, server_default=func.now())

    # Relaciones
    medication = relationship("Medication", back_populates="dose_records")
