"""
Modelo de Asistencia de cuidadoras
"""
from sqlalchemy import Column, Integer, DateTime, ForeignKey
from sqlalchemy.orm import relationship

from app.core.database import Base


class Attendance(Base):
    """Turno de una cuidadora: entrada y (eventualmente) salida"""
    __tablename__ = "attendance"

    id = Column(Integer, primary_key=True, index=True)
    caregiver_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    patient_id = Column(Integer, ForeignKey("patients.id"), nullable=False, index=True)
    check_in_time = Column(DateTime, nullable=False)
    check_out_time = Column(DateTime, nullable=True)

    caregiver = relationship("User", back_populates="attendances")
    patient = relationship("Patient", back_populates="attendances")

    @property
    def is_open(self) -> bool:
        """Turno abierto (sin salida registrada)"""
        return self.check_out_time is None
