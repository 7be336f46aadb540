"""
Modelo de Notificación (bandeja de entrada de cada usuario)
"""
from sqlalchemy import Column, Integer, String, Text, DateTime, Boolean, ForeignKey, Enum, JSON
from sqlalchemy.sql import func
import enum
from app.core.database import Base


class NotificationSeverity(str, enum.Enum):
    """Severidad de notificación"""
    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"


class Notification(Base):
    """Notificación entregada a un usuario"""
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    patient_id = Column(Integer, ForeignKey("patients.id"), nullable=True, index=True)
    type = Column(String(50), nullable=False, default="medication")
    severity = Column(Enum(NotificationSeverity), nullable=False)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    sent_via = Column(JSON, default=list)  # ["push", "email"]
    extra = Column(JSON, default=dict)
    is_read = Column(Boolean, default=False)
    created_at = Column(DateTime, server_default=func.now())
