"""
Modelo de bitácora de auditoría
"""
from sqlalchemy import Column, Integer, String, Text, DateTime, Boolean, JSON
from sqlalchemy.sql import func
from app.core.database import Base


class AuditLog(Base):
    """Evento de auditoría (p.ej. medicamento crítico no administrado)"""
    __tablename__ = "security_audit_log"

    id = Column(Integer, primary_key=True, index=True)
    action = Column(String(100), nullable=False, index=True)
    details = Column(JSON, default=dict)
    blocked = Column(Boolean, default=False)
    reason = Column(Text, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
