"""
Servicio de auditoría
"""
from typing import Any, Dict, Optional
import logging

from sqlalchemy.orm import sessionmaker

from app.models.audit_log import AuditLog

logger = logging.getLogger(__name__)


class AuditService:
    """Registro de eventos en security_audit_log"""

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def record_audit_event(
            self,
            kind: str,
            details: Dict[str, Any],
            reason: Optional[str] = None
    ) -> int:
        """Registrar evento de auditoría y devolver su ID"""
        with self.session_factory() as db:
            entry = AuditLog(action=kind, details=details, blocked=False, reason=reason)
            db.add(entry)
            db.commit()
            db.refresh(entry)

        logger.warning(f"Evento de auditoría {kind} registrado (ID: {entry.id}): {details}")
        return entry.id
