"""
Servicio de entrega de notificaciones

El núcleo solo depende de la interfaz NotificationSink. La implementación
incluida guarda cada notificación en la bandeja de entrada del usuario; los
transportes (push, email, SMS) leen de ahí y no forman parte de este servicio.
"""
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, Optional
import enum
import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from app.models.notification import Notification, NotificationSeverity

logger = logging.getLogger(__name__)


class DeliveryStatus(str, enum.Enum):
    DELIVERED = "delivered"
    FAILED = "failed"


class NotificationSink(ABC):
    """Capacidad de enviar un mensaje a un destinatario por varios canales"""

    @abstractmethod
    async def send(
            self,
            recipient_id: int,
            channels: Iterable[str],
            severity: NotificationSeverity,
            title: str,
            message: str,
            metadata: Optional[Dict[str, Any]] = None
    ) -> Dict[str, DeliveryStatus]:
        """Enviar; devuelve el estado por canal. No debe lanzar excepciones."""


class InboxNotificationSink(NotificationSink):
    """Guarda la notificación en la tabla notifications"""

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    async def send(
            self,
            recipient_id: int,
            channels: Iterable[str],
            severity: NotificationSeverity,
            title: str,
            message: str,
            metadata: Optional[Dict[str, Any]] = None
    ) -> Dict[str, DeliveryStatus]:
        channels = sorted(set(channels))
        metadata = metadata or {}

        try:
            with self.session_factory() as db:
                db.add(Notification(
                    user_id=recipient_id,
                    patient_id=metadata.get("patient_id"),
                    type=metadata.get("type", "medication"),
                    severity=severity,
                    title=title,
                    message=message,
                    sent_via=channels,
                    extra=metadata,
                ))
                db.commit()
        except SQLAlchemyError as e:
            logger.error(f"Error guardando notificación para usuario {recipient_id}: {e}")
            return {channel: DeliveryStatus.FAILED for channel in channels}

        logger.info(f"Notificación '{title}' entregada a usuario {recipient_id} vía {channels}")
        return {channel: DeliveryStatus.DELIVERED for channel in channels}
