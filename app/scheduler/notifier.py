"""
Envío de notificaciones de escalamiento de medicamentos
"""
from datetime import datetime
from typing import Optional
import logging

from app.models.notification import NotificationSeverity
from app.scheduler.records import DoseSnapshot, EscalationTier, MedicationPlan
from app.scheduler.recipients import RecipientResolver
from app.services.notification_sink import DeliveryStatus, NotificationSink
from app.utils.timezone import to_local

logger = logging.getLogger(__name__)

CRITICAL_MEDICATION_MISSED = "CRITICAL_MEDICATION_MISSED"

TIER_SEVERITY = {
    EscalationTier.REMINDER: NotificationSeverity.INFO,
    EscalationTier.ALERT: NotificationSeverity.WARNING,
    EscalationTier.CRITICAL: NotificationSeverity.CRITICAL,
}


def compose_message(
        tier: EscalationTier,
        medication: MedicationPlan,
        scheduled_time: datetime,
        minutes_late: int
) -> tuple:
    """Título y mensaje para un nivel"""
    local_time = to_local(scheduled_time, medication.timezone).strftime("%H:%M")

    if tier == EscalationTier.REMINDER:
        return (
            f"⏰ Recordatorio: {medication.name} en {medication.reminder_before_minutes} minutos",
            f"Preparar {medication.name} ({medication.dose}) para administrar a las {local_time}"
        )

    if tier == EscalationTier.ALERT:
        return (
            f"⚠️ MEDICAMENTO ATRASADO: {medication.name}",
            f"{medication.name} debió ser administrado hace {minutes_late} minutos ({local_time})"
        )

    suffix = " MEDICAMENTO CRÍTICO" if medication.critical else ""
    return (
        f"🔴 URGENTE: {medication.name} NO ADMINISTRADO",
        f"CRÍTICO: {medication.name} lleva {minutes_late} minutos sin ser administrado.{suffix}"
    )


class TierNotifier:
    """Resuelve destinatarios, envía el nivel y registra auditoría"""

    def __init__(self, resolver: RecipientResolver, sink: NotificationSink, audit):
        self.resolver = resolver
        self.sink = sink
        self.audit = audit

    async def notify(
            self,
            medication: MedicationPlan,
            tier: EscalationTier,
            scheduled_time: datetime,
            now: datetime,
            dose: Optional[DoseSnapshot] = None,
            source: str = "timer"
    ) -> int:
        """
        Enviar el nivel a cada destinatario. Devuelve cuántos destinatarios
        recibieron al menos un canal. Resolver destinatarios puede lanzar
        (error del store); los errores de entrega no.
        """
        recipients = self.resolver.resolve(medication.patient_id, tier, now)

        minutes_late = max(0, int((now - scheduled_time).total_seconds() // 60))
        title, message = compose_message(tier, medication, scheduled_time, minutes_late)
        metadata = {
            "type": "medication",
            "patient_id": medication.patient_id,
            "medication_id": medication.id,
            "medication_name": medication.name,
            "dose_id": dose.id if dose else None,
            "scheduled_time": scheduled_time.isoformat(),
            "tier": tier.value,
            "minutes_late": minutes_late,
            "source": source,
        }

        delivered = 0
        for recipient in recipients:
            try:
                result = await self.sink.send(
                    recipient.user_id,
                    recipient.channels,
                    TIER_SEVERITY[tier],
                    title,
                    message,
                    metadata
                )
            except Exception as e:
                logger.error(
                    f"Error enviando {tier.value} de {medication.name} a usuario {recipient.user_id}: {e}"
                )
                continue

            if any(status == DeliveryStatus.DELIVERED for status in (result or {}).values()):
                delivered += 1
            else:
                logger.error(f"Entrega fallida de {tier.value} a usuario {recipient.user_id}: {result}")

        if recipients:
            logger.info(
                f"⚠️ Nivel {tier.value} de {medication.name} enviado a "
                f"{delivered}/{len(recipients)} destinatarios ({source}, {minutes_late} min)"
            )

        if tier == EscalationTier.CRITICAL and medication.critical:
            self._audit_critical_missed(medication, scheduled_time, minutes_late, dose)

        return delivered

    async def notify_given(
            self,
            medication: MedicationPlan,
            dose: DoseSnapshot,
            now: datetime
    ) -> int:
        """Aviso informativo a la familia: medicamento administrado"""
        recipients = self.resolver.resolve_family(medication.patient_id, now)
        delivered = 0
        for recipient in recipients:
            try:
                await self.sink.send(
                    recipient.user_id,
                    recipient.channels,
                    NotificationSeverity.INFO,
                    "✅ Medicamento administrado",
                    f"{medication.name} ({medication.dose}) fue administrado correctamente",
                    {
                        "type": "medication",
                        "patient_id": medication.patient_id,
                        "medication_id": medication.id,
                        "dose_id": dose.id,
                    }
                )
                delivered += 1
            except Exception as e:
                logger.error(f"Error avisando administración a usuario {recipient.user_id}: {e}")
        return delivered

    def _audit_critical_missed(
            self,
            medication: MedicationPlan,
            scheduled_time: datetime,
            minutes_late: int,
            dose: Optional[DoseSnapshot]
    ) -> None:
        try:
            self.audit.record_audit_event(
                CRITICAL_MEDICATION_MISSED,
                {
                    "medication_id": medication.id,
                    "medication_name": medication.name,
                    "patient_id": medication.patient_id,
                    "dose_id": dose.id if dose else None,
                    "scheduled_time": scheduled_time.isoformat(),
                    "minutes_late": minutes_late,
                },
                reason="Medicamento crítico no administrado"
            )
        except Exception as e:
            logger.error(f"Error registrando auditoría de {medication.name}: {e}")
