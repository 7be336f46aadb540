"""
Registros de dominio del programador de medicamentos

Instantáneas inmutables (pydantic) de medicamentos y dosis, leídas desde el
RecordStore. Validan sus invariantes al construirse, de modo que una
configuración inválida nunca llega al programador.
"""
from datetime import datetime
from typing import List, Optional
import enum

from pydantic import BaseModel, Field, validator

from app.models.dose_record import DoseStatus
from app.utils.timezone import get_timezone, parse_time_of_day


class EscalationTier(str, enum.Enum):
    """Niveles de escalamiento"""
    REMINDER = "reminder"
    ALERT = "alert"
    CRITICAL = "critical"


# Niveles que dependen de umbrales posteriores al horario, en orden
ESCALATION_ORDER = (EscalationTier.ALERT, EscalationTier.CRITICAL)


class MedicationPlan(BaseModel):
    """Medicamento activo con su plan de escalamiento"""
    id: int
    patient_id: int
    name: str
    dose: str
    schedule_times: List[str] = Field(..., min_length=1)
    critical: bool = False
    alert_after_minutes: int = Field(..., ge=0)
    escalate_after_minutes: int
    reminder_before_minutes: int = Field(default=0, ge=0)
    active: bool = True
    timezone: str = "America/Santiago"
    patient_name: Optional[str] = None

    class Config:
        from_attributes = True
        frozen = True

    @validator("schedule_times", each_item=True)
    def validate_schedule_time(cls, v):
        parse_time_of_day(v)
        return v.strip()

    @validator("escalate_after_minutes")
    def validate_escalation(cls, v, values):
        alert = values.get("alert_after_minutes")
        if alert is not None and v <= alert:
            raise ValueError("escalate_after_minutes debe ser mayor que alert_after_minutes")
        return v

    @validator("timezone")
    def validate_timezone(cls, v):
        get_timezone(v)
        return v

    def threshold(self, tier: EscalationTier) -> int:
        """Minutos después del horario en que se dispara el nivel"""
        if tier == EscalationTier.ALERT:
            return self.alert_after_minutes
        if tier == EscalationTier.CRITICAL:
            return self.escalate_after_minutes
        return -self.reminder_before_minutes

    def state_for(self, scheduled_time: datetime, now: datetime) -> DoseStatus:
        """Estado de un horario no administrado según los umbrales"""
        elapsed = (now - scheduled_time).total_seconds() / 60
        if elapsed >= self.escalate_after_minutes:
            return DoseStatus.CRITICAL_MISSED
        if elapsed >= self.alert_after_minutes:
            return DoseStatus.LATE
        return DoseStatus.PENDING


class DoseSnapshot(BaseModel):
    """Estado de un registro de dosis en el momento de la lectura"""
    id: int
    medication_id: int
    patient_id: int
    scheduled_time: datetime
    given_at: Optional[datetime] = None
    given_by_id: Optional[int] = None
    evidence_ref: Optional[str] = None
    status: DoseStatus = DoseStatus.PENDING
    alert_notified_at: Optional[datetime] = None
    critical_notified_at: Optional[datetime] = None

    class Config:
        from_attributes = True
        frozen = True

    @property
    def key(self) -> tuple:
        return (self.medication_id, self.scheduled_time)

    @property
    def is_given(self) -> bool:
        return self.given_at is not None or self.status == DoseStatus.GIVEN

    def minutes_late(self, now: datetime) -> int:
        """Minutos transcurridos desde el horario (0 si aún no llega)"""
        elapsed = (now - self.scheduled_time).total_seconds() / 60
        return max(0, int(elapsed))

    def tier_notified(self, tier: EscalationTier) -> bool:
        if tier == EscalationTier.ALERT:
            return self.alert_notified_at is not None
        if tier == EscalationTier.CRITICAL:
            return self.critical_notified_at is not None
        return False

    def state_at(self, now: datetime, plan: MedicationPlan) -> DoseStatus:
        """Estado calculado según el tiempo transcurrido"""
        if self.is_given:
            return DoseStatus.GIVEN
        return plan.state_for(self.scheduled_time, now)


class UserContact(BaseModel):
    """Datos de contacto y preferencias de notificación de un usuario"""
    id: int
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    timezone: str = "America/Santiago"
    push_notifications: bool = True
    email_notifications: bool = True
    sms_notifications: bool = True
    quiet_hours_start: Optional[str] = None
    quiet_hours_end: Optional[str] = None
    critical_override_quiet: bool = True

    class Config:
        from_attributes = True

    def enabled_channels(self) -> set:
        channels = set()
        if self.push_notifications:
            channels.add("push")
        if self.email_notifications and self.email:
            channels.add("email")
        if self.sms_notifications and self.phone:
            channels.add("sms")
        return channels
