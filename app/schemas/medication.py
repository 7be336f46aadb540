"""
Esquemas Pydantic para Medicamentos y su administración
"""
from pydantic import BaseModel, validator, Field
from typing import Optional, List
from datetime import date, datetime

from app.utils.timezone import parse_time_of_day


def _validate_schedule(times: List[str]) -> List[str]:
    if not times:
        raise ValueError('Se requiere al menos un horario')
    cleaned = []
    for value in times:
        try:
            parse_time_of_day(value)
        except ValueError:
            raise ValueError(f'Horario inválido: {value!r}. Use HH:MM')
        value = value.strip()
        if value not in cleaned:
            cleaned.append(value)
    return sorted(cleaned)


# Esquemas base
class MedicationBase(BaseModel):
    """Base para esquemas de medicamento"""
    name: str = Field(..., min_length=1, max_length=255, description="Nombre del medicamento")
    dose: str = Field(..., min_length=1, max_length=100, description="Dosis (ej: 10mg)")
    instructions: Optional[str] = Field(None, max_length=1000, description="Instrucciones de administración")
    schedule_times: List[str] = Field(..., description="Horarios locales HH:MM")
    critical: bool = Field(False, description="Medicamento crítico")

    @validator('name')
    def validate_name(cls, v):
        if not v or not v.strip():
            raise ValueError('El nombre del medicamento es requerido')
        return v.strip()

    @validator('dose')
    def validate_dose(cls, v):
        if not v or not v.strip():
            raise ValueError('La dosis es requerida')
        return v.strip()

    @validator('schedule_times')
    def validate_schedule_times(cls, v):
        return _validate_schedule(v)


class MedicationCreate(MedicationBase):
    """Esquema para configurar un medicamento. Umbrales vacíos usan los valores por defecto"""
    patient_id: int
    alert_after_minutes: Optional[int] = Field(None, ge=0, description="Minutos hasta la alerta")
    escalate_after_minutes: Optional[int] = Field(None, ge=1, description="Minutos hasta el escalamiento")
    reminder_before_minutes: Optional[int] = Field(None, ge=0, le=120, description="Recordatorio previo")

    @validator('escalate_after_minutes')
    def validate_escalation(cls, v, values):
        alert = values.get('alert_after_minutes')
        if v is not None and alert is not None and v <= alert:
            raise ValueError('escalate_after_minutes debe ser mayor que alert_after_minutes')
        return v


class MedicationUpdate(BaseModel):
    """Esquema para actualizar medicamento"""
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    dose: Optional[str] = Field(None, min_length=1, max_length=100)
    instructions: Optional[str] = Field(None, max_length=1000)
    schedule_times: Optional[List[str]] = None
    critical: Optional[bool] = None
    alert_after_minutes: Optional[int] = Field(None, ge=0)
    escalate_after_minutes: Optional[int] = Field(None, ge=1)
    reminder_before_minutes: Optional[int] = Field(None, ge=0, le=120)
    active: Optional[bool] = None

    @validator('schedule_times')
    def validate_schedule_times(cls, v):
        if v is not None:
            return _validate_schedule(v)
        return v

    @validator('escalate_after_minutes')
    def validate_escalation(cls, v, values):
        alert = values.get('alert_after_minutes')
        if v is not None and alert is not None and v <= alert:
            raise ValueError('escalate_after_minutes debe ser mayor que alert_after_minutes')
        return v


class MedicationResponse(MedicationBase):
    """Esquema de respuesta de medicamento"""
    id: int
    patient_id: int
    alert_after_minutes: int
    escalate_after_minutes: int
    reminder_before_minutes: int
    active: bool
    created_at: datetime
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


# Esquemas para administración
class AdministrationRequest(BaseModel):
    """Registro de administración de una dosis"""
    scheduled_time: str = Field(..., description="Horario local HH:MM de la dosis")
    dose_date: Optional[date] = Field(None, description="Fecha local; por defecto hoy")
    administered_by: int = Field(..., description="ID de la cuidadora")
    evidence_ref: str = Field(..., max_length=255, description="Referencia de la foto de evidencia")

    @validator('scheduled_time')
    def validate_scheduled_time(cls, v):
        parse_time_of_day(v)
        return v.strip()


class AdministrationResponse(BaseModel):
    """Resultado de una administración registrada"""
    success: bool
    message: str
    dose_id: int
    medication_id: int
    scheduled_time: datetime
    given_at: Optional[datetime] = None
    minutes_late: int = 0
    timers_cancelled: int = 0


class PendingDoseResponse(BaseModel):
    """Dosis del día con su estado calculado"""
    medication_id: int
    medication_name: str
    dose: str
    critical: bool
    time_of_day: str
    scheduled_time: datetime
    dose_id: Optional[int] = None
    status: str
    minutes_late: int = 0
    given_at: Optional[datetime] = None
