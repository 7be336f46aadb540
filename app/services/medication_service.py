"""
Servicio de gestión de medicamentos
"""
from sqlalchemy.orm import Session
from typing import List, Optional, Dict, Any
from datetime import date, timedelta

from app.core.config import get_settings
from app.models.medication import Medication
from app.models.patient import Patient
from app.schemas.medication import MedicationCreate, MedicationUpdate
from app.scheduler.records import DoseSnapshot, MedicationPlan
from app.utils.timezone import local_slot_to_utc, local_today, utcnow
import logging

logger = logging.getLogger(__name__)


class MedicationService:
    """Servicio para configurar medicamentos y consultar sus dosis del día"""

    def __init__(self, db: Session, supervisor=None):
        self.db = db
        self.supervisor = supervisor
        self.settings = get_settings()

    def get_medication_by_id(self, medication_id: int) -> Optional[Medication]:
        """Obtener medicamento por ID"""
        return self.db.query(Medication).filter(Medication.id == medication_id).first()

    def get_patient_medications(self, patient_id: int, active_only: bool = True) -> List[Medication]:
        """Medicamentos de un paciente"""
        query = self.db.query(Medication).filter(Medication.patient_id == patient_id)
        if active_only:
            query = query.filter(Medication.active.is_(True))
        return query.order_by(Medication.name).all()

    def create_medication(
            self,
            medication_data: MedicationCreate,
            created_by_id: Optional[int] = None
    ) -> Medication:
        """Crear medicamento y agendar sus horarios"""

        patient = self.db.query(Patient).filter(Patient.id == medication_data.patient_id).first()
        if not patient:
            raise ValueError(f"Paciente {medication_data.patient_id} no encontrado")

        default_alert, default_escalate = self.settings.default_thresholds(medication_data.critical)
        alert = medication_data.alert_after_minutes
        escalate = medication_data.escalate_after_minutes
        if alert is None:
            alert = default_alert
        if escalate is None:
            escalate = max(default_escalate, alert + 1)

        reminder = medication_data.reminder_before_minutes
        if reminder is None:
            reminder = self.settings.REMINDER_BEFORE_MINUTES

        self._check_thresholds(alert, escalate)

        db_medication = Medication(
            patient_id=patient.id,
            name=medication_data.name,
            dose=medication_data.dose,
            instructions=medication_data.instructions,
            schedule_times=medication_data.schedule_times,
            critical=medication_data.critical,
            alert_after_minutes=alert,
            escalate_after_minutes=escalate,
            reminder_before_minutes=reminder,
            active=True,
            created_by_id=created_by_id
        )

        self.db.add(db_medication)
        self.db.commit()
        self.db.refresh(db_medication)

        logger.info(f"Medicamento creado: {db_medication.full_name} (ID: {db_medication.id})")
        self._reschedule(db_medication.id)
        return db_medication

    def update_medication(
            self,
            medication_id: int,
            medication_update: MedicationUpdate
    ) -> Optional[Medication]:
        """Actualizar medicamento y reagendar"""

        medication = self.get_medication_by_id(medication_id)
        if not medication:
            return None

        update_data = medication_update.dict(exclude_unset=True)

        # Validar el par de umbrales resultante antes de tocar la fila
        self._check_thresholds(
            update_data.get("alert_after_minutes", medication.alert_after_minutes),
            update_data.get("escalate_after_minutes", medication.escalate_after_minutes)
        )

        for field, value in update_data.items():
            if hasattr(medication, field) and value is not None:
                setattr(medication, field, value)

        self.db.commit()
        self.db.refresh(medication)

        logger.info(f"Medicamento actualizado: {medication.full_name} (ID: {medication.id})")
        self._reschedule(medication.id)
        return medication

    def deactivate_medication(self, medication_id: int) -> bool:
        """Desactivar medicamento (borrado lógico) y cancelar sus escalamientos"""

        medication = self.get_medication_by_id(medication_id)
        if not medication:
            return False

        medication.active = False
        self.db.commit()

        if self.supervisor is not None:
            self.supervisor.unregister_medication(medication_id)

        logger.info(f"Medicamento desactivado: {medication.full_name} (ID: {medication.id})")
        return True

    def get_pending_doses(self, patient_id: int, day: Optional[date] = None) -> List[Dict[str, Any]]:
        """
        Dosis del día (hora local del paciente) con su estado calculado:
        pending, late, critical_missed o given
        """
        patient = self.db.query(Patient).filter(Patient.id == patient_id).first()
        if not patient:
            raise ValueError(f"Paciente {patient_id} no encontrado")

        now = utcnow()
        if self.supervisor is not None:
            now = self.supervisor.clock.now()
        day = day or local_today(patient.timezone, now)

        pending = []
        for medication in self.get_patient_medications(patient_id):
            plan = MedicationPlan(
                id=medication.id,
                patient_id=patient.id,
                name=medication.name,
                dose=medication.dose,
                schedule_times=medication.schedule_times,
                critical=medication.critical,
                alert_after_minutes=medication.alert_after_minutes,
                escalate_after_minutes=medication.escalate_after_minutes,
                reminder_before_minutes=medication.reminder_before_minutes or 0,
                timezone=patient.timezone,
                patient_name=patient.name
            )
            records = {
                record.scheduled_time: record
                for record in medication.dose_records
                if record.scheduled_time.date() in (day - timedelta(days=1), day, day + timedelta(days=1))
            }

            for time_of_day in plan.schedule_times:
                scheduled_time = local_slot_to_utc(day, time_of_day, plan.timezone)
                record = records.get(scheduled_time)

                if record is not None:
                    snapshot = DoseSnapshot.model_validate(record)
                    state = snapshot.state_at(now, plan)
                    minutes_late = snapshot.minutes_late(snapshot.given_at if snapshot.is_given else now)
                else:
                    state = plan.state_for(scheduled_time, now)
                    minutes_late = max(0, int((now - scheduled_time).total_seconds() // 60))

                pending.append({
                    "medication_id": medication.id,
                    "medication_name": medication.name,
                    "dose": medication.dose,
                    "critical": medication.critical,
                    "time_of_day": time_of_day,
                    "scheduled_time": scheduled_time,
                    "dose_id": record.id if record is not None else None,
                    "status": state.value,
                    "minutes_late": minutes_late,
                    "given_at": record.given_at if record is not None else None,
                })

        return sorted(pending, key=lambda item: item["scheduled_time"])

    @staticmethod
    def _check_thresholds(alert: int, escalate: int) -> None:
        if alert < 0 or escalate <= alert:
            raise ValueError("escalate_after_minutes debe ser mayor que alert_after_minutes (>= 0)")

    def _reschedule(self, medication_id: int) -> None:
        if self.supervisor is not None:
            self.supervisor.register_medication(medication_id)
