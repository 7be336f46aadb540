"""
RecordStore respaldado por SQLAlchemy

Cada operación abre su propia sesión corta. Las transiciones de estado
(marcar administrada, reclamar un nivel de notificación) son UPDATE
condicionales: solo una de dos solicitudes concurrentes puede ganar.
"""
from datetime import datetime
from typing import List, Optional, Tuple
import enum
import logging

from sqlalchemy import and_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from app.models.attendance import Attendance
from app.models.dose_record import DoseRecord, DoseStatus
from app.models.medication import Medication
from app.models.patient import Patient, PatientAccess, AccessLevel
from app.models.user import User
from app.scheduler.records import (
    DoseSnapshot,
    EscalationTier,
    MedicationPlan,
    UserContact,
)

logger = logging.getLogger(__name__)


class MarkGivenResult(str, enum.Enum):
    """Resultado de marcar una dosis como administrada"""
    SUCCESS = "success"
    ALREADY_GIVEN = "already_given"
    NOT_FOUND = "not_found"


# Columna marcador y estado persistido por nivel
TIER_MARKERS = {
    EscalationTier.ALERT: (DoseRecord.alert_notified_at, DoseStatus.LATE),
    EscalationTier.CRITICAL: (DoseRecord.critical_notified_at, DoseStatus.CRITICAL_MISSED),
}


class SqlRecordStore:
    """Acceso a dosis, medicamentos, asistencia y familiares"""

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    # ===== DOSIS =====

    def create_dose_if_absent(
            self,
            medication_id: int,
            scheduled_time: datetime
    ) -> Tuple[DoseSnapshot, bool]:
        """
        Crear el registro de dosis si no existe.
        Devuelve (registro, creado); una segunda llamada devuelve el existente.
        """
        with self.session_factory() as db:
            existing = self._find_dose(db, medication_id, scheduled_time)
            if existing:
                return DoseSnapshot.model_validate(existing), False

            medication = db.get(Medication, medication_id)
            if medication is None:
                raise ValueError(f"Medicamento {medication_id} no encontrado")

            dose = DoseRecord(
                medication_id=medication_id,
                patient_id=medication.patient_id,
                scheduled_time=scheduled_time,
                status=DoseStatus.PENDING,
            )
            db.add(dose)
            try:
                db.commit()
            except IntegrityError:
                # Otra invocación creó el mismo horario primero
                db.rollback()
                existing = self._find_dose(db, medication_id, scheduled_time)
                return DoseSnapshot.model_validate(existing), False

            db.refresh(dose)
            logger.info(
                f"Dosis creada: medicamento {medication_id} a las {scheduled_time.isoformat()} (ID: {dose.id})"
            )
            return DoseSnapshot.model_validate(dose), True

    def get_dose(self, medication_id: int, scheduled_time: datetime) -> Optional[DoseSnapshot]:
        """Obtener dosis por (medicamento, horario)"""
        with self.session_factory() as db:
            dose = self._find_dose(db, medication_id, scheduled_time)
            return DoseSnapshot.model_validate(dose) if dose else None

    def get_dose_by_id(self, dose_id: int) -> Optional[DoseSnapshot]:
        """Obtener dosis por ID"""
        with self.session_factory() as db:
            dose = db.get(DoseRecord, dose_id)
            return DoseSnapshot.model_validate(dose) if dose else None

    def mark_given(
            self,
            dose_id: int,
            administered_by: int,
            evidence_ref: str,
            now: datetime
    ) -> MarkGivenResult:
        """Marcar la dosis como administrada (compare-and-set sobre given_at)"""
        with self.session_factory() as db:
            updated = db.query(DoseRecord).filter(
                and_(
                    DoseRecord.id == dose_id,
                    DoseRecord.given_at.is_(None)
                )
            ).update(
                {
                    DoseRecord.given_at: now,
                    DoseRecord.given_by_id: administered_by,
                    DoseRecord.evidence_ref: evidence_ref,
                    DoseRecord.status: DoseStatus.GIVEN,
                },
                synchronize_session=False
            )
            db.commit()

            if updated:
                logger.info(f"Dosis {dose_id} administrada por usuario {administered_by}")
                return MarkGivenResult.SUCCESS

            if db.get(DoseRecord, dose_id) is None:
                return MarkGivenResult.NOT_FOUND
            return MarkGivenResult.ALREADY_GIVEN

    def list_pending_doses_in_window(
            self,
            since: datetime,
            until: Optional[datetime] = None
    ) -> List[DoseSnapshot]:
        """Dosis no administradas con horario dentro de la ventana"""
        with self.session_factory() as db:
            query = db.query(DoseRecord).filter(
                DoseRecord.given_at.is_(None),
                DoseRecord.scheduled_time >= since
            )
            if until is not None:
                query = query.filter(DoseRecord.scheduled_time <= until)

            doses = query.order_by(DoseRecord.scheduled_time).all()
            return [DoseSnapshot.model_validate(d) for d in doses]

    def list_doses_for_patient(
            self,
            patient_id: int,
            since: datetime,
            until: datetime
    ) -> List[DoseSnapshot]:
        """Todas las dosis de un paciente en un rango"""
        with self.session_factory() as db:
            doses = db.query(DoseRecord).filter(
                DoseRecord.patient_id == patient_id,
                DoseRecord.scheduled_time >= since,
                DoseRecord.scheduled_time <= until
            ).order_by(DoseRecord.scheduled_time).all()
            return [DoseSnapshot.model_validate(d) for d in doses]

    def claim_tier(self, dose_id: int, tier: EscalationTier, now: datetime) -> bool:
        """
        Reclamar el envío de un nivel para una dosis.
        Falla si el nivel ya fue reclamado o si la dosis ya fue administrada.
        """
        column, status = TIER_MARKERS[tier]
        with self.session_factory() as db:
            updated = db.query(DoseRecord).filter(
                DoseRecord.id == dose_id,
                DoseRecord.given_at.is_(None),
                column.is_(None)
            ).update(
                {column: now, DoseRecord.status: status},
                synchronize_session=False
            )
            db.commit()
            return bool(updated)

    def release_tier(self, dose_id: int, tier: EscalationTier) -> None:
        """
        Liberar un nivel reclamado cuyo envío no pudo completarse.
        El estado vuelve al que corresponde a los niveles que siguen marcados.
        """
        column, _ = TIER_MARKERS[tier]
        with self.session_factory() as db:
            dose = db.query(DoseRecord).filter(
                DoseRecord.id == dose_id,
                DoseRecord.given_at.is_(None)
            ).first()
            if dose is None:
                return

            setattr(dose, column.key, None)
            if dose.critical_notified_at is not None:
                dose.status = DoseStatus.CRITICAL_MISSED
            elif dose.alert_notified_at is not None:
                dose.status = DoseStatus.LATE
            else:
                dose.status = DoseStatus.PENDING
            db.commit()
        logger.info(f"Nivel {tier.value} liberado para dosis {dose_id}")

    # ===== MEDICAMENTOS =====

    def get_medication(self, medication_id: int) -> Optional[MedicationPlan]:
        """Obtener plan de un medicamento (activo o no)"""
        with self.session_factory() as db:
            row = db.query(Medication, Patient).join(
                Patient, Patient.id == Medication.patient_id
            ).filter(Medication.id == medication_id).first()
            if not row:
                return None
            return self._to_plan(*row)

    def list_active_medications(self) -> List[MedicationPlan]:
        """Medicamentos activos de todos los pacientes"""
        with self.session_factory() as db:
            rows = db.query(Medication, Patient).join(
                Patient, Patient.id == Medication.patient_id
            ).filter(Medication.active.is_(True)).order_by(Medication.id).all()

            plans = []
            for medication, patient in rows:
                try:
                    plans.append(self._to_plan(medication, patient))
                except ValueError as e:
                    logger.error(f"Medicamento {medication.id} con configuración inválida: {e}")
            return plans

    # ===== DESTINATARIOS =====

    def get_on_duty_caregiver(self, patient_id: int) -> Optional[UserContact]:
        """Cuidadora con turno abierto más reciente para el paciente"""
        with self.session_factory() as db:
            row = db.query(User).join(
                Attendance, Attendance.caregiver_id == User.id
            ).filter(
                Attendance.patient_id == patient_id,
                Attendance.check_out_time.is_(None)
            ).order_by(Attendance.check_in_time.desc()).first()
            return self._to_contact(row) if row else None

    def list_family(self, patient_id: int) -> List[UserContact]:
        """Familiares (dueño y observadores) del paciente"""
        with self.session_factory() as db:
            users = db.query(User).join(
                PatientAccess, PatientAccess.user_id == User.id
            ).filter(
                PatientAccess.patient_id == patient_id,
                PatientAccess.access_level.in_([AccessLevel.OWNER, AccessLevel.OBSERVER]),
                User.is_active.isnot(False)
            ).order_by(User.id).all()
            return [self._to_contact(u) for u in users]

    # ===== AUXILIARES =====

    @staticmethod
    def _find_dose(db: Session, medication_id: int, scheduled_time: datetime) -> Optional[DoseRecord]:
        return db.query(DoseRecord).filter(
            DoseRecord.medication_id == medication_id,
            DoseRecord.scheduled_time == scheduled_time
        ).first()

    @staticmethod
    def _to_plan(medication: Medication, patient: Patient) -> MedicationPlan:
        return MedicationPlan(
            id=medication.id,
            patient_id=medication.patient_id,
            name=medication.name,
            dose=medication.dose,
            schedule_times=list(medication.schedule_times or []),
            critical=bool(medication.critical),
            alert_after_minutes=medication.alert_after_minutes,
            escalate_after_minutes=medication.escalate_after_minutes,
            reminder_before_minutes=medication.reminder_before_minutes or 0,
            active=bool(medication.active),
            timezone=patient.timezone,
            patient_name=patient.name,
        )

    @staticmethod
    def _to_contact(user: User) -> UserContact:
        return UserContact(
            id=user.id,
            name=user.name,
            email=user.email,
            phone=user.phone,
            timezone=user.timezone or "America/Santiago",
            push_notifications=user.push_notifications is not False,
            email_notifications=user.email_notifications is not False,
            sms_notifications=user.sms_notifications is not False,
            quiet_hours_start=user.quiet_hours_start,
            quiet_hours_end=user.quiet_hours_end,
            critical_override_quiet=user.critical_override_quiet is not False,
        )
