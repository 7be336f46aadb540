"""
Servicio de administración de medicamentos

Registra la administración de una dosis (con evidencia), cancela su
escalamiento y avisa a la familia. Es el único camino síncrono con errores
visibles para la cuidadora.
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional
import enum
import logging

from sqlalchemy.exc import SQLAlchemyError

from app.scheduler.records import DoseSnapshot
from app.services.record_store import MarkGivenResult
from app.utils.timezone import to_local

logger = logging.getLogger(__name__)


class AdministrationError(str, enum.Enum):
    """Motivos de rechazo de una administración"""
    EVIDENCE_INVALID = "evidence_invalid"
    DOSE_NOT_FOUND = "dose_not_found"
    MEDICATION_INACTIVE = "medication_inactive"
    ALREADY_GIVEN = "already_given"
    STORE_ERROR = "store_error"


@dataclass
class AdministrationResult:
    success: bool
    dose: Optional[DoseSnapshot] = None
    error: Optional[AdministrationError] = None
    message: str = ""
    timers_cancelled: int = 0


def has_evidence(evidence_ref: Optional[str]) -> bool:
    """Verificador por defecto: la referencia de evidencia no puede estar vacía"""
    return bool(evidence_ref and evidence_ref.strip())


class AdministrationService:
    """Registro de administración de dosis"""

    def __init__(
            self,
            store,
            engine,
            notifier,
            clock,
            evidence_verifier: Callable[[str], bool] = has_evidence
    ):
        self.store = store
        self.engine = engine
        self.notifier = notifier
        self.clock = clock
        self.evidence_verifier = evidence_verifier

    async def administer(
            self,
            medication_id: int,
            scheduled_time: datetime,
            administered_by: int,
            evidence_ref: str
    ) -> AdministrationResult:
        """
        Marcar como administrada la dosis (medicamento, horario).

        La dosis se crea si aún no existe (administración anticipada). La
        escritura en el store es compare-and-set: de dos solicitudes
        concurrentes solo una tiene éxito. Los temporizadores se cancelan
        después de que la escritura es durable.
        """
        if not self.evidence_verifier(evidence_ref):
            return self._reject(AdministrationError.EVIDENCE_INVALID, "Evidencia de administración inválida")

        now = self.clock.now()

        try:
            medication = self.store.get_medication(medication_id)
            if medication is None:
                return self._reject(AdministrationError.DOSE_NOT_FOUND, "Medicamento no encontrado")
            if not medication.active:
                return self._reject(AdministrationError.MEDICATION_INACTIVE, "El medicamento está inactivo")

            local_slot = to_local(scheduled_time, medication.timezone).strftime("%H:%M")
            if local_slot not in medication.schedule_times:
                return self._reject(
                    AdministrationError.DOSE_NOT_FOUND,
                    f"{medication.name} no tiene horario a las {local_slot}"
                )

            dose, _ = self.store.create_dose_if_absent(medication_id, scheduled_time)
            outcome = self.store.mark_given(dose.id, administered_by, evidence_ref.strip(), now)
        except SQLAlchemyError as e:
            logger.error(f"Error registrando administración de medicamento {medication_id}: {e}")
            return self._reject(AdministrationError.STORE_ERROR, "No se pudo registrar la administración")

        if outcome == MarkGivenResult.ALREADY_GIVEN:
            return self._reject(AdministrationError.ALREADY_GIVEN, "La dosis ya fue administrada", dose)
        if outcome == MarkGivenResult.NOT_FOUND:
            return self._reject(AdministrationError.DOSE_NOT_FOUND, "Dosis no encontrada")

        cancelled = self.engine.cancel(medication_id, scheduled_time)

        given = self.store.get_dose_by_id(dose.id) or dose
        minutes_late = given.minutes_late(now)
        logger.info(
            f"✅ {medication.name} administrado por usuario {administered_by} "
            f"({minutes_late} min después del horario)"
        )

        try:
            await self.notifier.notify_given(medication, given, now)
        except Exception as e:
            logger.error(f"Error avisando administración de {medication.name}: {e}")

        return AdministrationResult(
            success=True,
            dose=given,
            message=f"{medication.name} registrado como administrado",
            timers_cancelled=cancelled
        )

    @staticmethod
    def _reject(
            error: AdministrationError,
            message: str,
            dose: Optional[DoseSnapshot] = None
    ) -> AdministrationResult:
        logger.warning(f"Administración rechazada ({error.value}): {message}")
        return AdministrationResult(success=False, dose=dose, error=error, message=message)
