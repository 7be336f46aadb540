"""
Motor de escalamiento de dosis

Mantiene, por dosis (medicamento, horario), los temporizadores de alerta y
escalamiento crítico. Cada disparo vuelve a leer la dosis antes de actuar y
reclama el nivel en el store, de modo que una administración concurrente o un
barrido previo nunca producen un aviso duplicado o tardío.
"""
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Tuple
import logging

from app.scheduler.notifier import TierNotifier
from app.scheduler.records import (
    DoseSnapshot,
    ESCALATION_ORDER,
    EscalationTier,
    MedicationPlan,
)

logger = logging.getLogger(__name__)

DoseKey = Tuple[int, datetime]


def dose_job_id(medication_id: int, scheduled_time: datetime, tier: EscalationTier) -> str:
    return f"dose:{medication_id}:{scheduled_time.strftime('%Y%m%dT%H%M')}:{tier.value}"


class EscalationEngine:
    """Cadena de temporizadores alerta → crítico por dosis"""

    def __init__(
            self,
            store,
            timers,
            notifier: TierNotifier,
            clock,
            lookback_hours: int = 24
    ):
        self.store = store
        self.timers = timers
        self.notifier = notifier
        self.clock = clock
        self.lookback = timedelta(hours=lookback_hours)
        # (medication_id, scheduled_time) -> {nivel: job_id}
        self._armed: Dict[DoseKey, Dict[EscalationTier, str]] = {}

    # ===== ARMADO =====

    async def arm(
            self,
            dose: DoseSnapshot,
            medication: MedicationPlan,
            fire_due: bool = True
    ) -> List[EscalationTier]:
        """
        Agendar los niveles pendientes de una dosis.
        Si varios niveles ya vencieron solo se dispara el más alto; los
        inferiores se marcan como superados sin enviarse. Con fire_due=False
        los niveles vencidos quedan para el barrido.
        Devuelve los niveles agendados a futuro.
        """
        now = self.clock.now()
        scheduled, due_now = self._schedule(dose, medication, now)

        if not fire_due or not due_now:
            return scheduled

        highest = due_now[-1]
        for tier in due_now[:-1]:
            self.store.claim_tier(dose.id, tier, now)
            logger.info(f"Nivel {tier.value} de dosis {dose.id} superado por {highest.value}, no se envía")

        await self._fire(medication.id, dose.scheduled_time, highest)
        return scheduled

    def rearm(self, dose: DoseSnapshot, medication: MedicationPlan) -> List[EscalationTier]:
        """
        Reemplazar los temporizadores de una dosis según el plan vigente.
        Los niveles que ya vencieron con los nuevos umbrales quedan para el barrido.
        """
        self.cancel(medication.id, dose.scheduled_time)
        scheduled, _ = self._schedule(dose, medication, self.clock.now())
        return scheduled

    def is_armed(self, medication_id: int, scheduled_time: datetime) -> bool:
        return bool(self._armed.get((medication_id, scheduled_time)))

    def _schedule(
            self,
            dose: DoseSnapshot,
            medication: MedicationPlan,
            now: datetime
    ) -> Tuple[List[EscalationTier], List[EscalationTier]]:
        if dose.is_given:
            return [], []

        if self._is_stale(dose.scheduled_time, now):
            logger.debug(f"Dosis {dose.id} fuera de la ventana activa, no se arma")
            return [], []

        scheduled: List[EscalationTier] = []
        due_now: List[EscalationTier] = []

        for tier in ESCALATION_ORDER:
            if dose.tier_notified(tier):
                continue

            run_at = dose.scheduled_time + timedelta(minutes=medication.threshold(tier))
            if run_at <= now:
                due_now.append(tier)
                continue

            self._schedule_tier(medication.id, dose.scheduled_time, tier, run_at)
            scheduled.append(tier)

        if scheduled:
            logger.info(
                f"⏰ Escalamiento armado para {medication.name} "
                f"({dose.scheduled_time.isoformat()}): {[t.value for t in scheduled]}"
            )
        return scheduled, due_now

    def _schedule_tier(
            self,
            medication_id: int,
            scheduled_time: datetime,
            tier: EscalationTier,
            run_at: datetime
    ) -> None:
        job_id = self.timers.call_at(
            dose_job_id(medication_id, scheduled_time, tier),
            run_at,
            self._fire,
            medication_id,
            scheduled_time,
            tier
        )
        self._armed.setdefault((medication_id, scheduled_time), {})[tier] = job_id

    # ===== CANCELACIÓN =====

    def cancel(self, medication_id: int, scheduled_time: datetime) -> int:
        """Cancelar los temporizadores de una dosis. Idempotente"""
        jobs = self._armed.pop((medication_id, scheduled_time), {})
        cancelled = 0
        for job_id in jobs.values():
            if self.timers.cancel(job_id):
                cancelled += 1

        if cancelled:
            logger.info(
                f"🛑 Escalamiento cancelado para medicamento {medication_id} "
                f"({scheduled_time.isoformat()}): {cancelled} temporizadores"
            )
        return cancelled

    def cancel_medication(self, medication_id: int) -> int:
        """Cancelar todas las dosis armadas de un medicamento"""
        keys = [key for key in self._armed if key[0] == medication_id]
        return sum(self.cancel(*key) for key in keys)

    def shutdown(self) -> None:
        for key in list(self._armed):
            self.cancel(*key)

    # ===== DISPARO =====

    async def _fire(self, medication_id: int, scheduled_time: datetime, tier: EscalationTier) -> bool:
        """
        Callback de temporizador. Nunca lanza: cualquier error se registra y
        el siguiente nivel (o el barrido) sigue su curso.
        """
        self._forget(medication_id, scheduled_time, tier)

        try:
            return await self._check_and_notify(medication_id, scheduled_time, tier)
        except Exception:
            logger.exception(
                f"Error disparando nivel {tier.value} de medicamento {medication_id} "
                f"({scheduled_time.isoformat()})"
            )
            return False

    async def _check_and_notify(
            self,
            medication_id: int,
            scheduled_time: datetime,
            tier: EscalationTier
    ) -> bool:
        now = self.clock.now()

        dose = self.store.get_dose(medication_id, scheduled_time)
        if dose is None:
            logger.warning(f"Dosis de medicamento {medication_id} ({scheduled_time.isoformat()}) no encontrada")
            return False

        if dose.is_given:
            logger.debug(f"Dosis {dose.id} ya administrada, nivel {tier.value} descartado")
            return False

        if self._is_stale(scheduled_time, now):
            logger.debug(f"Dosis {dose.id} fuera de la ventana activa, nivel {tier.value} descartado")
            return False

        medication = self.store.get_medication(medication_id)
        if medication is None or not medication.active:
            logger.info(f"Medicamento {medication_id} inactivo, nivel {tier.value} descartado")
            return False

        # Umbral editado después de armar: reagendar con el valor vigente
        run_at = scheduled_time + timedelta(minutes=medication.threshold(tier))
        if run_at > now:
            self._schedule_tier(medication_id, scheduled_time, tier, run_at)
            logger.info(
                f"Nivel {tier.value} de dosis {dose.id} reagendado a {run_at.isoformat()} por cambio de umbral"
            )
            return False

        if not self.store.claim_tier(dose.id, tier, now):
            logger.debug(f"Nivel {tier.value} de dosis {dose.id} ya enviado o dosis administrada")
            return False

        try:
            await self.notifier.notify(medication, tier, scheduled_time, now, dose, source="timer")
        except Exception:
            self.store.release_tier(dose.id, tier)
            raise

        return True

    def _forget(self, medication_id: int, scheduled_time: datetime, tier: EscalationTier) -> None:
        key = (medication_id, scheduled_time)
        jobs: Optional[Dict[EscalationTier, str]] = self._armed.get(key)
        if not jobs:
            return
        jobs.pop(tier, None)
        if not jobs:
            del self._armed[key]

    def _is_stale(self, scheduled_time: datetime, now: datetime) -> bool:
        return scheduled_time < now - self.lookback
