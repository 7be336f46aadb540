"""
Barrido periódico de reconciliación

Red de seguridad ante temporizadores perdidos (reinicio, caída, deploy):
recupera dosis no generadas y envía el nivel de escalamiento que corresponda
a cada dosis pendiente de la ventana, sin repetir niveles ya enviados.
"""
from dataclasses import dataclass
from datetime import timedelta
import logging

from app.scheduler.records import DoseSnapshot, ESCALATION_ORDER

logger = logging.getLogger(__name__)

SWEEP_JOB_ID = "medication_sweep"


@dataclass
class SweepReport:
    """Resultado de una pasada"""
    created: int = 0
    examined: int = 0
    notified: int = 0
    failed: int = 0


class PeriodicSweep:
    """Reconciliación de dosis pendientes a intervalo fijo"""

    def __init__(
            self,
            store,
            generator,
            notifier,
            clock,
            timers=None,
            interval_minutes: int = 5,
            lookback_hours: int = 24
    ):
        self.store = store
        self.generator = generator
        self.notifier = notifier
        self.clock = clock
        self.timers = timers
        self.interval_minutes = interval_minutes
        self.lookback = timedelta(hours=lookback_hours)

    def start(self) -> None:
        """Agendar el barrido cada N minutos"""
        self.timers.call_every(SWEEP_JOB_ID, self.interval_minutes, self.run_once)
        logger.info(f"🔁 Barrido de medicamentos cada {self.interval_minutes} minutos")

    def stop(self) -> None:
        if self.timers is not None:
            self.timers.cancel(SWEEP_JOB_ID)

    async def run_once(self) -> SweepReport:
        """Una pasada completa: recuperación de dosis y escalamiento pendiente"""
        report = SweepReport()
        now = self.clock.now()

        try:
            report.created = await self.generator.catch_up(now)
        except Exception:
            logger.exception("Error en recuperación de dosis del barrido")

        try:
            pending = self.store.list_pending_doses_in_window(now - self.lookback, now)
        except Exception:
            logger.exception("Error listando dosis pendientes, barrido abandonado")
            return report

        for dose in pending:
            report.examined += 1
            try:
                if await self._reconcile(dose, now):
                    report.notified += 1
            except Exception:
                report.failed += 1
                logger.exception(f"Error reconciliando dosis {dose.id}")

        if report.created or report.notified or report.failed:
            logger.info(
                f"🔁 Barrido: {report.created} creadas, {report.examined} revisadas, "
                f"{report.notified} notificadas, {report.failed} con error"
            )
        return report

    async def _reconcile(self, dose: DoseSnapshot, now) -> bool:
        current = self.store.get_dose_by_id(dose.id)
        if current is None or current.is_given:
            return False

        medication = self.store.get_medication(current.medication_id)
        if medication is None or not medication.active:
            return False

        elapsed = (now - current.scheduled_time).total_seconds() / 60
        crossed = [tier for tier in ESCALATION_ORDER if elapsed >= medication.threshold(tier)]
        if not crossed:
            return False

        highest = crossed[-1]
        if current.tier_notified(highest):
            return False

        # Niveles inferiores superados: se marcan sin enviarse
        for tier in crossed[:-1]:
            if not current.tier_notified(tier):
                self.store.claim_tier(current.id, tier, now)

        if not self.store.claim_tier(current.id, highest, now):
            return False

        try:
            await self.notifier.notify(medication, highest, current.scheduled_time, now, current, source="sweep")
        except Exception:
            self.store.release_tier(current.id, highest)
            raise

        logger.warning(
            f"Barrido envió nivel {highest.value} para {medication.name} "
            f"({current.scheduled_time.isoformat()}), {current.minutes_late(now)} min de atraso"
        )
        return True
