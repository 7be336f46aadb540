"""
Supervisor de medicamentos

Arma el programador completo (store, destinatarios, notificador, motor de
escalamiento, generador diario y barrido) y lo acopla al ciclo de vida de la
aplicación.
"""
from datetime import timedelta
from typing import Callable, Optional
import logging

from sqlalchemy.orm import sessionmaker

from app.core.config import Settings, get_settings
from app.scheduler.escalation import EscalationEngine
from app.scheduler.generator import DailyScheduleGenerator
from app.scheduler.notifier import TierNotifier
from app.scheduler.recipients import RecipientResolver
from app.scheduler.records import MedicationPlan
from app.scheduler.sweep import PeriodicSweep, SweepReport
from app.scheduler.timers import Clock, TimerFacility
from app.services.administration_service import AdministrationService, has_evidence
from app.services.audit_service import AuditService
from app.services.notification_sink import InboxNotificationSink, NotificationSink
from app.services.record_store import SqlRecordStore

logger = logging.getLogger(__name__)


class MedicationSupervisor:
    """Raíz de composición del programador de medicamentos"""

    def __init__(
            self,
            session_factory: sessionmaker,
            settings: Optional[Settings] = None,
            sink: Optional[NotificationSink] = None,
            timers=None,
            clock=None,
            audit=None,
            evidence_verifier: Callable[[str], bool] = has_evidence
    ):
        self.settings = settings or get_settings()
        lookback = self.settings.SWEEP_LOOKBACK_HOURS

        self.clock = clock or Clock()
        self.timers = timers or TimerFacility()
        self.store = SqlRecordStore(session_factory)
        self.sink = sink or InboxNotificationSink(session_factory)
        self.audit = audit or AuditService(session_factory)

        self.resolver = RecipientResolver(self.store)
        self.notifier = TierNotifier(self.resolver, self.sink, self.audit)
        self.engine = EscalationEngine(self.store, self.timers, self.notifier, self.clock, lookback)
        self.generator = DailyScheduleGenerator(
            self.store, self.timers, self.engine, self.notifier, self.clock, lookback
        )
        self.sweep = PeriodicSweep(
            self.store,
            self.generator,
            self.notifier,
            self.clock,
            timers=self.timers,
            interval_minutes=self.settings.SWEEP_INTERVAL_MINUTES,
            lookback_hours=lookback
        )
        self.administration = AdministrationService(
            self.store, self.engine, self.notifier, self.clock, evidence_verifier
        )
        self._started = False

    @property
    def is_running(self) -> bool:
        return self._started

    async def start(self) -> SweepReport:
        """
        Iniciar temporizadores, agendar los medicamentos activos y ejecutar
        una primera pasada de reconciliación.
        """
        if self._started:
            logger.warning("MedicationSupervisor ya está en ejecución")
            return SweepReport()

        self.timers.start()

        medications = self.store.list_active_medications()
        for medication in medications:
            self.generator.register(medication)
        logger.info(f"💊 {len(medications)} medicamentos activos agendados")

        report = await self.sweep.run_once()
        self.sweep.start()
        self._started = True
        return report

    async def stop(self) -> None:
        if not self._started:
            return
        self.sweep.stop()
        self.engine.shutdown()
        self.timers.shutdown()
        self._started = False
        logger.info("🛑 Supervisor de medicamentos detenido")

    # ===== CAMBIOS DE CONFIGURACIÓN =====

    def register_medication(self, medication_id: int) -> Optional[MedicationPlan]:
        """
        (Re)agendar un medicamento tras crearlo o editarlo.
        Las dosis pendientes ya armadas se reagendan con los umbrales nuevos.
        """
        plan = self.store.get_medication(medication_id)
        if plan is None or not plan.active:
            self.unregister_medication(medication_id)
            return None
        self.generator.register(plan)

        self.engine.cancel_medication(medication_id)
        now = self.clock.now()
        since = now - timedelta(hours=self.settings.SWEEP_LOOKBACK_HOURS)
        for dose in self.store.list_pending_doses_in_window(since, now):
            if dose.medication_id == medication_id:
                self.engine.rearm(dose, plan)
        return plan

    def unregister_medication(self, medication_id: int) -> None:
        """Quitar horarios y escalamientos pendientes de un medicamento"""
        self.generator.unregister(medication_id)
        self.engine.cancel_medication(medication_id)
