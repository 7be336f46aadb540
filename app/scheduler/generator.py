"""
Generador diario de dosis

Por cada medicamento activo y cada horario agenda un job diario (hora local
del paciente) que crea el registro de dosis del día y arma el escalamiento,
más un job de recordatorio previo para la cuidadora de turno.
"""
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Tuple
import logging

from app.scheduler.records import DoseSnapshot, EscalationTier, MedicationPlan
from app.utils.timezone import local_slot_to_utc, local_today, parse_time_of_day, shift_time_of_day

logger = logging.getLogger(__name__)


def slot_job_id(medication_id: int, time_of_day: str) -> str:
    return f"med:{medication_id}:{time_of_day}"


def reminder_job_id(medication_id: int, time_of_day: str) -> str:
    return f"remind:{medication_id}:{time_of_day}"


class DailyScheduleGenerator:
    """Expande horarios diarios en registros de dosis"""

    def __init__(self, store, timers, engine, notifier, clock, lookback_hours: int = 24):
        self.store = store
        self.timers = timers
        self.engine = engine
        self.notifier = notifier
        self.clock = clock
        self.lookback = timedelta(hours=lookback_hours)
        self._jobs: Dict[int, List[str]] = {}

    # ===== REGISTRO =====

    def register(self, medication: MedicationPlan) -> List[str]:
        """Agendar (o reemplazar) los jobs diarios de un medicamento"""
        self.unregister(medication.id)
        if not medication.active:
            return []

        job_ids = []
        for time_of_day in medication.schedule_times:
            slot = parse_time_of_day(time_of_day)
            job_ids.append(self.timers.call_daily(
                slot_job_id(medication.id, time_of_day),
                slot.hour,
                slot.minute,
                medication.timezone,
                self.on_slot_due,
                medication.id,
                time_of_day
            ))

            if medication.reminder_before_minutes > 0:
                remind_at = parse_time_of_day(
                    shift_time_of_day(time_of_day, -medication.reminder_before_minutes)
                )
                job_ids.append(self.timers.call_daily(
                    reminder_job_id(medication.id, time_of_day),
                    remind_at.hour,
                    remind_at.minute,
                    medication.timezone,
                    self.send_reminder,
                    medication.id,
                    time_of_day
                ))

        self._jobs[medication.id] = job_ids
        logger.info(
            f"📅 Medicamento {medication.name} (ID: {medication.id}) agendado: "
            f"{', '.join(medication.schedule_times)} ({medication.timezone})"
        )
        return job_ids

    def unregister(self, medication_id: int) -> None:
        for job_id in self._jobs.pop(medication_id, []):
            self.timers.cancel(job_id)

    def registered_jobs(self, medication_id: int) -> List[str]:
        return list(self._jobs.get(medication_id, []))

    # ===== GENERACIÓN =====

    async def on_slot_due(self, medication_id: int, time_of_day: str) -> Optional[DoseSnapshot]:
        """Job diario: crear la dosis de hoy para el horario y armarla"""
        try:
            medication = self.store.get_medication(medication_id)
            if medication is None or not medication.active:
                logger.info(f"Medicamento {medication_id} inactivo o eliminado, horario {time_of_day} omitido")
                return None

            now = self.clock.now()
            scheduled_time = local_slot_to_utc(
                local_today(medication.timezone, now), time_of_day, medication.timezone
            )
            dose, _ = await self.ensure_dose(medication, scheduled_time)
            return dose
        except Exception:
            # El barrido periódico recupera el horario en su siguiente pasada
            logger.exception(f"Error generando dosis de medicamento {medication_id} ({time_of_day})")
            return None

    async def ensure_dose(
            self,
            medication: MedicationPlan,
            scheduled_time: datetime,
            fire_due: bool = True
    ) -> Tuple[DoseSnapshot, bool]:
        """Crear la dosis si no existe y armar su escalamiento"""
        dose, created = self.store.create_dose_if_absent(medication.id, scheduled_time)

        if dose.is_given:
            return dose, created

        if not self.engine.is_armed(medication.id, scheduled_time):
            await self.engine.arm(dose, medication, fire_due=fire_due)

        return dose, created

    async def catch_up(self, now: Optional[datetime] = None) -> int:
        """
        Crear las dosis cuyo horario ya pasó dentro de la ventana y que no
        fueron generadas (proceso caído), y armar los niveles futuros de las
        pendientes sin temporizador. Los niveles ya vencidos los envía el
        barrido. Devuelve cuántas se crearon.
        """
        now = now or self.clock.now()
        created_count = 0

        for medication in self.store.list_active_medications():
            for scheduled_time in self.slots_between(medication, now - self.lookback, now):
                try:
                    existing = self.store.get_dose(medication.id, scheduled_time)
                    if existing is not None and (existing.is_given or self.engine.is_armed(*existing.key)):
                        continue

                    _, created = await self.ensure_dose(medication, scheduled_time, fire_due=False)
                    if created:
                        created_count += 1
                        logger.info(
                            f"🔁 Dosis recuperada: {medication.name} ({scheduled_time.isoformat()})"
                        )
                except Exception:
                    logger.exception(
                        f"Error recuperando dosis de {medication.name} ({scheduled_time.isoformat()})"
                    )

        return created_count

    @staticmethod
    def slots_between(medication: MedicationPlan, since: datetime, until: datetime) -> List[datetime]:
        """Horarios absolutos (UTC naive) del medicamento en (since, until]"""
        tz = medication.timezone
        day = local_today(tz, since)
        last_day = local_today(tz, until)

        slots = []
        while day <= last_day:
            for time_of_day in medication.schedule_times:
                scheduled_time = local_slot_to_utc(day, time_of_day, tz)
                if since < scheduled_time <= until:
                    slots.append(scheduled_time)
            day += timedelta(days=1)
        return sorted(slots)

    # ===== RECORDATORIO =====

    async def send_reminder(self, medication_id: int, time_of_day: str) -> int:
        """Recordatorio previo a la cuidadora de turno para la próxima ocurrencia del horario"""
        try:
            medication = self.store.get_medication(medication_id)
            if medication is None or not medication.active:
                return 0

            now = self.clock.now()
            day = local_today(medication.timezone, now)
            scheduled_time = local_slot_to_utc(day, time_of_day, medication.timezone)
            if scheduled_time <= now:
                # Recordatorio antes de medianoche para un horario de madrugada
                scheduled_time = local_slot_to_utc(day + timedelta(days=1), time_of_day, medication.timezone)

            dose = self.store.get_dose(medication_id, scheduled_time)
            if dose is not None and dose.is_given:
                logger.debug(f"Dosis {dose.id} ya administrada, recordatorio omitido")
                return 0

            return await self.notifier.notify(
                medication, EscalationTier.REMINDER, scheduled_time, now, dose, source="reminder"
            )
        except Exception:
            logger.exception(f"Error enviando recordatorio de medicamento {medication_id} ({time_of_day})")
            return 0
