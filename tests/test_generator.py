"""
Pruebas del generador diario y de los recordatorios
"""

from datetime import date, datetime, timedelta

from app.models.notification import NotificationSeverity
from app.scheduler.generator import DailyScheduleGenerator, reminder_job_id, slot_job_id
from app.scheduler.records import EscalationTier, MedicationPlan

from tests.conftest import TZ, slot


def test_register_schedules_slot_and_reminder_jobs(supervisor, timers, family, add_medication):
    med_id = add_medication(family.patient_id, schedule_times=["08:00", "20:05"], reminder=10)
    plan = supervisor.store.get_medication(med_id)

    supervisor.generator.register(plan)

    morning = timers.jobs[slot_job_id(med_id, "08:00")]
    assert (morning.kind, morning.hour, morning.minute, morning.tz_name) == ("cron", 8, 0, TZ)
    reminder = timers.jobs[reminder_job_id(med_id, "20:05")]
    assert (reminder.hour, reminder.minute) == (19, 55)
    assert len(supervisor.generator.registered_jobs(med_id)) == 4


def test_register_without_reminder(supervisor, timers, family, add_medication):
    med_id = add_medication(family.patient_id, reminder=0)

    supervisor.generator.register(supervisor.store.get_medication(med_id))

    assert timers.has_job(slot_job_id(med_id, "08:00"))
    assert not timers.has_job(reminder_job_id(med_id, "08:00"))


def test_reregister_replaces_previous_times(supervisor, timers, family, add_medication, db):
    from app.models.medication import Medication

    med_id = add_medication(family.patient_id, schedule_times=["08:00"])
    supervisor.generator.register(supervisor.store.get_medication(med_id))

    db.get(Medication, med_id).schedule_times = ["09:30"]
    db.commit()
    supervisor.generator.register(supervisor.store.get_medication(med_id))

    assert not timers.has_job(slot_job_id(med_id, "08:00"))
    assert timers.has_job(slot_job_id(med_id, "09:30"))

    supervisor.generator.unregister(med_id)
    assert timers.jobs == {}


async def test_daily_job_is_idempotent(supervisor, clock, timers, family, add_medication, db):
    from app.models.dose_record import DoseRecord

    med_id = add_medication(family.patient_id)
    supervisor.generator.register(supervisor.store.get_medication(med_id))
    clock.set(slot())

    first = await timers.fire(slot_job_id(med_id, "08:00"))
    second = await timers.fire(slot_job_id(med_id, "08:00"))

    assert first.id == second.id
    assert db.query(DoseRecord).filter(DoseRecord.medication_id == med_id).count() == 1


async def test_inactive_medication_slot_is_skipped(supervisor, clock, family, add_medication):
    med_id = add_medication(family.patient_id, active=False)
    clock.set(slot())

    assert await supervisor.generator.on_slot_due(med_id, "08:00") is None
    assert supervisor.store.get_dose(med_id, slot()) is None


async def test_reminder_goes_to_on_duty_caregiver(supervisor, clock, sink, family, add_medication, check_in):
    med_id = add_medication(family.patient_id)
    check_in(family.caregiver_id, family.patient_id, slot("07:00"))
    clock.set(slot("07:50"))

    sent = await supervisor.generator.send_reminder(med_id, "08:00")

    assert sent == 1
    reminders = sink.for_tier(EscalationTier.REMINDER)
    assert [r["user_id"] for r in reminders] == [family.caregiver_id]
    assert reminders[0]["severity"] == NotificationSeverity.INFO
    assert reminders[0]["title"] == "⏰ Recordatorio: Escitalopram en 10 minutos"
    assert reminders[0]["message"] == "Preparar Escitalopram (10mg) para administrar a las 08:00"
    assert reminders[0]["channels"] == {"push"}


async def test_reminder_without_caregiver_is_skipped(supervisor, clock, sink, family, add_medication):
    med_id = add_medication(family.patient_id)
    clock.set(slot("07:50"))

    assert await supervisor.generator.send_reminder(med_id, "08:00") == 0
    assert sink.sent == []


async def test_reminder_skipped_when_dose_already_given(
        supervisor, clock, sink, family, add_medication, check_in
):
    med_id = add_medication(family.patient_id)
    check_in(family.caregiver_id, family.patient_id, slot("07:00"))
    dose, _ = supervisor.store.create_dose_if_absent(med_id, slot())
    supervisor.store.mark_given(dose.id, family.caregiver_id, "foto", slot("07:45"))
    clock.set(slot("07:50"))

    assert await supervisor.generator.send_reminder(med_id, "08:00") == 0
    assert sink.sent == []


async def test_reminder_before_midnight_targets_next_day(
        supervisor, clock, sink, family, add_medication, check_in
):
    med_id = add_medication(family.patient_id, schedule_times=["00:05"])
    check_in(family.caregiver_id, family.patient_id, slot("20:00"))
    clock.set(slot("23:55"))

    await supervisor.generator.send_reminder(med_id, "00:05")

    reminder = sink.for_tier(EscalationTier.REMINDER)[0]
    expected = slot("00:05", DAY_AFTER)
    assert reminder["metadata"]["scheduled_time"] == expected.isoformat()


DAY_AFTER = date(2026, 6, 16)


def test_slots_between_spans_days():
    plan = MedicationPlan(
        id=1,
        patient_id=1,
        name="Escitalopram",
        dose="10mg",
        schedule_times=["08:00", "20:00"],
        alert_after_minutes=10,
        escalate_after_minutes=20,
        timezone=TZ,
    )
    until = slot("09:00")
    since = until - timedelta(hours=24)

    slots = DailyScheduleGenerator.slots_between(plan, since, until)

    assert slots == [slot("20:00", date(2026, 6, 14)), slot("08:00")]
    assert all(isinstance(s, datetime) for s in slots)
