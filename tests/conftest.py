"""
Fixtures compartidas para las pruebas.

Base de datos SQLite en memoria por prueba, reloj controlable, temporizadores
manuales (mismo contrato que TimerFacility) y un sink que registra envíos.
"""

import os
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from types import SimpleNamespace
from typing import Any, Callable, Dict, List, Optional, Tuple

import pytest

# Configurar entorno antes de importar la aplicación
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SCHEDULER_ENABLED"] = "false"
os.environ["ENVIRONMENT"] = "test"

from app.core.config import get_settings  # noqa: E402
from app.core.database import build_engine, build_session_factory, create_tables  # noqa: E402
from app.models.attendance import Attendance  # noqa: E402
from app.models.medication import Medication  # noqa: E402
from app.models.patient import AccessLevel, Patient, PatientAccess  # noqa: E402
from app.models.user import User, UserRole  # noqa: E402
from app.scheduler.supervisor import MedicationSupervisor  # noqa: E402
from app.services.notification_sink import DeliveryStatus, NotificationSink  # noqa: E402
from app.utils.timezone import local_slot_to_utc  # noqa: E402

TZ = "America/Santiago"
DAY = date(2026, 6, 15)


def slot(time_of_day: str = "08:00", day: date = DAY) -> datetime:
    """Instante UTC naive de un horario local del paciente de prueba"""
    return local_slot_to_utc(day, time_of_day, TZ)


# ============================================================================
# RELOJ Y TEMPORIZADORES
# ============================================================================


class FakeClock:
    def __init__(self, now: datetime):
        self.current = now

    def now(self) -> datetime:
        return self.current

    def set(self, now: datetime) -> None:
        self.current = now


@dataclass
class ManualJob:
    job_id: str
    kind: str
    callback: Callable
    args: Tuple[Any, ...]
    run_at: Optional[datetime] = None
    hour: Optional[int] = None
    minute: Optional[int] = None
    tz_name: Optional[str] = None
    minutes: Optional[int] = None


class ManualTimers:
    """Temporizadores que solo avanzan cuando la prueba lo indica"""

    def __init__(self, clock: FakeClock):
        self.clock = clock
        self.jobs: Dict[str, ManualJob] = {}
        self._running = False

    def start(self) -> None:
        self._running = True

    def shutdown(self) -> None:
        self._running = False
        self.jobs.clear()

    @property
    def is_running(self) -> bool:
        return self._running

    def call_at(self, job_id, run_at, callback, *args):
        self.jobs[job_id] = ManualJob(job_id, "date", callback, args, run_at=run_at)
        return job_id

    def call_daily(self, job_id, hour, minute, tz_name, callback, *args):
        self.jobs[job_id] = ManualJob(job_id, "cron", callback, args, hour=hour, minute=minute, tz_name=tz_name)
        return job_id

    def call_every(self, job_id, minutes, callback, *args):
        self.jobs[job_id] = ManualJob(job_id, "interval", callback, args, minutes=minutes)
        return job_id

    def cancel(self, job_id) -> bool:
        return self.jobs.pop(job_id, None) is not None

    def has_job(self, job_id) -> bool:
        return job_id in self.jobs

    def get_jobs_info(self):
        return [
            {"id": job.job_id, "next_run": job.run_at.isoformat() if job.run_at else None}
            for job in self.jobs.values()
        ]

    def pending_one_shots(self) -> List[ManualJob]:
        return sorted(
            (job for job in self.jobs.values() if job.kind == "date"),
            key=lambda job: job.run_at
        )

    async def advance(self, until: datetime) -> None:
        """Mover el reloj hasta `until`, disparando en orden los jobs únicos vencidos"""
        while True:
            due = [job for job in self.pending_one_shots() if job.run_at <= until]
            if not due:
                break
            job = due[0]
            del self.jobs[job.job_id]
            if job.run_at > self.clock.now():
                self.clock.set(job.run_at)
            await job.callback(*job.args)
        self.clock.set(until)

    async def fire(self, job_id: str):
        """Ejecutar un job recurrente (diario o intervalo) una vez"""
        job = self.jobs[job_id]
        return await job.callback(*job.args)


# ============================================================================
# SINK
# ============================================================================


class RecordingSink(NotificationSink):
    """Registra cada envío; puede fallar para ciertos usuarios"""

    def __init__(self):
        self.sent: List[Dict[str, Any]] = []
        self.attempts: List[int] = []
        self.raise_for = set()
        self.fail_for = set()

    async def send(self, recipient_id, channels, severity, title, message, metadata=None):
        self.attempts.append(recipient_id)
        channels = sorted(set(channels))
        if recipient_id in self.raise_for:
            raise RuntimeError("proveedor caído")
        if recipient_id in self.fail_for:
            return {channel: DeliveryStatus.FAILED for channel in channels}

        self.sent.append({
            "user_id": recipient_id,
            "channels": set(channels),
            "severity": severity,
            "title": title,
            "message": message,
            "metadata": dict(metadata or {}),
        })
        return {channel: DeliveryStatus.DELIVERED for channel in channels}

    def for_tier(self, tier) -> List[Dict[str, Any]]:
        value = getattr(tier, "value", tier)
        return [item for item in self.sent if item["metadata"].get("tier") == value]

    def users_for_tier(self, tier) -> set:
        return {item["user_id"] for item in self.for_tier(tier)}


# ============================================================================
# BASE DE DATOS
# ============================================================================


@pytest.fixture
def engine():
    engine = build_engine("sqlite://")
    create_tables(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def settings():
    return get_settings()


@pytest.fixture
def clock():
    return FakeClock(slot("07:30"))


@pytest.fixture
def timers(clock):
    return ManualTimers(clock)


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def supervisor(session_factory, settings, sink, timers, clock):
    return MedicationSupervisor(session_factory, settings, sink=sink, timers=timers, clock=clock)


# ============================================================================
# DATOS DE PRUEBA
# ============================================================================


@pytest.fixture
def family(db):
    """Paciente con dueña, observador y una cuidadora (sin turno abierto)"""
    patient = Patient(name="Rosa Pérez", timezone=TZ)
    owner = User(email="ana@example.com", name="Ana Pérez", phone="+56911111111", role=UserRole.OBSERVER)
    observer = User(email="luis@example.com", name="Luis Pérez", role=UserRole.OBSERVER)
    caregiver = User(email="marta@example.com", name="Marta Soto", phone="+56922222222", role=UserRole.CAREGIVER)
    db.add_all([patient, owner, observer, caregiver])
    db.flush()

    db.add_all([
        PatientAccess(patient_id=patient.id, user_id=owner.id, access_level=AccessLevel.OWNER),
        PatientAccess(patient_id=patient.id, user_id=observer.id, access_level=AccessLevel.OBSERVER),
    ])
    db.commit()

    return SimpleNamespace(
        patient_id=patient.id,
        owner_id=owner.id,
        observer_id=observer.id,
        caregiver_id=caregiver.id,
    )


@pytest.fixture
def check_in(db):
    def _check_in(caregiver_id: int, patient_id: int, at: datetime, check_out: Optional[datetime] = None) -> int:
        attendance = Attendance(
            caregiver_id=caregiver_id,
            patient_id=patient_id,
            check_in_time=at,
            check_out_time=check_out,
        )
        db.add(attendance)
        db.commit()
        return attendance.id

    return _check_in


@pytest.fixture
def add_medication(db):
    def _add_medication(
            patient_id: int,
            name: str = "Escitalopram",
            dose: str = "10mg",
            schedule_times: Optional[List[str]] = None,
            critical: bool = True,
            alert: int = 10,
            escalate: int = 20,
            reminder: int = 10,
            active: bool = True
    ) -> int:
        medication = Medication(
            patient_id=patient_id,
            name=name,
            dose=dose,
            schedule_times=schedule_times or ["08:00"],
            critical=critical,
            alert_after_minutes=alert,
            escalate_after_minutes=escalate,
            reminder_before_minutes=reminder,
            active=active,
        )
        db.add(medication)
        db.commit()
        return medication.id

    return _add_medication
