"""Reloj y temporizadores del programador.

Envoltura delgada sobre APScheduler (AsyncIOScheduler) para agendar
callbacks únicos, diarios e intervalos sobre el event loop de la aplicación.
Todos los instantes son UTC naive, igual que en la base de datos.
"""

import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.date import DateTrigger
from apscheduler.triggers.interval import IntervalTrigger
from pytz import utc

from app.utils.timezone import get_timezone, utcnow

logger = logging.getLogger(__name__)


class Clock:
    """Fuente de la hora actual (UTC naive)"""

    def now(self) -> datetime:
        return utcnow()


class TimerFacility:
    """Temporizadores basados en APScheduler.

    Los jobs se identifican por un id estable; agendar con un id existente
    reemplaza el job anterior.
    """

    def __init__(self, misfire_grace_seconds: int = 300):
        self._scheduler = AsyncIOScheduler(
            timezone=utc,
            job_defaults={
                "coalesce": True,
                "max_instances": 1,
                "misfire_grace_time": misfire_grace_seconds,
            },
        )
        self._is_running = False

    def start(self) -> None:
        """Iniciar el scheduler (requiere un event loop en ejecución)"""
        if self._is_running:
            logger.warning("TimerFacility ya está en ejecución")
            return
        self._scheduler.start()
        self._is_running = True
        logger.info("⏱️ TimerFacility iniciado")

    def shutdown(self) -> None:
        """Detener el scheduler sin esperar jobs en curso"""
        if self._is_running:
            self._scheduler.shutdown(wait=False)
            self._is_running = False
            logger.info("🛑 TimerFacility detenido")

    @property
    def is_running(self) -> bool:
        return self._is_running

    def call_at(self, job_id: str, run_at: datetime, callback: Callable, *args: Any) -> str:
        """Agendar un callback único en un instante UTC naive"""
        self._scheduler.add_job(
            callback,
            DateTrigger(run_date=utc.localize(run_at)),
            args=list(args),
            id=job_id,
            replace_existing=True,
        )
        return job_id

    def call_daily(
            self,
            job_id: str,
            hour: int,
            minute: int,
            tz_name: str,
            callback: Callable,
            *args: Any
    ) -> str:
        """Agendar un callback diario a una hora local"""
        self._scheduler.add_job(
            callback,
            CronTrigger(hour=hour, minute=minute, timezone=get_timezone(tz_name)),
            args=list(args),
            id=job_id,
            replace_existing=True,
        )
        return job_id

    def call_every(self, job_id: str, minutes: int, callback: Callable, *args: Any) -> str:
        """Agendar un callback cada N minutos"""
        self._scheduler.add_job(
            callback,
            IntervalTrigger(minutes=minutes, timezone=utc),
            args=list(args),
            id=job_id,
            replace_existing=True,
        )
        return job_id

    def cancel(self, job_id: str) -> bool:
        """Cancelar un job; False si ya no existía"""
        try:
            self._scheduler.remove_job(job_id)
            return True
        except JobLookupError:
            return False

    def has_job(self, job_id: str) -> bool:
        return self._scheduler.get_job(job_id) is not None

    def get_jobs_info(self) -> List[Dict[str, Optional[str]]]:
        """Información de los jobs agendados"""
        return [
            {
                "id": job.id,
                "next_run": job.next_run_time.isoformat() if job.next_run_time else None,
            }
            for job in self._scheduler.get_jobs()
        ]
