"""
Utilidades de zona horaria
La base de datos guarda timestamps UTC sin tzinfo; los horarios de
medicamentos se expresan en la hora local del paciente.
"""
from datetime import date, datetime, time, timedelta
from typing import Optional
import pytz

UTC = pytz.utc


def utcnow() -> datetime:
    """Hora actual en UTC como datetime naive (compatible con la base de datos)"""
    return datetime.now(UTC).replace(tzinfo=None)


def parse_time_of_day(value: str) -> time:
    """Parsear un horario "HH:MM" (24h). Lanza ValueError si el formato es inválido"""
    if not isinstance(value, str) or len(value.strip()) != 5:
        raise ValueError(f"Formato de hora inválido: {value!r}. Use HH:MM")
    return datetime.strptime(value.strip(), "%H:%M").time()


def get_timezone(tz_name: str):
    """Obtener zona horaria pytz; lanza ValueError si no existe"""
    try:
        return pytz.timezone(tz_name)
    except pytz.UnknownTimeZoneError:
        raise ValueError(f"Zona horaria desconocida: {tz_name}")


def to_local(dt: datetime, tz_name: str) -> datetime:
    """Convertir un datetime UTC naive a la hora local (aware)"""
    return UTC.localize(dt).astimezone(get_timezone(tz_name))


def local_today(tz_name: str, now: Optional[datetime] = None) -> date:
    """Fecha local del paciente para un instante UTC naive"""
    return to_local(now or utcnow(), tz_name).date()


def local_slot_to_utc(day: date, time_of_day: str, tz_name: str) -> datetime:
    """
    Instante absoluto (UTC naive) de un horario local en un día dado.
    En cambios de horario se usa la interpretación estándar (is_dst=False).
    """
    tz = get_timezone(tz_name)
    local_dt = tz.localize(datetime.combine(day, parse_time_of_day(time_of_day)), is_dst=False)
    return local_dt.astimezone(UTC).replace(tzinfo=None)


def shift_time_of_day(time_of_day: str, minutes: int) -> str:
    """Desplazar un horario HH:MM en minutos (envuelve a las 24h)"""
    base = datetime.combine(date(2000, 1, 1), parse_time_of_day(time_of_day))
    return (base + timedelta(minutes=minutes)).strftime("%H:%M")


def in_quiet_hours(local_dt: datetime, start: Optional[str], end: Optional[str]) -> bool:
    """
    Verificar si una hora local cae en horario de silencio.
    La ventana puede cruzar la medianoche (p.ej. 22:00 - 07:00).
    """
    if not start or not end:
        return False

    current = local_dt.time().replace(second=0, microsecond=0, tzinfo=None)
    start_t = parse_time_of_day(start)
    end_t = parse_time_of_day(end)

    if start_t == end_t:
        return False
    if start_t < end_t:
        return start_t <= current < end_t
    return current >= start_t or current < end_t
