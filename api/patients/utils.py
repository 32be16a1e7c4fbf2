# api/patients/utils.py
"""Conversión de importes y fechas usados por la ficha del paciente"""

import math
from datetime import datetime, timezone as dt_timezone

from django.utils import timezone
from django.utils.dateparse import parse_date, parse_datetime


def to_number(value):
    """
    Convierte un valor de formulario a número.
    Vacío equivale a 0; lo que no es numérico (o no es finito) devuelve NaN.
    """
    if value is None:
        return math.nan
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (int, float)):
        return value if math.isfinite(value) else math.nan
    text = str(value).strip()
    if not text:
        return 0
    try:
        number = float(text)
    except ValueError:
        return math.nan
    return number if math.isfinite(number) else math.nan


def is_nan(value):
    return isinstance(value, float) and math.isnan(value)


def amount_or_zero(value):
    """Importe de un pago guardado; ausente o inválido cuenta como 0"""
    number = to_number(value)
    if is_nan(number):
        return 0
    return clean_number(number)


def clean_number(value):
    """50.0 -> 50, para que el JSON guardado no cambie de forma"""
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


def format_money(value):
    number = to_number(value)
    if is_nan(number):
        number = 0
    return f"${number:.2f}"


def timestamp_ms():
    return int(timezone.now().timestamp() * 1000)


def iso_timestamp(moment=None):
    """Formato 2024-01-05T12:30:00.000Z (UTC, milisegundos)"""
    moment = moment or timezone.now()
    if timezone.is_naive(moment):
        moment = moment.replace(tzinfo=dt_timezone.utc)
    moment = moment.astimezone(dt_timezone.utc)
    return moment.strftime("%Y-%m-%dT%H:%M:%S.") + f"{moment.microsecond // 1000:03d}Z"


def iso_from_day(day):
    """'2024-01-05' -> '2024-01-05T00:00:00.000Z'; None si no es una fecha"""
    parsed = parse_date(day or "")
    if parsed is None:
        return None
    return iso_timestamp(datetime(parsed.year, parsed.month, parsed.day, tzinfo=dt_timezone.utc))


def today_iso():
    """Día actual en UTC, YYYY-MM-DD"""
    return iso_timestamp()[:10]


def month_year(moment=None):
    moment = moment or timezone.localtime()
    return f"{moment.month:02d}/{moment.year}"


def format_date(value):
    """Fecha legible DD/MM/YYYY; devuelve el texto original si no se puede leer"""
    if not value:
        return ""
    try:
        parsed = parse_datetime(value)
    except ValueError:
        parsed = None
    if parsed is None:
        try:
            day = parse_date(value[:10])
        except ValueError:
            day = None
        return day.strftime("%d/%m/%Y") if day else value
    if timezone.is_aware(parsed):
        parsed = timezone.localtime(parsed)
    return parsed.strftime("%d/%m/%Y")


def format_time(value):
    try:
        parsed = parse_datetime(value or "")
    except ValueError:
        parsed = None
    if parsed is None:
        return ""
    if timezone.is_aware(parsed):
        parsed = timezone.localtime(parsed)
    return parsed.strftime("%H:%M")
