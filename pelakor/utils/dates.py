from __future__ import annotations

from datetime import date, datetime
from typing import Any

BULAN = (
    "Januari", "Februari", "Maret", "April", "Mei", "Juni",
    "Juli", "Agustus", "September", "Oktober", "November", "Desember",
)
BULAN_SINGKAT = ("Jan", "Feb", "Mar", "Apr", "Mei", "Jun", "Jul", "Agu", "Sep", "Okt", "Nov", "Des")
HARI = ("Senin", "Selasa", "Rabu", "Kamis", "Jumat", "Sabtu", "Minggu")


def parse_datetime(value: Any) -> datetime | None:
    """Parse backend timestamps (ISO 8601, optionally with a trailing Z)."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    s = str(value).strip()
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(s)
    except ValueError:
        return None


def format_date(value: Any) -> str:
    """Numeric date, e.g. 19/10/2026; '-' when missing or unparseable."""
    dt = parse_datetime(value)
    if dt is None:
        return "-"
    return f"{dt.day}/{dt.month}/{dt.year}"


def format_date_long(value: Any, weekday: bool = False) -> str:
    dt = parse_datetime(value)
    if dt is None:
        return "-"
    out = f"{dt.day} {BULAN[dt.month - 1]} {dt.year}"
    if weekday:
        out = f"{HARI[dt.weekday()]}, {out}"
    return out


def format_datetime(value: Any) -> str:
    """Long date with time, e.g. 19 Oktober 2026 pukul 14.30."""
    dt = parse_datetime(value)
    if dt is None:
        return "-"
    return f"{dt.day} {BULAN[dt.month - 1]} {dt.year} pukul {dt.hour:02d}.{dt.minute:02d}"


def format_datetime_short(value: Any) -> str:
    """Compact form used in history lists, e.g. 05 Okt 2026, 14.30."""
    dt = parse_datetime(value)
    if dt is None:
        return "-"
    return f"{dt.day:02d} {BULAN_SINGKAT[dt.month - 1]} {dt.year}, {dt.hour:02d}.{dt.minute:02d}"


def greeting(now: datetime | None = None) -> str:
    hour = (now or datetime.now()).hour
    if hour < 12:
        return "Selamat Pagi"
    if hour < 17:
        return "Selamat Siang"
    if hour < 20:
        return "Selamat Sore"
    return "Selamat Malam"
