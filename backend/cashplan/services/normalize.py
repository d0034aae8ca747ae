"""Value coercion shared by every normalizer.

Snapshots arrive loosely typed: amounts may be German-formatted strings ("1.234,56"),
dates may be ISO or German ("21.02.2025"), flags may be "ja"/"yes"/1. Everything here
returns ``None`` (or a caller-supplied default) on bad input instead of raising.
"""

from __future__ import annotations

import calendar
import math
import re
from datetime import date, datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Iterable, Mapping, Optional

_ISO_PREFIX_RE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})")
_DE_DATE_RE = re.compile(r"^(\d{1,2})\.(\d{1,2})\.(\d{4})$")
_MONTH_RE = re.compile(r"^\d{4}-\d{2}$")
_THOUSANDS_DOT_RE = re.compile(r"^-?\d{1,3}(?:\.\d{3})+$")

_PAID_LIKE = {"paid", "bezahlt", "done", "true", "1", "yes", "ja"}


def pick(raw: Mapping[str, Any], aliases: Iterable[str]) -> Any:
    """Return the first alias value that is present and not blank."""

    for name in aliases:
        if name not in raw:
            continue
        value = raw[name]
        if value is None:
            continue
        if isinstance(value, str) and not value.strip():
            continue
        return value
    return None


def parse_number(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
        return number if math.isfinite(number) else None

    s = str(value).strip().replace("\u00a0", "").replace(" ", "")
    s = s.replace("€", "").replace("$", "").replace("%", "")
    if not s:
        return None

    if "," in s and "." in s:
        s = s.replace(".", "").replace(",", ".")
    elif "," in s:
        s = s.replace(",", ".")
    elif _THOUSANDS_DOT_RE.match(s):
        s = s.replace(".", "")

    try:
        number = float(s)
    except ValueError:
        return None
    return number if math.isfinite(number) else None


def parse_int(value: Any, default: int = 0) -> int:
    number = parse_number(value)
    if number is None:
        return default
    return int(round(number))


def parse_bool(value: Any, default: Optional[bool] = None) -> Optional[bool]:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    s = str(value).strip().lower()
    if not s:
        return default
    if s in {"1", "true", "yes", "y", "on", "ja"}:
        return True
    if s in {"0", "false", "no", "n", "off", "nein"}:
        return False
    return default


def is_paid_like(value: Any) -> bool:
    if value is True or value == 1:
        return True
    return str(value or "").strip().lower() in _PAID_LIKE


def parse_date(value: Any) -> Optional[date]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value

    raw = str(value).strip()
    if not raw:
        return None

    m = _ISO_PREFIX_RE.match(raw)
    if m:
        return _safe_date(int(m.group(1)), int(m.group(2)), int(m.group(3)))

    m = _DE_DATE_RE.match(raw)
    if m:
        return _safe_date(int(m.group(3)), int(m.group(2)), int(m.group(1)))

    return None


def _safe_date(year: int, month: int, day: int) -> Optional[date]:
    try:
        return date(year, month, day)
    except ValueError:
        return None


def normalize_month(value: Any) -> str:
    raw = str(value or "").strip()
    return raw if _MONTH_RE.match(raw) else ""


def month_key(d: Optional[date]) -> str:
    return d.strftime("%Y-%m") if d else ""


def add_days(d: Optional[date], days: int) -> Optional[date]:
    if d is None:
        return None
    try:
        return d + timedelta(days=int(days or 0))
    except OverflowError:
        return None


def month_end_after(d: date, months: int) -> date:
    """Last calendar day of the month ``months`` after the month of ``d``."""

    total = d.year * 12 + (d.month - 1) + int(months or 0)
    year, month = divmod(total, 12)
    month += 1
    return date(year, month, calendar.monthrange(year, month)[1])


def round2(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number):
        return None
    try:
        q = Decimal(repr(number)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    except InvalidOperation:
        return None
    return float(q)


def clamp_pct(value: Any) -> float:
    pct = parse_number(value) or 0.0
    return max(0.0, min(100.0, pct))


def normalize_key(value: Any) -> str:
    return str(value or "").strip().lower()


def text(value: Any) -> str:
    return str(value).strip() if value is not None else ""
