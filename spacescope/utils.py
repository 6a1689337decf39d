"""Shared helpers for reading loosely-typed backend records."""
from __future__ import annotations


def num(record: dict | None, key: str, default: float = 0) -> float:
    """Numeric field with fallback for missing, null or non-numeric values."""
    if not record:
        return default
    value = record.get(key)
    if value is None or isinstance(value, bool):
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def flag(record: dict | None, key: str) -> bool:
    """Boolean capability flag; anything falsy or missing is False."""
    return bool(record.get(key)) if record else False


def text(record: dict | None, key: str, default: str = "N/A") -> str:
    """Display string with fallback."""
    if not record:
        return default
    value = record.get(key)
    return str(value) if value not in (None, "") else default


def find_country(countries: list[dict], ref: str | int) -> dict | None:
    """Look up a country by numeric ``id`` or 3-letter ``isoCode``."""
    ref_s = str(ref).strip()
    if not ref_s:
        return None
    for c in countries:
        if str(c.get("id")) == ref_s:
            return c
    upper = ref_s.upper()
    for c in countries:
        if (c.get("isoCode") or "").upper() == upper:
            return c
    return None
