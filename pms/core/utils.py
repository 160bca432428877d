from __future__ import annotations

from datetime import datetime
from decimal import Decimal


def money(value: Decimal | float | int | None) -> str:
    if value is None:
        return "-"
    return f"INR {Decimal(value):,.2f}"


def parse_optional_datetime(value: str | datetime | None, field_name: str) -> datetime | None:
    if value is None or isinstance(value, datetime):
        return value
    raw = str(value).strip()
    if not raw:
        return None
    try:
        return datetime.fromisoformat(raw.replace("Z", "+00:00"))
    except ValueError as exc:
        raise ValueError(f"Invalid date for {field_name}") from exc


def parse_optional_int(value: str | int | None, field_name: str) -> int | None:
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ValueError(f"Invalid {field_name}")
    if isinstance(value, int):
        return value
    raw = str(value).strip()
    if not raw.isdigit():
        raise ValueError(f"Invalid {field_name}")
    return int(raw)
