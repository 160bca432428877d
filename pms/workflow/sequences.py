"""Per-(prefix, year) document numbering.

Codes look like ``DEM-2024-000007``. Each allocation is one
``UPDATE sequence_counter SET current_value = current_value + 1`` on the
counter row, so concurrent callers serialize on the row lock and never see
the same value. Numbers are never derived by counting existing records.

Nothing here commits: the allocation belongs to the caller's transaction and
is given back if that transaction rolls back.
"""

from __future__ import annotations

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError

from pms.core.extensions import db
from pms.core.logging import get_logger
from pms.core.models import SequenceCounter

logger = get_logger(__name__)

CODE_DIGITS = 6


def _normalize_key(prefix: str, year: int) -> tuple[str, int]:
    normalized = (prefix or "").strip().upper()
    if not normalized:
        raise ValueError("Sequence prefix is required")
    if isinstance(year, bool) or not isinstance(year, int) or year <= 0:
        raise ValueError("Sequence year must be a positive integer")
    return normalized, year


def format_code(prefix: str, year: int, value: int) -> str:
    return f"{prefix}-{year}-{value:0{CODE_DIGITS}d}"


def _increment(prefix: str, year: int) -> bool:
    result = db.session.execute(
        update(SequenceCounter)
        .where(SequenceCounter.prefix == prefix, SequenceCounter.year == year)
        .values(current_value=SequenceCounter.current_value + 1)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def _create_counter(prefix: str, year: int) -> None:
    # A concurrent first caller may insert the same key; only the savepoint is lost.
    savepoint = db.session.begin_nested()
    try:
        db.session.add(SequenceCounter(prefix=prefix, year=year, current_value=0))
        db.session.flush()
        savepoint.commit()
    except IntegrityError:
        savepoint.rollback()
        logger.debug("sequence_counter_race", extra={"prefix": prefix, "year": year})


def next_value(prefix: str, year: int) -> int:
    """Allocate the next integer for ``(prefix, year)``, starting at 1."""
    prefix, year = _normalize_key(prefix, year)
    if not _increment(prefix, year):
        _create_counter(prefix, year)
        if not _increment(prefix, year):
            raise RuntimeError(f"Sequence counter {prefix}-{year} could not be allocated")

    value = db.session.execute(
        select(SequenceCounter.current_value).where(
            SequenceCounter.prefix == prefix,
            SequenceCounter.year == year,
        )
    ).scalar_one()
    logger.debug("sequence_allocated", extra={"prefix": prefix, "year": year, "value": value})
    return value


def next_code(prefix: str, year: int) -> str:
    normalized, year = _normalize_key(prefix, year)
    return format_code(normalized, year, next_value(normalized, year))


def current_value(prefix: str, year: int) -> int | None:
    prefix, year = _normalize_key(prefix, year)
    return db.session.execute(
        select(SequenceCounter.current_value).where(
            SequenceCounter.prefix == prefix,
            SequenceCounter.year == year,
        )
    ).scalar_one_or_none()


def reset_counter(prefix: str, year: int, value: int = 0) -> None:
    """Reseed a counter, e.g. after importing legacy records.

    Lowering a counter below an already issued number makes the next
    allocation collide with the unique case/certificate number constraints.
    """
    prefix, year = _normalize_key(prefix, year)
    if value < 0:
        raise ValueError("Sequence value cannot be negative")
    counter = db.session.execute(
        select(SequenceCounter)
        .where(SequenceCounter.prefix == prefix, SequenceCounter.year == year)
        .with_for_update()
    ).scalar_one_or_none()
    if counter is None:
        db.session.add(SequenceCounter(prefix=prefix, year=year, current_value=value))
    else:
        counter.current_value = value
    db.session.flush()
    logger.info("sequence_reset", extra={"prefix": prefix, "year": year, "value": value})
