from __future__ import annotations

import threading

import pytest

from pms import create_app
from pms.core.config import Config
from pms.core.extensions import db
from pms.core.models import SequenceCounter
from pms.workflow.sequences import current_value, format_code, next_code, next_value, reset_counter


def test_first_allocation_starts_at_one_and_is_zero_padded(app):
    assert current_value("DEM", 2024) is None
    assert next_code("DEM", 2024) == "DEM-2024-000001"
    assert next_code("DEM", 2024) == "DEM-2024-000002"
    assert current_value("DEM", 2024) == 2


def test_counters_are_independent_per_prefix_and_year(app):
    assert next_value("DEM", 2024) == 1
    assert next_value("DEM", 2024) == 2
    assert next_value("DEM", 2025) == 1
    assert next_value("DEM-CERT", 2024) == 1
    assert SequenceCounter.query.count() == 3


def test_prefix_is_normalized(app):
    assert next_code(" wc ", 2024) == "WC-2024-000001"
    assert next_code("WC", 2024) == "WC-2024-000002"


@pytest.mark.parametrize("prefix, year", [("", 2024), ("   ", 2024), ("DEM", 0), ("DEM", True), ("DEM", "2024")])
def test_invalid_keys_are_rejected(app, prefix, year):
    with pytest.raises(ValueError):
        next_value(prefix, year)


def test_rolled_back_allocation_is_given_back(app):
    assert next_value("OC", 2024) == 1
    db.session.commit()
    assert next_value("OC", 2024) == 2
    db.session.rollback()
    assert current_value("OC", 2024) == 1
    assert next_value("OC", 2024) == 2


def test_rolled_back_first_allocation_leaves_no_counter(app):
    next_value("CC", 2024)
    db.session.rollback()
    assert current_value("CC", 2024) is None


def test_reset_counter_reseeds_without_counting_rows(app):
    reset_counter("dem", 2024, 6)
    db.session.commit()
    assert next_code("DEM", 2024) == "DEM-2024-000007"

    reset_counter("DEM", 2024, 0)
    assert next_value("DEM", 2024) == 1


def test_reset_counter_rejects_negative_values(app):
    with pytest.raises(ValueError):
        reset_counter("DEM", 2024, -1)


def test_format_code():
    assert format_code("TRF", 2026, 42) == "TRF-2026-000042"
    assert format_code("X", 2026, 1234567) == "X-2026-1234567"


def test_concurrent_allocations_are_distinct_and_contiguous(tmp_path):
    class FileConfig(Config):
        TESTING = True
        LOG_LEVEL = "WARNING"
        SQLALCHEMY_DATABASE_URI = f"sqlite:///{tmp_path / 'sequences.db'}"
        SQLALCHEMY_ENGINE_OPTIONS = {"connect_args": {"timeout": 30}}

    app = create_app(FileConfig)
    with app.app_context():
        db.create_all()
        next_value("DEM", 2024)
        db.session.commit()

    results: list[int] = []
    errors: list[Exception] = []
    lock = threading.Lock()

    def worker() -> None:
        with app.app_context():
            try:
                for _ in range(5):
                    value = next_value("DEM", 2024)
                    db.session.commit()
                    with lock:
                        results.append(value)
            except Exception as exc:
                errors.append(exc)
            finally:
                db.session.remove()

    threads = [threading.Thread(target=worker) for _ in range(6)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert errors == []
    assert sorted(results) == list(range(2, 32))

    with app.app_context():
        assert current_value("DEM", 2024) == 31
        db.drop_all()
        db.engine.dispose()
