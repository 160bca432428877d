from __future__ import annotations

import csv
import math
from collections import Counter
from datetime import datetime, timezone
from io import StringIO

from pms.core.models import WorkflowCase, utcnow
from pms.workflow.case_types import WORKFLOWS
from pms.workflow.services import list_cases

REPORT_HEADERS: dict[str, list[str]] = {
    "status": ["case_type", "status", "count"],
    "turnaround": ["case_type", "issued", "mean_days", "p50_days", "p90_days"],
    "sla": ["case_number", "case_type", "status", "sla_due", "hours_overdue"],
}


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; everything is stored in UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def nearest_rank(values: list[float], percentile: float) -> float | None:
    if not values:
        return None
    ordered = sorted(values)
    rank = max(1, math.ceil(percentile / 100 * len(ordered)))
    return ordered[rank - 1]


def status_counts(filters: dict[str, str]) -> list[dict[str, object]]:
    counts = Counter((case.case_type.value, case.status) for case in list_cases(filters))
    return [
        {"case_type": case_type, "status": status, "count": count}
        for (case_type, status), count in sorted(counts.items())
    ]


def turnaround_stats(filters: dict[str, str]) -> list[dict[str, object]]:
    durations: dict[str, list[float]] = {}
    for case in list_cases(filters):
        if not case.issued_at:
            continue
        delta = _as_utc(case.issued_at) - _as_utc(case.created_at)
        durations.setdefault(case.case_type.value, []).append(delta.total_seconds() / 86400)

    rows: list[dict[str, object]] = []
    for case_type in sorted(durations):
        values = durations[case_type]
        rows.append(
            {
                "case_type": case_type,
                "issued": len(values),
                "mean_days": round(sum(values) / len(values), 2),
                "p50_days": round(nearest_rank(values, 50), 2),
                "p90_days": round(nearest_rank(values, 90), 2),
            }
        )
    return rows


def sla_breaches(now: datetime | None = None) -> list[dict[str, object]]:
    reference = _as_utc(now or utcnow())
    tracked = [definition.case_type for definition in WORKFLOWS.values() if definition.sla_hours]
    rows: list[dict[str, object]] = []
    cases = (
        WorkflowCase.query.filter(WorkflowCase.case_type.in_(tracked))
        .filter(WorkflowCase.sla_due.is_not(None))
        .order_by(WorkflowCase.sla_due.asc(), WorkflowCase.id.asc())
        .all()
    )
    for case in cases:
        if case.status in WORKFLOWS[case.case_type].terminal_statuses:
            continue
        due = _as_utc(case.sla_due)
        if due >= reference:
            continue
        rows.append(
            {
                "case_number": case.case_number,
                "case_type": case.case_type.value,
                "status": case.status,
                "sla_due": due.isoformat(),
                "hours_overdue": round((reference - due).total_seconds() / 3600, 1),
            }
        )
    return rows


def report_rows(report_key: str, filters: dict[str, str]) -> list[dict[str, object]]:
    if report_key == "status":
        return status_counts(filters)
    if report_key == "turnaround":
        return turnaround_stats(filters)
    if report_key == "sla":
        return sla_breaches()
    raise ValueError("Invalid report")


def report_csv_bytes(report_key: str, filters: dict[str, str]) -> bytes:
    rows = report_rows(report_key, filters)
    headers = REPORT_HEADERS[report_key]
    stream = StringIO()
    writer = csv.DictWriter(stream, fieldnames=headers)
    writer.writeheader()
    for row in rows:
        writer.writerow({key: row.get(key, "") for key in headers})
    return stream.getvalue().encode("utf-8")
