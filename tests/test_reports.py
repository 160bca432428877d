from __future__ import annotations

from datetime import timedelta

import pytest
from sqlalchemy import update

from pms.core.extensions import db
from pms.core.models import WorkflowCase, utcnow
from pms.workflow.reports import (
    nearest_rank,
    report_csv_bytes,
    sla_breaches,
    status_counts,
    turnaround_stats,
)
from pms.workflow.services import (
    complete_inspection,
    create_case,
    issue_case,
    reject_case,
    schedule_inspection,
)


def _issued_demarcation(ids) -> WorkflowCase:
    case = create_case(
        {"case_type": "DEMARCATION", "subject_id": ids["available_property"], "party_id": ids["asha"]},
        ids["officer"],
    )
    schedule_inspection(case.id, {}, ids["officer"])
    complete_inspection(case.id, {"result": {"passed": True}}, ids["inspector"])
    return issue_case(case.id, ids["officer"])


def _backdate(case: WorkflowCase, days: float) -> None:
    db.session.execute(
        update(WorkflowCase)
        .where(WorkflowCase.id == case.id)
        .values(created_at=case.issued_at - timedelta(days=days))
    )
    db.session.commit()


def test_nearest_rank_percentiles():
    values = [float(v) for v in range(1, 11)]
    assert nearest_rank(values, 50) == 5.0
    assert nearest_rank(values, 90) == 9.0
    assert nearest_rank([3.0], 90) == 3.0
    assert nearest_rank([], 50) is None


def test_status_counts_group_by_type_and_status(app, demo_ids):
    _issued_demarcation(demo_ids)
    draft = create_case(
        {"case_type": "DEMARCATION", "subject_id": demo_ids["available_property"], "party_id": demo_ids["rohit"]},
        demo_ids["officer"],
    )
    create_case(
        {"case_type": "DPC", "subject_id": demo_ids["available_property"], "party_id": demo_ids["rohit"]},
        demo_ids["officer"],
    )
    reject_case(draft.id, "Incomplete papers", demo_ids["officer"])

    assert status_counts({}) == [
        {"case_type": "DEMARCATION", "status": "certificate_issued", "count": 1},
        {"case_type": "DEMARCATION", "status": "rejected", "count": 1},
        {"case_type": "DPC", "status": "draft", "count": 1},
    ]
    assert status_counts({"case_type": "DPC"}) == [{"case_type": "DPC", "status": "draft", "count": 1}]


def test_turnaround_stats_use_creation_to_issuance_days(app, demo_ids):
    for days in (2, 4, 9):
        _backdate(_issued_demarcation(demo_ids), days)

    rows = turnaround_stats({})
    assert len(rows) == 1
    row = rows[0]
    assert row["case_type"] == "DEMARCATION"
    assert row["issued"] == 3
    assert row["mean_days"] == pytest.approx(5.0)
    assert row["p50_days"] == pytest.approx(4.0)
    assert row["p90_days"] == pytest.approx(9.0)


def test_sla_breaches_only_for_open_connections(app, demo_ids):
    late = create_case(
        {
            "case_type": "WATER_CONNECTION",
            "subject_id": demo_ids["commercial_property"],
            "party_id": demo_ids["builder"],
            "details": {"connection_category": "commercial"},
        },
        demo_ids["officer"],
    )
    rejected = create_case(
        {
            "case_type": "SEWERAGE_CONNECTION",
            "subject_id": demo_ids["commercial_property"],
            "party_id": demo_ids["builder"],
            "details": {"connection_category": "commercial"},
        },
        demo_ids["officer"],
    )
    reject_case(rejected.id, "Not serviceable", demo_ids["officer"])

    assert sla_breaches(utcnow()) == []

    rows = sla_breaches(utcnow() + timedelta(hours=49))
    assert [row["case_number"] for row in rows] == [late.case_number]
    assert rows[0]["status"] == "serviceability_checked"
    assert rows[0]["hours_overdue"] >= 1.0


def test_report_csv_bytes_and_unknown_key(app, demo_ids):
    _issued_demarcation(demo_ids)
    content = report_csv_bytes("turnaround", {}).decode("utf-8").splitlines()
    assert content[0] == "case_type,issued,mean_days,p50_days,p90_days"
    assert content[1].startswith("DEMARCATION,1,")

    with pytest.raises(ValueError):
        report_csv_bytes("payroll", {})
