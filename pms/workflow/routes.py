from __future__ import annotations

from flask import jsonify, make_response, request
from flask_login import current_user, login_required

from pms.core.errors import WorkflowError
from pms.core.permissions import require_role
from pms.workflow import public_bp, workflow_bp
from pms.workflow.reports import report_csv_bytes, report_rows
from pms.workflow.services import (
    advance_case,
    assess_valuation,
    case_by_hash,
    case_detail,
    case_document,
    case_to_dict,
    close_case,
    complete_inspection,
    create_case,
    issue_case,
    list_cases,
    reject_case,
    schedule_inspection,
    start_inspection,
    update_checklist,
)

ERROR_STATUS = {"not_found": 404, "conflict": 409}


def _json_body() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


@workflow_bp.errorhandler(WorkflowError)
def workflow_error(exc: WorkflowError):
    return jsonify({"error": exc.kind, "message": str(exc)}), ERROR_STATUS.get(exc.kind, 400)


@workflow_bp.errorhandler(ValueError)
def validation_error(exc: ValueError):
    return jsonify({"error": "validation_error", "message": str(exc)}), 400


@workflow_bp.get("/cases")
@login_required
def cases_index():
    rows = list_cases(request.args)
    return jsonify({"cases": [case_to_dict(case) for case in rows], "total": len(rows)})


@workflow_bp.post("/cases")
@login_required
def cases_create():
    case = create_case(_json_body(), current_user.id)
    return jsonify(case_to_dict(case)), 201


@workflow_bp.get("/cases/<int:case_id>")
@login_required
def case_show(case_id: int):
    return jsonify(case_detail(case_id))


@workflow_bp.post("/cases/<int:case_id>/checklist")
@login_required
def case_checklist(case_id: int):
    case = update_checklist(case_id, _json_body().get("checklist"), current_user.id)
    return jsonify(case_to_dict(case))


@workflow_bp.post("/cases/<int:case_id>/valuation")
@login_required
@require_role("officer", "admin")
def case_valuation(case_id: int):
    case = assess_valuation(case_id, _json_body(), current_user.id)
    return jsonify(case_to_dict(case))


@workflow_bp.post("/cases/<int:case_id>/inspection/schedule")
@login_required
def case_schedule_inspection(case_id: int):
    case = schedule_inspection(case_id, _json_body(), current_user.id)
    return jsonify(case_to_dict(case))


@workflow_bp.post("/cases/<int:case_id>/inspection/start")
@login_required
def case_start_inspection(case_id: int):
    case = start_inspection(case_id, current_user.id)
    return jsonify(case_to_dict(case))


@workflow_bp.post("/cases/<int:case_id>/inspection/complete")
@login_required
def case_complete_inspection(case_id: int):
    case = complete_inspection(case_id, _json_body(), current_user.id)
    return jsonify(case_to_dict(case))


@workflow_bp.post("/cases/<int:case_id>/issue")
@login_required
@require_role("officer", "admin")
def case_issue(case_id: int):
    case = issue_case(case_id, current_user.id)
    return jsonify(case_to_dict(case))


@workflow_bp.post("/cases/<int:case_id>/reject")
@login_required
@require_role("officer", "admin")
def case_reject(case_id: int):
    case = reject_case(case_id, _json_body().get("reason"), current_user.id)
    return jsonify(case_to_dict(case))


@workflow_bp.post("/cases/<int:case_id>/close")
@login_required
def case_close(case_id: int):
    case = close_case(case_id, _json_body().get("reason"), current_user.id)
    return jsonify(case_to_dict(case))


@workflow_bp.post("/cases/<int:case_id>/actions/<action>")
@login_required
def case_action(case_id: int, action: str):
    case = advance_case(case_id, action, current_user.id)
    return jsonify(case_to_dict(case))


@workflow_bp.get("/cases/<int:case_id>/document")
@login_required
def case_document_download(case_id: int):
    content, filename = case_document(case_id)
    response = make_response(content)
    response.headers["Content-Type"] = "application/pdf"
    response.headers["Content-Disposition"] = f'inline; filename="{filename}"'
    return response


@workflow_bp.get("/reports/<report_key>")
@login_required
def report(report_key: str):
    filters = request.args.to_dict()
    if report_key.endswith(".csv"):
        key = report_key[: -len(".csv")]
        response = make_response(report_csv_bytes(key, filters))
        response.headers["Content-Type"] = "text/csv; charset=utf-8"
        response.headers["Content-Disposition"] = f'attachment; filename="report-{key}.csv"'
        return response
    return jsonify({"report": report_key, "rows": report_rows(report_key, filters)})


@public_bp.get("/verify/<digest>")
def verify_document(digest: str):
    try:
        case = case_by_hash(digest)
    except WorkflowError as exc:
        return jsonify({"valid": False, "message": str(exc)}), 404
    return jsonify(
        {
            "valid": True,
            "certificate_number": case.certificate_number,
            "case_number": case.case_number,
            "case_type": case.case_type.value,
            "status": case.status,
            "parcel_no": case.subject.parcel_no,
            "issued_at": case.issued_at.isoformat(),
            "hash_sha256": case.hash_sha256,
        }
    )
