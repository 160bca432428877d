from __future__ import annotations

from datetime import date, datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Callable

from flask import current_app
from sqlalchemy import update
from sqlalchemy.orm import joinedload

from pms.core.errors import (
    ConflictError,
    IncompleteChecklistError,
    InvalidStateError,
    NoInspectionScheduledError,
    NotFoundError,
)
from pms.core.extensions import db
from pms.core.logging import get_logger
from pms.core.models import (
    CaseEvent,
    CaseType,
    Inspection,
    InspectionStatus,
    Party,
    Property,
    PropertyStatus,
    User,
    WorkflowCase,
    utcnow,
)
from pms.core.utils import parse_optional_datetime, parse_optional_int
from pms.workflow.case_types import (
    ASSESS_VALUATION,
    CLOSE,
    COMPLETE_INSPECTION,
    ISSUE,
    PLAIN_ACTIONS,
    REJECT,
    SCHEDULE_INSPECTION,
    UPDATE_CHECKLIST,
    Transition,
    WorkflowDefinition,
    parse_case_type,
    workflow_for,
)
from pms.workflow.documents import (
    document_path,
    load_document,
    render_document,
    sha256_hex,
    store_document,
    verification_url,
)
from pms.workflow.sequences import next_code

logger = get_logger(__name__)

CONNECTION_CATEGORIES = ("domestic", "commercial", "industrial")
CONNECTION_FEES: dict[CaseType, dict[str, Decimal]] = {
    CaseType.WATER_CONNECTION: {
        "domestic": Decimal("5000"),
        "commercial": Decimal("15000"),
        "industrial": Decimal("50000"),
    },
    CaseType.SEWERAGE_CONNECTION: {
        "domestic": Decimal("3000"),
        "commercial": Decimal("10000"),
        "industrial": Decimal("30000"),
    },
}
FEE_FREE_AREA = Decimal("500")
FEE_PER_EXTRA_AREA_UNIT = Decimal("10")

TRANSFER_TYPES = ("sale", "gift", "inheritance")
DEED_TYPES = ("sale", "gift", "mortgage", "lease", "partition", "exchange", "poa", "will")
MORTGAGE_HOLDING_STATUSES = ("approved", "active")

CENT = Decimal("0.01")
STAMP_DUTY_PERCENT = Decimal("5")
REGISTRATION_FEE_BASE = Decimal("1000")
REGISTRATION_FEE_PERCENT = Decimal("1")
REGISTRATION_FEE_CAP = Decimal("100000")


def _current_year() -> int:
    return utcnow().year


def _parse_optional_iso_date(value: str | None) -> date | None:
    raw = (value or "").strip()
    if not raw:
        return None
    return date.fromisoformat(raw)


def _parse_decimal(value: Any, field_name: str) -> Decimal | None:
    if value is None or value == "":
        return None
    try:
        parsed = Decimal(str(value).strip())
    except InvalidOperation as exc:
        raise ValueError(f"Invalid {field_name}") from exc
    if parsed < 0:
        raise ValueError(f"{field_name} cannot be negative")
    return parsed


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def case_to_dict(case: WorkflowCase) -> dict[str, object]:
    return {
        "id": case.id,
        "case_type": case.case_type.value,
        "case_number": case.case_number,
        "certificate_number": case.certificate_number,
        "status": case.status,
        "version": case.version,
        "subject_id": case.subject_id,
        "party_id": case.party_id,
        "counterparty_id": case.counterparty_id,
        "details": case.details or {},
        "checklist": case.checklist,
        "inspection_id": case.inspection_id,
        "fee": str(case.fee) if case.fee is not None else None,
        "sla_due": _iso(case.sla_due),
        "pdf_path": case.pdf_path,
        "hash_sha256": case.hash_sha256,
        "qr_code": case.qr_code,
        "issued_at": _iso(case.issued_at),
        "issued_by": case.issued_by,
        "rejection_reason": case.rejection_reason,
        "closure_reason": case.closure_reason,
        "created_by": case.created_by,
        "created_at": _iso(case.created_at),
        "updated_at": _iso(case.updated_at),
    }


def inspection_to_dict(inspection: Inspection) -> dict[str, object]:
    return {
        "id": inspection.id,
        "case_id": inspection.case_id,
        "subject_id": inspection.subject_id,
        "inspection_type": inspection.inspection_type,
        "scheduled_at": _iso(inspection.scheduled_at),
        "inspected_by": inspection.inspected_by,
        "status": inspection.status.value,
        "result": inspection.result,
        "photos": inspection.photos or [],
        "remarks": inspection.remarks,
        "inspected_at": _iso(inspection.inspected_at),
    }


def event_to_dict(event: CaseEvent) -> dict[str, object]:
    return {
        "id": event.id,
        "event_type": event.event_type,
        "from_status": event.from_status,
        "to_status": event.to_status,
        "details": event.details,
        "user_id": event.user_id,
        "event_at": _iso(event.event_at),
    }


def _load_case(case_id: int) -> WorkflowCase:
    case = db.session.get(WorkflowCase, case_id)
    if not case:
        raise NotFoundError("Case not found")
    return case


def _get_property(property_id: int) -> Property:
    subject = db.session.get(Property, property_id)
    if not subject:
        raise NotFoundError("Property not found")
    return subject


def _get_party(party_id: int) -> Party:
    party = db.session.get(Party, party_id)
    if not party:
        raise NotFoundError("Party not found")
    return party


def _guard(definition: WorkflowDefinition, case: WorkflowCase, action: str) -> Transition:
    transition = definition.transition(action)
    if case.status not in transition.sources:
        raise InvalidStateError(transition.sources, case.status)
    return transition


def _sla_due(definition: WorkflowDefinition, status: str, now: datetime) -> datetime | None:
    hours = definition.sla_deadline_hours(status)
    if hours is None:
        return None
    return now + timedelta(hours=hours)


def _apply_transition(
    case: WorkflowCase,
    definition: WorkflowDefinition,
    target: str,
    event_type: str,
    user_id: int | None,
    note: str = "",
    side_effect: Callable[[], None] | None = None,
    after_commit: Callable[[], None] | None = None,
    **values: Any,
) -> WorkflowCase:
    """Write the new status only if the row still holds the version read earlier.

    Anything the action staged in the session (inspections, sequence
    allocations) is rolled back together with a lost race. ``after_commit``
    runs once the transaction is durable, for work outside the database.
    """
    case_id = case.id
    case_number = case.case_number
    expected = case.status
    observed_version = case.version
    now = utcnow()
    if definition.sla_hours and target != expected:
        values.setdefault("sla_due", _sla_due(definition, target, now))

    try:
        result = db.session.execute(
            update(WorkflowCase)
            .where(
                WorkflowCase.id == case_id,
                WorkflowCase.status == expected,
                WorkflowCase.version == observed_version,
            )
            .values(status=target, version=WorkflowCase.version + 1, updated_at=now, **values)
            .execution_options(synchronize_session=False)
        )
    except Exception:
        db.session.rollback()
        raise
    if result.rowcount != 1:
        db.session.rollback()
        logger.warning(
            "case_transition_conflict",
            extra={
                "case_number": case_number,
                "expected_status": expected,
                "expected_version": observed_version,
                "action": event_type,
            },
        )
        raise ConflictError(case_number, expected)

    db.session.add(
        CaseEvent(
            case_id=case_id,
            event_type=event_type,
            from_status=expected,
            to_status=target,
            details=note[:500],
            user_id=user_id,
        )
    )
    try:
        if side_effect is not None:
            side_effect()
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    logger.info(
        "case_transition",
        extra={
            "case_number": case_number,
            "action": event_type,
            "from_status": expected,
            "to_status": target,
        },
    )
    if after_commit is not None:
        after_commit()
    return _load_case(case_id)


def _validate_checklist(checklist: Any) -> dict[str, bool]:
    if not isinstance(checklist, dict):
        raise ValueError("Checklist must be an object of item -> true/false")
    cleaned: dict[str, bool] = {}
    for key, value in checklist.items():
        name = str(key).strip()
        if not name:
            raise ValueError("Checklist item names cannot be empty")
        if not isinstance(value, bool):
            raise ValueError(f"Checklist item '{name}' must be true or false")
        cleaned[name] = value
    return cleaned


def connection_fee(case_type: CaseType, category: str, area: Decimal | None) -> Decimal:
    try:
        fee = CONNECTION_FEES[case_type][category]
    except KeyError as exc:
        raise ValueError("Invalid connection category") from exc
    area_value = Decimal(area or 0)
    if area_value > FEE_FREE_AREA:
        fee += (area_value - FEE_FREE_AREA) * FEE_PER_EXTRA_AREA_UNIT
    return fee.quantize(CENT)


def _check_transfer(subject: Property, party: Party, details: dict[str, Any]) -> None:
    if subject.status != PropertyStatus.ALLOTTED:
        raise ValueError("Property must be allotted before it can be transferred")
    if subject.owner_id is not None and subject.owner_id != party.id:
        raise ValueError(f"{party.name} is not the recorded owner of {subject.parcel_no}")
    transfer_type = (details.get("transfer_type") or "").strip().lower()
    if transfer_type not in TRANSFER_TYPES:
        raise ValueError("Invalid transfer type. Must be one of: " + ", ".join(TRANSFER_TYPES))
    details["transfer_type"] = transfer_type
    amount = _parse_decimal(details.get("consideration_amount"), "consideration_amount")
    if amount is not None:
        details["consideration_amount"] = str(amount)


def _check_mortgage(subject: Property, details: dict[str, Any]) -> None:
    if subject.status not in {PropertyStatus.ALLOTTED, PropertyStatus.TRANSFERRED}:
        raise ValueError("Property must be allotted or transferred before it can be mortgaged")
    existing = (
        WorkflowCase.query.filter(WorkflowCase.case_type == CaseType.MORTGAGE)
        .filter(WorkflowCase.subject_id == subject.id)
        .filter(WorkflowCase.status.in_(MORTGAGE_HOLDING_STATUSES))
        .first()
    )
    if existing:
        raise ValueError(f"Property already has an active mortgage ({existing.case_number})")
    mortgagee = (details.get("mortgagee_name") or "").strip()
    if not mortgagee:
        raise ValueError("mortgagee_name is required")
    details["mortgagee_name"] = mortgagee
    amount = _parse_decimal(details.get("mortgage_amount"), "mortgage_amount")
    if amount is not None:
        details["mortgage_amount"] = str(amount)


def _check_registration(subject: Property, details: dict[str, Any]) -> None:
    deed_type = (details.get("deed_type") or "").strip().lower()
    if deed_type not in DEED_TYPES:
        raise ValueError("Invalid deed type. Must be one of: " + ", ".join(DEED_TYPES))
    details["deed_type"] = deed_type
    amount = _parse_decimal(details.get("consideration_amount"), "consideration_amount")
    if amount is not None:
        details["consideration_amount"] = str(amount)


def create_case(payload: dict[str, Any], user_id: int | None) -> WorkflowCase:
    case_type = parse_case_type(payload.get("case_type"))
    definition = workflow_for(case_type)

    subject_id = parse_optional_int(payload.get("subject_id"), "subject_id")
    if subject_id is None:
        raise ValueError("subject_id is required")
    party_id = parse_optional_int(payload.get("party_id"), "party_id")
    if party_id is None:
        raise ValueError("party_id is required")
    subject = _get_property(subject_id)
    party = _get_party(party_id)

    counterparty_id = parse_optional_int(payload.get("counterparty_id"), "counterparty_id")
    if definition.requires_counterparty and counterparty_id is None:
        raise ValueError(f"counterparty_id is required for {case_type.value} cases")
    counterparty = _get_party(counterparty_id) if counterparty_id is not None else None
    if counterparty and counterparty.id == party.id:
        raise ValueError("Counterparty must be different from the applicant")

    raw_details = payload.get("details") or {}
    if not isinstance(raw_details, dict):
        raise ValueError("details must be an object")
    details = dict(raw_details)

    checklist = None
    if payload.get("checklist") is not None:
        if not definition.supports(UPDATE_CHECKLIST):
            raise ValueError(f"{case_type.value} cases do not carry a checklist")
        checklist = _validate_checklist(payload["checklist"])

    fee = None
    if case_type == CaseType.TRANSFER:
        _check_transfer(subject, party, details)
    elif case_type == CaseType.MORTGAGE:
        _check_mortgage(subject, details)
    elif case_type == CaseType.REGISTRATION:
        _check_registration(subject, details)
    elif definition.is_connection:
        category = (details.get("connection_category") or "").strip().lower()
        if category not in CONNECTION_CATEGORIES:
            raise ValueError("Invalid connection category. Must be one of: " + ", ".join(CONNECTION_CATEGORIES))
        details["connection_category"] = category
        fee = connection_fee(case_type, category, subject.area)

    now = utcnow()
    case = WorkflowCase(
        case_type=case_type,
        case_number=next_code(definition.prefix, _current_year()),
        status=definition.initial_status,
        subject_id=subject.id,
        party_id=party.id,
        counterparty_id=counterparty.id if counterparty else None,
        details=details,
        checklist=checklist,
        fee=fee,
        sla_due=_sla_due(definition, definition.initial_status, now),
        created_by=user_id,
        created_at=now,
        updated_at=now,
    )
    db.session.add(case)
    db.session.flush()
    db.session.add(
        CaseEvent(
            case_id=case.id,
            event_type="created",
            from_status=None,
            to_status=case.status,
            details=f"{definition.title.title()} {case.case_number}",
            user_id=user_id,
        )
    )
    db.session.commit()
    logger.info(
        "case_created",
        extra={"case_number": case.case_number, "case_type": case_type.value, "to_status": case.status},
    )
    return case


def update_checklist(case_id: int, checklist: Any, user_id: int | None) -> WorkflowCase:
    case = _load_case(case_id)
    definition = workflow_for(case.case_type)
    transition = _guard(definition, case, UPDATE_CHECKLIST)
    cleaned = _validate_checklist(checklist)
    return _apply_transition(
        case,
        definition,
        transition.target,
        "checklist_updated",
        user_id,
        note=f"{sum(cleaned.values())}/{len(cleaned)} items satisfied",
        checklist=cleaned,
    )


def registration_charges(amount: Decimal) -> dict[str, Decimal]:
    """Stamp duty and registration fee owed on ``amount``."""
    stamp_duty = (amount * STAMP_DUTY_PERCENT / 100).quantize(CENT, rounding=ROUND_HALF_UP)
    registration_fee = min(
        REGISTRATION_FEE_BASE + amount * REGISTRATION_FEE_PERCENT / 100,
        REGISTRATION_FEE_CAP,
    ).quantize(CENT, rounding=ROUND_HALF_UP)
    return {
        "stamp_duty": stamp_duty,
        "registration_fee": registration_fee,
        "total": stamp_duty + registration_fee,
    }


def assess_valuation(case_id: int, payload: dict[str, Any], user_id: int | None) -> WorkflowCase:
    """Value the property at the circle rate and record the registration charges.

    Charges are levied on the declared consideration or the circle-rate
    valuation, whichever is higher. Re-assessing overwrites the earlier figures.
    """
    case = _load_case(case_id)
    definition = workflow_for(case.case_type)
    transition = _guard(definition, case, ASSESS_VALUATION)

    circle_rate = _parse_decimal(payload.get("circle_rate"), "circle_rate")
    if not circle_rate:
        raise ValueError("circle_rate is required")
    multipliers = payload.get("multipliers") or {}
    if not isinstance(multipliers, dict):
        raise ValueError("multipliers must be an object of name -> factor")

    valuation = circle_rate * Decimal(case.subject.area)
    for name, raw in multipliers.items():
        factor = _parse_decimal(raw, f"multiplier '{name}'")
        if factor is None:
            raise ValueError(f"Invalid multiplier '{name}'")
        valuation *= factor
    valuation = valuation.quantize(CENT, rounding=ROUND_HALF_UP)

    details = dict(case.details or {})
    consideration = _parse_decimal(details.get("consideration_amount"), "consideration_amount")
    assessed = max(consideration, valuation) if consideration is not None else valuation
    charges = registration_charges(assessed)
    details.update(
        {
            "circle_rate": str(circle_rate),
            "valuation": str(valuation),
            "assessed_amount": str(assessed),
            "stamp_duty": str(charges["stamp_duty"]),
            "registration_fee": str(charges["registration_fee"]),
            "total_charges": str(charges["total"]),
        }
    )
    return _apply_transition(
        case,
        definition,
        transition.target,
        "valuation_assessed",
        user_id,
        note=f"Valuation {valuation}, charges {charges['total']}",
        details=details,
    )


def schedule_inspection(case_id: int, payload: dict[str, Any], user_id: int | None) -> WorkflowCase:
    case = _load_case(case_id)
    definition = workflow_for(case.case_type)
    transition = _guard(definition, case, SCHEDULE_INSPECTION)

    missing = [key for key, value in (case.checklist or {}).items() if value is not True]
    if missing:
        raise IncompleteChecklistError(missing)

    scheduled_at = parse_optional_datetime(payload.get("scheduled_at"), "scheduled_at") or utcnow()
    inspector_id = parse_optional_int(payload.get("inspector_id"), "inspector_id")
    if inspector_id is not None and not db.session.get(User, inspector_id):
        raise NotFoundError("Inspector not found")

    inspection = Inspection(
        case_id=case.id,
        subject_id=case.subject_id,
        inspection_type=definition.slug,
        scheduled_at=scheduled_at,
        inspected_by=inspector_id,
        status=InspectionStatus.SCHEDULED,
        remarks=(payload.get("remarks") or "").strip()[:500],
    )
    db.session.add(inspection)
    db.session.flush()
    return _apply_transition(
        case,
        definition,
        transition.target,
        "inspection_scheduled",
        user_id,
        note=f"Inspection #{inspection.id} scheduled for {scheduled_at.isoformat()}",
        inspection_id=inspection.id,
    )


def _linked_inspection(case: WorkflowCase, definition: WorkflowDefinition) -> Inspection:
    transition = definition.transition(COMPLETE_INSPECTION)
    if case.inspection_id is None:
        raise NoInspectionScheduledError(case.case_number)
    if case.status not in transition.sources:
        raise InvalidStateError(transition.sources, case.status)
    inspection = db.session.get(Inspection, case.inspection_id)
    if not inspection:
        raise NotFoundError("Inspection not found")
    return inspection


def start_inspection(case_id: int, user_id: int | None) -> WorkflowCase:
    case = _load_case(case_id)
    definition = workflow_for(case.case_type)
    inspection = _linked_inspection(case, definition)
    if inspection.status != InspectionStatus.SCHEDULED:
        raise ValueError(f"Inspection #{inspection.id} is already {inspection.status.value}")

    result = db.session.execute(
        update(Inspection)
        .where(Inspection.id == inspection.id, Inspection.status == InspectionStatus.SCHEDULED)
        .values(status=InspectionStatus.IN_PROGRESS, inspected_by=inspection.inspected_by or user_id)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        db.session.rollback()
        raise ConflictError(case.case_number, case.status)
    return _apply_transition(
        case,
        definition,
        case.status,
        "inspection_started",
        user_id,
        note=f"Inspection #{inspection.id} started",
    )


def _inspection_passed(result: dict[str, Any]) -> bool:
    outcome = result.get("result")
    if isinstance(outcome, str):
        return outcome.strip().lower() == "passed"
    return result.get("passed") is True


def complete_inspection(case_id: int, payload: dict[str, Any], user_id: int | None) -> WorkflowCase:
    case = _load_case(case_id)
    definition = workflow_for(case.case_type)
    inspection = _linked_inspection(case, definition)
    transition = definition.transition(COMPLETE_INSPECTION)

    result = payload.get("result")
    if result is None:
        result = {}
    if not isinstance(result, dict):
        raise ValueError("Inspection result must be an object")
    photos = payload.get("photos") or []
    if not isinstance(photos, list) or not all(isinstance(item, str) for item in photos):
        raise ValueError("Photos must be a list of references")

    target = transition.target
    event_type = "inspection_completed"
    if transition.failure_target and not _inspection_passed(result):
        target = transition.failure_target
        event_type = "inspection_failed"

    inspection.status = InspectionStatus.COMPLETED
    inspection.result = result
    inspection.photos = photos
    inspection.remarks = (payload.get("remarks") or inspection.remarks or "").strip()[:500]
    inspection.inspected_at = utcnow()
    if inspection.inspected_by is None:
        inspection.inspected_by = user_id
    return _apply_transition(
        case,
        definition,
        target,
        event_type,
        user_id,
        note=f"Inspection #{inspection.id} completed",
    )


def _document_snapshot(
    case: WorkflowCase,
    definition: WorkflowDefinition,
    certificate_number: str,
    issued_at: datetime,
    user_id: int | None,
) -> dict[str, Any]:
    subject = case.subject
    issuer = db.session.get(User, user_id) if user_id else None
    inspection = case.inspection
    return {
        "title": definition.title,
        "certificate_number": certificate_number,
        "case_number": case.case_number,
        "case_type": case.case_type.value,
        "parcel_no": subject.parcel_no,
        "address": subject.address,
        "area": f"{subject.area}",
        "party_name": case.party.name,
        "counterparty_name": case.counterparty.name if case.counterparty else None,
        "details": case.details or {},
        "checklist": case.checklist or {},
        "fee": case.fee,
        "inspection": (
            {"inspected_at": _iso(inspection.inspected_at), "remarks": inspection.remarks}
            if inspection
            else None
        ),
        "issued_on": issued_at.date().isoformat(),
        "issued_by_name": issuer.full_name if issuer else None,
    }


def issue_case(case_id: int, user_id: int | None) -> WorkflowCase:
    case = _load_case(case_id)
    definition = workflow_for(case.case_type)
    transition = _guard(definition, case, ISSUE)

    issued_at = utcnow()
    certificate_number = next_code(definition.certificate_prefix, _current_year())
    content = render_document(
        definition.slug,
        _document_snapshot(case, definition, certificate_number, issued_at, user_id),
    )
    digest = sha256_hex(content)
    relative_path = document_path(definition.slug, certificate_number)
    url = verification_url(current_app.config.get("APP_URL", ""), digest)
    subject = case.subject

    def _after_issue() -> None:
        if case.case_type == CaseType.TRANSFER:
            subject.status = PropertyStatus.TRANSFERRED
            subject.owner_id = case.counterparty_id
        elif case.case_type == CaseType.MORTGAGE:
            subject.status = PropertyStatus.MORTGAGED

    def _write_document() -> None:
        store_document(relative_path, content)

    return _apply_transition(
        case,
        definition,
        transition.target,
        "issued",
        user_id,
        note=f"{certificate_number} sha256={digest}",
        side_effect=_after_issue,
        after_commit=_write_document,
        certificate_number=certificate_number,
        pdf_path=relative_path,
        hash_sha256=digest,
        qr_code=url,
        issued_at=issued_at,
        issued_by=user_id,
    )


def reject_case(case_id: int, reason: str | None, user_id: int | None) -> WorkflowCase:
    clean_reason = (reason or "").strip()
    if not clean_reason:
        raise ValueError("Rejection reason is required")
    case = _load_case(case_id)
    definition = workflow_for(case.case_type)
    transition = _guard(definition, case, REJECT)
    return _apply_transition(
        case,
        definition,
        transition.target,
        "rejected",
        user_id,
        note=clean_reason,
        rejection_reason=clean_reason[:500],
    )


def close_case(case_id: int, reason: str | None, user_id: int | None) -> WorkflowCase:
    case = _load_case(case_id)
    definition = workflow_for(case.case_type)
    transition = _guard(definition, case, CLOSE)
    clean_reason = (reason or "").strip()[:500]
    subject = case.subject

    def _release_mortgage() -> None:
        still_held = (
            WorkflowCase.query.filter(WorkflowCase.case_type == CaseType.MORTGAGE)
            .filter(WorkflowCase.subject_id == subject.id)
            .filter(WorkflowCase.id != case_id)
            .filter(WorkflowCase.status.in_(MORTGAGE_HOLDING_STATUSES))
            .count()
        )
        if not still_held and subject.status == PropertyStatus.MORTGAGED:
            subject.status = PropertyStatus.ALLOTTED

    return _apply_transition(
        case,
        definition,
        transition.target,
        "closed",
        user_id,
        note=clean_reason,
        side_effect=_release_mortgage if case.case_type == CaseType.MORTGAGE else None,
        closure_reason=clean_reason,
    )


def advance_case(case_id: int, action: str, user_id: int | None) -> WorkflowCase:
    clean_action = (action or "").strip().lower()
    if clean_action not in PLAIN_ACTIONS:
        raise ValueError(f"Unknown action '{clean_action}'")
    case = _load_case(case_id)
    definition = workflow_for(case.case_type)
    transition = _guard(definition, case, clean_action)

    values: dict[str, Any] = {}
    if clean_action == "renew":
        # The connection keeps its number; only the renewal trail grows
        details = dict(case.details or {})
        details["renewal_count"] = int(details.get("renewal_count", 0)) + 1
        details["last_renewed_at"] = utcnow().isoformat()
        values["details"] = details
    return _apply_transition(case, definition, transition.target, clean_action, user_id, **values)


def case_by_id(case_id: int) -> WorkflowCase:
    return _load_case(case_id)


def list_cases(filters: dict[str, str]) -> list[WorkflowCase]:
    query = WorkflowCase.query.options(
        joinedload(WorkflowCase.subject),
        joinedload(WorkflowCase.party),
    ).order_by(WorkflowCase.created_at.desc(), WorkflowCase.id.desc())

    case_type = (filters.get("case_type") or "").strip().upper()
    if case_type:
        if case_type not in CaseType.__members__:
            return []
        query = query.filter(WorkflowCase.case_type == CaseType[case_type])
    status = (filters.get("status") or "").strip().lower()
    if status:
        query = query.filter(WorkflowCase.status == status)
    for key, column in (("subject_id", WorkflowCase.subject_id), ("party_id", WorkflowCase.party_id)):
        raw = (filters.get(key) or "").strip()
        if raw:
            if not raw.isdigit():
                return []
            query = query.filter(column == int(raw))

    created_from = _parse_optional_iso_date(filters.get("created_from"))
    created_to = _parse_optional_iso_date(filters.get("created_to"))
    if created_from:
        query = query.filter(WorkflowCase.created_at >= datetime.combine(created_from, datetime.min.time()))
    if created_to:
        query = query.filter(WorkflowCase.created_at <= datetime.combine(created_to, datetime.max.time()))
    return query.all()


def case_detail(case_id: int) -> dict[str, object]:
    case = _load_case(case_id)
    return {
        "case": case_to_dict(case),
        "inspections": [inspection_to_dict(row) for row in case.inspections],
        "events": [event_to_dict(row) for row in case.events],
    }


def case_by_hash(digest: str) -> WorkflowCase:
    clean = (digest or "").strip().lower()
    if len(clean) != 64 or any(ch not in "0123456789abcdef" for ch in clean):
        raise NotFoundError("Document not found")
    case = WorkflowCase.query.filter_by(hash_sha256=clean).first()
    if not case:
        raise NotFoundError("Document not found")
    return case


def case_document(case_id: int) -> tuple[bytes, str]:
    case = _load_case(case_id)
    if not case.is_issued:
        raise NotFoundError(f"Case {case.case_number} has no issued document")
    return load_document(case.pdf_path)
