from __future__ import annotations

from dataclasses import dataclass, field

from pms.core.models import CaseType

UPDATE_CHECKLIST = "update_checklist"
SCHEDULE_INSPECTION = "schedule_inspection"
COMPLETE_INSPECTION = "complete_inspection"
ISSUE = "issue"
REJECT = "reject"
CLOSE = "close"
ASSESS_VALUATION = "assess_valuation"

# Transitions with no side effect beyond the status change
PLAIN_ACTIONS = frozenset(
    {
        "check_serviceability",
        "submit",
        "activate",
        "mark_renewal_due",
        "renew",
        "complete",
    }
)

INSPECTION_SINGLE = "single"
INSPECTION_PER_ATTEMPT = "per_attempt"

DEFAULT_SLA_HOURS = 168


@dataclass(frozen=True)
class Transition:
    sources: frozenset[str]
    target: str
    # Where a failed inspection sends the case; None means the result is not graded
    failure_target: str | None = None


@dataclass(frozen=True)
class WorkflowDefinition:
    case_type: CaseType
    slug: str
    title: str
    prefix: str
    certificate_prefix: str
    initial_status: str
    terminal_statuses: frozenset[str]
    transitions: dict[str, Transition] = field(default_factory=dict)
    inspection_mode: str | None = INSPECTION_SINGLE
    requires_counterparty: bool = False
    sla_hours: dict[str, int] = field(default_factory=dict)

    @property
    def is_connection(self) -> bool:
        return self.inspection_mode == INSPECTION_PER_ATTEMPT

    def supports(self, action: str) -> bool:
        return action in self.transitions

    def transition(self, action: str) -> Transition:
        try:
            return self.transitions[action]
        except KeyError as exc:
            raise ValueError(f"Action '{action}' is not available for {self.case_type.value} cases") from exc

    def sla_deadline_hours(self, status: str) -> int | None:
        return self.sla_hours.get(status)


def _certificate_workflow(case_type: CaseType, slug: str, title: str, prefix: str) -> WorkflowDefinition:
    pre_issue = frozenset({"draft", "checklist_pending", "inspection_scheduled", "inspection_completed"})
    return WorkflowDefinition(
        case_type=case_type,
        slug=slug,
        title=title,
        prefix=prefix,
        certificate_prefix=f"{prefix}-CERT",
        initial_status="draft",
        terminal_statuses=frozenset({"certificate_issued", "rejected"}),
        transitions={
            UPDATE_CHECKLIST: Transition(frozenset({"draft", "checklist_pending"}), "checklist_pending"),
            SCHEDULE_INSPECTION: Transition(frozenset({"draft", "checklist_pending"}), "inspection_scheduled"),
            COMPLETE_INSPECTION: Transition(frozenset({"inspection_scheduled"}), "inspection_completed"),
            ISSUE: Transition(frozenset({"inspection_completed"}), "certificate_issued"),
            REJECT: Transition(pre_issue, "rejected"),
        },
    )


def _connection_workflow(case_type: CaseType, slug: str, title: str, prefix: str) -> WorkflowDefinition:
    pre_sanction = frozenset({"applied", "serviceability_checked", "inspection_scheduled", "inspection_completed"})
    return WorkflowDefinition(
        case_type=case_type,
        slug=slug,
        title=title,
        prefix=prefix,
        certificate_prefix=f"{prefix}-SANC",
        initial_status="serviceability_checked",
        terminal_statuses=frozenset({"closed", "rejected"}),
        transitions={
            "check_serviceability": Transition(frozenset({"applied"}), "serviceability_checked"),
            SCHEDULE_INSPECTION: Transition(
                frozenset({"serviceability_checked", "inspection_scheduled"}),
                "inspection_scheduled",
            ),
            COMPLETE_INSPECTION: Transition(
                frozenset({"inspection_scheduled"}),
                "inspection_completed",
                failure_target="applied",
            ),
            ISSUE: Transition(frozenset({"inspection_completed"}), "sanctioned"),
            "activate": Transition(frozenset({"sanctioned"}), "active"),
            "mark_renewal_due": Transition(frozenset({"active"}), "renewal_pending"),
            "renew": Transition(frozenset({"active", "renewal_pending"}), "active"),
            CLOSE: Transition(frozenset({"active", "renewal_pending"}), "closed"),
            REJECT: Transition(pre_sanction, "rejected"),
        },
        inspection_mode=INSPECTION_PER_ATTEMPT,
        sla_hours={
            "applied": 24,
            "serviceability_checked": 48,
            "inspection_scheduled": 72,
            "inspection_completed": 24,
            "sanctioned": DEFAULT_SLA_HOURS,
        },
    )


WORKFLOWS: dict[CaseType, WorkflowDefinition] = {
    CaseType.DEMARCATION: _certificate_workflow(
        CaseType.DEMARCATION, "demarcation", "DEMARCATION CERTIFICATE", "DEM"
    ),
    CaseType.DPC: _certificate_workflow(
        CaseType.DPC, "dpc", "DEVELOPMENT PERMISSION CERTIFICATE", "DPC"
    ),
    CaseType.OCCUPANCY: _certificate_workflow(
        CaseType.OCCUPANCY, "occupancy", "OCCUPANCY CERTIFICATE", "OC"
    ),
    CaseType.COMPLETION: _certificate_workflow(
        CaseType.COMPLETION, "completion", "COMPLETION CERTIFICATE", "CC"
    ),
    CaseType.WATER_CONNECTION: _connection_workflow(
        CaseType.WATER_CONNECTION, "water", "WATER CONNECTION SANCTION", "WC"
    ),
    CaseType.SEWERAGE_CONNECTION: _connection_workflow(
        CaseType.SEWERAGE_CONNECTION, "sewerage", "SEWERAGE CONNECTION SANCTION", "SC"
    ),
    CaseType.TRANSFER: WorkflowDefinition(
        case_type=CaseType.TRANSFER,
        slug="transfer",
        title="TRANSFER ORDER",
        prefix="TRF",
        certificate_prefix="TRF-ORD",
        initial_status="draft",
        terminal_statuses=frozenset({"completed", "rejected"}),
        transitions={
            "submit": Transition(frozenset({"draft"}), "under_review"),
            ISSUE: Transition(frozenset({"under_review"}), "approved"),
            "complete": Transition(frozenset({"approved"}), "completed"),
            REJECT: Transition(frozenset({"draft", "under_review"}), "rejected"),
        },
        inspection_mode=None,
        requires_counterparty=True,
    ),
    CaseType.MORTGAGE: WorkflowDefinition(
        case_type=CaseType.MORTGAGE,
        slug="mortgage",
        title="MORTGAGE PERMISSION",
        prefix="MTG",
        certificate_prefix="MTG-NOC",
        initial_status="draft",
        terminal_statuses=frozenset({"closed", "rejected"}),
        transitions={
            "submit": Transition(frozenset({"draft"}), "under_review"),
            ISSUE: Transition(frozenset({"under_review"}), "approved"),
            "activate": Transition(frozenset({"approved"}), "active"),
            CLOSE: Transition(frozenset({"active"}), "closed"),
            REJECT: Transition(frozenset({"draft", "under_review"}), "rejected"),
        },
        inspection_mode=None,
    ),
    CaseType.REGISTRATION: WorkflowDefinition(
        case_type=CaseType.REGISTRATION,
        slug="registration",
        title="REGISTERED DEED",
        prefix="REG",
        certificate_prefix="REG-DEED",
        initial_status="draft",
        terminal_statuses=frozenset({"registered", "rejected"}),
        transitions={
            # kyc_pending holds the KYC / encumbrance checklist
            UPDATE_CHECKLIST: Transition(frozenset({"draft", "kyc_pending"}), "kyc_pending"),
            ASSESS_VALUATION: Transition(frozenset({"draft", "kyc_pending"}), "kyc_pending"),
            SCHEDULE_INSPECTION: Transition(frozenset({"draft", "kyc_pending"}), "scheduled"),
            COMPLETE_INSPECTION: Transition(frozenset({"scheduled"}), "under_verification"),
            ISSUE: Transition(frozenset({"under_verification"}), "registered"),
            REJECT: Transition(frozenset({"draft", "kyc_pending", "scheduled", "under_verification"}), "rejected"),
        },
        requires_counterparty=True,
    ),
}


def workflow_for(case_type: CaseType) -> WorkflowDefinition:
    return WORKFLOWS[case_type]


def parse_case_type(value: str | CaseType | None) -> CaseType:
    if isinstance(value, CaseType):
        return value
    raw = (value or "").strip().upper()
    try:
        return CaseType[raw]
    except KeyError as exc:
        raise ValueError("Invalid case type") from exc
