"""Error kinds raised by the case workflow.

All of them derive from ``ValueError`` so callers that already treat
``ValueError`` as a user-facing validation message keep working.
"""

from __future__ import annotations


class WorkflowError(ValueError):
    """Base exception for case workflow errors."""

    kind = "workflow_error"


class NotFoundError(WorkflowError):
    """A referenced case, inspection, property or party does not exist."""

    kind = "not_found"


class InvalidStateError(WorkflowError):
    """The action is not permitted from the case's current status."""

    kind = "invalid_state"

    def __init__(self, required: str | list[str] | tuple[str, ...] | set[str] | frozenset[str], actual: str):
        if isinstance(required, str):
            required_label = f"'{required}'"
            self.required: tuple[str, ...] = (required,)
        else:
            self.required = tuple(sorted(required))
            required_label = " or ".join(f"'{status}'" for status in self.required)
        self.actual = actual
        super().__init__(f"Case must be in {required_label} status. Current: {actual}")


class IncompleteChecklistError(WorkflowError):
    """Required checklist items are not satisfied."""

    kind = "incomplete_checklist"

    def __init__(self, missing: list[str]):
        self.missing = list(missing)
        super().__init__(f"Checklist incomplete. Missing: {', '.join(self.missing)}")


class NoInspectionScheduledError(WorkflowError):
    """An inspection completion was requested on a case without one."""

    kind = "no_inspection_scheduled"

    def __init__(self, case_number: str):
        self.case_number = case_number
        super().__init__(f"Inspection not scheduled for case {case_number}")


class ConflictError(WorkflowError):
    """The case status changed between read and write."""

    kind = "conflict"

    def __init__(self, case_number: str, expected: str):
        self.case_number = case_number
        self.expected = expected
        super().__init__(
            f"Case {case_number} was modified concurrently (expected status '{expected}'); reload and retry"
        )
