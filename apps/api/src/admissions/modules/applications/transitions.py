"""
Application Status Transitions

Static allow-list of status changes. A requested change that is not listed
for the current status is rejected and nothing is written.

    draft           -> submitted, withdrawn
    submitted       -> under_review, withdrawn
    under_review    -> needs_more_info, accepted, rejected
    needs_more_info -> submitted, withdrawn
    accepted        -> matriculated
    rejected, withdrawn, matriculated are terminal
"""

from admissions.modules.applications.models import ApplicationStatus

VALID_STATUS_TRANSITIONS: dict[ApplicationStatus, frozenset[ApplicationStatus]] = {
    ApplicationStatus.DRAFT: frozenset(
        {ApplicationStatus.SUBMITTED, ApplicationStatus.WITHDRAWN}
    ),
    ApplicationStatus.SUBMITTED: frozenset(
        {ApplicationStatus.UNDER_REVIEW, ApplicationStatus.WITHDRAWN}
    ),
    ApplicationStatus.UNDER_REVIEW: frozenset(
        {
            ApplicationStatus.NEEDS_MORE_INFO,
            ApplicationStatus.ACCEPTED,
            ApplicationStatus.REJECTED,
        }
    ),
    # Applicant resubmits after supplying the missing information
    ApplicationStatus.NEEDS_MORE_INFO: frozenset(
        {ApplicationStatus.SUBMITTED, ApplicationStatus.WITHDRAWN}
    ),
    ApplicationStatus.ACCEPTED: frozenset({ApplicationStatus.MATRICULATED}),
    # Terminal states
    ApplicationStatus.REJECTED: frozenset(),
    ApplicationStatus.WITHDRAWN: frozenset(),
    ApplicationStatus.MATRICULATED: frozenset(),
}

STATUS_LABELS: dict[ApplicationStatus, str] = {
    ApplicationStatus.DRAFT: "Draft",
    ApplicationStatus.SUBMITTED: "Submitted",
    ApplicationStatus.UNDER_REVIEW: "Under Review",
    ApplicationStatus.NEEDS_MORE_INFO: "Needs More Info",
    ApplicationStatus.ACCEPTED: "Accepted",
    ApplicationStatus.REJECTED: "Rejected",
    ApplicationStatus.WITHDRAWN: "Withdrawn",
    ApplicationStatus.MATRICULATED: "Matriculated",
}


class InvalidStatusTransitionError(ValueError):
    """Raised when a status change is not in the allow-list."""

    def __init__(self, current_status: ApplicationStatus, new_status: ApplicationStatus):
        self.current_status = current_status
        self.new_status = new_status
        allowed = sorted(s.value for s in get_available_transitions(current_status))
        super().__init__(
            f"Invalid status transition: {current_status.value} -> {new_status.value}. "
            f"Valid transitions: {allowed}"
        )


def _coerce(status: ApplicationStatus | str) -> ApplicationStatus | None:
    try:
        return ApplicationStatus(status)
    except ValueError:
        return None


def can_transition_to(
    current_status: ApplicationStatus | str,
    new_status: ApplicationStatus | str,
) -> bool:
    """True if ``new_status`` is an allowed next status for ``current_status``."""
    current = _coerce(current_status)
    requested = _coerce(new_status)
    if current is None or requested is None:
        return False
    return requested in VALID_STATUS_TRANSITIONS.get(current, frozenset())


def get_available_transitions(current_status: ApplicationStatus | str) -> frozenset[ApplicationStatus]:
    current = _coerce(current_status)
    if current is None:
        return frozenset()
    return VALID_STATUS_TRANSITIONS.get(current, frozenset())


def is_terminal(status: ApplicationStatus | str) -> bool:
    """True for known statuses with no way out. Unknown values are not terminal."""
    current = _coerce(status)
    if current is None:
        return False
    return not VALID_STATUS_TRANSITIONS.get(current)


def ensure_transition(current_status: ApplicationStatus, new_status: ApplicationStatus) -> None:
    """
    Raise if the change is not allowed.

    Raises:
        InvalidStatusTransitionError: If ``new_status`` is not permitted
    """
    if not can_transition_to(current_status, new_status):
        raise InvalidStatusTransitionError(current_status, new_status)


def get_status_label(status: ApplicationStatus | str) -> str:
    coerced = _coerce(status)
    if coerced is None:
        return str(status)
    return STATUS_LABELS[coerced]
