"""
Report lifecycle: pending -> assigned -> dispatched -> in-progress -> resolved.

Transitions are expressed as plans: functions of the current report that return
the field changes to write. The report store applies a plan inside a single
transaction, so a precondition such as "prior status is pending" is evaluated
against the stored row and not against a possibly stale copy.

Administrators may set any status from any status; linear progression is only
what the assignee workflows (`next_status`) suggest.
"""

from typing import Any, Dict, Iterable, List, Optional

from app.models.report import AssignedTo, ReportStatus
from app.schemas.report import DisasterReport

STATUS_FLOW = (
    ReportStatus.PENDING,
    ReportStatus.ASSIGNED,
    ReportStatus.DISPATCHED,
    ReportStatus.IN_PROGRESS,
    ReportStatus.RESOLVED,
)

# Dispatch is responder-unit vocabulary; volunteers "take responsibility"
# straight from assigned to in-progress.
ASSIGNEE_WORKFLOWS = {
    AssignedTo.NDRF: {
        ReportStatus.ASSIGNED: ReportStatus.DISPATCHED,
        ReportStatus.DISPATCHED: ReportStatus.IN_PROGRESS,
        ReportStatus.IN_PROGRESS: ReportStatus.RESOLVED,
    },
    AssignedTo.VOLUNTEER: {
        ReportStatus.ASSIGNED: ReportStatus.IN_PROGRESS,
        ReportStatus.DISPATCHED: ReportStatus.IN_PROGRESS,
        ReportStatus.IN_PROGRESS: ReportStatus.RESOLVED,
    },
}

STATUS_GROUPS = {
    "all": tuple(STATUS_FLOW),
    "pending": (ReportStatus.PENDING,),
    "assigned": (ReportStatus.ASSIGNED,),
    "active": (ReportStatus.DISPATCHED, ReportStatus.IN_PROGRESS),
    "resolved": (ReportStatus.RESOLVED,),
}

_PROGRESS = {
    ReportStatus.PENDING: 20,
    ReportStatus.ASSIGNED: 40,
    ReportStatus.DISPATCHED: 60,
    ReportStatus.IN_PROGRESS: 80,
    ReportStatus.RESOLVED: 100,
}


def plan_assignment(report: DisasterReport, target: AssignedTo, user_id: Optional[str] = None) -> Dict[str, Any]:
    """
    Assign and advance in one step.

    Precondition: `target` is one of the AssignedTo members. Moving a pending
    report to a volunteer or the responder unit also moves it to `assigned`;
    any other status is left alone. Unassigning, or assigning without a
    specific user, clears the specific assignee.
    """
    target = AssignedTo(target)
    changes: Dict[str, Any] = {
        "assigned_to": target,
        "assigned_user_id": user_id if target != AssignedTo.UNASSIGNED else None,
    }
    if target != AssignedTo.UNASSIGNED and report.status == ReportStatus.PENDING:
        changes["status"] = ReportStatus.ASSIGNED
    return changes


def plan_unassign(report: DisasterReport) -> Dict[str, Any]:
    return {"assigned_to": AssignedTo.UNASSIGNED, "assigned_user_id": None}


def plan_status(report: DisasterReport, status: ReportStatus) -> Dict[str, Any]:
    return {"status": ReportStatus(status)}


def next_status(report: DisasterReport) -> Optional[ReportStatus]:
    """The next step an assignee would take from here, or None when there is none."""
    workflow = ASSIGNEE_WORKFLOWS.get(report.assigned_to)
    if workflow is None:
        return None
    return workflow.get(report.status)


def progress_percent(status: Any) -> int:
    try:
        return _PROGRESS[ReportStatus(status)]
    except ValueError:
        return 0


def filter_by_group(reports: Iterable[DisasterReport], group: str = "all") -> List[DisasterReport]:
    """Dashboard tab filter, newest report first."""
    if group not in STATUS_GROUPS:
        raise KeyError(group)
    statuses = STATUS_GROUPS[group]
    selected = [report for report in reports if report.status in statuses]
    selected.sort(key=lambda report: report.created_at, reverse=True)
    return selected
