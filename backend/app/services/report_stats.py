from typing import Iterable

from app.core.lifecycle import STATUS_GROUPS
from app.models.report import DisasterType, ReportStatus
from app.schemas.report import DisasterReport, ReportStats


def compute_stats(reports: Iterable[DisasterReport]) -> ReportStats:
    """
    Dashboard counters over an already filtered set of reports.
    Resolution time is approximated by the last update of resolved reports.
    """
    reports = list(reports)
    by_status = {status.value: 0 for status in ReportStatus}
    by_type = {kind.value: 0 for kind in DisasterType}
    resolution_hours = []

    for report in reports:
        by_status[report.status.value] += 1
        by_type[report.disaster_type.value] += 1
        if report.status == ReportStatus.RESOLVED:
            elapsed = report.updated_at - report.created_at
            resolution_hours.append(elapsed.total_seconds() / 3600)

    by_group = {
        group: sum(by_status[status.value] for status in statuses)
        for group, statuses in STATUS_GROUPS.items()
    }
    average = round(sum(resolution_hours) / len(resolution_hours), 2) if resolution_hours else None

    return ReportStats(
        total=len(reports),
        by_status=by_status,
        by_group=by_group,
        by_type=by_type,
        average_resolution_hours=average,
    )
