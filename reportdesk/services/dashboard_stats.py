from collections.abc import Iterable
from datetime import date, datetime, timedelta
from typing import Optional

from reportdesk.models.enums import ReportStatus
from reportdesk.schemas.dashboard import DashboardStats
from reportdesk.schemas.report import Report


def _resolved_on(report: Report, now: datetime) -> Optional[date]:
    moment = report.resolved_at or report.created_at
    if moment is None:
        return None
    if now.tzinfo is not None:
        moment = moment.astimezone(now.tzinfo)
    else:
        # Naive ``now`` is local wall-clock time.
        moment = moment.astimezone().replace(tzinfo=None)
    return moment.date()


def trend_percentage(today: int, yesterday: int) -> float:
    if yesterday == 0:
        return 100.0 if today else 0.0
    return round((today - yesterday) * 100.0 / yesterday, 1)


def compute(reports: Iterable[Report], now: datetime) -> DashboardStats:
    """Aggregate counters for the admin dashboard; ``now`` fixes "today"."""
    today = now.date()
    yesterday = today - timedelta(days=1)
    active = resolved_today = resolved_yesterday = 0
    for report in reports:
        if report.status == ReportStatus.PENDING:
            active += 1
            continue
        day = _resolved_on(report, now)
        if day == today:
            resolved_today += 1
        elif day == yesterday:
            resolved_yesterday += 1
    return DashboardStats(
        active_issues=active,
        resolved_today=resolved_today,
        trend_percentage=trend_percentage(resolved_today, resolved_yesterday),
    )
