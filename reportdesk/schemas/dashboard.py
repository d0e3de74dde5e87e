from typing import Optional

from pydantic import BaseModel, ConfigDict

from reportdesk.schemas.admin_update import AdminUpdate
from reportdesk.schemas.report import Report


class DashboardStats(BaseModel):
    model_config = ConfigDict(frozen=True)

    active_issues: int
    resolved_today: int
    trend_percentage: float


class AdminDashboardOut(BaseModel):
    stats: DashboardStats
    live_issues: list[Report]
    updates: list[AdminUpdate]
    warnings: list[str]


class UserDashboardOut(BaseModel):
    recent_reports: list[Report]
    my_reports: list[Report]
    admin_updates: list[AdminUpdate]


class ActionOut(BaseModel):
    ok: bool
    message: str
    warning: bool = False
    report: Optional[Report] = None
    update: Optional[AdminUpdate] = None
