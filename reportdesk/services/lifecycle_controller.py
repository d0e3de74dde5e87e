from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

import httpx
from loguru import logger

from reportdesk.core.config import settings
from reportdesk.core.errors import (
    ConflictError,
    LifecycleError,
    PartialResolutionError,
    ReportNotFoundError,
    SessionExpiredError,
    SubmissionFailed,
    ValidationError,
)
from reportdesk.core.logging import log_event
from reportdesk.models.enums import ReportScope
from reportdesk.schemas.admin_update import AdminUpdate
from reportdesk.schemas.dashboard import AdminDashboardOut, DashboardStats, UserDashboardOut
from reportdesk.schemas.report import Report, ReportDraft
from reportdesk.services import dashboard_stats
from reportdesk.services.backend_client import BackendClient
from reportdesk.services.notification_reconciler import NotificationReconciler
from reportdesk.services.report_store import ReportStore


@dataclass(frozen=True)
class ActionResult:
    ok: bool
    message: str
    warning: bool = False
    report: Optional[Report] = None
    update: Optional[AdminUpdate] = None
    error: Optional[str] = None


class LifecycleController:
    """
    Runs the submit, resolve and confirm sequences across both collections.

    Resolving is two backend calls: mark the report resolved (a), then record
    the admin update (b). Once (a) has succeeded it is never issued again;
    only (b) is retried, and a report whose retries run out is kept in
    ``pending_notifications`` with a warning until ``reconcile`` gets it
    through.

    Confirming removes the update from the feed even if the backend
    acknowledgement fails. The acknowledgement is retried by ``reconcile``;
    until then the backend may still list the update.
    """

    def __init__(
        self,
        store: ReportStore,
        reconciler: NotificationReconciler,
        *,
        retry_attempts: Optional[int] = None,
        retry_delay: Optional[float] = None,
    ) -> None:
        self.store = store
        self.reconciler = reconciler
        self._retry_attempts = settings.NOTIFY_RETRY_ATTEMPTS if retry_attempts is None else retry_attempts
        self._retry_delay = settings.NOTIFY_RETRY_DELAY_SECONDS if retry_delay is None else retry_delay
        self._pending_notifications: dict[str, Report] = {}
        self._warnings: dict[str, str] = {}

    @property
    def pending_notifications(self) -> list[str]:
        return list(self._pending_notifications)

    @property
    def warnings(self) -> list[str]:
        return list(self._warnings.values())

    def close(self) -> None:
        self.store.close()
        self.reconciler.close()

    async def load(self) -> None:
        results = await asyncio.gather(
            self.store.refresh(ReportScope.ALL),
            self.store.refresh(ReportScope.MINE),
            self.reconciler.refresh(),
            return_exceptions=True,
        )
        for result in results:
            if isinstance(result, SessionExpiredError):
                raise result
            if isinstance(result, LifecycleError):
                logger.warning(f"Error fetching dashboard data: {result.message}")
            elif isinstance(result, BaseException):
                raise result

    async def submit(self, draft: ReportDraft) -> ActionResult:
        try:
            report = await self.store.submit(draft)
        except ValidationError as exc:
            return ActionResult(ok=False, message=exc.message, error='validation')
        except SubmissionFailed as exc:
            logger.error(f"Error submitting report: {exc.message}")
            return ActionResult(ok=False, message=exc.message, error='backend')
        return ActionResult(ok=True, message='Report submitted successfully!', report=report)

    async def resolve(self, report_id: str) -> ActionResult:
        try:
            report = await self.store.resolve(report_id)
        except ReportNotFoundError as exc:
            return ActionResult(ok=False, message=exc.message, error='not_found')
        except SessionExpiredError:
            raise
        except ConflictError as exc:
            logger.warning(f"Resolve conflict for report {report_id}: {exc.message}")
            await self._refresh_reports_quietly()
            return ActionResult(ok=False, message=exc.message, report=self.store.get(report_id), error='conflict')
        except PartialResolutionError as exc:
            return await self._retry_notification(exc)
        except LifecycleError as exc:
            logger.error(f"Error resolving report {report_id}: {exc.message}")
            return ActionResult(ok=False, message=exc.message, error='backend')
        return ActionResult(
            ok=True,
            message='Report resolved successfully.',
            report=report,
            update=self.reconciler.get(report_id),
        )

    async def confirm(self, report_id: str) -> ActionResult:
        try:
            removed = await self.reconciler.confirm(report_id)
        except SessionExpiredError:
            raise
        except LifecycleError as exc:
            logger.error(f"Error confirming resolution of report {report_id}: {exc.message}")
            return ActionResult(
                ok=True,
                warning=True,
                message='Report marked as resolved and removed. The server will be updated shortly.',
            )
        if not removed:
            return ActionResult(ok=True, message='This update has already been confirmed.')
        return ActionResult(ok=True, message='Report marked as resolved and removed.')

    async def reconcile(self) -> dict[str, list[str]]:
        notified: list[str] = []
        if self._pending_notifications:
            await self._refresh_feed_quietly()
        for report_id, report in list(self._pending_notifications.items()):
            try:
                await self.reconciler.materialize(report)
            except SessionExpiredError:
                raise
            except LifecycleError as exc:
                logger.warning(f"Admin update for report {report_id} still missing: {exc.message}")
                continue
            self._clear_pending(report_id)
            notified.append(report_id)
        unacknowledged = await self.reconciler.flush_acknowledgements()
        return {
            'notified': notified,
            'pending_notifications': self.pending_notifications,
            'unacknowledged': unacknowledged,
        }

    def dashboard_stats(self, now: Optional[datetime] = None) -> DashboardStats:
        return dashboard_stats.compute(self.store.list(), now or datetime.now().astimezone())

    def admin_dashboard(self, now: Optional[datetime] = None) -> AdminDashboardOut:
        return AdminDashboardOut(
            stats=self.dashboard_stats(now),
            live_issues=list(self.store.active()),
            updates=self.reconciler.list(),
            warnings=self.warnings,
        )

    def user_dashboard(self) -> UserDashboardOut:
        return UserDashboardOut(
            recent_reports=list(self.store.list()),
            my_reports=list(self.store.list(ReportScope.MINE)),
            admin_updates=self.reconciler.list(),
        )

    async def _retry_notification(self, error: PartialResolutionError) -> ActionResult:
        report = error.report
        self._pending_notifications[report.id] = report
        self._warnings[report.id] = (
            f"Report {report.id} ({report.issue_type}, {report.location}) was resolved "
            'but the reporter has not been notified yet.'
        )
        if isinstance(error.__cause__, SessionExpiredError):
            raise error.__cause__
        for attempt in range(1, self._retry_attempts + 1):
            if self._retry_delay:
                await asyncio.sleep(self._retry_delay)
            try:
                # (b) may have landed even though the call timed out.
                await self._refresh_feed_quietly()
                update = await self.reconciler.materialize(report)
            except SessionExpiredError:
                raise
            except LifecycleError as exc:
                log_event(
                    'lifecycle.notify_retry_failed',
                    level='WARNING',
                    report_id=report.id,
                    attempt=attempt,
                    error=exc.message,
                )
                continue
            self._clear_pending(report.id)
            return ActionResult(ok=True, message='Report resolved successfully.', report=report, update=update)
        log_event('lifecycle.partial_resolution', level='ERROR', report_id=report.id, attempts=self._retry_attempts)
        return ActionResult(ok=True, warning=True, message=self._warnings[report.id], report=report)

    def _clear_pending(self, report_id: str) -> None:
        self._pending_notifications.pop(report_id, None)
        self._warnings.pop(report_id, None)

    async def _refresh_reports_quietly(self) -> None:
        try:
            await self.store.refresh()
        except SessionExpiredError:
            raise
        except LifecycleError as exc:
            logger.warning(f"Error refreshing reports: {exc.message}")

    async def _refresh_feed_quietly(self) -> None:
        try:
            await self.reconciler.refresh()
        except SessionExpiredError:
            raise
        except LifecycleError as exc:
            logger.warning(f"Error fetching admin updates: {exc.message}")


def build_controller(transport: Optional[httpx.AsyncBaseTransport] = None) -> tuple[BackendClient, LifecycleController]:
    client = BackendClient(
        settings.BACKEND_URL,
        token=settings.API_TOKEN,
        timeout=settings.REQUEST_TIMEOUT_SECONDS,
        transport=transport,
    )
    reconciler = NotificationReconciler(client)
    store = ReportStore(client, reconciler)
    return client, LifecycleController(store, reconciler)
