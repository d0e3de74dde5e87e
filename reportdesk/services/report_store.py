from __future__ import annotations

import base64
from collections.abc import Iterator
from datetime import datetime, timezone
from typing import Optional

from loguru import logger
from reportdesk.core.config import settings
from reportdesk.core.errors import (
    BackendError,
    ConflictError,
    LifecycleError,
    PartialResolutionError,
    ReportNotFoundError,
    SessionExpiredError,
    SubmissionFailed,
    ValidationError,
)
from reportdesk.core.logging import log_event
from reportdesk.models.enums import PRIORITY_BY_ISSUE_TYPE, IssueType, Priority, ReportScope, ReportStatus
from reportdesk.schemas.report import Attachment, Report, ReportDraft
from reportdesk.services.backend_client import BackendClient
from reportdesk.services.notification_reconciler import NotificationReconciler


def priority_for(issue_type: str) -> Priority:
    return PRIORITY_BY_ISSUE_TYPE[IssueType(issue_type)]


def encode_attachment(attachment: Attachment) -> str:
    encoded = base64.b64encode(attachment.content).decode('ascii')
    return f"data:{attachment.content_type};base64,{encoded}"


def validate_draft(
    draft: ReportDraft,
    locations: Optional[list[str]] = None,
    max_attachment_bytes: Optional[int] = None,
) -> None:
    locations = settings.FACILITY_LOCATIONS if locations is None else locations
    max_attachment_bytes = settings.MAX_ATTACHMENT_BYTES if max_attachment_bytes is None else max_attachment_bytes
    issue_type = draft.issue_type.strip()
    location = draft.location.strip()
    if not issue_type or not location:
        raise ValidationError('Please select issue type and location.')
    if issue_type not in {item.value for item in IssueType}:
        raise ValidationError(f"Unknown issue type: {issue_type}")
    if issue_type == IssueType.OTHER.value and not draft.custom_issue_type.strip():
        raise ValidationError("Please specify the issue type in the 'Other' field.")
    if locations and location not in locations:
        raise ValidationError(f"Unknown location: {location}")
    if draft.attachment is not None:
        if len(draft.attachment.content) > max_attachment_bytes:
            raise ValidationError('Image file size should be less than 5MB')
        if not draft.attachment.content_type.startswith('image/'):
            raise ValidationError('Please upload only image files')


def build_payload(draft: ReportDraft, now: datetime) -> dict:
    issue_type = draft.issue_type.strip()
    final_issue_type = draft.custom_issue_type.strip() if issue_type == IssueType.OTHER.value else issue_type
    attachment = draft.attachment
    return {
        'issueType': final_issue_type,
        'location': draft.location.strip(),
        'priority': priority_for(issue_type).value,
        'details': draft.details,
        'timestamp': now.isoformat(),
        'image': encode_attachment(attachment) if attachment else None,
        'imageName': attachment.filename if attachment else None,
        'imageType': attachment.content_type if attachment else None,
    }


class ReportView:
    """Re-iterable, read-only view over a store's reports."""

    def __init__(self, store: 'ReportStore', scope: ReportScope, status: Optional[ReportStatus]) -> None:
        self._store = store
        self._scope = scope
        self._status = status

    def __iter__(self) -> Iterator[Report]:
        for report in self._store._snapshot(self._scope):
            if self._status is None or report.status == self._status:
                yield report

    def __len__(self) -> int:
        return sum(1 for _ in self)


class ReportStore:
    def __init__(self, client: BackendClient, reconciler: NotificationReconciler) -> None:
        self._client = client
        self._reconciler = reconciler
        self._reports: dict[str, Report] = {}
        self._mine: set[str] = set()
        self._resolving: set[str] = set()
        self._submitted_at: dict[str, int] = {}
        self._refresh_tokens = {scope: 0 for scope in ReportScope}
        self._refresh_floors: dict[ReportScope, int] = {}
        self._closed = False
        self.version = 0

    def _snapshot(self, scope: ReportScope) -> list[Report]:
        reports = list(self._reports.values())
        if scope == ReportScope.MINE:
            return [report for report in reports if report.id in self._mine]
        return reports

    def _touch(self) -> None:
        self.version += 1

    def list(self, scope: ReportScope = ReportScope.ALL, status: Optional[ReportStatus] = None) -> ReportView:
        return ReportView(self, ReportScope(scope), status)

    def active(self) -> ReportView:
        return self.list(status=ReportStatus.PENDING)

    def get(self, report_id: str) -> Optional[Report]:
        return self._reports.get(report_id)

    def close(self) -> None:
        self._closed = True

    def _merge(self, incoming: Report) -> Report:
        current = self._reports.get(incoming.id)
        if current is not None and not current.is_pending and incoming.is_pending:
            # Status never goes back to pending.
            return incoming.model_copy(update={'status': current.status, 'resolved_at': current.resolved_at})
        if current is not None and incoming.resolved_at is None and current.resolved_at is not None:
            return incoming.model_copy(update={'resolved_at': current.resolved_at})
        return incoming

    async def refresh(self, scope: ReportScope = ReportScope.ALL) -> ReportView:
        scope = ReportScope(scope)
        if scope == ReportScope.MINE and not self._client.is_authenticated:
            if self._mine:
                self._mine = set()
                self._touch()
            return self.list(scope)
        self._refresh_tokens[scope] += 1
        token = self._refresh_tokens[scope]
        floor = self.version
        self._refresh_floors[scope] = floor
        try:
            if scope == ReportScope.MINE:
                reports = await self._client.list_my_reports()
            else:
                reports = await self._client.list_reports()
        finally:
            if token == self._refresh_tokens[scope]:
                self._refresh_floors.pop(scope, None)
        if self._closed or token != self._refresh_tokens[scope]:
            logger.debug(f"Discarding stale {scope.value} reports response")
            return self.list(scope)
        merged = {report.id: self._merge(report) for report in reports}
        # Submitted while this fetch was in flight, so not in it yet.
        in_flight = {report_id for report_id, version in self._submitted_at.items() if version > floor}
        if scope == ReportScope.MINE:
            self._reports.update(merged)
            self._mine = set(merged) | (in_flight & self._mine)
        else:
            # Reports known only through "mine" stay until the next mine refresh.
            for report_id in self._mine | in_flight:
                if report_id not in merged and report_id in self._reports:
                    merged[report_id] = self._reports[report_id]
            self._reports = merged
        self._prune_submissions(floor)
        self._touch()
        return self.list(scope)

    def _prune_submissions(self, floor: int) -> None:
        # Submissions older than every running fetch are in the backend's lists now.
        horizon = min([floor, *self._refresh_floors.values()])
        self._submitted_at = {
            report_id: version for report_id, version in self._submitted_at.items() if version > horizon
        }

    async def submit(self, draft: ReportDraft, now: Optional[datetime] = None) -> Report:
        validate_draft(draft)
        payload = build_payload(draft, now or datetime.now(timezone.utc))
        try:
            report = await self._client.create_report(payload)
        except SessionExpiredError:
            raise
        except LifecycleError as exc:
            detail = exc.detail if isinstance(exc, BackendError) else None
            raise SubmissionFailed(detail) from exc
        if self._closed:
            return report
        self._reports[report.id] = report
        if self._client.is_authenticated:
            self._mine.add(report.id)
        self._touch()
        self._submitted_at[report.id] = self.version
        log_event(
            'lifecycle.submitted',
            report_id=report.id,
            issue_type=report.issue_type,
            priority=report.priority.value,
            location=report.location,
        )
        return report

    async def resolve(self, report_id: str, now: Optional[datetime] = None) -> Report:
        report = self._reports.get(report_id)
        if report is None:
            raise ReportNotFoundError()
        if not report.is_pending or report_id in self._resolving:
            raise ConflictError('This report has already been resolved.', status_code=None)
        self._resolving.add(report_id)
        try:
            await self._client.mark_resolved(report_id)
        finally:
            self._resolving.discard(report_id)
        resolved = report.model_copy(
            update={'status': ReportStatus.RESOLVED, 'resolved_at': now or datetime.now(timezone.utc)}
        )
        if not self._closed:
            self._reports[report_id] = self._merge(resolved)
            self._touch()
        log_event('lifecycle.resolved', report_id=report_id)
        try:
            await self._reconciler.materialize(resolved)
        except LifecycleError as exc:
            raise PartialResolutionError(resolved, exc.message) from exc
        return resolved
