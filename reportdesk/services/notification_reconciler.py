from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Optional

from loguru import logger

from reportdesk.core.errors import LifecycleError, SessionExpiredError
from reportdesk.core.logging import log_event
from reportdesk.schemas.admin_update import AdminUpdate
from reportdesk.schemas.report import Report
from reportdesk.services.backend_client import BackendClient

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


class NotificationReconciler:
    """
    Owns the "admin updates" feed a reporter sees.

    An update appears when a report is resolved and disappears once the
    reporter confirms it. Confirmation removes the update locally before the
    backend is told, so a duplicate confirm (double click, re-render) finds
    nothing and returns without error. If the backend acknowledgement fails
    the removal stands; the report id is queued and
    ``flush_acknowledgements`` retries it later.
    """

    def __init__(self, client: BackendClient) -> None:
        self._client = client
        self._updates: dict[str, tuple[int, AdminUpdate]] = {}
        self._last_seq = 0
        self._confirmed: set[str] = set()
        self._unacknowledged: list[str] = []
        self._refresh_token = 0
        self._materializing: dict[str, asyncio.Task] = {}
        self._closed = False

    def list(self) -> list[AdminUpdate]:
        entries = sorted(
            self._updates.values(),
            key=lambda entry: (entry[1].created_at or _EPOCH, entry[0]),
            reverse=True,
        )
        return [update for _, update in entries]

    def get(self, report_id: str) -> Optional[AdminUpdate]:
        entry = self._updates.get(report_id)
        return entry[1] if entry else None

    def has_update(self, report_id: str) -> bool:
        return report_id in self._updates

    @property
    def unacknowledged(self) -> list[str]:
        return list(self._unacknowledged)

    def close(self) -> None:
        self._closed = True

    def _store(self, update: AdminUpdate) -> None:
        self._last_seq += 1
        self._updates[update.report_id] = (self._last_seq, update)

    async def refresh(self) -> list[AdminUpdate]:
        self._refresh_token += 1
        token = self._refresh_token
        floor = self._last_seq
        updates = await self._client.list_admin_updates()
        if self._closed or token != self._refresh_token:
            logger.debug('Discarding stale admin update feed response')
            return self.list()
        previous = self._updates
        self._updates = {}
        for update in updates:
            if update.report_id in self._confirmed:
                continue
            # Keep the local snapshot when both sides know the update.
            kept = previous.get(update.report_id)
            self._store(kept[1] if kept else update)
        # Updates materialized while the fetch was in flight are not in it yet.
        for report_id, (seq, update) in previous.items():
            if seq > floor and report_id not in self._updates:
                self._store(update)
        return self.list()

    async def materialize(self, report: Report, now: Optional[datetime] = None) -> AdminUpdate:
        existing = self.get(report.id)
        if existing is not None:
            return existing
        running = self._materializing.get(report.id)
        if running is not None:
            # Another caller is already recording this update.
            return await asyncio.shield(running)
        task = asyncio.ensure_future(self._record(report, now or datetime.now(timezone.utc)))
        self._materializing[report.id] = task
        try:
            return await task
        finally:
            if self._materializing.get(report.id) is task:
                del self._materializing[report.id]

    async def _record(self, report: Report, now: datetime) -> AdminUpdate:
        update = AdminUpdate.snapshot(report, now)
        await self._client.record_admin_update(update)
        if self._closed:
            return update
        # A concurrent refresh may have picked the update up already.
        existing = self.get(report.id)
        if existing is not None:
            return existing
        self._store(update)
        log_event('lifecycle.update_materialized', report_id=report.id, location=report.location)
        return update

    async def confirm(self, report_id: str) -> bool:
        if report_id not in self._updates:
            return False
        self._updates.pop(report_id)
        self._confirmed.add(report_id)
        try:
            await self._client.confirm_update(report_id)
        except LifecycleError as exc:
            self._unacknowledged.append(report_id)
            log_event('lifecycle.confirm_unacknowledged', level='WARNING', report_id=report_id, error=exc.message)
            raise
        log_event('lifecycle.update_confirmed', report_id=report_id)
        return True

    async def flush_acknowledgements(self) -> list[str]:
        """Retry queued confirmations; returns the ids still unacknowledged."""
        pending, self._unacknowledged = self._unacknowledged, []
        for index, report_id in enumerate(pending):
            try:
                await self._client.confirm_update(report_id)
            except SessionExpiredError:
                self._unacknowledged.extend(pending[index:])
                raise
            except LifecycleError as exc:
                logger.warning(f"Confirmation for report {report_id} still unacknowledged: {exc.message}")
                self._unacknowledged.extend(pending[index:])
                break
        return list(self._unacknowledged)
