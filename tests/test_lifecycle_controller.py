import asyncio

import pytest

from reportdesk.core.errors import SessionExpiredError
from reportdesk.models.enums import ReportStatus
from reportdesk.services.backend_client import BackendClient
from reportdesk.services.lifecycle_controller import LifecycleController
from reportdesk.services.notification_reconciler import NotificationReconciler
from reportdesk.services.report_store import ReportStore


async def _loaded(controller, backend, count: int = 1):
    for _ in range(count):
        backend.add_report()
    await controller.load()


@pytest.mark.anyio
async def test_submit_success_and_validation_failure(controller, backend, make_draft):
    result = await controller.submit(make_draft())
    assert result.ok is True
    assert result.message == "Report submitted successfully!"
    assert result.report.priority.value == "High Priority"

    rejected = await controller.submit(make_draft(issue_type="Other", custom_issue_type=""))
    assert rejected.ok is False
    assert rejected.error == "validation"
    assert rejected.message == "Please specify the issue type in the 'Other' field."
    assert backend.calls("POST", "/api/reports") == 1


@pytest.mark.anyio
async def test_stats_follow_store_changes(controller, backend, make_draft):
    await _loaded(controller, backend, 2)
    assert controller.dashboard_stats().active_issues == 2
    await controller.submit(make_draft())
    assert controller.dashboard_stats().active_issues == 3
    await controller.resolve("r1")
    stats = controller.dashboard_stats()
    assert stats.active_issues == 2
    assert stats.resolved_today == 1


@pytest.mark.anyio
async def test_resolve_retries_step_b_once_then_succeeds(controller, backend):
    await _loaded(controller, backend)
    backend.fail("POST", "/api/admin/resolve", 503)
    result = await controller.resolve("r1")
    assert result.ok is True
    assert result.warning is False
    assert result.update.report_id == "r1"
    assert [update.report_id for update in controller.reconciler.list()] == ["r1"]
    assert len(backend.updates) == 1
    assert backend.calls("POST", "/api/reports/r1/resolve") == 1
    assert controller.store.get("r1").status == ReportStatus.RESOLVED
    assert controller.pending_notifications == []
    assert controller.warnings == []


@pytest.mark.anyio
async def test_timed_out_step_b_that_landed_is_not_duplicated(controller, backend):
    await _loaded(controller, backend)
    backend.fail("POST", "/api/admin/resolve", "landed-timeout")
    result = await controller.resolve("r1")
    assert result.ok is True
    assert len(backend.updates) == 1
    assert backend.calls("POST", "/api/admin/resolve") == 1
    assert len(controller.reconciler.list()) == 1


@pytest.mark.anyio
async def test_exhausted_retries_leave_warning_until_reconciled(controller, backend):
    await _loaded(controller, backend)
    backend.fail("POST", "/api/admin/resolve", 503, 503, 503, 503)
    result = await controller.resolve("r1")
    assert result.ok is True
    assert result.warning is True
    assert "has not been notified" in result.message
    assert controller.pending_notifications == ["r1"]
    assert len(controller.warnings) == 1
    assert controller.store.get("r1").status == ReportStatus.RESOLVED
    assert backend.calls("POST", "/api/reports/r1/resolve") == 1
    assert controller.admin_dashboard().warnings == controller.warnings

    summary = await controller.reconcile()
    assert summary["notified"] == ["r1"]
    assert controller.pending_notifications == []
    assert controller.warnings == []
    assert len(backend.updates) == 1
    assert backend.calls("POST", "/api/reports/r1/resolve") == 1


@pytest.mark.anyio
async def test_backend_conflict_refreshes_instead_of_assuming(controller, backend):
    await _loaded(controller, backend)
    # Another admin resolved it in the meantime.
    backend.reports["r1"]["status"] = "resolved"
    result = await controller.resolve("r1")
    assert result.ok is False
    assert result.error == "conflict"
    assert result.message == "Report already resolved"
    assert controller.store.get("r1").status == ReportStatus.RESOLVED
    assert controller.reconciler.list() == []


@pytest.mark.anyio
async def test_resolve_network_failure_changes_nothing(controller, backend):
    await _loaded(controller, backend)
    backend.fail("POST", "/api/reports/r1/resolve", "timeout")
    result = await controller.resolve("r1")
    assert result.ok is False
    assert controller.store.get("r1").status == ReportStatus.PENDING
    assert backend.calls("POST", "/api/admin/resolve") == 0
    retry = await controller.resolve("r1")
    assert retry.ok is True


@pytest.mark.anyio
async def test_concurrent_resolves_of_different_reports(controller, backend):
    await _loaded(controller, backend, 3)
    results = await asyncio.gather(*(controller.resolve(f"r{index}") for index in (1, 2, 3)))
    assert all(result.ok for result in results)
    assert {update.report_id for update in controller.reconciler.list()} == {"r1", "r2", "r3"}
    assert controller.dashboard_stats().active_issues == 0


@pytest.mark.anyio
async def test_double_click_resolve_issues_step_a_once(controller, backend):
    await _loaded(controller, backend)
    first, second = await asyncio.gather(controller.resolve("r1"), controller.resolve("r1"))
    assert sorted([first.ok, second.ok]) == [False, True]
    assert backend.calls("POST", "/api/reports/r1/resolve") == 1
    assert len(backend.updates) == 1


@pytest.mark.anyio
async def test_confirm_double_click(controller, backend):
    await _loaded(controller, backend)
    await controller.resolve("r1")
    first, second = await asyncio.gather(controller.confirm("r1"), controller.confirm("r1"))
    assert first.ok and second.ok
    assert controller.reconciler.list() == []
    assert backend.calls("POST", "/api/admin/resolve-confirm") == 1


@pytest.mark.anyio
async def test_confirm_ack_failure_keeps_removal_and_reconciles(controller, backend):
    await _loaded(controller, backend)
    await controller.resolve("r1")
    backend.fail("POST", "/api/admin/resolve-confirm", 502)
    result = await controller.confirm("r1")
    assert result.ok is True
    assert result.warning is True
    assert controller.reconciler.list() == []
    assert len(backend.updates) == 1

    summary = await controller.reconcile()
    assert summary["unacknowledged"] == []
    assert backend.updates == []


@pytest.mark.anyio
async def test_load_tolerates_one_failed_fetch(controller, backend):
    backend.add_report()
    backend.updates.append({"reportId": "r0", "issueType": "Other", "location": "Restroom - Sixth Floor(610)"})
    backend.fail("GET", "/api/reports", 500)
    await controller.load()
    assert list(controller.store.list()) == []
    assert [update.report_id for update in controller.reconciler.list()] == ["r0"]


@pytest.mark.anyio
async def test_session_expiry_escapes_controller(backend):
    client = BackendClient("http://backend.test", token="expired", transport=backend.transport())
    reconciler = NotificationReconciler(client)
    controller = LifecycleController(ReportStore(client, reconciler), reconciler, retry_delay=0)
    backend.fail("GET", "/api/my-reports", 401)
    with pytest.raises(SessionExpiredError):
        await controller.load()
    assert client.token is None


@pytest.mark.anyio
async def test_user_dashboard_views(backend, make_draft):
    client = BackendClient("http://backend.test", token="t", transport=backend.transport())
    reconciler = NotificationReconciler(client)
    controller = LifecycleController(ReportStore(client, reconciler), reconciler, retry_delay=0)
    backend.add_report()
    mine = await controller.submit(make_draft())
    await controller.load()
    await controller.resolve(mine.report.id)
    dashboard = controller.user_dashboard()
    assert [report.id for report in dashboard.recent_reports] == ["r1", mine.report.id]
    assert [report.id for report in dashboard.my_reports] == [mine.report.id]
    assert [update.report_id for update in dashboard.admin_updates] == [mine.report.id]


@pytest.mark.anyio
async def test_overlapping_reconcile_passes_record_one_update(controller, backend):
    await _loaded(controller, backend)
    backend.fail("POST", "/api/admin/resolve", 503, 503, 503, 503)
    await controller.resolve("r1")
    assert controller.pending_notifications == ["r1"]

    await asyncio.gather(controller.reconcile(), controller.reconcile())
    assert len(backend.updates) == 1
    assert controller.pending_notifications == []
    assert [update.report_id for update in controller.reconciler.list()] == ["r1"]
