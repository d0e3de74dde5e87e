#!/usr/bin/env python3
import argparse
import asyncio
import json
from pathlib import Path
from typing import Any, Optional

from reportdesk.core.errors import LifecycleError
from reportdesk.models.enums import IssueType
from reportdesk.schemas.report import ReportDraft
from reportdesk.services.backend_client import BackendClient
from reportdesk.services.lifecycle_controller import ActionResult, LifecycleController
from reportdesk.services.notification_reconciler import NotificationReconciler
from reportdesk.services.report_store import ReportStore


def _build_draft(issue_type: str, location: str, details: str = '', custom: str = '') -> ReportDraft:
    if issue_type not in {item.value for item in IssueType}:
        custom = custom or issue_type
        issue_type = IssueType.OTHER.value
    return ReportDraft(issue_type=issue_type, custom_issue_type=custom, location=location, details=details)


def _entry(step: str, result: ActionResult) -> dict[str, Any]:
    entry: dict[str, Any] = {'step': step, 'ok': result.ok, 'message': result.message}
    if result.warning:
        entry['warning'] = True
    if result.report is not None:
        entry['report_id'] = result.report.id
        entry['status'] = result.report.status.value
    return entry


def _summarize(base_url: str, results: list[dict[str, Any]]) -> dict[str, Any]:
    passed = len([item for item in results if item['ok'] and not item.get('warning')])
    return {
        'base_url': base_url,
        'total': len(results),
        'passed': passed,
        'failed': len(results) - passed,
        'results': results,
    }


async def _run(args: argparse.Namespace) -> list[dict[str, Any]]:
    results: list[dict[str, Any]] = []
    async with BackendClient(args.base_url, token=args.token, timeout=args.timeout) as client:
        reconciler = NotificationReconciler(client)
        controller = LifecycleController(ReportStore(client, reconciler), reconciler, retry_delay=args.retry_delay)
        draft = _build_draft(args.issue_type, args.location, args.details)
        submitted = await controller.submit(draft)
        results.append(_entry('submit', submitted))
        if not submitted.ok or submitted.report is None:
            return results
        report_id = submitted.report.id

        resolved = await controller.resolve(report_id)
        results.append(_entry('resolve', resolved))
        if not resolved.ok:
            return results

        await controller.load()
        visible = controller.reconciler.has_update(report_id)
        results.append(
            {
                'step': 'feed',
                'ok': visible,
                'message': 'Admin update visible' if visible else 'Admin update missing from feed',
            }
        )

        confirmed = await controller.confirm(report_id)
        results.append(_entry('confirm', confirmed))
        again = await controller.confirm(report_id)
        results.append(_entry('confirm-again', again))
    return results


def _write_output(output: Optional[str], summary: dict[str, Any]) -> None:
    if not output:
        return
    output_path = Path(output)
    if not output_path.is_absolute():
        output_path = Path(__file__).resolve().parents[1] / output_path
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(json.dumps(summary, ensure_ascii=False, indent=2), encoding='utf-8')


def main() -> int:
    parser = argparse.ArgumentParser(description='Walk one report through submit, resolve and confirm')
    parser.add_argument('--base-url', default='http://localhost:5000')
    parser.add_argument('--token', default=None)
    parser.add_argument('--issue-type', default=IssueType.EMPTY_DISPENSER.value)
    parser.add_argument('--location', default='Restroom - Ground Floor(010)')
    parser.add_argument('--details', default='smoke test')
    parser.add_argument('--timeout', type=float, default=10.0)
    parser.add_argument('--retry-delay', type=float, default=1.0)
    parser.add_argument('--output', default='reports/lifecycle_smoke.json')
    args = parser.parse_args()

    try:
        results = asyncio.run(_run(args))
    except LifecycleError as exc:
        print(f"Aborted: {exc.message}")
        return 1
    summary = _summarize(args.base_url, results)
    _write_output(args.output, summary)
    print(f"Total: {summary['total']}, Passed: {summary['passed']}, Failed: {summary['failed']}")
    return 0 if summary['failed'] == 0 else 2


if __name__ == '__main__':
    raise SystemExit(main())
