import base64
import binascii

from fastapi import APIRouter, Depends, HTTPException, status

from reportdesk.api.deps import get_controller
from reportdesk.models.enums import ReportScope
from reportdesk.schemas.dashboard import ActionOut
from reportdesk.schemas.report import Attachment, Report, ReportDraft, ReportSubmitIn
from reportdesk.services.lifecycle_controller import ActionResult, LifecycleController

router = APIRouter(prefix='/reports', tags=['reports'])

_ERROR_STATUS = {
    'validation': status.HTTP_400_BAD_REQUEST,
    'not_found': status.HTTP_404_NOT_FOUND,
    'conflict': status.HTTP_409_CONFLICT,
}


def to_action_out(result: ActionResult) -> ActionOut:
    if not result.ok:
        code = _ERROR_STATUS.get(result.error or '', status.HTTP_502_BAD_GATEWAY)
        raise HTTPException(status_code=code, detail=result.message)
    return ActionOut(
        ok=result.ok,
        message=result.message,
        warning=result.warning,
        report=result.report,
        update=result.update,
    )


def _to_draft(payload: ReportSubmitIn) -> ReportDraft:
    attachment = None
    if payload.attachment is not None:
        data = payload.attachment.data
        if data.startswith('data:') and ',' in data:
            data = data.split(',', 1)[1]
        try:
            content = base64.b64decode(data, validate=True)
        except (binascii.Error, ValueError):
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail='Attachment is not valid base64')
        attachment = Attachment(
            content=content,
            content_type=payload.attachment.content_type,
            filename=payload.attachment.filename,
        )
    return ReportDraft(
        issue_type=payload.issue_type,
        custom_issue_type=payload.custom_issue_type,
        location=payload.location,
        details=payload.details,
        attachment=attachment,
    )


@router.get('', response_model=list[Report])
def list_reports_endpoint(
    scope: ReportScope = ReportScope.ALL,
    controller: LifecycleController = Depends(get_controller),
) -> list[Report]:
    return list(controller.store.list(scope))


@router.post('', response_model=ActionOut, status_code=status.HTTP_201_CREATED)
async def submit_report_endpoint(
    payload: ReportSubmitIn,
    controller: LifecycleController = Depends(get_controller),
) -> ActionOut:
    result = await controller.submit(_to_draft(payload))
    return to_action_out(result)


@router.post('/refresh')
async def refresh_reports_endpoint(controller: LifecycleController = Depends(get_controller)) -> dict:
    await controller.load()
    return {'status': 'ok', 'reports': len(controller.store.list()), 'updates': len(controller.reconciler.list())}


@router.post('/{report_id}/resolve', response_model=ActionOut)
async def resolve_report_endpoint(
    report_id: str,
    controller: LifecycleController = Depends(get_controller),
) -> ActionOut:
    result = await controller.resolve(report_id)
    return to_action_out(result)
