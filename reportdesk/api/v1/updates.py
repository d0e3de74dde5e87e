from fastapi import APIRouter, Depends

from reportdesk.api.deps import get_controller
from reportdesk.api.v1.reports import to_action_out
from reportdesk.schemas.admin_update import AdminUpdate
from reportdesk.schemas.dashboard import ActionOut
from reportdesk.services.lifecycle_controller import LifecycleController

router = APIRouter(tags=['updates'])


@router.get('/updates', response_model=list[AdminUpdate])
def list_updates_endpoint(controller: LifecycleController = Depends(get_controller)) -> list[AdminUpdate]:
    return controller.reconciler.list()


@router.post('/updates/{report_id}/confirm', response_model=ActionOut)
async def confirm_update_endpoint(
    report_id: str,
    controller: LifecycleController = Depends(get_controller),
) -> ActionOut:
    result = await controller.confirm(report_id)
    return to_action_out(result)


@router.post('/reconcile')
async def reconcile_endpoint(controller: LifecycleController = Depends(get_controller)) -> dict:
    summary = await controller.reconcile()
    return {'status': 'ok', **summary}
