from fastapi import APIRouter, Depends

from reportdesk.api.deps import get_controller
from reportdesk.services.lifecycle_controller import LifecycleController

router = APIRouter()


@router.get('/health')
def health(controller: LifecycleController = Depends(get_controller)) -> dict:
    return {
        'status': 'ok',
        'pending_notifications': len(controller.pending_notifications),
        'unacknowledged': len(controller.reconciler.unacknowledged),
    }
