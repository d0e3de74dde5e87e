from fastapi import APIRouter, Depends

from reportdesk.api.deps import get_controller
from reportdesk.schemas.dashboard import AdminDashboardOut, UserDashboardOut
from reportdesk.services.lifecycle_controller import LifecycleController

router = APIRouter(prefix='/dashboard', tags=['dashboard'])


@router.get('/admin', response_model=AdminDashboardOut)
def admin_dashboard_endpoint(controller: LifecycleController = Depends(get_controller)) -> AdminDashboardOut:
    return controller.admin_dashboard()


@router.get('/user', response_model=UserDashboardOut)
def user_dashboard_endpoint(controller: LifecycleController = Depends(get_controller)) -> UserDashboardOut:
    return controller.user_dashboard()
