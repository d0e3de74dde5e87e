from fastapi import HTTPException, Request, status

from reportdesk.services.lifecycle_controller import LifecycleController


def get_controller(request: Request) -> LifecycleController:
    controller = getattr(request.app.state, 'controller', None)
    if controller is None:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail='Service is starting up')
    return controller
