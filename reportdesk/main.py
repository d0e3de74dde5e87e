import asyncio
from contextlib import asynccontextmanager, suppress

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger

from reportdesk.api.v1.router import api_router
from reportdesk.core.config import settings
from reportdesk.core.errors import LifecycleError, SessionExpiredError
from reportdesk.core.logging import configure_logging
from reportdesk.services.lifecycle_controller import LifecycleController, build_controller

configure_logging(settings.LOG_LEVEL)


async def run_reconciliation(controller: LifecycleController, interval: float) -> None:
    while True:
        await asyncio.sleep(interval)
        try:
            summary = await controller.reconcile()
        except SessionExpiredError as exc:
            logger.warning(f"Reconciliation paused: {exc.message}")
            continue
        except LifecycleError as exc:
            logger.warning(f"Reconciliation pass failed: {exc.message}")
            continue
        except Exception:
            logger.exception('Reconciliation pass crashed')
            continue
        if summary['pending_notifications'] or summary['unacknowledged']:
            logger.info(f"Reconciliation pending: {summary}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    client, controller = build_controller(getattr(app.state, 'backend_transport', None))
    app.state.controller = controller
    try:
        await controller.load()
    except SessionExpiredError as exc:
        logger.warning(f"Initial load skipped: {exc.message}")
    task = None
    if settings.RECONCILE_INTERVAL_SECONDS > 0:
        task = asyncio.create_task(run_reconciliation(controller, settings.RECONCILE_INTERVAL_SECONDS))
    try:
        yield
    finally:
        if task is not None:
            task.cancel()
            with suppress(asyncio.CancelledError):
                await task
        controller.close()
        app.state.controller = None
        await client.aclose()


app = FastAPI(title=settings.PROJECT_NAME, debug=settings.DEBUG, lifespan=lifespan)

allow_origins = settings.CORS_ORIGINS
allow_credentials = '*' not in allow_origins

app.add_middleware(
    CORSMiddleware,
    allow_origins=allow_origins,
    allow_credentials=allow_credentials,
    allow_methods=['*'],
    allow_headers=['*'],
)


@app.exception_handler(SessionExpiredError)
async def session_expired_handler(_: Request, exc: SessionExpiredError) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_401_UNAUTHORIZED, content={'detail': exc.message})


app.include_router(api_router)
