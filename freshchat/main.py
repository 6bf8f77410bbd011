from __future__ import annotations
import logging
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import uvicorn

from .config import get_settings
from .broker import Broker, get_broker
from .realtime.hub import ConnectionHub
from .api.routers import health as health_router
from .api.routers import auth as auth_router
from .api.routers import users as users_router
from .api.routers import messages as messages_router
from .api.routers import ws as ws_router
from .api.routers import metrics as metrics_router
from .observability.logging import setup_logging
from .middleware.request_context import RequestContextMiddleware
from .observability.metrics import MetricsHTTPMiddleware

settings = get_settings()
setup_logging()
log = logging.getLogger("freshchat")


def _error_body(request: Request, message: str) -> dict:
    # verify-otp reports every failure with the success flag
    if request.scope.get("endpoint") is auth_router.verify_otp:
        return {"success": False, "error": message}
    return {"error": message}


async def _validation_error(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    detail = errors[0].get("msg", "Invalid request") if errors else "Invalid request"
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=_error_body(request, detail))


async def _unhandled_error(request: Request, exc: Exception):
    log.error("unhandled exception: %s", exc, exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=_error_body(request, "Internal server error"),
    )


def create_app(broker: Optional[Broker] = None) -> FastAPI:
    app = FastAPI(title=settings.APP_NAME, debug=settings.DEBUG)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=[settings.REQUEST_ID_HEADER],
    )

    # then our custom middlewares
    app.add_middleware(RequestContextMiddleware)
    app.add_middleware(MetricsHTTPMiddleware)

    app.add_exception_handler(RequestValidationError, _validation_error)
    app.add_exception_handler(Exception, _unhandled_error)

    # one broker and one hub per app; every socket of this process shares them
    app.state.broker = broker if broker is not None else get_broker()
    app.state.hub = ConnectionHub(app.state.broker, settings.CHAT_TOPIC)

    app.include_router(health_router.router)
    app.include_router(metrics_router.router)
    app.include_router(auth_router.router, prefix="/api")
    app.include_router(users_router.router, prefix="/api")
    app.include_router(messages_router.router, prefix="/api")
    app.include_router(ws_router.router)

    return app


app = create_app()


if __name__ == "__main__":
    uvicorn.run("freshchat.main:app", host=settings.APP_HOST, port=settings.APP_PORT, reload=settings.DEBUG)
