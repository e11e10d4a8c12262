"""Application factory for the run orchestrator API."""
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from .. import __version__
from ..config import load_config
from ..errors import AccessDenied, CorbAdminError, InvalidRequest, IOFailure, NotFound, RunConflict
from ..service import RunService, build_service
from .routes import router

LOGGER = logging.getLogger("corb_admin.api")

CONFIG_ENV_VAR = "CORB_ADMIN_CONFIG"

_STATUS_CODES = (
    (AccessDenied, 403),
    (NotFound, 404),
    (InvalidRequest, 400),
    (RunConflict, 409),
    (IOFailure, 500),
)


def create_app(service: Optional[RunService] = None) -> FastAPI:
    if service is None:
        config_path = os.getenv(CONFIG_ENV_VAR)
        service = build_service(load_config(Path(config_path) if config_path else None))

    app = FastAPI(title="CoRB Admin", version=__version__)
    app.state.service = service
    app.include_router(router, prefix="/api")
    app.add_exception_handler(CorbAdminError, handle_orchestrator_error)

    @app.get("/")
    async def root() -> dict[str, str]:
        return {"service": "corb-admin"}

    return app


async def handle_orchestrator_error(request: Request, exc: CorbAdminError) -> JSONResponse:
    status_code = next((code for kind, code in _STATUS_CODES if isinstance(exc, kind)), 500)
    if status_code >= 500:
        LOGGER.error("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=status_code, content={"detail": str(exc)})
