from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from campus_drive.core.errors import CampusDriveError

logger = logging.getLogger("cd.errors")


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(CampusDriveError)
    async def campus_drive_error_handler(request: Request, exc: CampusDriveError):
        log = logger.warning if exc.retryable or exc.status_code >= 500 else logger.info
        log(
            "request_rejected",
            extra={"path": request.url.path, "kind": exc.kind, "status_code": exc.status_code},
        )
        return JSONResponse(status_code=exc.status_code, content={"error": exc.to_dict()})
