from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from pressledger.core.errors import BusyError, LedgerError

logger = logging.getLogger(__name__)


async def ledger_error_handler(request: Request, exc: LedgerError) -> JSONResponse:
    payload = {**exc.to_payload(), "error": type(exc).__name__, "retryable": exc.retryable}
    if exc.status_code >= 500 and not isinstance(exc, BusyError):
        logger.error("%s %s failed: %s detail=%s", request.method, request.url.path, exc.message, exc.detail)
    elif exc.retryable:
        logger.warning("%s %s contention: %s", request.method, request.url.path, exc.message)
    else:
        logger.info("%s %s rejected: %s", request.method, request.url.path, exc.message)

    headers = {"Retry-After": "1"} if isinstance(exc, BusyError) else None
    return JSONResponse(status_code=exc.status_code, content={"detail": payload}, headers=headers)


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(LedgerError, ledger_error_handler)
