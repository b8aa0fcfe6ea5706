"""
Exception handlers translating the error taxonomy to HTTP responses.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from ..errors import StorefrontError
from ..store.base import StoreError, StoreUnavailableError

logger = logging.getLogger(__name__)


async def storefront_error_handler(request: Request, exc: StorefrontError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(
            "Request failed",
            extra={"path": request.url.path, "error_code": exc.code, "error": exc.message},
        )
    return JSONResponse(status_code=exc.status_code, content=jsonable_encoder(exc.to_dict()))


async def store_error_handler(request: Request, exc: StoreError) -> JSONResponse:
    status_code = 503 if isinstance(exc, StoreUnavailableError) else 500
    logger.error(
        "Store failure",
        extra={"path": request.url.path, "error": str(exc)},
    )
    return JSONResponse(
        status_code=status_code,
        content={"error": "Storage unavailable", "error_code": "STORE_FAILURE", "details": {}},
    )


def install_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(StorefrontError, storefront_error_handler)
    app.add_exception_handler(StoreError, store_error_handler)
