"""Exception handlers rendering gating errors as JSON responses."""
from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from ..billing import FeatureGateError


logger = logging.getLogger("billing")


async def handle_feature_gate_error(request: Request, exc: FeatureGateError) -> JSONResponse:
    logger.info(
        "Request %s %s blocked code=%s status=%s",
        request.method,
        request.url.path,
        exc.code,
        exc.status_code,
    )
    return exc.to_response()


def register_exception_handlers(app: FastAPI) -> None:
    """Attach gating error handlers to ``app``."""

    app.add_exception_handler(FeatureGateError, handle_feature_gate_error)
