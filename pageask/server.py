from __future__ import annotations

import logging
import time
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from .model_client import AssistantError, ClientConfig, ask_model
from .schemas import AskRequest, AskResponse

logger = logging.getLogger(__name__)


def create_app(config: ClientConfig) -> FastAPI:
    app = FastAPI(title="page_assistant", version="0.1.0")

    @app.exception_handler(AssistantError)
    async def assistant_error(request: Request, exc: AssistantError) -> JSONResponse:
        logger.error("%s %s failed: %s: %s", request.method, request.url.path, type(exc).__name__, exc)
        return JSONResponse(
            status_code=exc.http_status,
            content={"error": str(exc), "type": type(exc).__name__},
        )

    @app.exception_handler(RequestValidationError)
    async def invalid_request(request: Request, exc: RequestValidationError) -> JSONResponse:
        logger.warning("Rejected %s %s: %s", request.method, request.url.path, exc.errors())
        return JSONResponse(
            status_code=400,
            content={"error": f"Invalid request body: {exc.errors()}", "type": "ValidationError"},
        )

    @app.get("/api/health")
    def health() -> dict[str, Any]:
        return {"status": "ok", "message": "service is running"}

    @app.post("/api/ask", response_model=AskResponse)
    def ask(payload: AskRequest) -> AskResponse:
        started = time.perf_counter()
        response = ask_model(payload, config)
        logger.info("POST /api/ask 200 in %.0f ms", (time.perf_counter() - started) * 1000.0)
        return response

    return app
