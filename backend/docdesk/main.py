from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from docdesk import __version__
from docdesk.api.deps import get_dispatcher
from docdesk.api.v1.router import api_router
from docdesk.core.config import get_settings
from docdesk.core.exceptions import AppError
from docdesk.core.logging import configure_logging
from docdesk.core.middleware import RequestIDMiddleware
from docdesk.core.responses import error_response, format_validation_errors, success_response

logger = logging.getLogger(__name__)

HTTP_ERROR_CODES = {404: "not_found", 405: "method_not_allowed"}


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    logger.info("Application startup")
    yield
    dispatcher = get_dispatcher()
    if dispatcher.pending:
        logger.info("Waiting for %d notification task(s)", dispatcher.pending)
    await dispatcher.drain(timeout=settings.notification_drain_timeout_sec)
    logger.info("Application shutdown")


settings = get_settings()
app = FastAPI(
    title=settings.project_name,
    version=__version__,
    lifespan=lifespan,
    openapi_tags=[
        {"name": "Tickets", "description": "Anonymous intake, ticket snapshot and replies"},
        {"name": "Admin Tickets", "description": "Staff ticket list and status changes"},
    ],
)

app.add_middleware(RequestIDMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.frontend_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_router, prefix=settings.api_v1_prefix)


@app.get("/healthz", tags=["Health"])
async def healthz(request: Request):
    return success_response(data={"status": "ok"}, request=request)


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    return JSONResponse(
        status_code=exc.status_code,
        content=error_response(exc.code, exc.message, exc.details, request=request),
    )


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content=error_response(HTTP_ERROR_CODES.get(exc.status_code, "http_error"), str(exc.detail), request=request),
        headers=exc.headers,
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=422,
        content=error_response(
            "validation_error",
            "Request validation failed",
            {"errors": format_validation_errors(exc.errors())},
            request=request,
        ),
    )


@app.exception_handler(Exception)
async def unknown_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error", exc_info=exc)
    return JSONResponse(
        status_code=500,
        content=error_response("internal_error", "Internal server error", request=request),
    )
