from __future__ import annotations

import traceback

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import HTMLResponse, JSONResponse
from loguru import logger
from sqlalchemy import text

from app.core.admin.api.v1.routes_admin import router as admin_router
from app.core.admin.api.v1.routes_admin_catalog import router as admin_catalog_router
from app.core.affiliates.api.v1.routes_affiliates import router as affiliates_router
from app.core.audit.services import log_event
from app.core.auth.api.v1.routes_auth import router as auth_router
from app.core.auth.api.v1.routes_me import router as me_router
from app.core.cron.api.v1.routes_cron import router as cron_router
from app.core.payments.api.v1.routes_payments import router as payments_router
from app.core.plans.api.v1.routes_plans import router as plans_router
from app.core.promocodes.api.v1.routes_promocodes import router as promocodes_router
from app.core.recovery.api.v1.routes_recovery import router as recovery_router
from app.core.subscriptions.api.v1.routes_subscriptions import (
    router as subscriptions_router,
)
from app.database.session import SessionLocal
from app.response import APIError, StandardResponse, make_error_response
from app.utils.redis_client import get_redis
from vistra_bg_worker.celery_app import celery_app


app = FastAPI()


def _request_id(request: Request) -> str | None:
    return request.headers.get("x-request-id")


def _error_json(response: StandardResponse, status_code: int) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=jsonable_encoder(response))


@app.exception_handler(APIError)
async def api_error_handler(
    request: Request,
    exc: APIError,
) -> JSONResponse:
    response: StandardResponse = make_error_response(
        code=exc.code,
        http_code=exc.http_code,
        message=exc.message,
        details=exc.details,
        fields=exc.fields,
        request_id=_request_id(request),
    )
    return _error_json(response, exc.http_code)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(
    request: Request,
    exc: RequestValidationError,
) -> JSONResponse:
    fields = [
        {
            "field": ".".join(str(part) for part in error.get("loc", ()) if part != "body"),
            "message": error.get("msg", ""),
        }
        for error in exc.errors()
    ]
    response = make_error_response(
        code="VALIDATION_ERROR",
        http_code=400,
        message="Request validation failed",
        fields=fields,
        request_id=_request_id(request),
    )
    return _error_json(response, 400)


@app.exception_handler(Exception)
async def unhandled_error_handler(
    request: Request,
    exc: Exception,
) -> JSONResponse:
    logger.opt(exception=exc).error("Unhandled error on {}", request.url.path)
    log_event(
        "error",
        "system",
        f"Unhandled error on {request.method} {request.url.path}",
        {"error": str(exc)},
        stack_trace="".join(traceback.format_exception(type(exc), exc, exc.__traceback__)),
    )
    response = make_error_response(
        code="INTERNAL_ERROR",
        http_code=500,
        message="Internal server error",
        request_id=_request_id(request),
    )
    return _error_json(response, 500)


app.title = "VistraTV Payments API"
app.version = "1.0.0"


@app.get("/", response_class=HTMLResponse, include_in_schema=False)
async def root() -> str:
    api_ok = True

    db_ok = False
    db = SessionLocal()
    try:
        db.execute(text("SELECT 1"))
        db_ok = True
    except Exception:
        db_ok = False
    finally:
        db.close()

    redis_ok = False
    try:
        get_redis().ping()
        redis_ok = True
    except Exception:
        redis_ok = False

    worker_ok = False
    try:
        worker_ok = bool(celery_app.control.ping(timeout=0.5))
    except Exception:
        worker_ok = False

    def row(label: str, ok: bool) -> str:
        color = "#22C55E" if ok else "#F43F5E"
        state = "Online" if ok else "Offline"
        return (
            f'<div class="row"><span>{label}</span>'
            f'<span style="color:{color}">{state}</span></div>'
        )

    status_rows = (
        row("API", api_ok)
        + row("Database", db_ok)
        + row("Redis", redis_ok)
        + row("Payment worker", worker_ok)
    )

    html = """
    <!DOCTYPE html>
    <html lang="en">
    <head>
        <meta charset="UTF-8" />
        <title>VistraTV Payments - Status</title>
        <style>
            body {
                font-family: system-ui, sans-serif;
                background: #0B1020;
                color: #E2E8F0;
                display: flex;
                justify-content: center;
                padding-top: 12vh;
            }
            .card {
                background: #121933;
                border-radius: 14px;
                padding: 32px;
                width: 420px;
            }
            h1 { font-size: 24px; margin: 0 0 6px; }
            p { color: #94A3B8; margin: 0 0 22px; }
            .row {
                display: flex;
                justify-content: space-between;
                padding: 6px 0;
                font-size: 14px;
            }
            .links { margin-top: 20px; }
            .links a { color: #818CF8; margin-right: 14px; }
        </style>
    </head>
    <body>
        <div class="card">
            <h1>VistraTV Payments</h1>
            <p>Checkout, webhook and subscription backend.</p>
__STATUS_ROWS__
            <div class="links">
                <a href="/docs">Swagger UI</a>
                <a href="/redoc">ReDoc</a>
            </div>
        </div>
    </body>
    </html>
    """
    return html.replace("__STATUS_ROWS__", status_rows)


app.include_router(auth_router, prefix="/api/v1")
app.include_router(me_router, prefix="/api/v1")
app.include_router(plans_router, prefix="/api/v1")
app.include_router(promocodes_router, prefix="/api/v1")
app.include_router(affiliates_router, prefix="/api/v1")
app.include_router(payments_router, prefix="/api/v1")
app.include_router(subscriptions_router, prefix="/api/v1")
app.include_router(admin_router, prefix="/api/v1")
app.include_router(admin_catalog_router, prefix="/api/v1")
app.include_router(recovery_router, prefix="/api/v1")
app.include_router(cron_router, prefix="/api/v1")


__all__ = ["app"]
