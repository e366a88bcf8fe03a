from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.core.cron.services import (
    run_abandoned_detection,
    run_cleanup,
    run_due_reminders,
)
from app.core.dependencies import get_db, require_cron_secret
from app.core.payments.gateway_config import GatewayConfig, get_gateway_config
from app.core.subscriptions.services import run_expiry_sweep
from app.response import StandardResponse, make_success_response
from app.utils.dates import utc_now


router = APIRouter(
    prefix="/cron",
    tags=["cron"],
    dependencies=[Depends(require_cron_secret)],
)


@router.api_route(
    "/abandoned-payments/detect",
    methods=["GET", "POST"],
    response_model=StandardResponse,
)
def cron_detect_abandoned_payments(
    db: Session = Depends(get_db),
    gateway: GatewayConfig = Depends(get_gateway_config),
) -> StandardResponse:
    return make_success_response(result=run_abandoned_detection(db, gateway, utc_now()))


@router.api_route(
    "/abandoned-payments/send-reminders",
    methods=["GET", "POST"],
    response_model=StandardResponse,
)
def cron_send_payment_reminders(
    db: Session = Depends(get_db),
) -> StandardResponse:
    return make_success_response(result=run_due_reminders(db, utc_now()))


@router.api_route(
    "/subscriptions",
    methods=["GET", "POST"],
    response_model=StandardResponse,
)
def cron_subscriptions(
    db: Session = Depends(get_db),
) -> StandardResponse:
    return make_success_response(result=run_expiry_sweep(db, utc_now()))


@router.api_route(
    "/cleanup",
    methods=["GET", "POST"],
    response_model=StandardResponse,
)
def cron_cleanup(
    db: Session = Depends(get_db),
) -> StandardResponse:
    return make_success_response(result=run_cleanup(db))


__all__ = ["router"]
