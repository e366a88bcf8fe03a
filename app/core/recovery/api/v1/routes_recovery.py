from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, Response
from sqlalchemy.orm import Session

from app.core.audit.services import log_activity
from app.core.auth.models import User
from app.core.dependencies import client_ip, get_current_admin, get_db
from app.core.payments.gateway_config import GatewayConfig, get_gateway_config
from app.core.recovery.models import AbandonedPaymentReminder
from app.core.recovery.schemas import ReminderPublic, ReminderStatus, SendReminderRequest
from app.core.recovery.services import (
    detect_abandoned_payments,
    export_reminders_csv,
    get_reminder,
    list_reminders,
    send_reminder,
)
from app.response import StandardResponse, make_pagination, make_success_response
from app.utils.dates import utc_now


router = APIRouter(prefix="/admin/abandoned-payments", tags=["admin", "recovery"])


@router.get(
    "",
    response_model=StandardResponse,
)
def admin_list_reminders(
    status: Optional[ReminderStatus] = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
    _: User = Depends(get_current_admin),
) -> StandardResponse:
    items, total = list_reminders(
        db,
        status=status,
        offset=(page - 1) * page_size,
        limit=page_size,
    )
    return make_success_response(
        result={"items": [ReminderPublic.model_validate(item) for item in items]},
        pagination=make_pagination(page=page, page_size=page_size, total=total),
    )


@router.post(
    "/send-reminder",
    response_model=StandardResponse,
    summary="Send one abandoned-cart reminder now",
)
def admin_send_reminder(
    payload: SendReminderRequest,
    request: Request,
    db: Session = Depends(get_db),
    admin: User = Depends(get_current_admin),
) -> StandardResponse:
    reminder = get_reminder(db, payload.reminder_id)
    count = send_reminder(db, reminder, utc_now())
    log_activity(
        db,
        admin_id=admin.id,
        action="send_reminder",
        entity_type="abandoned_payment_reminder",
        entity_id=str(reminder.id),
        details={"reminder_count": count},
        ip_address=client_ip(request),
    )
    db.commit()
    db.refresh(reminder)
    return make_success_response(
        result={"sent": True, "reminder": ReminderPublic.model_validate(reminder)}
    )


@router.get(
    "/export",
    summary="Download reminders as CSV",
)
def admin_export_reminders(
    status: Optional[ReminderStatus] = Query(None),
    db: Session = Depends(get_db),
    _: User = Depends(get_current_admin),
) -> Response:
    query = db.query(AbandonedPaymentReminder)
    if status:
        query = query.filter(AbandonedPaymentReminder.status == status)
    reminders = query.order_by(AbandonedPaymentReminder.abandoned_at.desc()).all()

    filename = f"abandoned-payments-{utc_now():%Y%m%d}.csv"
    return Response(
        content=export_reminders_csv(reminders),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.post(
    "/detect",
    response_model=StandardResponse,
)
def admin_detect_abandoned(
    db: Session = Depends(get_db),
    gateway: GatewayConfig = Depends(get_gateway_config),
    _: User = Depends(get_current_admin),
) -> StandardResponse:
    return make_success_response(result=detect_abandoned_payments(db, gateway, utc_now()))


__all__ = ["router"]
