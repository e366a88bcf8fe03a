from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.core.affiliates.schemas import TrackClickRequest
from app.core.affiliates.services import track_click
from app.core.dependencies import get_db
from app.response import StandardResponse, make_success_response


router = APIRouter(prefix="/affiliates", tags=["affiliates"])


@router.post(
    "/track-click",
    response_model=StandardResponse,
    summary="Count a visit arriving through an affiliate link",
)
def affiliate_track_click(
    payload: TrackClickRequest,
    db: Session = Depends(get_db),
) -> StandardResponse:
    tracked = track_click(db, payload.code)
    db.commit()
    return make_success_response(result={"tracked": tracked})


__all__ = ["router"]
