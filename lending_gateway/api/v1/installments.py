"""/v1/installments - Late and upcoming installments, payment settlement"""

import uuid
import logging
from dataclasses import asdict
from datetime import timezone
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.orm import Session

from lending_gateway.api.v1.schemas import (
    InstallmentListResponse,
    InstallmentSchema,
    LateFeeResponse,
    SettleRequest,
    SettleResponse,
)
from lending_gateway.api.dependencies import get_request_id
from lending_gateway.config import settings
from lending_gateway.infrastructure.database.session import get_db
from lending_gateway.infrastructure.database.repositories import InstallmentRepository
from lending_gateway.domain.exceptions import InstallmentAlreadySettled
from lending_gateway.domain.fees import late_fee
from lending_gateway.domain.installments import settle_installment
from lending_gateway.utils.date_utils import utcnow

router = APIRouter()


@router.get("/installments/late", response_model=InstallmentListResponse)
def list_late_installments(db: Session = Depends(get_db)):
    """Pending installments whose grace window has passed"""
    installments = InstallmentRepository(db).get_late(utcnow())
    return InstallmentListResponse(
        installments=[InstallmentSchema.model_validate(asdict(inst)) for inst in installments]
    )


@router.get("/installments/upcoming", response_model=InstallmentListResponse)
def list_upcoming_installments(
    days_ahead: int = Query(settings.reminder_days_ahead, ge=0, le=60, description="Reminder window in days"),
    db: Session = Depends(get_db),
):
    """Pending installments due within the reminder window"""
    installments = InstallmentRepository(db).get_upcoming(utcnow().date(), days_ahead)
    return InstallmentListResponse(
        installments=[InstallmentSchema.model_validate(asdict(inst)) for inst in installments]
    )


@router.post("/installments/{installment_id}/settle", response_model=SettleResponse)
def settle(
    installment_id: str,
    request: Request,
    request_body: Optional[SettleRequest] = None,
    db: Session = Depends(get_db),
):
    """
    Record a payment against an installment.

    Paid after the grace window → status "late" and a late fee is computed.
    """
    request_id = get_request_id(request)

    try:
        installment_uuid = uuid.UUID(installment_id)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid installment ID format")

    installment_repo = InstallmentRepository(db)
    installment = installment_repo.get_installment(installment_uuid)
    if installment is None:
        raise HTTPException(status_code=404, detail="Installment not found")

    paid_at = request_body.paid_at if request_body and request_body.paid_at else utcnow()
    # Stored datetimes are naive UTC
    if paid_at.tzinfo is not None:
        paid_at = paid_at.astimezone(timezone.utc).replace(tzinfo=None)

    try:
        settled = settle_installment(installment, paid_at)
        installment_repo.update_installment(
            installment_uuid,
            {"status": settled.status.value, "paid_at": settled.paid_at, "days_late": settled.days_late},
        )
        db.commit()

    except InstallmentAlreadySettled as e:
        db.rollback()
        raise HTTPException(status_code=409, detail=str(e))

    except Exception as e:
        db.rollback()
        logging.error(f"Unexpected error: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=500, detail="Internal server error")

    fee = late_fee(settled.total_cents, settled.days_late)
    logging.info(
        "Installment settled",
        extra={
            "request_id": request_id,
            "installment_id": installment_id,
            "status": settled.status.value,
            "days_late": settled.days_late,
            "late_fee_cents": fee.late_fee_cents,
        },
    )

    return SettleResponse(
        installment=InstallmentSchema.model_validate(asdict(settled)),
        late_fee=LateFeeResponse.model_validate(asdict(fee)),
    )
