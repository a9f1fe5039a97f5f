"""/v1/scores - Reputation score calculation, trust-loop events and history"""

import logging
from dataclasses import asdict
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.orm import Session

from lending_gateway.api.v1.schemas import (
    ColdStartRequest,
    ColdStartResponse,
    LoanEventRequest,
    LoanEventResponse,
    ScoreHistoryItem,
    ScoreHistoryResponse,
    ScoreResponse,
)
from lending_gateway.api.dependencies import get_request_id, get_score_engine
from lending_gateway.infrastructure.database.session import get_db
from lending_gateway.infrastructure.database.repositories import ScoreRepository
from lending_gateway.domain.exceptions import (
    ConcurrentScoreUpdateConflict,
    InvalidLoanEvent,
    MissingStatementData,
    NoExistingScore,
)
from lending_gateway.domain.models import FinancialStatementMetrics, LoanEvent
from lending_gateway.domain.scoring import ScoreEngine
from lending_gateway.services.scoring import calculate_initial_score, process_loan_event

router = APIRouter()

RETRY_LATER = "Score update could not be applied, please try again"


@router.post("/scores/{borrower_id}/cold-start", response_model=ColdStartResponse)
def cold_start_score(
    borrower_id: str,
    request: Request,
    request_body: Optional[ColdStartRequest] = None,
    db: Session = Depends(get_db),
    engine: ScoreEngine = Depends(get_score_engine),
):
    """
    Calculate the initial score from statement metrics.

    Uses inline metrics when given, else the latest verified statement.
    A borrower who already has a score gets it back unchanged.
    """
    request_id = get_request_id(request)
    metrics = None
    if request_body is not None and request_body.metrics is not None:
        metrics = FinancialStatementMetrics(**request_body.metrics.model_dump())

    try:
        record, created = calculate_initial_score(db, engine, borrower_id, metrics, request_id=request_id)
        db.commit()

    except MissingStatementData as e:
        db.rollback()
        logging.warning(f"Missing statement: {e}", extra={"request_id": request_id})
        raise HTTPException(
            status_code=422,
            detail="Upload a verified bank or mobile-money statement to calculate your score",
        )

    except ConcurrentScoreUpdateConflict as e:
        db.rollback()
        logging.error(f"Cold start conflict: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=409, detail=RETRY_LATER)

    except Exception as e:
        db.rollback()
        logging.error(f"Unexpected error: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=500, detail="Internal server error")

    return ColdStartResponse(created=created, score=ScoreResponse.model_validate(asdict(record)))


@router.post("/scores/{borrower_id}/events", response_model=LoanEventResponse)
async def apply_loan_event(
    borrower_id: str,
    request_body: LoanEventRequest,
    request: Request,
    db: Session = Depends(get_db),
    engine: ScoreEngine = Depends(get_score_engine),
):
    """
    Apply a loan lifecycle event to the borrower's score.

    When loan_id is given the loan's status is updated in the same transaction.
    """
    request_id = get_request_id(request)
    event = LoanEvent(
        type=request_body.type,
        days_late=request_body.days_late,
        loan_id=request_body.loan_id,
        amount_cents=request_body.amount_cents,
    )

    try:
        update = await process_loan_event(db, engine, borrower_id, event, request_id=request_id)

    except InvalidLoanEvent as e:
        db.rollback()
        logging.warning(f"Invalid loan event: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=422, detail=str(e))

    except NoExistingScore as e:
        db.rollback()
        logging.error(
            f"Event for borrower without score: {e}",
            extra={"request_id": request_id, "borrower_id": borrower_id, "event": event.to_payload()},
        )
        raise HTTPException(status_code=409, detail=RETRY_LATER)

    except ConcurrentScoreUpdateConflict:
        # Already rolled back and logged by the retry loop
        raise HTTPException(status_code=409, detail=RETRY_LATER)

    except Exception as e:
        db.rollback()
        logging.error(f"Unexpected error: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=500, detail="Internal server error")

    return LoanEventResponse(
        score=ScoreResponse.model_validate(asdict(update.record)),
        score_change=update.score_change,
        change_reason=update.entry.change_reason,
    )


@router.get("/scores/{borrower_id}", response_model=ScoreResponse)
def get_score(borrower_id: str, db: Session = Depends(get_db)):
    record = ScoreRepository(db).get_score(borrower_id)
    if record is None:
        raise HTTPException(status_code=404, detail="Score not found")
    return ScoreResponse.model_validate(asdict(record))


@router.get("/scores/{borrower_id}/history", response_model=ScoreHistoryResponse)
def get_score_history(
    borrower_id: str,
    limit: int = Query(10, ge=1, le=100, description="Maximum entries to return"),
    db: Session = Depends(get_db),
):
    """
    Retrieve recent score transitions, newest first.
    """
    rows = ScoreRepository(db).get_history(borrower_id, limit=limit)

    entries = [
        ScoreHistoryItem(
            old_score_value=row.old_score_value,
            new_score_value=row.new_score_value,
            old_star_rating=row.old_star_rating,
            new_star_rating=row.new_star_rating,
            old_max_loan_amount_cents=row.old_max_loan_amount_cents,
            new_max_loan_amount_cents=row.new_max_loan_amount_cents,
            change_reason=row.change_reason,
            change_details=row.change_details,
            related_loan_id=row.related_loan_id,
            created_at=row.created_at.isoformat(),
        )
        for row in rows
    ]

    return ScoreHistoryResponse(borrower_id=borrower_id, entries=entries)
