"""/v1/loans - Loan applications, loan records and repayment schedules"""

import time
import uuid
import logging
from dataclasses import asdict
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.orm import Session

from lending_gateway.api.v1.schemas import (
    InstallmentSchema,
    LoanApplicationRequest,
    LoanApplicationResponse,
    LoanListResponse,
    LoanResponse,
    ScheduleResponse,
)
from lending_gateway.api.dependencies import get_request_id, get_score_engine
from lending_gateway.infrastructure.database.session import get_db
from lending_gateway.infrastructure.database.models import Loan
from lending_gateway.infrastructure.database.repositories import InstallmentRepository, LoanRepository
from lending_gateway.domain.exceptions import (
    ConcurrentScoreUpdateConflict,
    InvalidLoanParameters,
    LoanLimitExceeded,
    MissingStatementData,
    PendingApplicationExists,
    ScoreUnavailable,
)
from lending_gateway.domain.models import IncomeInfo
from lending_gateway.domain.scoring import ScoreEngine
from lending_gateway.services.loan_application import submit_application
from lending_gateway.infrastructure.observability.metrics import application_counter
from lending_gateway.infrastructure.observability.logging import log_application

router = APIRouter()


def _parse_loan_id(loan_id: str) -> uuid.UUID:
    try:
        return uuid.UUID(loan_id)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid loan ID format")


def _loan_response(loan: Loan) -> LoanResponse:
    return LoanResponse(
        loan_id=str(loan.id),
        borrower_id=loan.borrower_id,
        loan_type=loan.loan_type,
        amount_cents=loan.amount_cents,
        term_months=loan.term_months,
        annual_interest_rate=loan.annual_interest_rate,
        monthly_interest_rate=loan.monthly_interest_rate,
        status=loan.status,
        repayment_outcome=loan.repayment_outcome,
        score_value=loan.score_value,
        pricing=loan.pricing,
        applied_at=loan.applied_at.isoformat(),
    )


@router.post("/loans/applications", response_model=LoanApplicationResponse, status_code=201)
async def create_application(
    request_body: LoanApplicationRequest,
    request: Request,
    db: Session = Depends(get_db),
    engine: ScoreEngine = Depends(get_score_engine),
):
    """
    Submit a loan application.

    Flow:
    1. Check loan type/term and the one-open-application rule
    2. Resolve the borrower's score (cold start from statement if needed)
    3. Enforce the loan limit, pick the rate tier, price and schedule
    4. Persist loan + pricing snapshot + installments
    """
    start_time = time.time()
    request_id = get_request_id(request)

    def rejected(status_code: int, detail: str, log_message: str) -> HTTPException:
        db.rollback()
        application_counter.labels(outcome="rejected").inc()
        logging.warning(log_message, extra={"request_id": request_id, "borrower_id": request_body.borrower_id})
        return HTTPException(status_code=status_code, detail=detail)

    try:
        db_loan, _ = submit_application(
            db,
            engine,
            borrower_id=request_body.borrower_id,
            amount_cents=request_body.amount_cents,
            term_months=request_body.term_months,
            loan_type=request_body.loan_type,
            income_info=IncomeInfo(
                monthly_income_cents=request_body.monthly_income_cents,
                employment_type=request_body.employment_type,
                purpose=request_body.purpose,
            ),
            request_id=request_id,
        )
        db.commit()

    except InvalidLoanParameters as e:
        raise rejected(422, str(e), f"Invalid loan parameters: {e}")

    except PendingApplicationExists as e:
        raise rejected(409, str(e), f"Pending application exists: {e}")

    except (ScoreUnavailable, MissingStatementData) as e:
        raise rejected(
            422,
            "Application rejected: upload a verified bank or mobile-money statement to get a score",
            f"Score unavailable: {e}",
        )

    except LoanLimitExceeded as e:
        raise rejected(422, str(e), f"Loan limit exceeded: {e}")

    except ConcurrentScoreUpdateConflict as e:
        raise rejected(409, "Application could not be processed, please try again", f"Score conflict: {e}")

    except Exception as e:
        db.rollback()
        logging.error(f"Unexpected error: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=500, detail="Internal server error")

    installments = InstallmentRepository(db).get_schedule(db_loan.id)

    duration_ms = (time.time() - start_time) * 1000
    application_counter.labels(outcome="submitted").inc()
    log_application(
        request_id,
        request_body.borrower_id,
        "submitted",
        request_body.amount_cents,
        duration_ms,
        loan_id=str(db_loan.id),
    )

    return LoanApplicationResponse(
        loan=_loan_response(db_loan),
        installments=[InstallmentSchema.model_validate(asdict(inst)) for inst in installments],
    )


@router.get("/loans", response_model=LoanListResponse)
def list_loans(
    borrower_id: Optional[str] = Query(None, description="Borrower identifier"),
    status: Optional[str] = Query(None, description="Filter by loan status"),
    db: Session = Depends(get_db),
):
    """
    Borrower's loans oldest first, or every loan in one status (review queues).
    """
    loan_repo = LoanRepository(db)
    if borrower_id:
        statuses = [status] if status else None
        loans = loan_repo.query_loan_history(borrower_id, statuses=statuses)
    elif status:
        loans = loan_repo.get_loans_by_status(status)
    else:
        raise HTTPException(status_code=422, detail="borrower_id or status is required")

    return LoanListResponse(borrower_id=borrower_id, loans=[_loan_response(loan) for loan in loans])


@router.get("/loans/{loan_id}", response_model=LoanResponse)
def get_loan(loan_id: str, db: Session = Depends(get_db)):
    loan = LoanRepository(db).get_loan(_parse_loan_id(loan_id))
    if not loan:
        raise HTTPException(status_code=404, detail="Loan not found")
    return _loan_response(loan)


@router.get("/loans/{loan_id}/schedule", response_model=ScheduleResponse)
def get_schedule(loan_id: str, db: Session = Depends(get_db)):
    """
    Retrieve the installment schedule for a loan.

    Returns:
        Installments in order, with grace windows and remaining balances
    """
    loan_uuid = _parse_loan_id(loan_id)
    if not LoanRepository(db).get_loan(loan_uuid):
        raise HTTPException(status_code=404, detail="Loan not found")

    installments = InstallmentRepository(db).get_schedule(loan_uuid)
    return ScheduleResponse(
        loan_id=loan_id,
        installments=[InstallmentSchema.model_validate(asdict(inst)) for inst in installments],
    )
