"""Loan application workflow - score, price, schedule and persist"""

import logging
from typing import Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from lending_gateway.config import settings
from lending_gateway.domain.exceptions import (
    ConcurrentScoreUpdateConflict,
    LoanLimitExceeded,
    PendingApplicationExists,
    ScoreUnavailable,
)
from lending_gateway.domain.fees import price_loan
from lending_gateway.domain.installments import build_schedule
from lending_gateway.domain.models import IncomeInfo, LoanApplication, ScoreRecord
from lending_gateway.domain.rates import annual_rate_for_score, monthly_rate, resolve_loan_type
from lending_gateway.domain.scoring import ScoreEngine
from lending_gateway.infrastructure.database.models import Loan
from lending_gateway.infrastructure.database.repositories import (
    BorrowerRepository,
    LoanRepository,
    ScoreRepository,
    StatementRepository,
)
from lending_gateway.services.scoring import calculate_initial_score
from lending_gateway.utils.date_utils import utcnow

logger = logging.getLogger(__name__)


def resolve_score(
    db: Session,
    engine: ScoreEngine,
    borrower_id: str,
    request_id: Optional[str] = None,
) -> ScoreRecord:
    """
    Stored score, else a cold start from the latest verified statement.

    Raises:
        ScoreUnavailable: No score and no verified statement to compute one from
    """
    existing = ScoreRepository(db).get_score(borrower_id)
    if existing is not None:
        return existing

    metrics = StatementRepository(db).latest_verified_metrics(borrower_id)
    if metrics is None:
        raise ScoreUnavailable(
            "Unable to calculate your score. Please upload a bank or mobile-money statement first."
        )

    record, _ = calculate_initial_score(db, engine, borrower_id, metrics, request_id=request_id)
    return record


def submit_application(
    db: Session,
    engine: ScoreEngine,
    borrower_id: str,
    amount_cents: int,
    term_months: int,
    loan_type: str = "personal",
    income_info: Optional[IncomeInfo] = None,
    request_id: Optional[str] = None,
) -> Tuple[Loan, LoanApplication]:
    """
    Turn a loan request into a priced, scheduled, persisted loan record.

    Flow:
    1. Validate loan type and term range
    2. Reject if the borrower already has an open application
    3. Resolve the score (cold start from statement if needed)
    4. Enforce the score's loan limit
    5. Rate tier -> monthly rate -> pricing -> schedule (starting today)
    6. Persist loan, pricing snapshot and schedule (flush only, caller commits)

    Raises:
        InvalidLoanParameters: Bad type, term, amount or rate
        PendingApplicationExists: Open application already on file
        ScoreUnavailable: No score could be resolved
        LoanLimitExceeded: Amount above the borrower's limit
        ConcurrentScoreUpdateConflict: Borrower or score created by a concurrent request
    """
    resolve_loan_type(loan_type, term_months)

    loans = LoanRepository(db)
    if loans.has_open_application(borrower_id):
        raise PendingApplicationExists("You already have a pending loan application")

    try:
        BorrowerRepository(db).ensure_borrower(borrower_id)
    except IntegrityError as e:
        raise ConcurrentScoreUpdateConflict(f"Borrower {borrower_id} was registered concurrently") from e

    score = resolve_score(db, engine, borrower_id, request_id=request_id)

    if amount_cents > score.max_loan_amount_cents:
        raise LoanLimitExceeded(amount_cents, score.max_loan_amount_cents)

    annual_rate = annual_rate_for_score(score.score_value)
    monthly = monthly_rate(annual_rate)
    pricing = price_loan(amount_cents, monthly, term_months, currency=settings.default_currency)

    breakdown = pricing.monthly_breakdown
    installments = build_schedule(
        loan_amount_cents=amount_cents,
        monthly_interest_cents=breakdown.interest_cents,
        monthly_principal_cents=breakdown.principal_cents,
        monthly_fee_cents=breakdown.fee_cents,
        term_months=term_months,
        loan_start_date=utcnow().date(),
    )

    application = LoanApplication(
        borrower_id=borrower_id,
        loan_type=loan_type,
        amount_cents=amount_cents,
        term_months=term_months,
        annual_interest_rate=annual_rate,
        monthly_interest_rate=monthly,
        score_value=score.score_value,
        pricing=pricing,
        installments=installments,
        income_info=income_info or IncomeInfo(),
    )

    try:
        db_loan = loans.create_loan(application)
    except IntegrityError as e:
        raise PendingApplicationExists("You already have a pending loan application") from e

    logger.info(
        "Loan application priced",
        extra={
            "request_id": request_id,
            "borrower_id": borrower_id,
            "loan_id": str(db_loan.id),
            "score_value": score.score_value,
            "annual_interest_rate": annual_rate,
            "taer": pricing.true_annual_effective_rate,
        },
    )
    return db_loan, application
