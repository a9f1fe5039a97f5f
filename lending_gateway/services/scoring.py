"""Score persistence: cold start and trust-loop updates with optimistic retries"""

import asyncio
import logging
import uuid
from datetime import datetime
from typing import Iterable, Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from lending_gateway.config import settings
from lending_gateway.domain.exceptions import ConcurrentScoreUpdateConflict, InvalidLoanEvent, NoExistingScore
from lending_gateway.domain.models import (
    BorrowerHistory,
    FinancialStatementMetrics,
    LoanEvent,
    LoanEventType,
    LoanStatus,
    ScoreRecord,
    ScoreUpdate,
)
from lending_gateway.domain.scoring import ScoreEngine
from lending_gateway.infrastructure.database.models import Loan
from lending_gateway.infrastructure.database.repositories import (
    BorrowerRepository,
    LoanRepository,
    ScoreRepository,
    StatementRepository,
)
from lending_gateway.infrastructure.observability.logging import log_score_change
from lending_gateway.infrastructure.observability.metrics import record_score, score_conflict_counter
from lending_gateway.utils.date_utils import utcnow

logger = logging.getLogger(__name__)

REPAYMENT_OUTCOMES = {
    LoanEventType.REPAID_ON_TIME: "on_time",
    LoanEventType.REPAID_EARLY: "early",
    LoanEventType.REPAID_LATE: "late",
}
ON_TIME_OUTCOMES = ("on_time", "early")

# Loan statuses each event may move a loan out of
FUNDABLE_STATUSES = (
    LoanStatus.PENDING.value,
    LoanStatus.UNDER_REVIEW.value,
    LoanStatus.APPROVED.value,
)
OUTSTANDING_STATUSES = (LoanStatus.FUNDED.value, LoanStatus.ACTIVE.value)


def build_borrower_history(loans: Iterable[Loan], account_created_at: Optional[datetime]) -> BorrowerHistory:
    """
    Summarize completed loans for population bonuses.

    Completed = repaid or defaulted. On-time counts early repayments too.
    """
    history = BorrowerHistory(account_created_at=account_created_at)
    for loan in loans:
        if loan.status not in (LoanStatus.REPAID.value, LoanStatus.DEFAULTED.value):
            continue

        history.completed_loans += 1
        if loan.status == LoanStatus.REPAID.value:
            history.repaid_loans += 1
            history.largest_repaid_amount_cents = max(history.largest_repaid_amount_cents, loan.amount_cents)
            if loan.repayment_outcome in ON_TIME_OUTCOMES:
                history.repaid_on_time += 1

    return history


def calculate_initial_score(
    db: Session,
    engine: ScoreEngine,
    borrower_id: str,
    metrics: Optional[FinancialStatementMetrics] = None,
    request_id: Optional[str] = None,
) -> Tuple[ScoreRecord, bool]:
    """
    Cold-start a borrower from statement metrics (flush only, caller commits).

    Falls back to the latest verified statement when no metrics are passed.
    An existing score is returned unchanged.

    Returns: (score record, whether it was created by this call)

    Raises:
        MissingStatementData: No metrics supplied and no verified statement on file
        ConcurrentScoreUpdateConflict: Another request created the score first
    """
    scores = ScoreRepository(db)
    existing = scores.get_score(borrower_id)
    if existing is not None:
        return existing, False

    if metrics is None:
        metrics = StatementRepository(db).latest_verified_metrics(borrower_id)

    update = engine.cold_start(borrower_id, metrics)

    try:
        BorrowerRepository(db).ensure_borrower(borrower_id)
        record = scores.create_score(update.record)
    except IntegrityError as e:
        raise ConcurrentScoreUpdateConflict(f"Score for {borrower_id} was created concurrently") from e

    scores.append_history(update.entry)

    record_score("cold_start", record.max_loan_amount_cents)
    log_score_change(
        borrower_id,
        update.entry.change_reason,
        None,
        record.score_value,
        record.max_loan_amount_cents,
        request_id=request_id,
    )
    return record, True


def _record_loan_outcome(loans: LoanRepository, borrower_id: str, event: LoanEvent) -> None:
    """
    Move the referenced loan to the status implied by the event.

    Funding applies to open or approved loans; repayment and default only to
    funded or active ones, so a closed loan never scores twice.
    """
    try:
        loan_uuid = uuid.UUID(event.loan_id)
    except ValueError as e:
        raise InvalidLoanEvent(f"Invalid loan id: {event.loan_id}") from e

    loan = loans.get_loan(loan_uuid)
    if loan is None or loan.borrower_id != borrower_id:
        raise InvalidLoanEvent(f"Loan {event.loan_id} not found for borrower")

    allowed = FUNDABLE_STATUSES if event.type == LoanEventType.FUNDED else OUTSTANDING_STATUSES
    if loan.status not in allowed:
        raise InvalidLoanEvent(f"Loan {event.loan_id} is {loan.status} and cannot take a {event.type.value} event")

    if event.type == LoanEventType.FUNDED:
        loans.update_status(loan, LoanStatus.FUNDED.value)
    elif event.type == LoanEventType.DEFAULTED:
        loans.update_status(loan, LoanStatus.DEFAULTED.value)
    else:
        loans.update_status(loan, LoanStatus.REPAID.value, repayment_outcome=REPAYMENT_OUTCOMES[event.type])


def _apply_event_once(db: Session, engine: ScoreEngine, borrower_id: str, event: LoanEvent) -> ScoreUpdate:
    scores = ScoreRepository(db)
    existing = scores.get_score(borrower_id)
    if existing is None:
        raise NoExistingScore(f"No score on file for borrower {borrower_id}")

    # Validates the event before any loan is touched
    engine.event_delta(event)

    loans = LoanRepository(db)
    if event.loan_id:
        _record_loan_outcome(loans, borrower_id, event)

    borrower = BorrowerRepository(db).ensure_borrower(borrower_id)
    history = build_borrower_history(loans.query_loan_history(borrower_id), borrower.created_at)

    update = engine.apply_event(existing, event, history, as_of=utcnow())
    scores.update_score(update.record, expected_version=existing.version)
    scores.append_history(update.entry)
    return update


async def process_loan_event(
    db: Session,
    engine: ScoreEngine,
    borrower_id: str,
    event: LoanEvent,
    request_id: Optional[str] = None,
) -> ScoreUpdate:
    """
    Apply one loan event to the borrower's score and commit.

    Read-compute-write runs as a compare-and-swap on the score version.
    On a version conflict the transaction is rolled back and the whole
    cycle is retried with exponential backoff (base, 2*base, 4*base ...).

    Raises:
        NoExistingScore: Borrower has not been cold-started
        InvalidLoanEvent: Event payload is incomplete or references an unknown loan
        ConcurrentScoreUpdateConflict: Still conflicting after max retries
    """
    max_retries = settings.score_update_max_retries
    attempt = 0

    while True:
        try:
            update = _apply_event_once(db, engine, borrower_id, event)
            db.commit()
            break

        except ConcurrentScoreUpdateConflict:
            db.rollback()
            attempt += 1
            score_conflict_counter.inc()

            if attempt >= max_retries:
                logger.error(
                    "Score update conflict persisted after retries",
                    extra={
                        "request_id": request_id,
                        "borrower_id": borrower_id,
                        "event_type": event.type.value,
                        "attempts": attempt,
                    },
                )
                raise

            backoff = settings.score_update_backoff_base * (2 ** (attempt - 1))
            await asyncio.sleep(backoff)

    record = update.record
    record_score(event.type.value, record.max_loan_amount_cents)
    log_score_change(
        borrower_id,
        update.entry.change_reason,
        update.entry.old_score_value,
        record.score_value,
        record.max_loan_amount_cents,
        request_id=request_id,
    )
    return update
