"""Tests for score persistence and the loan application workflow"""

import uuid
import pytest
from unittest.mock import AsyncMock, patch
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from lending_gateway.domain.exceptions import (
    ConcurrentScoreUpdateConflict,
    InvalidLoanEvent,
    InvalidLoanParameters,
    LoanLimitExceeded,
    MissingStatementData,
    NoExistingScore,
    PendingApplicationExists,
    ScoreUnavailable,
)
from lending_gateway.domain.models import IncomeInfo, LoanEvent, LoanEventType
from lending_gateway.domain.scoring import ON_TIME_RATE_BONUS, ScoreEngine
from lending_gateway.infrastructure.database.models import Loan
from lending_gateway.infrastructure.database.repositories import (
    BorrowerRepository,
    InstallmentRepository,
    LoanRepository,
    ScoreRepository,
    StatementRepository,
)
from lending_gateway.services.loan_application import submit_application
from lending_gateway.services.scoring import build_borrower_history, calculate_initial_score, process_loan_event


@pytest.fixture
def no_backoff():
    with patch("lending_gateway.services.scoring.asyncio.sleep", new_callable=AsyncMock) as sleep:
        yield sleep


@pytest.fixture
def scored_borrower(db: Session, score_engine: ScoreEngine, strong_metrics) -> str:
    """Borrower with a verified statement and a committed cold-start score of 75"""
    StatementRepository(db).save_statement("borrower_1", "bank", strong_metrics)
    calculate_initial_score(db, score_engine, "borrower_1")
    db.commit()
    return "borrower_1"


def test_build_borrower_history():
    loans = [
        Loan(status="repaid", repayment_outcome="on_time", amount_cents=20000),
        Loan(status="repaid", repayment_outcome="early", amount_cents=50000),
        Loan(status="repaid", repayment_outcome="late", amount_cents=70000),
        Loan(status="defaulted", amount_cents=90000),
        Loan(status="funded", amount_cents=100000),
    ]

    history = build_borrower_history(loans, None)

    assert history.completed_loans == 4
    assert history.repaid_loans == 3
    assert history.repaid_on_time == 2
    assert history.largest_repaid_amount_cents == 70000


def test_calculate_initial_score_uses_latest_statement(db: Session, score_engine: ScoreEngine, strong_metrics):
    StatementRepository(db).save_statement("borrower_1", "bank", strong_metrics)

    record, created = calculate_initial_score(db, score_engine, "borrower_1")
    db.commit()

    assert created is True
    assert record.score_value == 75
    history = ScoreRepository(db).get_history("borrower_1")
    assert [h.change_reason for h in history] == ["initial_calculation"]


def test_calculate_initial_score_returns_existing(
    db: Session, score_engine: ScoreEngine, scored_borrower: str, weak_metrics
):
    record, created = calculate_initial_score(db, score_engine, scored_borrower, weak_metrics)

    assert created is False
    assert record.score_value == 75


def test_calculate_initial_score_without_statement(db: Session, score_engine: ScoreEngine):
    with pytest.raises(MissingStatementData):
        calculate_initial_score(db, score_engine, "borrower_1")


async def test_process_loan_event(db: Session, score_engine: ScoreEngine, scored_borrower: str):
    update = await process_loan_event(db, score_engine, scored_borrower, LoanEvent(LoanEventType.FUNDED))

    stored = ScoreRepository(db).get_score(scored_borrower)
    assert stored.score_value == update.record.score_value == 67  # +2 funded, -10 no history
    assert stored.version == 2
    assert [h.change_reason for h in ScoreRepository(db).get_history(scored_borrower)] == [
        "loan_funded",
        "initial_calculation",
    ]


async def test_process_loan_event_without_score(db: Session, score_engine: ScoreEngine):
    with pytest.raises(NoExistingScore):
        await process_loan_event(db, score_engine, "stranger", LoanEvent(LoanEventType.FUNDED))


async def test_repayment_updates_loan_and_history_bonuses(
    db: Session, score_engine: ScoreEngine, scored_borrower: str
):
    """Test the repaid loan counts toward population bonuses in the same update"""
    db_loan, _ = submit_application(db, score_engine, scored_borrower, 50000, 6)
    db.commit()
    await process_loan_event(
        db, score_engine, scored_borrower, LoanEvent(LoanEventType.FUNDED, loan_id=str(db_loan.id))
    )

    update = await process_loan_event(
        db,
        score_engine,
        scored_borrower,
        LoanEvent(LoanEventType.REPAID_ON_TIME, loan_id=str(db_loan.id)),
    )

    loan = LoanRepository(db).get_loan(db_loan.id)
    assert loan.status == "repaid"
    assert loan.repayment_outcome == "on_time"
    # 67 after funding; +3 on time, +25 for 100% on-time rate, +6 for a $500 repaid loan, clamped at 99
    assert update.record.score_factors[ON_TIME_RATE_BONUS] == 25
    assert update.record.score_value == 99
    assert update.entry.related_loan_id == str(db_loan.id)


async def test_event_for_unknown_loan(db: Session, score_engine: ScoreEngine, scored_borrower: str):
    with pytest.raises(InvalidLoanEvent):
        await process_loan_event(
            db, score_engine, scored_borrower, LoanEvent(LoanEventType.FUNDED, loan_id=str(uuid.uuid4()))
        )


async def test_closed_loan_cannot_be_scored_again(db: Session, score_engine: ScoreEngine, scored_borrower: str):
    """Test a second repayment for the same loan is rejected and leaves the score alone"""
    db_loan, _ = submit_application(db, score_engine, scored_borrower, 50000, 6)
    db.commit()
    loan_id = str(db_loan.id)
    await process_loan_event(db, score_engine, scored_borrower, LoanEvent(LoanEventType.FUNDED, loan_id=loan_id))
    await process_loan_event(
        db, score_engine, scored_borrower, LoanEvent(LoanEventType.REPAID_ON_TIME, loan_id=loan_id)
    )
    await process_loan_event(db, score_engine, scored_borrower, LoanEvent(LoanEventType.DEFAULTED))
    before = ScoreRepository(db).get_score(scored_borrower)

    for event_type in (LoanEventType.REPAID_ON_TIME, LoanEventType.DEFAULTED, LoanEventType.FUNDED):
        with pytest.raises(InvalidLoanEvent):
            await process_loan_event(db, score_engine, scored_borrower, LoanEvent(event_type, loan_id=loan_id))
        db.rollback()

    after = ScoreRepository(db).get_score(scored_borrower)
    assert after.score_value == before.score_value
    assert after.version == before.version
    reasons = [h.change_reason for h in ScoreRepository(db).get_history(scored_borrower, limit=100)]
    assert reasons.count("loan_repaid_on_time") == 1


async def test_unfunded_loan_cannot_be_repaid(db: Session, score_engine: ScoreEngine, scored_borrower: str):
    db_loan, _ = submit_application(db, score_engine, scored_borrower, 50000, 6)
    db.commit()

    with pytest.raises(InvalidLoanEvent):
        await process_loan_event(
            db, score_engine, scored_borrower, LoanEvent(LoanEventType.REPAID_EARLY, loan_id=str(db_loan.id))
        )
    db.rollback()

    assert LoanRepository(db).get_loan(db_loan.id).status == "pending"
    assert ScoreRepository(db).get_score(scored_borrower).version == 1


async def test_process_loan_event_retries_on_conflict(
    db: Session, score_engine: ScoreEngine, scored_borrower: str, no_backoff: AsyncMock
):
    """Test one stale write is retried and the event lands exactly once"""
    real_update = ScoreRepository.update_score
    calls = {"count": 0}

    def flaky_update(self, record, expected_version):
        calls["count"] += 1
        if calls["count"] == 1:
            raise ConcurrentScoreUpdateConflict("stale version")
        return real_update(self, record, expected_version)

    with patch.object(ScoreRepository, "update_score", flaky_update):
        update = await process_loan_event(db, score_engine, scored_borrower, LoanEvent(LoanEventType.FUNDED))

    assert calls["count"] == 2
    assert no_backoff.await_count == 1
    assert update.record.score_value == 67
    assert len(ScoreRepository(db).get_history(scored_borrower)) == 2


async def test_process_loan_event_gives_up_after_max_retries(
    db: Session, score_engine: ScoreEngine, scored_borrower: str, no_backoff: AsyncMock
):
    def always_stale(self, record, expected_version):
        raise ConcurrentScoreUpdateConflict("stale version")

    with patch.object(ScoreRepository, "update_score", always_stale):
        with pytest.raises(ConcurrentScoreUpdateConflict):
            await process_loan_event(db, score_engine, scored_borrower, LoanEvent(LoanEventType.FUNDED))

    # 3 attempts, backoff between them: 0.1s then 0.2s
    assert [c.args[0] for c in no_backoff.await_args_list] == [0.1, 0.2]
    assert ScoreRepository(db).get_score(scored_borrower).version == 1


def test_submit_application(db: Session, score_engine: ScoreEngine, strong_metrics):
    """Test cold start from statement, 70-79 rate tier, pricing and schedule"""
    StatementRepository(db).save_statement("borrower_1", "bank", strong_metrics)

    db_loan, application = submit_application(
        db,
        score_engine,
        "borrower_1",
        50000,
        6,
        loan_type="personal",
        income_info=IncomeInfo(monthly_income_cents=65000, employment_type="formal", purpose="school fees"),
    )
    db.commit()

    assert application.score_value == 75
    assert application.annual_interest_rate == 15.9
    assert application.monthly_interest_rate == 1.325
    assert application.pricing.interest_rate == 1.325
    assert db_loan.status == "pending"
    assert db_loan.purpose == "school fees"

    schedule = InstallmentRepository(db).get_schedule(db_loan.id)
    assert len(schedule) == 6
    assert sum(i.principal_cents for i in schedule) == 50000
    assert schedule[0].is_first_payment is True
    assert ScoreRepository(db).get_score("borrower_1").score_value == 75


def test_submit_application_without_score_or_statement(db: Session, score_engine: ScoreEngine):
    with pytest.raises(ScoreUnavailable):
        submit_application(db, score_engine, "borrower_1", 10000, 6)


def test_submit_application_over_limit(db: Session, score_engine: ScoreEngine, scored_borrower: str):
    with pytest.raises(LoanLimitExceeded) as exc_info:
        submit_application(db, score_engine, scored_borrower, 70000, 6)

    assert exc_info.value.limit_cents == 60000
    assert "$600.00" in str(exc_info.value)


def test_submit_application_pending_exists(db: Session, score_engine: ScoreEngine, scored_borrower: str):
    submit_application(db, score_engine, scored_borrower, 20000, 6)
    db.commit()

    with pytest.raises(PendingApplicationExists):
        submit_application(db, score_engine, scored_borrower, 20000, 6)


def test_submit_application_pending_race(db: Session, score_engine: ScoreEngine, scored_borrower: str):
    """Test the unique index catches a racing insert the pre-check missed"""
    submit_application(db, score_engine, scored_borrower, 20000, 6)
    db.commit()

    with patch.object(LoanRepository, "has_open_application", return_value=False):
        with pytest.raises(PendingApplicationExists):
            submit_application(db, score_engine, scored_borrower, 20000, 6)
    db.rollback()


def test_submit_application_invalid_loan_type(db: Session, score_engine: ScoreEngine, scored_borrower: str):
    with pytest.raises(InvalidLoanParameters):
        submit_application(db, score_engine, scored_borrower, 20000, 3, loan_type="business")


def test_submit_application_borrower_registration_race(db: Session, score_engine: ScoreEngine, strong_metrics):
    """Test a concurrent first contact surfaces as a retryable conflict"""
    StatementRepository(db).save_statement("borrower_1", "bank", strong_metrics)
    duplicate = IntegrityError("INSERT INTO borrowers", {}, Exception("duplicate key"))

    with patch.object(BorrowerRepository, "ensure_borrower", side_effect=duplicate):
        with pytest.raises(ConcurrentScoreUpdateConflict):
            submit_application(db, score_engine, "borrower_1", 20000, 6)
    db.rollback()
