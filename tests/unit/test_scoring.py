"""Unit tests for the reputation scoring engine"""

import pytest
from datetime import datetime
from lending_gateway.domain.models import (
    BorrowerHistory,
    CalculationMethod,
    FinancialStatementMetrics,
    LoanEvent,
    LoanEventType,
    ScoreRecord,
)
from lending_gateway.domain.scoring import (
    MULTIPLE_LOANS_BONUS,
    NO_HISTORY_PENALTY,
    ON_TIME_RATE_BONUS,
    PLATFORM_TENURE_BONUS,
    PROGRESSIVE_BORROWING_BONUS,
    ScoreEngine,
)
from lending_gateway.domain.exceptions import InvalidLoanEvent, MissingStatementData, NoExistingScore

AS_OF = datetime(2025, 6, 1)


def _record(engine: ScoreEngine, score_value: int, factors=None, version: int = 1) -> ScoreRecord:
    return ScoreRecord(
        borrower_id="borrower_1",
        score_value=score_value,
        star_rating=engine.star_rating(score_value),
        max_loan_amount_cents=engine.max_loan_amount(score_value),
        reputation_tier=engine.reputation_tier(score_value),
        score_factors=dict(factors or {}),
        calculation_method=CalculationMethod.COLD_START,
        version=version,
    )


def test_cold_start_strong_statement(score_engine: ScoreEngine, strong_metrics: FinancialStatementMetrics):
    """Test 35 base + 20 cash flow + 10 balance + 5 consistency + 5 no NSF = 75"""
    update = score_engine.cold_start("borrower_1", strong_metrics)
    record = update.record

    assert record.score_value == 75
    assert record.star_rating == 3.5
    assert record.max_loan_amount_cents == 60000
    assert record.reputation_tier == "Good"
    assert record.calculation_method == CalculationMethod.COLD_START
    assert record.version == 1
    assert record.score_factors == {
        "cash_flow_ratio": 20,
        "initial_balance": 10,
        "balance_consistency": 5,
        "nsf_events": 5,
    }


def test_cold_start_history_entry(score_engine: ScoreEngine, strong_metrics: FinancialStatementMetrics):
    entry = score_engine.cold_start("borrower_1", strong_metrics).entry

    assert entry.old_score_value is None
    assert entry.new_score_value == 75
    assert entry.change_reason == "initial_calculation"
    assert entry.change_details["financial_data"]["cash_flow_ratio"] == 1.3
    assert entry.change_details["factors"]["cash_flow_ratio"] == 20


def test_cold_start_weak_statement_clamps_to_minimum(
    score_engine: ScoreEngine, weak_metrics: FinancialStatementMetrics
):
    """Test 35 - 8 (many NSF) = 27 → clamped to 30"""
    record = score_engine.cold_start("borrower_1", weak_metrics).record

    assert record.score_value == 30
    assert record.star_rating == 1.0
    assert record.max_loan_amount_cents == 5000
    assert record.reputation_tier == "New"


def test_cold_start_without_metrics_raises(score_engine: ScoreEngine):
    with pytest.raises(MissingStatementData):
        score_engine.cold_start("borrower_1", None)


@pytest.mark.parametrize(
    "balance, expected",
    [(500.0, 10), (200.0, 6), (50.0, 6), (49.99, 2), (0.0, 0)],
)
def test_cold_start_balance_tiers(score_engine: ScoreEngine, balance, expected):
    metrics = FinancialStatementMetrics(
        cash_flow_ratio=1.0, avg_ending_balance=balance, balance_consistency_score=5, nsf_events=0
    )
    assert score_engine.cold_start_factors(metrics)["initial_balance"] == expected


@pytest.mark.parametrize("nsf_events, expected", [(0, 5), (1, -3), (3, -3), (4, -8)])
def test_cold_start_nsf_tiers(score_engine: ScoreEngine, nsf_events, expected):
    metrics = FinancialStatementMetrics(
        cash_flow_ratio=1.0, avg_ending_balance=100.0, balance_consistency_score=5, nsf_events=nsf_events
    )
    assert score_engine.cold_start_factors(metrics)["nsf_events"] == expected


def test_cold_start_ignores_income(score_engine: ScoreEngine, strong_metrics: FinancialStatementMetrics):
    """Test raw income does not move the score"""
    rich = FinancialStatementMetrics(**{**strong_metrics.__dict__, "avg_monthly_income": 50000.0})

    assert score_engine.cold_start("a", rich).record.score_value == 75


@pytest.mark.parametrize(
    "score_value, stars",
    [(30, 1.0), (35, 1.5), (45, 2.0), (60, 2.5), (75, 3.5), (90, 4.5), (99, 5.0)],
)
def test_star_rating(score_engine: ScoreEngine, score_value, stars):
    assert score_engine.star_rating(score_value) == stars


def test_star_rating_is_monotonic_and_bounded(score_engine: ScoreEngine):
    stars = [score_engine.star_rating(s) for s in range(30, 100)]

    assert all(later >= earlier for earlier, later in zip(stars, stars[1:]))
    assert min(stars) == 1.0
    assert max(stars) == 5.0
    assert all((s * 2) == int(s * 2) for s in stars)


@pytest.mark.parametrize(
    "score_value, limit_cents",
    [(99, 100000), (90, 100000), (85, 80000), (70, 60000), (65, 40000), (50, 30000), (40, 20000), (35, 10000), (34, 5000)],
)
def test_max_loan_amount(score_engine: ScoreEngine, score_value, limit_cents):
    assert score_engine.max_loan_amount(score_value) == limit_cents


@pytest.mark.parametrize(
    "score_value, tier",
    [(95, "Excellent"), (80, "Great"), (70, "Good"), (60, "Fair"), (55, "Building"), (40, "Early"), (35, "New")],
)
def test_reputation_tier(score_engine: ScoreEngine, score_value, tier):
    assert score_engine.reputation_tier(score_value) == tier


@pytest.mark.parametrize(
    "event, points, reason",
    [
        (LoanEvent(LoanEventType.REPAID_ON_TIME), 3, "loan_repaid_on_time"),
        (LoanEvent(LoanEventType.REPAID_EARLY), 5, "loan_repaid_early"),
        (LoanEvent(LoanEventType.REPAID_LATE, days_late=1), -2, "loan_repaid_late_1_days"),
        (LoanEvent(LoanEventType.REPAID_LATE, days_late=7), -2, "loan_repaid_late_7_days"),
        (LoanEvent(LoanEventType.REPAID_LATE, days_late=8), -5, "loan_repaid_late_8_days"),
        (LoanEvent(LoanEventType.REPAID_LATE, days_late=30), -5, "loan_repaid_late_30_days"),
        (LoanEvent(LoanEventType.REPAID_LATE, days_late=31), -10, "loan_repaid_late_31_days"),
        (LoanEvent(LoanEventType.DEFAULTED), -15, "loan_defaulted"),
        (LoanEvent(LoanEventType.FUNDED), 2, "loan_funded"),
    ],
)
def test_event_delta(score_engine: ScoreEngine, event, points, reason):
    delta, _, change_reason = score_engine.event_delta(event)

    assert delta == points
    assert change_reason == reason


@pytest.mark.parametrize("days_late", [None, 0])
def test_late_event_requires_days_late(score_engine: ScoreEngine, days_late):
    with pytest.raises(InvalidLoanEvent):
        score_engine.event_delta(LoanEvent(LoanEventType.REPAID_LATE, days_late=days_late))


def test_apply_event_without_score_raises(score_engine: ScoreEngine):
    with pytest.raises(NoExistingScore):
        score_engine.apply_event(None, LoanEvent(LoanEventType.REPAID_ON_TIME))


def test_late_repayment_from_75(score_engine: ScoreEngine):
    """Test 10 days late from 75 → 70 when no population bonus is pending"""
    existing = _record(score_engine, 75, {NO_HISTORY_PENALTY: -10})

    update = score_engine.apply_event(
        existing, LoanEvent(LoanEventType.REPAID_LATE, days_late=10), BorrowerHistory(), AS_OF
    )

    assert update.record.score_value == 70
    assert update.score_change == -5
    assert update.record.score_factors["late_payments"] == -5
    assert update.record.calculation_method == CalculationMethod.TRUST_LOOP
    assert update.entry.old_score_value == 75
    assert update.entry.change_reason == "loan_repaid_late_10_days"


def test_apply_event_keeps_version_for_compare_and_swap(score_engine: ScoreEngine):
    existing = _record(score_engine, 60, version=4)

    update = score_engine.apply_event(existing, LoanEvent(LoanEventType.FUNDED), as_of=AS_OF)

    assert update.record.version == 4


def test_no_history_penalty_applies_once(score_engine: ScoreEngine):
    """Test apply-once: the second event does not re-apply the penalty"""
    existing = _record(score_engine, 75)

    first = score_engine.apply_event(existing, LoanEvent(LoanEventType.FUNDED), BorrowerHistory(), AS_OF)
    second = score_engine.apply_event(first.record, LoanEvent(LoanEventType.FUNDED), BorrowerHistory(), AS_OF)

    assert first.record.score_value == 67  # +2 funded, -10 no history
    assert first.record.score_factors[NO_HISTORY_PENALTY] == -10
    assert second.record.score_value == 69  # +2 only


def test_on_time_rate_bonus_applies_once(score_engine: ScoreEngine):
    history = BorrowerHistory(completed_loans=4, repaid_loans=4, repaid_on_time=4)
    existing = _record(score_engine, 60)

    first = score_engine.apply_event(existing, LoanEvent(LoanEventType.REPAID_ON_TIME), history, AS_OF)
    second = score_engine.apply_event(first.record, LoanEvent(LoanEventType.REPAID_ON_TIME), history, AS_OF)

    # +3 on time, +25 for a 100% on-time rate, +5 for 3+ repaid loans
    assert first.record.score_value == 93
    assert first.record.score_factors[ON_TIME_RATE_BONUS] == 25
    assert first.record.score_factors[MULTIPLE_LOANS_BONUS] == 5
    assert second.record.score_value == 96


def test_on_time_rate_floor_penalty(score_engine: ScoreEngine):
    """Test an on-time rate below 60% costs 10 points"""
    history = BorrowerHistory(completed_loans=4, repaid_loans=1, repaid_on_time=1)
    existing = _record(score_engine, 60)

    update = score_engine.apply_event(existing, LoanEvent(LoanEventType.DEFAULTED), history, AS_OF)

    assert update.record.score_factors[ON_TIME_RATE_BONUS] == -10
    assert update.record.score_value == 35  # -15 default, -10 rate


def test_no_history_penalty_does_not_block_later_rate_bonus(score_engine: ScoreEngine):
    existing = _record(score_engine, 50, {NO_HISTORY_PENALTY: -10})
    history = BorrowerHistory(completed_loans=1, repaid_loans=1, repaid_on_time=1)

    update = score_engine.apply_event(existing, LoanEvent(LoanEventType.REPAID_ON_TIME), history, AS_OF)

    assert update.record.score_factors[ON_TIME_RATE_BONUS] == 25
    assert update.record.score_value == 78


def test_progressive_borrowing_bonus(score_engine: ScoreEngine):
    history = BorrowerHistory(largest_repaid_amount_cents=60000)
    existing = _record(score_engine, 50, {NO_HISTORY_PENALTY: -10})

    update = score_engine.apply_event(existing, LoanEvent(LoanEventType.FUNDED), history, AS_OF)

    assert update.record.score_factors[PROGRESSIVE_BORROWING_BONUS] == 8
    assert update.record.score_value == 60


def test_zero_point_tier_leaves_no_flag(score_engine: ScoreEngine):
    """Test a bonus not yet earned can still be earned later"""
    existing = _record(score_engine, 50, {NO_HISTORY_PENALTY: -10})

    small = score_engine.apply_event(
        existing, LoanEvent(LoanEventType.FUNDED), BorrowerHistory(largest_repaid_amount_cents=5000), AS_OF
    )
    assert PROGRESSIVE_BORROWING_BONUS not in small.record.score_factors

    larger = score_engine.apply_event(
        small.record, LoanEvent(LoanEventType.FUNDED), BorrowerHistory(largest_repaid_amount_cents=20000), AS_OF
    )
    assert larger.record.score_factors[PROGRESSIVE_BORROWING_BONUS] == 4
    assert larger.record.score_value == 58  # 50 + 2 + 2 + 4


def test_platform_tenure_bonus(score_engine: ScoreEngine):
    history = BorrowerHistory(account_created_at=datetime(2024, 5, 1))  # 13 months before AS_OF
    existing = _record(score_engine, 50, {NO_HISTORY_PENALTY: -10})

    update = score_engine.apply_event(existing, LoanEvent(LoanEventType.FUNDED), history, AS_OF)

    assert update.record.score_factors[PLATFORM_TENURE_BONUS] == 3
    assert update.record.score_value == 55


def test_score_stays_within_bounds(score_engine: ScoreEngine):
    """Test clamping at both ends; score_change reports the applied change"""
    top = _record(score_engine, 98, {NO_HISTORY_PENALTY: -10})
    bottom = _record(score_engine, 31, {NO_HISTORY_PENALTY: -10})

    up = score_engine.apply_event(top, LoanEvent(LoanEventType.REPAID_EARLY), BorrowerHistory(), AS_OF)
    down = score_engine.apply_event(bottom, LoanEvent(LoanEventType.DEFAULTED), BorrowerHistory(), AS_OF)

    assert up.record.score_value == 99
    assert up.score_change == 1
    assert up.entry.change_details["score_change"] == 5
    assert down.record.score_value == 30
    assert down.score_change == -1


def test_apply_event_does_not_mutate_existing_record(score_engine: ScoreEngine):
    existing = _record(score_engine, 60)

    score_engine.apply_event(existing, LoanEvent(LoanEventType.FUNDED), BorrowerHistory(), AS_OF)

    assert existing.score_factors == {}
    assert existing.score_value == 60
