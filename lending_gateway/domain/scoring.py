"""Reputation scoring engine - cold start and trust-loop updates"""

import math
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Dict, Optional, Sequence, Tuple, TypeVar

from lending_gateway.domain.exceptions import InvalidLoanEvent, MissingStatementData, NoExistingScore
from lending_gateway.domain.models import (
    BorrowerHistory,
    CalculationMethod,
    FinancialStatementMetrics,
    LoanEvent,
    LoanEventType,
    ScoreHistoryEntry,
    ScoreRecord,
    ScoreUpdate,
)
from lending_gateway.utils.date_utils import months_between, utcnow

T = TypeVar("T")

# Apply-once population bonus flags stored in score_factors
ON_TIME_RATE_BONUS = "on_time_rate_bonus"
NO_HISTORY_PENALTY = "no_history_penalty"
PROGRESSIVE_BORROWING_BONUS = "progressive_borrowing_bonus"
PLATFORM_TENURE_BONUS = "platform_tenure_bonus"
MULTIPLE_LOANS_BONUS = "multiple_loans_bonus"


@dataclass(frozen=True)
class ScoreWeights:
    """
    Weight tables and thresholds for the scoring engine.

    Tier tables are (threshold, value) pairs in descending threshold order;
    the first pair whose threshold is met wins.
    """

    min_score: int = 30
    max_score: int = 99
    base_score: int = 35

    # Cold start (statement metrics)
    cash_flow_tiers: Sequence[Tuple[float, int]] = ((1.2, 20), (1.0, 15), (0.8, 10), (0.6, 5))
    balance_high_threshold: float = 200.0
    balance_high: int = 10
    balance_medium_threshold: float = 50.0
    balance_medium: int = 6
    balance_low: int = 2
    consistency_tiers: Sequence[Tuple[float, int]] = ((7, 5), (4, 3))
    consistency_low: int = 1
    nsf_none: int = 5
    nsf_few: int = -3
    nsf_few_max_events: int = 3
    nsf_many: int = -8

    # Trust loop (loan events)
    repaid_on_time: int = 3
    repaid_early: int = 5
    late_1_7_days: int = -2
    late_8_30_days: int = -5
    late_30_plus_days: int = -10
    defaulted: int = -15
    funded: int = 2

    # Population bonuses
    on_time_rate_tiers: Sequence[Tuple[float, int]] = ((0.95, 25), (0.90, 20), (0.80, 15), (0.70, 10), (0.60, 5))
    on_time_rate_floor: int = -10
    no_history_penalty: int = -10
    progressive_tiers: Sequence[Tuple[int, int]] = (
        (80_000, 10),  # $800
        (60_000, 8),
        (40_000, 6),
        (20_000, 4),
        (10_000, 2),
    )
    tenure_tiers: Sequence[Tuple[int, int]] = ((24, 4), (12, 3), (6, 2), (3, 1))
    multiple_loans_threshold: int = 3
    multiple_loans_bonus: int = 5

    # Derived outputs
    max_star_rating: float = 5.0
    min_star_rating: float = 1.0
    loan_limit_tiers: Sequence[Tuple[int, int]] = (
        (90, 100_000),  # $1000
        (80, 80_000),
        (70, 60_000),
        (60, 40_000),
        (50, 30_000),
        (40, 20_000),
        (35, 10_000),
    )
    loan_limit_floor_cents: int = 5_000
    reputation_tiers: Sequence[Tuple[int, str]] = (
        (90, "Excellent"),
        (80, "Great"),
        (70, "Good"),
        (60, "Fair"),
        (50, "Building"),
        (40, "Early"),
    )
    reputation_floor: str = "New"


def _tier(value: float, tiers: Sequence[Tuple[float, T]], default: T) -> T:
    for threshold, result in tiers:
        if value >= threshold:
            return result
    return default


class ScoreEngine:
    """
    Computes bounded reputation scores.

    Holds configuration only; every method is a pure function of its
    arguments, so one instance can serve concurrent requests.
    """

    def __init__(self, weights: Optional[ScoreWeights] = None):
        self.weights = weights or ScoreWeights()

    # Derived fields

    def clamp(self, score: int) -> int:
        return max(self.weights.min_score, min(self.weights.max_score, score))

    def star_rating(self, score_value: int) -> float:
        """Linear map min_score→1.0 .. max_score→5.0, rounded half-up to the nearest 0.5"""
        w = self.weights
        span = w.max_score - w.min_score
        raw = w.min_star_rating + (score_value - w.min_score) / span * (w.max_star_rating - w.min_star_rating)
        rounded = math.floor(raw * 2 + 0.5) / 2
        return max(w.min_star_rating, min(w.max_star_rating, rounded))

    def max_loan_amount(self, score_value: int) -> int:
        """Loan limit in cents from the step table"""
        return _tier(score_value, self.weights.loan_limit_tiers, self.weights.loan_limit_floor_cents)

    def reputation_tier(self, score_value: int) -> str:
        return _tier(score_value, self.weights.reputation_tiers, self.weights.reputation_floor)

    def _record(
        self,
        borrower_id: str,
        score_value: int,
        factors: Dict[str, int],
        method: CalculationMethod,
        version: int,
    ) -> ScoreRecord:
        return ScoreRecord(
            borrower_id=borrower_id,
            score_value=score_value,
            star_rating=self.star_rating(score_value),
            max_loan_amount_cents=self.max_loan_amount(score_value),
            reputation_tier=self.reputation_tier(score_value),
            score_factors=factors,
            calculation_method=method,
            version=version,
        )

    # Cold start

    def cold_start_factors(self, metrics: FinancialStatementMetrics) -> Dict[str, int]:
        """
        Point contribution of each statement metric.

        Cash flow ratio dominates; raw income is not scored.
        """
        w = self.weights
        factors: Dict[str, int] = {}

        factors["cash_flow_ratio"] = _tier(metrics.cash_flow_ratio, w.cash_flow_tiers, 0)

        balance = metrics.avg_ending_balance
        if balance > w.balance_high_threshold:
            factors["initial_balance"] = w.balance_high
        elif balance >= w.balance_medium_threshold:
            factors["initial_balance"] = w.balance_medium
        elif balance > 0:
            factors["initial_balance"] = w.balance_low
        else:
            factors["initial_balance"] = 0

        consistency = metrics.balance_consistency_score
        if consistency > 0:
            factors["balance_consistency"] = _tier(consistency, w.consistency_tiers, w.consistency_low)
        else:
            factors["balance_consistency"] = 0

        if metrics.nsf_events == 0:
            factors["nsf_events"] = w.nsf_none
        elif metrics.nsf_events <= w.nsf_few_max_events:
            factors["nsf_events"] = w.nsf_few
        else:
            factors["nsf_events"] = w.nsf_many

        return factors

    def cold_start(self, borrower_id: str, metrics: Optional[FinancialStatementMetrics]) -> ScoreUpdate:
        """
        Initial score from a verified financial statement.

        Raises:
            MissingStatementData: No statement metrics supplied
        """
        if metrics is None:
            raise MissingStatementData(
                "A verified bank or mobile-money statement is required to calculate your score"
            )

        factors = self.cold_start_factors(metrics)
        score = self.clamp(self.weights.base_score + sum(factors.values()))
        record = self._record(borrower_id, score, factors, CalculationMethod.COLD_START, version=1)

        entry = ScoreHistoryEntry(
            borrower_id=borrower_id,
            old_score_value=None,
            new_score_value=record.score_value,
            old_star_rating=None,
            new_star_rating=record.star_rating,
            old_max_loan_amount_cents=None,
            new_max_loan_amount_cents=record.max_loan_amount_cents,
            old_reputation_tier=None,
            new_reputation_tier=record.reputation_tier,
            change_reason="initial_calculation",
            change_details={"financial_data": asdict(metrics), "factors": dict(factors)},
        )
        return ScoreUpdate(record=record, entry=entry, score_change=record.score_value)

    # Trust loop

    def event_delta(self, event: LoanEvent) -> Tuple[int, str, str]:
        """
        Points for a single loan event.

        Returns: (points, factor_name, change_reason)
        """
        w = self.weights

        if event.type == LoanEventType.REPAID_ON_TIME:
            return w.repaid_on_time, "loans_repaid_on_time", "loan_repaid_on_time"
        if event.type == LoanEventType.REPAID_EARLY:
            return w.repaid_early, "loans_repaid_early", "loan_repaid_early"
        if event.type == LoanEventType.REPAID_LATE:
            if event.days_late is None or event.days_late < 1:
                raise InvalidLoanEvent("days_late is required for a late repayment")
            if event.days_late <= 7:
                points = w.late_1_7_days
            elif event.days_late <= 30:
                points = w.late_8_30_days
            else:
                points = w.late_30_plus_days
            return points, "late_payments", f"loan_repaid_late_{event.days_late}_days"
        if event.type == LoanEventType.DEFAULTED:
            return w.defaulted, "defaults", "loan_defaulted"
        if event.type == LoanEventType.FUNDED:
            return w.funded, "active_loans", "loan_funded"

        raise InvalidLoanEvent(f"Unknown loan event type: {event.type}")

    def on_time_rate_points(self, on_time_rate: float) -> int:
        return _tier(on_time_rate, self.weights.on_time_rate_tiers, self.weights.on_time_rate_floor)

    def population_bonuses(self, factors: Dict[str, int], history: BorrowerHistory, as_of: datetime) -> int:
        """
        Apply-once bonuses from the borrower's whole loan history.

        Each bonus is recorded in factors when awarded and skipped when its
        flag is already present. Zero-point tiers leave no flag, so they can
        still be earned later. Mutates factors; returns the points added.
        """
        w = self.weights
        points = 0

        if ON_TIME_RATE_BONUS not in factors:
            if history.completed_loans == 0:
                if NO_HISTORY_PENALTY not in factors:
                    factors[NO_HISTORY_PENALTY] = w.no_history_penalty
                    points += w.no_history_penalty
            else:
                rate_points = self.on_time_rate_points(history.repaid_on_time / history.completed_loans)
                factors[ON_TIME_RATE_BONUS] = rate_points
                points += rate_points

        if PROGRESSIVE_BORROWING_BONUS not in factors:
            progressive = _tier(history.largest_repaid_amount_cents, w.progressive_tiers, 0)
            if progressive:
                factors[PROGRESSIVE_BORROWING_BONUS] = progressive
                points += progressive

        if PLATFORM_TENURE_BONUS not in factors and history.account_created_at is not None:
            tenure = _tier(months_between(history.account_created_at, as_of), w.tenure_tiers, 0)
            if tenure:
                factors[PLATFORM_TENURE_BONUS] = tenure
                points += tenure

        if MULTIPLE_LOANS_BONUS not in factors and history.repaid_loans >= w.multiple_loans_threshold:
            factors[MULTIPLE_LOANS_BONUS] = w.multiple_loans_bonus
            points += w.multiple_loans_bonus

        return points

    def apply_event(
        self,
        existing: Optional[ScoreRecord],
        event: LoanEvent,
        history: Optional[BorrowerHistory] = None,
        as_of: Optional[datetime] = None,
    ) -> ScoreUpdate:
        """
        Trust-loop update from one loan event.

        The returned record carries the existing version; the store bumps it
        on a successful compare-and-swap.

        Raises:
            NoExistingScore: Called before any cold-start record exists
            InvalidLoanEvent: Late repayment without days_late
        """
        if existing is None:
            raise NoExistingScore("Trust-loop update requires a cold-start score")

        history = history or BorrowerHistory()
        as_of = as_of or utcnow()

        factors = dict(existing.score_factors)
        event_points, factor_name, reason = self.event_delta(event)
        factors[factor_name] = factors.get(factor_name, 0) + event_points

        score_change = event_points + self.population_bonuses(factors, history, as_of)
        new_score = self.clamp(existing.score_value + score_change)

        record = self._record(
            existing.borrower_id, new_score, factors, CalculationMethod.TRUST_LOOP, version=existing.version
        )
        entry = ScoreHistoryEntry(
            borrower_id=existing.borrower_id,
            old_score_value=existing.score_value,
            new_score_value=record.score_value,
            old_star_rating=existing.star_rating,
            new_star_rating=record.star_rating,
            old_max_loan_amount_cents=existing.max_loan_amount_cents,
            new_max_loan_amount_cents=record.max_loan_amount_cents,
            old_reputation_tier=existing.reputation_tier,
            new_reputation_tier=record.reputation_tier,
            change_reason=reason,
            change_details={"event": event.to_payload(), "score_change": score_change},
            related_loan_id=event.loan_id,
        )
        return ScoreUpdate(record=record, entry=entry, score_change=record.score_value - existing.score_value)
