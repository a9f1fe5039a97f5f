"""Domain models - pure Python dataclasses representing business entities"""

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Optional


class CalculationMethod(str, Enum):
    COLD_START = "cold_start"
    TRUST_LOOP = "trust_loop"


class LoanEventType(str, Enum):
    REPAID_ON_TIME = "REPAID_ON_TIME"
    REPAID_EARLY = "REPAID_EARLY"
    REPAID_LATE = "REPAID_LATE"
    DEFAULTED = "DEFAULTED"
    FUNDED = "FUNDED"


class InstallmentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    LATE = "late"
    DEFAULTED = "defaulted"


class LoanStatus(str, Enum):
    PENDING = "pending"
    UNDER_REVIEW = "under_review"
    APPROVED = "approved"
    FUNDED = "funded"
    ACTIVE = "active"
    REPAID = "repaid"
    DEFAULTED = "defaulted"
    REJECTED = "rejected"
    CANCELLED = "cancelled"


# Statuses that block a new application for the same borrower
OPEN_APPLICATION_STATUSES = (LoanStatus.PENDING.value, LoanStatus.UNDER_REVIEW.value)


@dataclass
class StatementTransaction:
    """Single line parsed from a bank or mobile-money statement"""

    date: date
    amount: float
    type: str  # "credit" or "debit"
    balance: float
    description: str = ""


@dataclass
class FinancialStatementMetrics:
    """Metrics derived from a verified financial statement"""

    cash_flow_ratio: float
    avg_ending_balance: float
    balance_consistency_score: int
    nsf_events: int
    avg_monthly_income: float = 0.0
    transaction_count: int = 0


@dataclass
class ScoreRecord:
    """Current reputation score for one borrower"""

    borrower_id: str
    score_value: int
    star_rating: float
    max_loan_amount_cents: int
    reputation_tier: str
    score_factors: Dict[str, int]
    calculation_method: CalculationMethod
    version: int = 0


@dataclass
class ScoreHistoryEntry:
    """Immutable audit record of one score transition"""

    borrower_id: str
    old_score_value: Optional[int]
    new_score_value: int
    old_star_rating: Optional[float]
    new_star_rating: float
    old_max_loan_amount_cents: Optional[int]
    new_max_loan_amount_cents: int
    old_reputation_tier: Optional[str]
    new_reputation_tier: str
    change_reason: str
    change_details: Dict[str, Any]
    related_loan_id: Optional[str] = None


@dataclass
class ScoreUpdate:
    """Result of a score computation: the new record and its history entry"""

    record: ScoreRecord
    entry: ScoreHistoryEntry
    score_change: int


@dataclass
class LoanEvent:
    """Loan lifecycle transition relevant to scoring"""

    type: LoanEventType
    days_late: Optional[int] = None
    loan_id: Optional[str] = None
    amount_cents: Optional[int] = None

    def to_payload(self) -> Dict[str, Any]:
        return {
            "type": self.type.value,
            "days_late": self.days_late,
            "loan_id": self.loan_id,
            "amount_cents": self.amount_cents,
        }


@dataclass
class BorrowerHistory:
    """Population-level view of a borrower's loans, used for trust-loop bonuses"""

    completed_loans: int = 0
    repaid_loans: int = 0
    repaid_on_time: int = 0
    largest_repaid_amount_cents: int = 0
    account_created_at: Optional[datetime] = None


@dataclass(frozen=True)
class UpfrontFees:
    service_fee_cents: int
    insurance_fee_cents: int
    total_cents: int


@dataclass(frozen=True)
class MonthlyBreakdown:
    principal_cents: int
    interest_cents: int
    tenure_fee_cents: int
    collection_fee_cents: int
    total_payment_cents: int

    @property
    def fee_cents(self) -> int:
        return self.tenure_fee_cents + self.collection_fee_cents


@dataclass(frozen=True)
class TotalCosts:
    total_interest_cents: int
    total_upfront_fees_cents: int
    total_monthly_fees_cents: int
    total_repayment_cents: int


@dataclass(frozen=True)
class LoanPricing:
    """Fee and cost snapshot for one quote or application"""

    requested_amount_cents: int
    interest_rate: float  # monthly, percent
    term_months: int
    currency: str
    upfront_fees: UpfrontFees
    net_amount_received_cents: int
    monthly_breakdown: MonthlyBreakdown
    total_costs: TotalCosts
    true_annual_effective_rate: float


@dataclass(frozen=True)
class LateFee:
    applicable: bool
    days_late: int
    original_payment_cents: int
    late_fee_cents: int
    platform_share_cents: int
    lender_share_cents: int
    total_due_cents: int


@dataclass
class Installment:
    """Single monthly payment in a repayment schedule"""

    installment_number: int
    due_date: date
    principal_cents: int
    interest_cents: int
    fee_cents: int
    total_cents: int
    remaining_balance_cents: int
    grace_period_end: datetime
    is_first_payment: bool
    status: InstallmentStatus = InstallmentStatus.PENDING
    paid_at: Optional[datetime] = None
    days_late: int = 0
    id: Optional[str] = None
    loan_id: Optional[str] = None


@dataclass(frozen=True)
class Lateness:
    is_late: bool
    days_late: int
    paid_late: bool = False


@dataclass
class IncomeInfo:
    """Applicant-declared income details attached to an application"""

    monthly_income_cents: int = 0
    employment_type: str = "informal"
    purpose: str = ""


@dataclass
class LoanApplication:
    """Priced and scheduled application ready to be persisted"""

    borrower_id: str
    loan_type: str
    amount_cents: int
    term_months: int
    annual_interest_rate: float
    monthly_interest_rate: float
    score_value: int
    pricing: LoanPricing
    installments: List[Installment] = field(default_factory=list)
    income_info: IncomeInfo = field(default_factory=IncomeInfo)


@dataclass(frozen=True)
class InvestmentPricing:
    """Lender-side fees and returns for a primary-market investment"""

    investment_cents: int
    monthly_yield_cents: int
    term_months: int
    upfront_fees: UpfrontFees
    total_investment_cents: int
    monthly_collection_fee_cents: int
    monthly_tenure_fee_cents: int
    net_monthly_return_cents: int
    total_gross_yield_cents: int
    total_fees_cents: int
    total_net_return_cents: int
    roi: float
    payback_period_months: Optional[float]


@dataclass(frozen=True)
class SecondaryPurchasePricing:
    """Buyer-side fee and expected return for a secondary-market purchase"""

    purchase_cents: int
    deal_fee_cents: int
    total_cost_cents: int
    monthly_yield_cents: int
    remaining_months: int
    total_yield_cents: int
    net_profit_cents: int
    roi: float


@dataclass(frozen=True)
class RecoveryFee:
    recovered_cents: int
    recovery_fee_cents: int
    net_to_lender_cents: int
