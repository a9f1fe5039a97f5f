"""Pydantic schemas for API request/response validation"""

from pydantic import BaseModel, Field
from datetime import date, datetime
from typing import Any, Dict, List, Literal, Optional

from lending_gateway.domain.models import CalculationMethod, InstallmentStatus, LoanEventType


# Pricing


class QuoteRequest(BaseModel):
    """Request body for POST /v1/pricing/quote"""

    amount_cents: int = Field(..., description="Requested principal in cents")
    interest_rate: float = Field(..., description="Monthly interest rate in percent (5.0 = 5%)")
    term_months: int = Field(..., description="Loan term, 1-60 months")
    currency: str = Field("USD", min_length=3, max_length=3)


class UpfrontFeesSchema(BaseModel):
    service_fee_cents: int
    insurance_fee_cents: int
    total_cents: int


class MonthlyBreakdownSchema(BaseModel):
    principal_cents: int
    interest_cents: int
    tenure_fee_cents: int
    collection_fee_cents: int
    total_payment_cents: int


class TotalCostsSchema(BaseModel):
    total_interest_cents: int
    total_upfront_fees_cents: int
    total_monthly_fees_cents: int
    total_repayment_cents: int


class LoanPricingSchema(BaseModel):
    """Fee and cost snapshot returned by quotes and stored with each loan"""

    requested_amount_cents: int
    interest_rate: float
    term_months: int
    currency: str
    upfront_fees: UpfrontFeesSchema
    net_amount_received_cents: int
    monthly_breakdown: MonthlyBreakdownSchema
    total_costs: TotalCostsSchema
    true_annual_effective_rate: float


class LateFeeRequest(BaseModel):
    payment_amount_cents: int = Field(..., ge=0)
    days_late: int


class LateFeeResponse(BaseModel):
    applicable: bool
    days_late: int
    original_payment_cents: int
    late_fee_cents: int
    platform_share_cents: int
    lender_share_cents: int
    total_due_cents: int


class InvestmentRequest(BaseModel):
    """Request body for POST /v1/pricing/investment"""

    investment_cents: int
    monthly_yield_cents: int
    term_months: int = 12


class InvestmentResponse(BaseModel):
    investment_cents: int
    monthly_yield_cents: int
    term_months: int
    upfront_fees: UpfrontFeesSchema
    total_investment_cents: int
    monthly_collection_fee_cents: int
    monthly_tenure_fee_cents: int
    net_monthly_return_cents: int
    total_gross_yield_cents: int
    total_fees_cents: int
    total_net_return_cents: int
    roi: float
    payback_period_months: Optional[float] = None


class SecondaryPurchaseRequest(BaseModel):
    purchase_cents: int
    remaining_yield_cents: int
    remaining_months: int


class SecondaryPurchaseResponse(BaseModel):
    purchase_cents: int
    deal_fee_cents: int
    total_cost_cents: int
    monthly_yield_cents: int
    remaining_months: int
    total_yield_cents: int
    net_profit_cents: int
    roi: float


class RecoveryFeeRequest(BaseModel):
    recovered_cents: int = Field(..., ge=0)


class RecoveryFeeResponse(BaseModel):
    recovered_cents: int
    recovery_fee_cents: int
    net_to_lender_cents: int


class MinimumNetRequest(BaseModel):
    amount_cents: int = Field(..., gt=0)
    minimum_net_cents: int = Field(5000, gt=0)


class MinimumNetResponse(BaseModel):
    meets_minimum: bool
    net_amount_cents: int
    minimum_net_cents: int
    minimum_loan_cents: int


# Statements


class StatementRequest(BaseModel):
    """Request body for POST /v1/statements"""

    borrower_id: str = Field(..., min_length=1, description="Borrower identifier")
    raw_text: str = Field(..., min_length=1, description="OCR text of the statement")
    statement_type: Literal["bank", "mobile_money"] = "bank"


class FinancialMetricsSchema(BaseModel):
    cash_flow_ratio: float
    avg_ending_balance: float
    balance_consistency_score: int
    nsf_events: int
    avg_monthly_income: float = 0.0
    transaction_count: int = 0


class StatementResponse(BaseModel):
    statement_id: str
    borrower_id: str
    statement_type: str
    metrics: FinancialMetricsSchema


# Scores


class ScoreResponse(BaseModel):
    """Current reputation score"""

    borrower_id: str
    score_value: int
    star_rating: float
    max_loan_amount_cents: int
    reputation_tier: str
    score_factors: Dict[str, int]
    calculation_method: CalculationMethod
    version: int


class ColdStartRequest(BaseModel):
    """Optional inline metrics; the latest verified statement is used when omitted"""

    metrics: Optional[FinancialMetricsSchema] = None


class ColdStartResponse(BaseModel):
    created: bool
    score: ScoreResponse


class LoanEventRequest(BaseModel):
    """Request body for POST /v1/scores/{borrower_id}/events"""

    type: LoanEventType
    days_late: Optional[int] = Field(None, description="Required for REPAID_LATE")
    loan_id: Optional[str] = None
    amount_cents: Optional[int] = None


class LoanEventResponse(BaseModel):
    score: ScoreResponse
    score_change: int
    change_reason: str


class ScoreHistoryItem(BaseModel):
    """Single score transition"""

    old_score_value: Optional[int] = None
    new_score_value: int
    old_star_rating: Optional[float] = None
    new_star_rating: float
    old_max_loan_amount_cents: Optional[int] = None
    new_max_loan_amount_cents: int
    change_reason: str
    change_details: Optional[Dict[str, Any]] = None
    related_loan_id: Optional[str] = None
    created_at: str


class ScoreHistoryResponse(BaseModel):
    """Response for GET /v1/scores/{borrower_id}/history"""

    borrower_id: str
    entries: List[ScoreHistoryItem]


# Loans and installments


class LoanApplicationRequest(BaseModel):
    """Request body for POST /v1/loans/applications"""

    borrower_id: str = Field(..., min_length=1, description="Borrower identifier")
    amount_cents: int = Field(..., gt=0, description="Requested principal in cents")
    term_months: int = Field(..., description="Loan term in months")
    loan_type: str = Field("personal", description="personal | business | emergency")
    monthly_income_cents: int = Field(0, ge=0)
    employment_type: str = "informal"
    purpose: str = ""


class InstallmentSchema(BaseModel):
    """Single installment in a repayment schedule"""

    id: Optional[str] = None
    loan_id: Optional[str] = None
    installment_number: int
    due_date: date
    principal_cents: int
    interest_cents: int
    fee_cents: int
    total_cents: int
    remaining_balance_cents: int
    grace_period_end: datetime
    is_first_payment: bool
    status: InstallmentStatus
    paid_at: Optional[datetime] = None
    days_late: int = 0


class LoanResponse(BaseModel):
    """Response for GET /v1/loans/{loan_id}"""

    loan_id: str
    borrower_id: str
    loan_type: str
    amount_cents: int
    term_months: int
    annual_interest_rate: float
    monthly_interest_rate: float
    status: str
    repayment_outcome: Optional[str] = None
    score_value: int
    pricing: LoanPricingSchema
    applied_at: str


class LoanApplicationResponse(BaseModel):
    """Response for POST /v1/loans/applications"""

    loan: LoanResponse
    installments: List[InstallmentSchema]


class LoanListResponse(BaseModel):
    borrower_id: Optional[str] = None
    loans: List[LoanResponse]


class ScheduleResponse(BaseModel):
    """Response for GET /v1/loans/{loan_id}/schedule"""

    loan_id: str
    installments: List[InstallmentSchema]


class InstallmentListResponse(BaseModel):
    installments: List[InstallmentSchema]


class SettleRequest(BaseModel):
    paid_at: Optional[datetime] = Field(None, description="Defaults to now (UTC)")


class SettleResponse(BaseModel):
    installment: InstallmentSchema
    late_fee: LateFeeResponse
