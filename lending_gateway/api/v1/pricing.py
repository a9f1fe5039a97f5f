"""POST /v1/pricing/* - Fee calculator endpoints for borrowers and lenders"""

from dataclasses import asdict
from fastapi import APIRouter, HTTPException

from lending_gateway.api.v1.schemas import (
    InvestmentRequest,
    InvestmentResponse,
    LateFeeRequest,
    LateFeeResponse,
    LoanPricingSchema,
    MinimumNetRequest,
    MinimumNetResponse,
    QuoteRequest,
    RecoveryFeeRequest,
    RecoveryFeeResponse,
    SecondaryPurchaseRequest,
    SecondaryPurchaseResponse,
)
from lending_gateway.domain.exceptions import InvalidLoanParameters
from lending_gateway.domain.fees import (
    late_fee,
    minimum_loan_for_net,
    price_loan,
    price_primary_investment,
    price_secondary_purchase,
    recovery_fee,
    validate_minimum_net,
)

router = APIRouter()


@router.post("/pricing/quote", response_model=LoanPricingSchema)
def quote_loan(request_body: QuoteRequest):
    """
    Price a loan without persisting anything.

    Returns upfront fees, net disbursement, monthly breakdown, total cost and TAER.
    """
    try:
        pricing = price_loan(
            request_body.amount_cents,
            request_body.interest_rate,
            request_body.term_months,
            currency=request_body.currency,
        )
    except InvalidLoanParameters as e:
        raise HTTPException(status_code=422, detail=str(e))

    return LoanPricingSchema.model_validate(asdict(pricing))


@router.post("/pricing/late-fee", response_model=LateFeeResponse)
def quote_late_fee(request_body: LateFeeRequest):
    """10% of the payment, $50 minimum, split evenly between platform and lender"""
    fee = late_fee(request_body.payment_amount_cents, request_body.days_late)
    return LateFeeResponse.model_validate(asdict(fee))


@router.post("/pricing/investment", response_model=InvestmentResponse)
def quote_investment(request_body: InvestmentRequest):
    """Lender fees and expected return on a primary-market investment"""
    try:
        pricing = price_primary_investment(
            request_body.investment_cents,
            request_body.monthly_yield_cents,
            request_body.term_months,
        )
    except InvalidLoanParameters as e:
        raise HTTPException(status_code=422, detail=str(e))

    return InvestmentResponse.model_validate(asdict(pricing))


@router.post("/pricing/secondary-purchase", response_model=SecondaryPurchaseResponse)
def quote_secondary_purchase(request_body: SecondaryPurchaseRequest):
    try:
        pricing = price_secondary_purchase(
            request_body.purchase_cents,
            request_body.remaining_yield_cents,
            request_body.remaining_months,
        )
    except InvalidLoanParameters as e:
        raise HTTPException(status_code=422, detail=str(e))

    return SecondaryPurchaseResponse.model_validate(asdict(pricing))


@router.post("/pricing/recovery-fee", response_model=RecoveryFeeResponse)
def quote_recovery_fee(request_body: RecoveryFeeRequest):
    return RecoveryFeeResponse.model_validate(asdict(recovery_fee(request_body.recovered_cents)))


@router.post("/pricing/minimum-net", response_model=MinimumNetResponse)
def check_minimum_net(request_body: MinimumNetRequest):
    """Whether the net disbursement clears the minimum, and the smallest loan that would"""
    meets, net_amount = validate_minimum_net(request_body.amount_cents, request_body.minimum_net_cents)
    return MinimumNetResponse(
        meets_minimum=meets,
        net_amount_cents=net_amount,
        minimum_net_cents=request_body.minimum_net_cents,
        minimum_loan_cents=minimum_loan_for_net(request_body.minimum_net_cents),
    )
