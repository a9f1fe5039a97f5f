"""Fee calculator - upfront fees, monthly breakdown, total cost and TAER"""

import logging
import math
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, Tuple

from lending_gateway.domain.exceptions import InvalidLoanParameters
from lending_gateway.domain.fee_schedule import (
    BORROWER_FEES,
    DEFAULT_MINIMUM_NET_CENTS,
    HIGH_INTEREST_WARNING_RATE,
    LENDER_FEES,
    MAX_INTEREST_RATE,
    MAX_TERM_MONTHS,
    MIN_TERM_MONTHS,
    PLATFORM_FEES,
    BorrowerFeeSchedule,
    LenderFeeSchedule,
)
from lending_gateway.domain.models import (
    InvestmentPricing,
    LateFee,
    LoanPricing,
    MonthlyBreakdown,
    RecoveryFee,
    SecondaryPurchasePricing,
    TotalCosts,
    UpfrontFees,
)
from lending_gateway.utils.money import percent_of, round_cents, round_percent, to_decimal

logger = logging.getLogger(__name__)


def validate_loan_parameters(loan_amount_cents: int, interest_rate: float, term_months: int) -> None:
    """
    Reject out-of-range loan terms.

    Raises:
        InvalidLoanParameters: amount <= 0, rate outside [0, 100], term outside [1, 60]
    """
    if loan_amount_cents is None or loan_amount_cents <= 0:
        raise InvalidLoanParameters("Loan amount must be greater than 0")

    if interest_rate is None or interest_rate < 0 or interest_rate > MAX_INTEREST_RATE:
        raise InvalidLoanParameters("Interest rate must be between 0 and 100")

    if term_months is None or term_months < MIN_TERM_MONTHS or term_months > MAX_TERM_MONTHS:
        raise InvalidLoanParameters(f"Term must be between {MIN_TERM_MONTHS} and {MAX_TERM_MONTHS} months")

    if interest_rate > HIGH_INTEREST_WARNING_RATE:
        logger.warning(
            "Interest rate is unusually high",
            extra={"interest_rate": interest_rate, "loan_amount_cents": loan_amount_cents},
        )


def calculate_upfront_fees(
    loan_amount_cents: int, schedule: BorrowerFeeSchedule = BORROWER_FEES
) -> Tuple[UpfrontFees, int]:
    """Service + insurance fees and the net amount disbursed"""
    service_fee = percent_of(loan_amount_cents, schedule.service_fee_rate)
    insurance_fee = percent_of(loan_amount_cents, schedule.insurance_fee_rate)
    total = service_fee + insurance_fee
    fees = UpfrontFees(service_fee_cents=service_fee, insurance_fee_cents=insurance_fee, total_cents=total)
    return fees, loan_amount_cents - total


def calculate_monthly_fees(
    loan_amount_cents: int,
    base_payment_cents: int,
    schedule: BorrowerFeeSchedule = BORROWER_FEES,
) -> Tuple[int, int]:
    """
    Tenure fee is a share of the principal; collection fee is a share of
    the payment including the tenure fee.

    Returns: (tenure_fee_cents, collection_fee_cents)
    """
    tenure_fee = percent_of(loan_amount_cents, schedule.tenure_fee_rate)
    collection_fee = percent_of(base_payment_cents + tenure_fee, schedule.collection_fee_rate)
    return tenure_fee, collection_fee


def true_annual_effective_rate(total_repayment_cents: int, net_received_cents: int, term_months: int) -> float:
    """
    TAER = ((total repaid - net received) / net received) / term * 12 * 100

    Simple annualized cost ratio, rounded to 2 decimals. Not an IRR.
    """
    total_cost = Decimal(total_repayment_cents - net_received_cents)
    cost_ratio = total_cost / Decimal(net_received_cents)
    return round_percent(cost_ratio / Decimal(term_months) * 12 * 100)


def price_loan(
    loan_amount_cents: int,
    interest_rate: float,
    term_months: int,
    currency: str = "USD",
    schedule: BorrowerFeeSchedule = BORROWER_FEES,
) -> LoanPricing:
    """
    Price a borrower loan.

    Interest is flat: the monthly rate is applied to the original principal
    every month, and principal is repaid straight-line (amount / term).

    Args:
        loan_amount_cents: Requested principal
        interest_rate: Monthly rate in percent (5.0 = 5% per month)
        term_months: 1..60
        currency: ISO code carried through to the snapshot

    Raises:
        InvalidLoanParameters: On out-of-range inputs

    Example:
        $1000 at 5% for 12 months
        upfront 100 + 30 = 130, net 870
        principal 83.33, interest 50.00, tenure 10.00, collection 7.17
        total repayment 1936.04, TAER 122.53
    """
    validate_loan_parameters(loan_amount_cents, interest_rate, term_months)

    upfront_fees, net_amount = calculate_upfront_fees(loan_amount_cents, schedule)

    amount = Decimal(loan_amount_cents)
    monthly_interest = round_cents(amount * to_decimal(interest_rate) / 100)
    monthly_principal = round_cents(amount / term_months)
    base_payment = monthly_principal + monthly_interest

    tenure_fee, collection_fee = calculate_monthly_fees(loan_amount_cents, base_payment, schedule)
    total_payment = base_payment + tenure_fee + collection_fee

    total_interest = monthly_interest * term_months
    total_monthly_fees = (tenure_fee + collection_fee) * term_months
    total_repayment = loan_amount_cents + total_interest + upfront_fees.total_cents + total_monthly_fees

    return LoanPricing(
        requested_amount_cents=loan_amount_cents,
        interest_rate=interest_rate,
        term_months=term_months,
        currency=currency,
        upfront_fees=upfront_fees,
        net_amount_received_cents=net_amount,
        monthly_breakdown=MonthlyBreakdown(
            principal_cents=monthly_principal,
            interest_cents=monthly_interest,
            tenure_fee_cents=tenure_fee,
            collection_fee_cents=collection_fee,
            total_payment_cents=total_payment,
        ),
        total_costs=TotalCosts(
            total_interest_cents=total_interest,
            total_upfront_fees_cents=upfront_fees.total_cents,
            total_monthly_fees_cents=total_monthly_fees,
            total_repayment_cents=total_repayment,
        ),
        true_annual_effective_rate=true_annual_effective_rate(total_repayment, net_amount, term_months),
    )


def late_fee(payment_amount_cents: int, days_late: int, schedule: BorrowerFeeSchedule = BORROWER_FEES) -> LateFee:
    """
    Late penalty: 10% of the payment with a $50 floor, split evenly
    between platform and lender. No fee when days_late <= 0.
    """
    if days_late <= 0:
        return LateFee(
            applicable=False,
            days_late=0,
            original_payment_cents=payment_amount_cents,
            late_fee_cents=0,
            platform_share_cents=0,
            lender_share_cents=0,
            total_due_cents=payment_amount_cents,
        )

    fee = max(percent_of(payment_amount_cents, schedule.late_fee_rate), schedule.late_fee_minimum_cents)
    platform_share = percent_of(fee, schedule.late_fee_platform_share)

    return LateFee(
        applicable=True,
        days_late=days_late,
        original_payment_cents=payment_amount_cents,
        late_fee_cents=fee,
        platform_share_cents=platform_share,
        lender_share_cents=fee - platform_share,
        total_due_cents=payment_amount_cents + fee,
    )


def price_primary_investment(
    investment_cents: int,
    monthly_yield_cents: int,
    term_months: int = 12,
    schedule: LenderFeeSchedule = LENDER_FEES,
) -> InvestmentPricing:
    """Lender cost and return for funding a loan on the primary market"""
    if investment_cents <= 0:
        raise InvalidLoanParameters("Investment amount must be greater than 0")
    if monthly_yield_cents < 0:
        raise InvalidLoanParameters("Monthly yield cannot be negative")
    if term_months < MIN_TERM_MONTHS or term_months > MAX_TERM_MONTHS:
        raise InvalidLoanParameters(f"Term must be between {MIN_TERM_MONTHS} and {MAX_TERM_MONTHS} months")

    service_fee = percent_of(investment_cents, schedule.service_fee_rate)
    insurance_fee = percent_of(investment_cents, schedule.insurance_fee_rate)
    upfront_total = service_fee + insurance_fee
    total_investment = investment_cents + upfront_total

    collection_fee = percent_of(monthly_yield_cents, schedule.collection_fee_rate)
    tenure_fee = percent_of(investment_cents, schedule.tenure_fee_rate)
    net_monthly = monthly_yield_cents - collection_fee - tenure_fee
    total_net = net_monthly * term_months

    # Net return never covers the investment when it is not positive
    payback: Optional[float] = None
    if net_monthly > 0:
        months = Decimal(total_investment) / Decimal(net_monthly)
        payback = float(months.quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))

    return InvestmentPricing(
        investment_cents=investment_cents,
        monthly_yield_cents=monthly_yield_cents,
        term_months=term_months,
        upfront_fees=UpfrontFees(
            service_fee_cents=service_fee,
            insurance_fee_cents=insurance_fee,
            total_cents=upfront_total,
        ),
        total_investment_cents=total_investment,
        monthly_collection_fee_cents=collection_fee,
        monthly_tenure_fee_cents=tenure_fee,
        net_monthly_return_cents=net_monthly,
        total_gross_yield_cents=monthly_yield_cents * term_months,
        total_fees_cents=(collection_fee + tenure_fee) * term_months,
        total_net_return_cents=total_net,
        roi=round_percent(Decimal(total_net) / Decimal(total_investment) * 100),
        payback_period_months=payback,
    )


def price_secondary_purchase(
    purchase_cents: int,
    remaining_yield_cents: int,
    remaining_months: int,
    schedule: LenderFeeSchedule = LENDER_FEES,
) -> SecondaryPurchasePricing:
    """One-time deal fee on a secondary-market purchase; no ongoing fees"""
    if purchase_cents <= 0:
        raise InvalidLoanParameters("Purchase amount must be greater than 0")
    if remaining_months < 0 or remaining_yield_cents < 0:
        raise InvalidLoanParameters("Remaining yield and months cannot be negative")

    deal_fee = percent_of(purchase_cents, schedule.secondary_deal_fee_rate)
    total_cost = purchase_cents + deal_fee
    total_yield = remaining_yield_cents * remaining_months
    net_profit = total_yield - deal_fee

    return SecondaryPurchasePricing(
        purchase_cents=purchase_cents,
        deal_fee_cents=deal_fee,
        total_cost_cents=total_cost,
        monthly_yield_cents=remaining_yield_cents,
        remaining_months=remaining_months,
        total_yield_cents=total_yield,
        net_profit_cents=net_profit,
        roi=round_percent(Decimal(net_profit) / Decimal(total_cost) * 100),
    )


def recovery_fee(recovered_cents: int) -> RecoveryFee:
    fee = percent_of(recovered_cents, PLATFORM_FEES.recovery_fee_rate)
    return RecoveryFee(recovered_cents=recovered_cents, recovery_fee_cents=fee, net_to_lender_cents=recovered_cents - fee)


def validate_minimum_net(
    loan_amount_cents: int,
    minimum_net_cents: int = DEFAULT_MINIMUM_NET_CENTS,
    schedule: BorrowerFeeSchedule = BORROWER_FEES,
) -> Tuple[bool, int]:
    """Returns: (net meets minimum, net amount after upfront fees)"""
    _, net_amount = calculate_upfront_fees(loan_amount_cents, schedule)
    return net_amount >= minimum_net_cents, net_amount


def minimum_loan_for_net(desired_net_cents: int, schedule: BorrowerFeeSchedule = BORROWER_FEES) -> int:
    """Smallest principal whose net disbursement covers desired_net_cents"""
    return math.ceil(Decimal(desired_net_cents) / schedule.net_ratio)
