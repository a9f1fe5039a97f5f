"""Interest rate tiers and loan product rules"""

from dataclasses import dataclass
from typing import Dict, Tuple

from lending_gateway.domain.exceptions import InvalidLoanParameters

# Annual rate (percent) by reputation score, 30-99 scale
RATE_TIERS: Tuple[Tuple[int, float], ...] = (
    (90, 8.5),
    (80, 12.0),
    (70, 15.9),
    (60, 19.9),
)
RATE_FLOOR = 24.9


@dataclass(frozen=True)
class LoanType:
    name: str
    description: str
    min_term_months: int
    max_term_months: int


LOAN_TYPES: Dict[str, LoanType] = {
    "personal": LoanType("personal", "Personal expenses, emergencies or debt consolidation", 3, 60),
    "business": LoanType("business", "Business expansion, equipment or working capital", 6, 60),
    "emergency": LoanType("emergency", "Fast cash for urgent situations", 1, 12),
}


def annual_rate_for_score(score_value: int) -> float:
    """
    Map reputation score to an annual interest rate.

    Score bands:
    - 90+:   8.5%
    - 80-89: 12.0%
    - 70-79: 15.9%
    - 60-69: 19.9%
    - <60:   24.9%
    """
    for threshold, rate in RATE_TIERS:
        if score_value >= threshold:
            return rate
    return RATE_FLOOR


def monthly_rate(annual_rate: float) -> float:
    """Monthly percent fed to the flat-interest pricer (4 decimals)"""
    return round(annual_rate / 12, 4)


def resolve_loan_type(loan_type: str, term_months: int) -> LoanType:
    """
    Raises:
        InvalidLoanParameters: Unknown loan type or term outside its range
    """
    product = LOAN_TYPES.get(loan_type)
    if product is None:
        raise InvalidLoanParameters(f"Invalid loan type '{loan_type}'. Choose one of: {', '.join(LOAN_TYPES)}")

    if not product.min_term_months <= term_months <= product.max_term_months:
        raise InvalidLoanParameters(
            f"{product.name.capitalize()} loans require a term between "
            f"{product.min_term_months} and {product.max_term_months} months"
        )
    return product
