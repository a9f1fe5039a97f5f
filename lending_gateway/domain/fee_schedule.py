"""Platform fee constants. All rates are fractions (0.10 = 10%)."""

from dataclasses import dataclass
from decimal import Decimal


@dataclass(frozen=True)
class BorrowerFeeSchedule:
    """Fees charged to borrowers on p2p and direct loans"""

    # Upfront, deducted before disbursement
    service_fee_rate: Decimal = Decimal("0.10")
    insurance_fee_rate: Decimal = Decimal("0.03")

    # Monthly, added to each payment
    tenure_fee_rate: Decimal = Decimal("0.01")  # of loan amount
    collection_fee_rate: Decimal = Decimal("0.05")  # of payment incl. tenure fee

    # Late payment penalty
    late_fee_rate: Decimal = Decimal("0.10")
    late_fee_minimum_cents: int = 5_000  # $50
    late_fee_platform_share: Decimal = Decimal("0.5")

    @property
    def upfront_rate(self) -> Decimal:
        return self.service_fee_rate + self.insurance_fee_rate

    @property
    def net_ratio(self) -> Decimal:
        """Share of the principal the borrower actually receives"""
        return Decimal("1") - self.upfront_rate


@dataclass(frozen=True)
class LenderFeeSchedule:
    """Fees charged to lenders on primary and secondary market positions"""

    service_fee_rate: Decimal = Decimal("0.10")
    insurance_fee_rate: Decimal = Decimal("0.03")
    collection_fee_rate: Decimal = Decimal("0.015")  # of monthly yield
    tenure_fee_rate: Decimal = Decimal("0.01")  # of investment amount
    secondary_deal_fee_rate: Decimal = Decimal("0.10")


@dataclass(frozen=True)
class PlatformFeeSchedule:
    recovery_fee_rate: Decimal = Decimal("0.30")  # of recovered amounts


BORROWER_FEES = BorrowerFeeSchedule()
LENDER_FEES = LenderFeeSchedule()
PLATFORM_FEES = PlatformFeeSchedule()

MIN_TERM_MONTHS = 1
MAX_TERM_MONTHS = 60
MAX_INTEREST_RATE = 100.0
HIGH_INTEREST_WARNING_RATE = 20.0
DEFAULT_MINIMUM_NET_CENTS = 5_000  # $50
