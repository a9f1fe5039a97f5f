"""Repayment schedule generation, grace windows and lateness"""

from dataclasses import replace
from datetime import date, datetime, timedelta
from typing import Iterable, List

from lending_gateway.config import settings
from lending_gateway.domain.exceptions import InstallmentAlreadySettled, InvalidLoanParameters
from lending_gateway.domain.models import Installment, InstallmentStatus, Lateness
from lending_gateway.utils.date_utils import add_months, start_of_day

FIRST_PAYMENT_GRACE = timedelta(days=settings.first_payment_grace_days)
STANDARD_GRACE = timedelta(hours=settings.standard_grace_hours)


def grace_period_end(due_date: date, is_first_payment: bool) -> datetime:
    """First installment: 35 days after due date. Later ones: 24 hours."""
    grace = FIRST_PAYMENT_GRACE if is_first_payment else STANDARD_GRACE
    return start_of_day(due_date) + grace


def build_schedule(
    loan_amount_cents: int,
    monthly_interest_cents: int,
    monthly_principal_cents: int,
    monthly_fee_cents: int,
    term_months: int,
    loan_start_date: date,
) -> List[Installment]:
    """
    Build the monthly installment table for a flat-interest loan.

    Requirements:
    - Installment k is due loan_start_date + k calendar months
    - Interest and fees are identical every month
    - Principal never exceeds the outstanding balance, so balances stop at 0
    - Last installment absorbs rounding remainder so principal sums to the loan amount

    Example:
        $1000 over 3 months, principal 333.33
        → principal [333.33, 333.33, 333.34], balances [666.67, 333.34, 0.00]
    """
    if loan_amount_cents <= 0:
        raise InvalidLoanParameters("Loan amount must be greater than 0")
    if term_months < 1:
        raise InvalidLoanParameters("Term must be at least 1 month")

    installments = []
    balance = loan_amount_cents
    for number in range(1, term_months + 1):
        if number == term_months:
            principal = balance
        else:
            principal = min(monthly_principal_cents, balance)
        balance -= principal

        due_date = add_months(loan_start_date, number)
        is_first = number == 1

        installments.append(
            Installment(
                installment_number=number,
                due_date=due_date,
                principal_cents=principal,
                interest_cents=monthly_interest_cents,
                fee_cents=monthly_fee_cents,
                total_cents=principal + monthly_interest_cents + monthly_fee_cents,
                remaining_balance_cents=balance,
                grace_period_end=grace_period_end(due_date, is_first),
                is_first_payment=is_first,
            )
        )

    return installments


def _whole_days(delta: timedelta) -> int:
    return delta // timedelta(days=1)


def is_late(installment: Installment, now: datetime) -> Lateness:
    """
    Lateness relative to the installment's grace window.

    - Unpaid and past grace → late, days counted up to now
    - Paid after grace → was late, days counted up to paid_at
    - Otherwise on time
    """
    if installment.paid_at is None:
        if now > installment.grace_period_end:
            return Lateness(is_late=True, days_late=_whole_days(now - installment.grace_period_end))
        return Lateness(is_late=False, days_late=0)

    if installment.paid_at > installment.grace_period_end:
        days = _whole_days(installment.paid_at - installment.grace_period_end)
        return Lateness(is_late=True, days_late=days, paid_late=True)

    return Lateness(is_late=False, days_late=0)


def settle_installment(installment: Installment, paid_at: datetime) -> Installment:
    """Mark a pending installment paid, or late if paid after its grace window"""
    if installment.status != InstallmentStatus.PENDING:
        raise InstallmentAlreadySettled(
            f"Installment {installment.installment_number} is already {installment.status.value}"
        )

    settled = replace(installment, paid_at=paid_at)
    lateness = is_late(settled, paid_at)
    return replace(
        settled,
        status=InstallmentStatus.LATE if lateness.is_late else InstallmentStatus.PAID,
        days_late=lateness.days_late,
    )


def late_installments(installments: Iterable[Installment], now: datetime) -> List[Installment]:
    """Pending installments whose grace window has passed"""
    return [
        inst
        for inst in installments
        if inst.status == InstallmentStatus.PENDING and now > inst.grace_period_end
    ]


def upcoming_installments(
    installments: Iterable[Installment],
    today: date,
    days_ahead: int = settings.reminder_days_ahead,
) -> List[Installment]:
    """Pending installments due between today and today + days_ahead (inclusive)"""
    horizon = today + timedelta(days=days_ahead)
    return [
        inst
        for inst in installments
        if inst.status == InstallmentStatus.PENDING and today <= inst.due_date <= horizon
    ]
