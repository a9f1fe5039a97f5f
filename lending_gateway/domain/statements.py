"""Financial statement metrics - inputs to the cold-start score"""

import math
from typing import List

from lending_gateway.domain.models import FinancialStatementMetrics, StatementTransaction
from lending_gateway.utils.money import round_percent, round_whole

DEFAULT_STATEMENT_MONTHS = 3


def compute_statement_metrics(
    transactions: List[StatementTransaction],
    months: int = DEFAULT_STATEMENT_MONTHS,
) -> FinancialStatementMetrics:
    """
    Derive cold-start metrics from parsed statement transactions.

    Requirements:
    - Cash flow ratio = total credits / total debits (0 without debits)
    - Average ending balance over positive running balances
    - Balance consistency 0-10: 10 - 10 * coefficient of variation, clamped, half-up
    - Ratios and averages rounded half-up to 2 decimals
    - NSF events: transactions leaving a running balance below 1
    """
    if not transactions:
        return FinancialStatementMetrics(
            cash_flow_ratio=0.0,
            avg_ending_balance=0.0,
            balance_consistency_score=0,
            nsf_events=0,
            avg_monthly_income=0.0,
            transaction_count=0,
        )

    total_credits = sum(t.amount for t in transactions if t.type == "credit")
    total_debits = sum(t.amount for t in transactions if t.type == "debit")

    cash_flow_ratio = total_credits / total_debits if total_debits > 0 else 0.0

    balances = [t.balance for t in transactions if t.balance > 0]
    avg_balance = sum(balances) / len(balances) if balances else 0.0

    consistency = 0
    if len(balances) > 1:
        variance = sum((b - avg_balance) ** 2 for b in balances) / len(balances)
        cv = math.sqrt(variance) / avg_balance if avg_balance > 0 else 1.0
        consistency = round_whole(max(0.0, min(10.0, 10 - cv * 10)))

    nsf_events = sum(1 for t in transactions if t.balance < 1)

    return FinancialStatementMetrics(
        cash_flow_ratio=round_percent(cash_flow_ratio),
        avg_ending_balance=round_percent(avg_balance),
        balance_consistency_score=int(consistency),
        nsf_events=nsf_events,
        avg_monthly_income=round_percent(total_credits / months),
        transaction_count=len(transactions),
    )
