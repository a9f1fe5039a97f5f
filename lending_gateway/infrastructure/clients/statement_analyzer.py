"""Statement analyzer HTTP client - turns raw statement text into metrics"""

import httpx
from datetime import date
from lending_gateway.domain.models import FinancialStatementMetrics, StatementTransaction
from lending_gateway.domain.exceptions import StatementAnalyzerError
from lending_gateway.domain.statements import compute_statement_metrics
from lending_gateway.config import settings


class StatementAnalyzerClient:
    """Client for the external OCR / statement parsing service"""

    def __init__(self, base_url: str | None = None, timeout: float | None = None):
        self.base_url = base_url or settings.statement_analyzer_base
        self.timeout = timeout or settings.http_timeout_seconds

    async def parse(self, borrower_id: str, raw_text: str, statement_type: str) -> FinancialStatementMetrics:
        """
        Parse a bank or mobile-money statement.

        The analyzer answers with either ready-made "metrics" or the parsed
        "transactions"; transactions are reduced to metrics locally.

        Raises:
            StatementAnalyzerError: On timeout, HTTP errors, or invalid response
        """
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            try:
                response = await client.post(
                    f"{self.base_url}/statements/parse",
                    json={
                        "borrower_id": borrower_id,
                        "raw_text": raw_text,
                        "statement_type": statement_type,
                    },
                )
                response.raise_for_status()
                data = response.json()

                if "metrics" in data:
                    metrics = data["metrics"]
                    return FinancialStatementMetrics(
                        cash_flow_ratio=float(metrics["cash_flow_ratio"]),
                        avg_ending_balance=float(metrics["avg_ending_balance"]),
                        balance_consistency_score=int(metrics["balance_consistency_score"]),
                        nsf_events=int(metrics["nsf_events"]),
                        avg_monthly_income=float(metrics.get("avg_monthly_income", 0.0)),
                        transaction_count=int(metrics.get("transaction_count", 0)),
                    )

                transactions = [
                    StatementTransaction(
                        date=date.fromisoformat(txn["date"]),
                        amount=float(txn["amount"]),
                        type=txn["type"],
                        balance=float(txn["balance"]),
                        description=txn.get("description", ""),
                    )
                    for txn in data["transactions"]
                ]
                return compute_statement_metrics(transactions)

            except httpx.TimeoutException as e:
                raise StatementAnalyzerError(f"Statement analyzer timeout after {self.timeout}s") from e
            except httpx.HTTPStatusError as e:
                raise StatementAnalyzerError(f"Statement analyzer error: {e.response.status_code}") from e
            except httpx.RequestError as e:
                raise StatementAnalyzerError(f"Statement analyzer unreachable: {e}") from e
            except (KeyError, ValueError, TypeError) as e:
                raise StatementAnalyzerError(f"Invalid statement data from analyzer: {e}") from e
