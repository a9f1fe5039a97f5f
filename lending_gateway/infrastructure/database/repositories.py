"""Data access layer for scores, statements, loans and installments"""

import uuid
from dataclasses import asdict
from datetime import date, datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy.orm import Session

from lending_gateway.domain.exceptions import ConcurrentScoreUpdateConflict
from lending_gateway.domain.models import (
    OPEN_APPLICATION_STATUSES,
    CalculationMethod,
    FinancialStatementMetrics,
    Installment,
    InstallmentStatus,
    LoanApplication,
    ScoreHistoryEntry,
    ScoreRecord,
)
from lending_gateway.infrastructure.database.models import (
    Borrower,
    BorrowerScore,
    FinancialStatement,
    Loan,
    LoanInstallment,
    ScoreHistory,
)
from lending_gateway.utils.date_utils import utcnow


def _to_score_record(row: BorrowerScore) -> ScoreRecord:
    return ScoreRecord(
        borrower_id=row.borrower_id,
        score_value=row.score_value,
        star_rating=row.star_rating,
        max_loan_amount_cents=row.max_loan_amount_cents,
        reputation_tier=row.reputation_tier,
        score_factors=dict(row.score_factors or {}),
        calculation_method=CalculationMethod(row.calculation_method),
        version=row.version,
    )


def _to_installment(row: LoanInstallment) -> Installment:
    return Installment(
        id=str(row.id),
        loan_id=str(row.loan_id),
        installment_number=row.installment_number,
        due_date=row.due_date,
        principal_cents=row.principal_cents,
        interest_cents=row.interest_cents,
        fee_cents=row.fee_cents,
        total_cents=row.total_cents,
        remaining_balance_cents=row.remaining_balance_cents,
        grace_period_end=row.grace_period_end,
        is_first_payment=row.is_first_payment,
        status=InstallmentStatus(row.status),
        paid_at=row.paid_at,
        days_late=row.days_late,
    )


class BorrowerRepository:
    """Repository for borrower accounts"""

    def __init__(self, db: Session):
        self.db = db

    def get_borrower(self, borrower_id: str) -> Optional[Borrower]:
        return self.db.get(Borrower, borrower_id)

    def ensure_borrower(self, borrower_id: str) -> Borrower:
        """Fetch the borrower, registering them on first contact"""
        borrower = self.get_borrower(borrower_id)
        if borrower is None:
            borrower = Borrower(id=borrower_id, created_at=utcnow())
            self.db.add(borrower)
            self.db.flush()
        return borrower


class ScoreRepository:
    """Repository for current scores and their history"""

    def __init__(self, db: Session):
        self.db = db

    def get_score(self, borrower_id: str) -> Optional[ScoreRecord]:
        row = self.db.query(BorrowerScore).filter(BorrowerScore.borrower_id == borrower_id).first()
        return _to_score_record(row) if row else None

    def create_score(self, record: ScoreRecord) -> ScoreRecord:
        """Insert the first score for a borrower (unique per borrower_id)"""
        now = utcnow()
        row = BorrowerScore(
            borrower_id=record.borrower_id,
            score_value=record.score_value,
            star_rating=record.star_rating,
            max_loan_amount_cents=record.max_loan_amount_cents,
            reputation_tier=record.reputation_tier,
            score_factors=dict(record.score_factors),
            calculation_method=record.calculation_method.value,
            version=1,
            last_calculated_at=now,
            created_at=now,
        )
        self.db.add(row)
        self.db.flush()  # Surface unique violations before commit
        return _to_score_record(row)

    def update_score(self, record: ScoreRecord, expected_version: int) -> ScoreRecord:
        """
        Compare-and-swap update: only writes when the stored version still
        equals expected_version.

        Raises:
            ConcurrentScoreUpdateConflict: Stored score moved on since it was read
        """
        new_version = expected_version + 1
        updated = (
            self.db.query(BorrowerScore)
            .filter(
                BorrowerScore.borrower_id == record.borrower_id,
                BorrowerScore.version == expected_version,
            )
            .update(
                {
                    BorrowerScore.score_value: record.score_value,
                    BorrowerScore.star_rating: record.star_rating,
                    BorrowerScore.max_loan_amount_cents: record.max_loan_amount_cents,
                    BorrowerScore.reputation_tier: record.reputation_tier,
                    BorrowerScore.score_factors: dict(record.score_factors),
                    BorrowerScore.calculation_method: record.calculation_method.value,
                    BorrowerScore.version: new_version,
                    BorrowerScore.last_calculated_at: utcnow(),
                },
                synchronize_session=False,
            )
        )
        if updated == 0:
            raise ConcurrentScoreUpdateConflict(
                f"Score for {record.borrower_id} is no longer at version {expected_version}"
            )

        record.version = new_version
        return record

    def append_history(self, entry: ScoreHistoryEntry) -> ScoreHistory:
        row = ScoreHistory(**asdict(entry), created_at=utcnow())
        self.db.add(row)
        return row

    def get_history(self, borrower_id: str, limit: int = 10) -> List[ScoreHistory]:
        """Fetch recent score transitions, newest first"""
        return (
            self.db.query(ScoreHistory)
            .filter(ScoreHistory.borrower_id == borrower_id)
            .order_by(ScoreHistory.created_at.desc())
            .limit(limit)
            .all()
        )


class StatementRepository:
    """Repository for parsed financial statements"""

    def __init__(self, db: Session):
        self.db = db

    def save_statement(
        self,
        borrower_id: str,
        statement_type: str,
        metrics: FinancialStatementMetrics,
        verified: bool = True,
    ) -> FinancialStatement:
        row = FinancialStatement(
            borrower_id=borrower_id,
            statement_type=statement_type,
            verified=verified,
            metrics=asdict(metrics),
            created_at=utcnow(),
        )
        self.db.add(row)
        self.db.flush()
        return row

    def latest_verified_metrics(self, borrower_id: str) -> Optional[FinancialStatementMetrics]:
        row = (
            self.db.query(FinancialStatement)
            .filter(FinancialStatement.borrower_id == borrower_id, FinancialStatement.verified.is_(True))
            .order_by(FinancialStatement.created_at.desc())
            .first()
        )
        return FinancialStatementMetrics(**row.metrics) if row else None


class LoanRepository:
    """Repository for loan records and their pricing snapshots"""

    def __init__(self, db: Session):
        self.db = db

    def has_open_application(self, borrower_id: str) -> bool:
        return (
            self.db.query(Loan.id)
            .filter(Loan.borrower_id == borrower_id, Loan.status.in_(OPEN_APPLICATION_STATUSES))
            .first()
            is not None
        )

    def create_loan(self, application: LoanApplication) -> Loan:
        """Persist loan with its pricing snapshot and schedule (flush only, caller commits)"""
        db_loan = Loan(
            borrower_id=application.borrower_id,
            loan_type=application.loan_type,
            amount_cents=application.amount_cents,
            term_months=application.term_months,
            annual_interest_rate=application.annual_interest_rate,
            monthly_interest_rate=application.monthly_interest_rate,
            status="pending",
            score_value=application.score_value,
            purpose=application.income_info.purpose,
            monthly_income_cents=application.income_info.monthly_income_cents,
            employment_type=application.income_info.employment_type,
            pricing=asdict(application.pricing),
            applied_at=utcnow(),
        )
        self.db.add(db_loan)
        self.db.flush()

        InstallmentRepository(self.db).insert_schedule(db_loan.id, application.installments)
        return db_loan

    def get_loan(self, loan_id: uuid.UUID) -> Optional[Loan]:
        return self.db.query(Loan).filter(Loan.id == loan_id).first()

    def get_loans_by_status(self, status: str, limit: int = 100) -> List[Loan]:
        return (
            self.db.query(Loan)
            .filter(Loan.status == status)
            .order_by(Loan.applied_at.asc())
            .limit(limit)
            .all()
        )

    def query_loan_history(self, borrower_id: str, statuses: Optional[Iterable[str]] = None) -> List[Loan]:
        """Borrower's loans, oldest first, optionally filtered by status"""
        query = self.db.query(Loan).filter(Loan.borrower_id == borrower_id)
        if statuses is not None:
            query = query.filter(Loan.status.in_(list(statuses)))
        return query.order_by(Loan.applied_at.asc()).all()

    def update_status(self, loan: Loan, status: str, repayment_outcome: Optional[str] = None) -> Loan:
        loan.status = status
        if repayment_outcome is not None:
            loan.repayment_outcome = repayment_outcome
        loan.updated_at = utcnow()
        self.db.flush()
        return loan


class InstallmentRepository:
    """Repository for loan installments"""

    def __init__(self, db: Session):
        self.db = db

    def insert_schedule(self, loan_id: uuid.UUID, installments: List[Installment]) -> List[LoanInstallment]:
        rows = [
            LoanInstallment(
                loan_id=loan_id,
                installment_number=inst.installment_number,
                due_date=inst.due_date,
                principal_cents=inst.principal_cents,
                interest_cents=inst.interest_cents,
                fee_cents=inst.fee_cents,
                total_cents=inst.total_cents,
                remaining_balance_cents=inst.remaining_balance_cents,
                grace_period_end=inst.grace_period_end,
                is_first_payment=inst.is_first_payment,
                status=inst.status.value,
            )
            for inst in installments
        ]
        self.db.add_all(rows)
        return rows

    def get_schedule(self, loan_id: uuid.UUID) -> List[Installment]:
        rows = (
            self.db.query(LoanInstallment)
            .filter(LoanInstallment.loan_id == loan_id)
            .order_by(LoanInstallment.installment_number)
            .all()
        )
        return [_to_installment(row) for row in rows]

    def get_installment(self, installment_id: uuid.UUID) -> Optional[Installment]:
        row = self.db.get(LoanInstallment, installment_id)
        return _to_installment(row) if row else None

    def update_installment(self, installment_id: uuid.UUID, patch: Dict[str, Any]) -> None:
        self.db.query(LoanInstallment).filter(LoanInstallment.id == installment_id).update(
            patch, synchronize_session=False
        )

    def get_late(self, now: datetime) -> List[Installment]:
        """Pending installments past their grace window"""
        rows = (
            self.db.query(LoanInstallment)
            .filter(LoanInstallment.status == InstallmentStatus.PENDING.value)
            .filter(LoanInstallment.grace_period_end < now)
            .order_by(LoanInstallment.grace_period_end)
            .all()
        )
        return [_to_installment(row) for row in rows]

    def get_upcoming(self, today: date, days_ahead: int) -> List[Installment]:
        """Pending installments due within the reminder window"""
        rows = (
            self.db.query(LoanInstallment)
            .filter(LoanInstallment.status == InstallmentStatus.PENDING.value)
            .filter(LoanInstallment.due_date >= today)
            .filter(LoanInstallment.due_date <= today + timedelta(days=days_ahead))
            .order_by(LoanInstallment.due_date)
            .all()
        )
        return [_to_installment(row) for row in rows]
