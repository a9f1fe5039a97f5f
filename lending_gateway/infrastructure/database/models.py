"""SQLAlchemy ORM models for scores, statements, loans and installments"""

import uuid
from sqlalchemy import (
    Column,
    String,
    BigInteger,
    Boolean,
    Float,
    DateTime,
    Date,
    Integer,
    ForeignKey,
    Index,
    Text,
    JSON,
    text,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func

Base = declarative_base()


class Borrower(Base):
    """Borrower account as seen by the scoring engine"""

    __tablename__ = "borrower"

    id = Column(Text, primary_key=True)
    created_at = Column(DateTime, nullable=False, server_default=func.now())


class BorrowerScore(Base):
    """Current reputation score, one row per borrower"""

    __tablename__ = "borrower_score"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    borrower_id = Column(Text, nullable=False, unique=True, index=True)
    score_value = Column(Integer, nullable=False)
    star_rating = Column(Float, nullable=False)
    max_loan_amount_cents = Column(BigInteger, nullable=False)
    reputation_tier = Column(String(32), nullable=False)
    score_factors = Column(JSON, nullable=False, default=dict)
    calculation_method = Column(String(32), nullable=False)
    version = Column(Integer, nullable=False, default=1)
    last_calculated_at = Column(DateTime, nullable=False, server_default=func.now())
    created_at = Column(DateTime, nullable=False, server_default=func.now())


class ScoreHistory(Base):
    """Append-only log of score transitions"""

    __tablename__ = "score_history"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    borrower_id = Column(Text, nullable=False, index=True)
    old_score_value = Column(Integer, nullable=True)
    new_score_value = Column(Integer, nullable=False)
    old_star_rating = Column(Float, nullable=True)
    new_star_rating = Column(Float, nullable=False)
    old_max_loan_amount_cents = Column(BigInteger, nullable=True)
    new_max_loan_amount_cents = Column(BigInteger, nullable=False)
    old_reputation_tier = Column(String(32), nullable=True)
    new_reputation_tier = Column(String(32), nullable=False)
    change_reason = Column(Text, nullable=False)
    change_details = Column(JSON, nullable=True)
    related_loan_id = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False, server_default=func.now())


class FinancialStatement(Base):
    """Parsed statement metrics produced by the statement analyzer"""

    __tablename__ = "financial_statement"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    borrower_id = Column(Text, nullable=False, index=True)
    statement_type = Column(String(32), nullable=False)
    verified = Column(Boolean, nullable=False, default=False)
    metrics = Column(JSON, nullable=False)
    created_at = Column(DateTime, nullable=False, server_default=func.now())


class Loan(Base):
    """Loan application / loan record with its pricing snapshot"""

    __tablename__ = "loan"
    __table_args__ = (
        # One open application per borrower
        Index(
            "uq_loan_open_application",
            "borrower_id",
            unique=True,
            postgresql_where=text("status IN ('pending', 'under_review')"),
            sqlite_where=text("status IN ('pending', 'under_review')"),
        ),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    borrower_id = Column(Text, nullable=False, index=True)
    loan_type = Column(String(32), nullable=False)
    amount_cents = Column(BigInteger, nullable=False)
    term_months = Column(Integer, nullable=False)
    annual_interest_rate = Column(Float, nullable=False)
    monthly_interest_rate = Column(Float, nullable=False)
    status = Column(String(32), nullable=False, default="pending")
    repayment_outcome = Column(String(16), nullable=True)
    score_value = Column(Integer, nullable=False)
    purpose = Column(Text, nullable=True)
    monthly_income_cents = Column(BigInteger, nullable=True)
    employment_type = Column(String(32), nullable=True)
    pricing = Column(JSON, nullable=False)
    applied_at = Column(DateTime, nullable=False, server_default=func.now())
    updated_at = Column(DateTime, nullable=True)

    installments = relationship(
        "LoanInstallment",
        back_populates="loan",
        cascade="all, delete-orphan",
        order_by="LoanInstallment.installment_number",
    )


class LoanInstallment(Base):
    """Individual monthly installment within a loan schedule"""

    __tablename__ = "loan_installment"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    loan_id = Column(UUID(as_uuid=True), ForeignKey("loan.id", ondelete="CASCADE"), nullable=False, index=True)
    installment_number = Column(Integer, nullable=False)
    due_date = Column(Date, nullable=False)
    principal_cents = Column(BigInteger, nullable=False)
    interest_cents = Column(BigInteger, nullable=False)
    fee_cents = Column(BigInteger, nullable=False)
    total_cents = Column(BigInteger, nullable=False)
    remaining_balance_cents = Column(BigInteger, nullable=False)
    grace_period_end = Column(DateTime, nullable=False)
    is_first_payment = Column(Boolean, nullable=False, default=False)
    status = Column(Text, nullable=False, default="pending")
    paid_at = Column(DateTime, nullable=True)
    days_late = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, nullable=False, server_default=func.now())

    loan = relationship("Loan", back_populates="installments")
