"""Pytest fixtures for testing"""

import pytest
from datetime import date, timedelta
from typing import Generator, List
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from lending_gateway.api.main import create_app
from lending_gateway.infrastructure.database.models import Base
from lending_gateway.infrastructure.database.session import get_db
from lending_gateway.domain.models import FinancialStatementMetrics, StatementTransaction
from lending_gateway.domain.scoring import ScoreEngine


# Test database
TEST_DATABASE_URL = "sqlite:///./test.db"
engine = create_engine(TEST_DATABASE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db() -> Generator[Session, None, None]:
    """Create test database and session"""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def client(db: Session) -> TestClient:
    """Create FastAPI test client with test database"""
    app = create_app()

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    return TestClient(app)


@pytest.fixture
def score_engine() -> ScoreEngine:
    return ScoreEngine()


@pytest.fixture
def strong_metrics() -> FinancialStatementMetrics:
    """Statement metrics that cold-start to 75 (3.5 stars, $600 limit)"""
    return FinancialStatementMetrics(
        cash_flow_ratio=1.3,
        avg_ending_balance=250.0,
        balance_consistency_score=8,
        nsf_events=0,
        avg_monthly_income=650.0,
        transaction_count=42,
    )


@pytest.fixture
def weak_metrics() -> FinancialStatementMetrics:
    """Overdrawn, irregular account"""
    return FinancialStatementMetrics(
        cash_flow_ratio=0.4,
        avg_ending_balance=0.0,
        balance_consistency_score=0,
        nsf_events=6,
    )


@pytest.fixture
def sample_transactions() -> List[StatementTransaction]:
    """Three months of salary in, steady spending out"""
    base_date = date.today() - timedelta(days=90)
    transactions = []

    # Monthly salary deposits
    for month in range(3):
        transactions.append(
            StatementTransaction(
                date=base_date + timedelta(days=month * 30),
                amount=600.0,
                type="credit",
                balance=800.0,
                description="Salary Deposit",
            )
        )

    # Weekly spending
    for week in range(0, 90, 7):
        transactions.append(
            StatementTransaction(
                date=base_date + timedelta(days=week + 1),
                amount=100.0,
                type="debit",
                balance=700.0,
                description="Groceries",
            )
        )

    return transactions
