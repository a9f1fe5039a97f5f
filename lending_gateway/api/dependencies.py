"""Dependency injection for FastAPI endpoints"""

from fastapi import Request
from lending_gateway.domain.scoring import ScoreEngine
from lending_gateway.infrastructure.clients.statement_analyzer import StatementAnalyzerClient

# Stateless, shared across requests
_score_engine = ScoreEngine()


def get_request_id(request: Request) -> str:
    """Extract request ID from request state"""
    return getattr(request.state, "request_id", "unknown")


def get_statement_analyzer_client() -> StatementAnalyzerClient:
    """Provide statement analyzer client instance"""
    return StatementAnalyzerClient()


def get_score_engine() -> ScoreEngine:
    """Provide the scoring engine"""
    return _score_engine
