"""POST /v1/statements - Parse and store a financial statement"""

import logging
from dataclasses import asdict
from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from lending_gateway.api.v1.schemas import FinancialMetricsSchema, StatementRequest, StatementResponse
from lending_gateway.api.dependencies import get_request_id, get_statement_analyzer_client
from lending_gateway.infrastructure.database.session import get_db
from lending_gateway.infrastructure.database.repositories import BorrowerRepository, StatementRepository
from lending_gateway.infrastructure.clients.statement_analyzer import StatementAnalyzerClient
from lending_gateway.domain.exceptions import StatementAnalyzerError
from lending_gateway.infrastructure.observability.metrics import statement_analyzer_failures_counter

router = APIRouter()


@router.post("/statements", response_model=StatementResponse, status_code=201)
async def upload_statement(
    request_body: StatementRequest,
    request: Request,
    db: Session = Depends(get_db),
    analyzer: StatementAnalyzerClient = Depends(get_statement_analyzer_client),
):
    """
    Send raw statement text to the analyzer and store the resulting metrics.

    Stored metrics are marked verified and feed the borrower's cold start.
    """
    request_id = get_request_id(request)

    try:
        metrics = await analyzer.parse(
            request_body.borrower_id, request_body.raw_text, request_body.statement_type
        )

        BorrowerRepository(db).ensure_borrower(request_body.borrower_id)
        statement = StatementRepository(db).save_statement(
            borrower_id=request_body.borrower_id,
            statement_type=request_body.statement_type,
            metrics=metrics,
            verified=True,
        )
        db.commit()

        logging.info(
            "Statement stored",
            extra={
                "request_id": request_id,
                "borrower_id": request_body.borrower_id,
                "statement_id": str(statement.id),
                "nsf_events": metrics.nsf_events,
            },
        )

        return StatementResponse(
            statement_id=str(statement.id),
            borrower_id=request_body.borrower_id,
            statement_type=request_body.statement_type,
            metrics=FinancialMetricsSchema.model_validate(asdict(metrics)),
        )

    except StatementAnalyzerError as e:
        statement_analyzer_failures_counter.inc()
        db.rollback()
        logging.error(f"Statement analyzer error: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=503, detail="Statement analyzer unavailable")

    except Exception as e:
        db.rollback()
        logging.error(f"Unexpected error: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=500, detail="Internal server error")
