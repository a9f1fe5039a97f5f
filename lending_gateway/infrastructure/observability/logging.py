"""Structured JSON logging for production observability"""

import logging
import sys
from typing import Any, Dict, Optional
from pythonjsonlogger import jsonlogger

from lending_gateway.config import settings
from lending_gateway.utils.date_utils import utcnow


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """Custom JSON formatter with timestamp and service metadata"""

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["timestamp"] = utcnow().isoformat()
        log_record["level"] = record.levelname
        log_record["service"] = settings.service_name


def setup_logging(level: str = "INFO") -> None:
    """Configure structured JSON logging"""
    logger = logging.getLogger()
    logger.setLevel(level)

    # Remove existing handlers
    logger.handlers.clear()

    # JSON handler for stdout
    handler = logging.StreamHandler(sys.stdout)
    formatter = CustomJsonFormatter(
        "%(timestamp)s %(level)s %(name)s %(message)s"
    )
    handler.setFormatter(formatter)
    logger.addHandler(handler)


def log_score_change(
    borrower_id: str,
    reason: str,
    old_score: Optional[int],
    new_score: int,
    max_loan_amount_cents: int,
    request_id: Optional[str] = None,
) -> None:
    """Log one score transition for audit and analysis"""
    logging.info(
        "Score updated",
        extra={
            "request_id": request_id,
            "borrower_id": borrower_id,
            "step": "score_update",
            "change_reason": reason,
            "old_score": old_score,
            "new_score": new_score,
            "max_loan_amount_cents": max_loan_amount_cents,
        },
    )


def log_application(
    request_id: str,
    borrower_id: str,
    outcome: str,
    amount_cents: int,
    duration_ms: float,
    loan_id: Optional[str] = None,
) -> None:
    """Log structured application outcome for analysis"""
    logging.info(
        "Loan application completed",
        extra={
            "request_id": request_id,
            "borrower_id": borrower_id,
            "loan_id": loan_id,
            "step": "application_complete",
            "application_outcome": outcome,
            "amount_cents": amount_cents,
            "duration_ms": duration_ms,
        },
    )
