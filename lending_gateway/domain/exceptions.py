"""Domain-specific exceptions"""


class DomainException(Exception):
    """Base exception for domain layer"""

    pass


class InvalidLoanParameters(DomainException):
    """Loan amount, rate, term or type is out of bounds"""

    pass


class InvalidLoanEvent(DomainException):
    """Loan event payload is incomplete (e.g. late repayment without days_late)"""

    pass


class MissingStatementData(DomainException):
    """Cold start attempted without a verified financial statement"""

    pass


class NoExistingScore(DomainException):
    """Trust-loop event applied before any cold-start record exists"""

    pass


class ScoreUnavailable(DomainException):
    """No score could be resolved for a loan application"""

    pass


class ConcurrentScoreUpdateConflict(DomainException):
    """Stored score changed between read and write"""

    pass


class PendingApplicationExists(DomainException):
    """Borrower already has a loan application awaiting review"""

    pass


class LoanLimitExceeded(DomainException):
    """Requested amount is above the borrower's current loan limit"""

    def __init__(self, requested_cents: int, limit_cents: int):
        self.requested_cents = requested_cents
        self.limit_cents = limit_cents
        super().__init__(
            f"Requested ${requested_cents / 100:.2f} exceeds maximum loan limit of ${limit_cents / 100:.2f}"
        )


class InstallmentAlreadySettled(DomainException):
    """Installment has already left the pending state"""

    pass


class StatementAnalyzerError(DomainException):
    """Statement analyzer returned an error or is unavailable"""

    pass
