"""
Error taxonomy for the bankroll engine.

    ValidationError   malformed or out-of-range input (raised immediately)
    NotFoundError     referenced bankroll/bet/goal absent (persistence boundary)
    ConflictError     illegal state transition on an existing record

Unit conversions with a zero divisor do not raise; they return the
``DivisionUndefined`` marker from ``betledger.strategies.units``.
"""


class BetLedgerError(Exception):
    """Base application error."""

    def __init__(
        self,
        code: int,
        message: str,
        http_status: int = 500,
    ) -> None:
        self.code = code
        self.message = message
        self.http_status = http_status
        super().__init__(message)


class ValidationError(BetLedgerError, ValueError):
    def __init__(self, message: str) -> None:
        super().__init__(1001, message, 422)


class NotFoundError(BetLedgerError, LookupError):
    def __init__(self, kind: str, identifier: str) -> None:
        self.kind = kind
        self.identifier = identifier
        super().__init__(2001, f"{kind} not found: {identifier}", 404)


class ConflictError(BetLedgerError):
    def __init__(self, message: str) -> None:
        super().__init__(3001, message, 409)
