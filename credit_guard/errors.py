"""Error taxonomy for the credit guard core."""
from __future__ import annotations


class CreditGuardError(Exception):
    """Base class for every error raised by this package."""


class ValidationError(CreditGuardError, ValueError):
    """Out-of-bounds settings or input, rejected before any ledger call."""


class RejectedAction(CreditGuardError):
    """A business rule refused the request. No ledger call, no state change."""


class DailyLimitExceeded(RejectedAction):
    def __init__(self, used: int, limit: int, requested: int) -> None:
        self.used = used
        self.limit = limit
        self.requested = requested
        super().__init__(
            f"Daily limit exceeded: used {used}, limit {limit}, requested {requested}"
        )


class Unhealthy(RejectedAction):
    def __init__(self, health_factor: object) -> None:
        self.health_factor = health_factor
        super().__init__(f"Position unhealthy (health factor {health_factor})")


class InsufficientHeadroom(RejectedAction):
    def __init__(self, requested: int, available: int) -> None:
        self.requested = requested
        self.available = available
        super().__init__(
            f"Insufficient collateral: requested {requested}, available {available}"
        )


class InsufficientBalance(RejectedAction):
    def __init__(self, balance: int, amount: int) -> None:
        self.balance = balance
        self.amount = amount
        super().__init__(f"Insufficient balance: have {balance}, need {amount}")


class LedgerError(CreditGuardError, RuntimeError):
    """A ledger read/write failed, was refused, or timed out after retries."""


class AlertCallbackError(CreditGuardError):
    """An alert listener raised. Logged by the alert bus, never propagated."""

    def __init__(self, listener: object, cause: BaseException) -> None:
        self.listener = listener
        self.cause = cause
        super().__init__(f"Alert listener {listener!r} failed: {cause}")
