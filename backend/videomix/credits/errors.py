"""
Credit ledger errors.
"""


class LedgerError(Exception):
    """Base exception for credit ledger operations."""

    pass


class InsufficientCredits(LedgerError):
    """The user's balance does not cover the reservation."""

    def __init__(self, required: int, available: int):
        self.required = required
        self.available = available
        super().__init__(f"Insufficient credits. Required: {required}, Available: {available}")


class InvalidAmount(LedgerError):
    """Purchase or reservation amount is not a positive integer."""

    def __init__(self, amount: int):
        self.amount = amount
        super().__init__(f"Credit amount must be positive, got {amount}")
