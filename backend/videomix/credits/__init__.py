"""
Credit ledger: pricing, reservation and settlement.
"""

from .errors import LedgerError, InsufficientCredits, InvalidAmount
from .ledger import CreditLedger
from .models import CreditBreakdown, CreditEstimate, CreditTransaction, Multiplier, TransactionType
from .pricing import estimate, estimate_credits

__all__ = [
    "CreditLedger",
    "CreditEstimate",
    "CreditBreakdown",
    "CreditTransaction",
    "Multiplier",
    "TransactionType",
    "estimate",
    "estimate_credits",
    "LedgerError",
    "InsufficientCredits",
    "InvalidAmount",
]
