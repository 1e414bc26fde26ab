"""
Credit ledger models.

CreditTransaction is append-only: amounts are signed (PURCHASE and REFUND
positive, USAGE negative) and a balance is the sum of a user's amounts.
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class TransactionType(str, Enum):
    PURCHASE = "PURCHASE"
    USAGE = "USAGE"
    REFUND = "REFUND"


class CreditTransaction(BaseModel):
    """One ledger entry."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    user_id: str
    amount: int
    type: TransactionType
    description: str
    job_id: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.now)

    def to_record(self) -> Dict[str, Any]:
        data = self.model_dump(mode="json")
        data["type"] = self.type.value
        return data


class Multiplier(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    value: float
    reason: str


class CreditBreakdown(BaseModel):
    """How a price was reached, step by step."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    base_credits: int
    output_count: int
    volume: Multiplier
    quality: Multiplier
    complexity: Multiplier
    after_volume: int
    after_quality: int
    final: int
    enabled_features: List[str] = Field(default_factory=list)
    strength: str


class CreditEstimate(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    credits_required: int
    breakdown: CreditBreakdown
