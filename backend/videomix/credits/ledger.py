"""
Credit ledger.

Admission control for mix jobs. Credits are reserved up front for the
achievable plan count and reconciled when the job reaches a terminal state:
the refund is the reservation minus the price of what was actually produced.

Design rules:
- The balance never goes negative (the debit is conditional in SQL)
- Reserve and job creation commit together or not at all
- Settlement happens at most once per job (guarded by settled_at)
"""

import logging
from datetime import datetime
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from ..mixing.settings import MixSettings
from ..persistence import PersistenceManager
from .errors import InsufficientCredits, InvalidAmount
from .models import CreditEstimate, CreditTransaction, TransactionType
from .pricing import estimate as price

if TYPE_CHECKING:
    from ..jobs.models import Job

logger = logging.getLogger(__name__)


class CreditLedger:
    """Prices, reserves and settles credits over the persistence layer."""

    def __init__(self, persistence: PersistenceManager):
        self.persistence = persistence

    def estimate(self, output_count: int, settings: MixSettings) -> CreditEstimate:
        return price(output_count, settings)

    def get_balance(self, user_id: str) -> int:
        return self.persistence.get_balance(user_id)

    def purchase(self, user_id: str, amount: int, description: Optional[str] = None) -> CreditTransaction:
        """Add purchased credits to a balance."""
        if amount <= 0:
            raise InvalidAmount(amount)
        transaction = CreditTransaction(
            user_id=user_id,
            amount=amount,
            type=TransactionType.PURCHASE,
            description=description or f"Purchased {amount} credits",
        )
        self.persistence.credit(user_id, transaction.to_record())
        logger.info(f"[Ledger] +{amount} credits for user {user_id} (purchase)")
        return transaction

    def reserve(
        self,
        user_id: str,
        cost: int,
        job_id: str,
        description: str,
        job_record: Optional[Dict[str, Any]] = None,
    ) -> CreditTransaction:
        """
        Debit cost credits for a job.

        Args:
            user_id: Owner of the balance
            cost: Credits to take (> 0)
            job_id: Job the reservation belongs to
            description: Ledger text
            job_record: Job row to create in the same transaction

        Returns:
            The USAGE transaction

        Raises:
            InsufficientCredits: If the balance does not cover cost (nothing is written)
        """
        if cost <= 0:
            raise InvalidAmount(cost)
        transaction = CreditTransaction(
            user_id=user_id,
            amount=-cost,
            type=TransactionType.USAGE,
            description=description,
            job_id=job_id,
        )
        if not self.persistence.reserve(user_id, cost, transaction.to_record(), job_record):
            available = self.persistence.get_balance(user_id)
            logger.info(f"[Ledger] Rejected reservation of {cost} for user {user_id} (balance {available})")
            raise InsufficientCredits(required=cost, available=available)
        logger.info(f"[Ledger] Reserved {cost} credits for job {job_id}")
        return transaction

    def refund_due(self, job: "Job") -> int:
        """Credits owed back for a job given the outputs it produced."""
        settings = MixSettings.parse(job.settings)
        produced_cost = price(len(job.output_ids), settings).credits_required
        return max(0, job.credits_reserved - produced_cost)

    def settle(self, job: "Job") -> int:
        """
        Reconcile a terminal job's reservation.

        Safe to call more than once; only the first call writes.

        Returns:
            Credits refunded by this call (0 if already settled or nothing owed)
        """
        if job.settled_at is not None:
            return 0

        refund = self.refund_due(job)
        settled_at = datetime.now()
        transaction = None
        if refund > 0:
            transaction = CreditTransaction(
                user_id=job.user_id,
                amount=refund,
                type=TransactionType.REFUND,
                description=(
                    f"Refund for {job.requested_plans - len(job.output_ids)} "
                    f"unproduced outputs of job {job.id}"
                ),
                job_id=job.id,
                created_at=settled_at,
            )

        applied = self.persistence.settle(
            job.id,
            job.user_id,
            refund,
            settled_at.isoformat(),
            transaction.to_record() if transaction else None,
        )
        if not applied:
            logger.debug(f"[Ledger] Job {job.id} already settled")
            return 0

        job.settled_at = settled_at
        job.credits_refunded = refund
        if refund:
            logger.info(f"[Ledger] Refunded {refund} credits for job {job.id}")
        return refund

    def transactions(self, user_id: str, job_id: Optional[str] = None) -> List[CreditTransaction]:
        return [
            CreditTransaction.model_validate(row)
            for row in self.persistence.load_transactions(user_id, job_id)
        ]
