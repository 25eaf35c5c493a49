"""
Resolution Committer
====================

Turns a completed storefront order into solved cases, exactly once.

Per order:
1. Claim the order id (receipt row, unique). Already claimed -> no-op.
2. Record each conveyed evidence unit in the global ledger.
3. Re-read the unsolved requirement index and evaluate it against the
   post-update ledger (all evidence ever bought, not just this order).
4. Conditionally mark satisfied cases solved (solved_at IS NULL guard).
5. Finalize the receipt with the solved case ids.
6. After commit, append one case_solved activity per solved case, then
   stamp the receipt announced. A redelivered order whose receipt is not
   yet announced takes the receipt's announcement lease and repeats step 6
   for the receipt's solved cases.
Steps 1-5 run in a single SERIALIZABLE transaction. Two concurrent orders
that each supply half of a case's requirements form a write-skew the
database refuses to commit; the loser is rerun and then sees the other
order's evidence, so exactly one of them solves the case.

Usage:
    committer = ResolutionCommitter(pool, cases, ledger, purchases, recorder)
    result = await committer.process_order('5512', ['CIPHER_KEY'], Decimal('19.99'))
    result.solved_case_ids  # {3}
"""
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterable, Set, Union

import asyncpg
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
    before_sleep_log,
)

from crimelab.models.domain.activity import ActivityEvent, ActivityType
from crimelab.repositories.base import SERIALIZATION_ERRORS, STORAGE_ERRORS
from crimelab.repositories.case_repository import CaseRepository
from crimelab.repositories.evidence_ledger import EvidenceLedger
from crimelab.repositories.purchase_repository import PurchaseRepository
from crimelab.services.activity_recorder import ActivityRecorder
from crimelab.services.errors import (
    ActivityWriteError,
    AnnouncementPendingError,
    RetryableError,
    ResolutionCommitError,
)
from crimelab.services.resolution import evaluate

logger = logging.getLogger(__name__)


@dataclass
class OrderResolution:
    """Outcome of processing one order."""
    order_id: str
    solved_case_ids: Set[int] = field(default_factory=set)
    newly_recorded: Set[str] = field(default_factory=set)
    duplicate: bool = False


class ResolutionCommitter:
    """
    Transactional UNSOLVED -> SOLVED state transition driven by orders.

    Holds no mutable state of its own; every instance (and every process)
    coordinates only through the database.
    """

    def __init__(
        self,
        db_pool: asyncpg.Pool,
        cases: CaseRepository,
        ledger: EvidenceLedger,
        purchases: PurchaseRepository,
        recorder: ActivityRecorder,
        max_attempts: int = 5,
        worker_id: str = "webhook",
        announce_lease_seconds: int = 30,
    ):
        self.db_pool = db_pool
        self.cases = cases
        self.ledger = ledger
        self.purchases = purchases
        self.recorder = recorder
        self.max_attempts = max_attempts
        self.worker_id = worker_id
        self.announce_lease_seconds = announce_lease_seconds

    async def process_order(
        self,
        order_id: str,
        evidence_ids: Iterable[str],
        total_amount: Union[Decimal, str, float] = Decimal("0.00"),
    ) -> OrderResolution:
        """
        Process a completed order.

        Args:
            order_id: Storefront order id (idempotency key)
            evidence_ids: Evidence unit ids conveyed by the order's line items
            total_amount: Order total

        Returns:
            OrderResolution. For an already-processed order, duplicate=True
            and solved_case_ids holds the cases announced by this call
            (empty unless an earlier delivery failed to announce them).

        Raises:
            RetryableError: Nothing was committed, or the commit succeeded but
                its case_solved activity is not yet in the log (append failed,
                or another delivery is still appending it). Do not
                acknowledge the webhook.
        """
        order_id = str(order_id)
        evidence = {str(e) for e in evidence_ids}
        total = total_amount if isinstance(total_amount, Decimal) else Decimal(str(total_amount))

        try:
            resolution = await self._commit_with_retry(order_id, evidence, total)
        except RetryableError:
            logger.error(f"Order {order_id} not committed (retryable)", exc_info=True)
            raise
        except SERIALIZATION_ERRORS as e:
            logger.error(f"Order {order_id} kept conflicting after {self.max_attempts} attempts")
            raise ResolutionCommitError(f"Order {order_id} could not be serialized: {e}") from e
        except STORAGE_ERRORS as e:
            logger.error(f"Order {order_id} transaction failed: {e}", exc_info=True)
            raise ResolutionCommitError(f"Order {order_id} could not be committed: {e}") from e

        if resolution.duplicate:
            return await self._announce_pending(order_id)

        logger.info(
            f"Order {order_id}: {len(resolution.newly_recorded)} new evidence, "
            f"solved cases {sorted(resolution.solved_case_ids) or 'none'}"
        )

        await self._announce(order_id, resolution.solved_case_ids, total)
        return resolution

    async def _commit_with_retry(self, order_id: str, evidence: Set[str], total: Decimal) -> OrderResolution:
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=0.05, max=1),
            retry=retry_if_exception_type(SERIALIZATION_ERRORS),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        ):
            with attempt:
                return await self._commit(order_id, evidence, total)

    async def _commit(self, order_id: str, evidence: Set[str], total: Decimal) -> OrderResolution:
        async with self.db_pool.acquire() as conn:
            async with conn.transaction(isolation='serializable'):
                if not await self.purchases.claim(order_id, evidence, total, conn=conn):
                    return OrderResolution(order_id=order_id, duplicate=True)

                newly_recorded = set()
                for evidence_id in sorted(evidence):
                    if await self.ledger.record_purchased(evidence_id, order_id, conn=conn):
                        newly_recorded.add(evidence_id)

                purchased = await self.ledger.purchased_set(conn=conn)
                requirements = await self.cases.unsolved_requirements(conn=conn)
                satisfied = evaluate(purchased, requirements)

                solved = await self.cases.mark_solved(satisfied, conn=conn)
                await self.purchases.set_solved_cases(order_id, solved, conn=conn)

                return OrderResolution(
                    order_id=order_id,
                    solved_case_ids=solved,
                    newly_recorded=newly_recorded,
                )

    async def _announce_pending(self, order_id: str) -> OrderResolution:
        """Finish the announcement of an order committed by an earlier delivery."""
        try:
            receipt = await self.purchases.get_by_order(order_id)
        except STORAGE_ERRORS as e:
            raise ResolutionCommitError(f"Order {order_id} receipt could not be read: {e}") from e

        if receipt is None or receipt.is_announced:
            logger.info(f"Order {order_id} already processed, skipping")
            return OrderResolution(order_id=order_id, duplicate=True)

        try:
            claimed = await self.purchases.claim_announcement(order_id, self.announce_lease_seconds)
        except STORAGE_ERRORS as e:
            raise ResolutionCommitError(f"Order {order_id} announcement lease failed: {e}") from e
        if not claimed:
            raise AnnouncementPendingError(f"Order {order_id} is being announced by another delivery")

        logger.warning(
            f"Order {order_id} already processed but not announced, "
            f"announcing cases {sorted(receipt.solved_case_ids) or 'none'}"
        )
        await self._announce(order_id, receipt.solved_case_ids, receipt.total_amount)
        return OrderResolution(order_id=order_id, solved_case_ids=set(receipt.solved_case_ids), duplicate=True)

    async def _announce(self, order_id: str, solved_case_ids: Iterable[int], total: Decimal):
        """
        One case_solved event per solved case, then stamp the receipt.

        Raises ActivityWriteError if any append fails; the receipt then stays
        unannounced, its lease is released, and a redelivery appends the
        events again.
        """
        try:
            for case_id in sorted(solved_case_ids):
                await self.recorder.append(ActivityEvent(
                    type=ActivityType.CASE_SOLVED,
                    data={
                        'case_id': case_id,
                        'case_ids': [case_id],
                        'order_id': order_id,
                        'total_price': str(total),
                        'solved_by_purchase': True,
                    },
                    worker_id=self.worker_id,
                ))
        except ActivityWriteError:
            await self._release(order_id)
            raise

        try:
            await self.purchases.mark_announced(order_id)
        except STORAGE_ERRORS as e:
            raise ResolutionCommitError(f"Order {order_id} announced but receipt not stamped: {e}") from e

    async def _release(self, order_id: str):
        try:
            await self.purchases.release_announcement(order_id)
        except STORAGE_ERRORS as e:
            # The lease still expires on its own
            logger.warning(f"Order {order_id} announcement lease not released: {e}")

    async def reset(self) -> dict:
        """
        Demo/test hook: empty the ledger and receipts, revert every case to
        UNSOLVED and clear the activity log. Not undoable.
        """
        async with self.db_pool.acquire() as conn:
            async with conn.transaction():
                evidence_cleared = await self.ledger.clear(conn=conn)
                purchases_cleared = await self.purchases.clear(conn=conn)
                cases_reverted = await self.cases.reset_solved(conn=conn)

        activities_cleared = await self.recorder.clear()

        logger.warning(
            f"Lab reset: {evidence_cleared} evidence, {purchases_cleared} purchases, "
            f"{cases_reverted} cases, {activities_cleared} activities"
        )
        return {
            'evidence_cleared': evidence_cleared,
            'purchases_cleared': purchases_cleared,
            'cases_reverted': cases_reverted,
            'activities_cleared': activities_cleared,
        }
