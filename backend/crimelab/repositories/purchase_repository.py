"""
Purchase Repository - PostgreSQL storage for order receipts

Storage: PostgreSQL (purchases table)

The unique order_id column is the idempotency key for storefront webhooks.
"""
import logging
from decimal import Decimal
from typing import Optional, Iterable
import asyncpg

from crimelab.models.domain.purchase import PurchaseRecord
from .base import using_connection

logger = logging.getLogger(__name__)


class PurchaseRepository:
    """
    Repository for PurchaseRecord domain model

    Records are written once, inside the order's resolution transaction.
    Afterwards only the announcement columns change: a lease while the
    order's case_solved events are appended, then announced_at.
    """

    def __init__(self, db_pool: asyncpg.Pool):
        self.db_pool = db_pool

    # =========================================================================
    # READ OPERATIONS
    # =========================================================================

    async def get_by_order(
        self,
        order_id: str,
        conn: Optional[asyncpg.Connection] = None,
    ) -> Optional[PurchaseRecord]:
        async with using_connection(self.db_pool, conn) as c:
            row = await c.fetchrow("""
                SELECT order_id, evidence_ids, case_ids, total_amount, completed_at, announced_at
                FROM purchases
                WHERE order_id = $1
            """, order_id)

            if not row:
                return None

            return PurchaseRecord(
                order_id=row['order_id'],
                evidence_ids=frozenset(row['evidence_ids'] or []),
                solved_case_ids=frozenset(row['case_ids'] or []),
                total_amount=row['total_amount'],
                completed_at=row['completed_at'],
                announced_at=row['announced_at'],
            )

    # =========================================================================
    # CREATE OPERATIONS
    # =========================================================================

    async def claim(
        self,
        order_id: str,
        evidence_ids: Iterable[str],
        total_amount: Decimal,
        conn: asyncpg.Connection,
    ) -> bool:
        """
        Insert the receipt for an order unless one already exists.

        Run inside the resolution transaction: a concurrent delivery of the
        same order blocks on the unique index until this transaction ends,
        then sees the row and backs off. The new receipt starts with its
        announcement lease taken by the claiming delivery.

        Returns:
            True if this call created the receipt, False for a duplicate order
        """
        created = await conn.fetchval("""
            INSERT INTO purchases (order_id, evidence_ids, case_ids, total_amount, completed_at, announce_started_at)
            VALUES ($1, $2::text[], '{}'::int[], $3, NOW(), NOW())
            ON CONFLICT (order_id) DO NOTHING
            RETURNING id
        """, order_id, sorted(set(evidence_ids)), total_amount)

        return created is not None

    async def set_solved_cases(
        self,
        order_id: str,
        case_ids: Iterable[int],
        conn: asyncpg.Connection,
    ) -> None:
        """Finalize the receipt with the cases this order solved."""
        await conn.execute("""
            UPDATE purchases SET case_ids = $2::int[] WHERE order_id = $1
        """, order_id, sorted(set(case_ids)))

    # =========================================================================
    # ANNOUNCEMENT
    # =========================================================================

    async def claim_announcement(
        self,
        order_id: str,
        lease_seconds: int,
        conn: Optional[asyncpg.Connection] = None,
    ) -> bool:
        """
        Take the announcement lease of an unannounced receipt.

        Fails while another delivery holds an unexpired lease, so two
        deliveries of one order never append its case_solved events at once.
        """
        async with using_connection(self.db_pool, conn) as c:
            claimed = await c.fetchval("""
                UPDATE purchases SET announce_started_at = NOW()
                WHERE order_id = $1
                  AND announced_at IS NULL
                  AND (announce_started_at IS NULL
                       OR announce_started_at < NOW() - make_interval(secs => $2))
                RETURNING id
            """, order_id, float(lease_seconds))
            return claimed is not None

    async def release_announcement(self, order_id: str, conn: Optional[asyncpg.Connection] = None) -> None:
        """Give up the lease after a failed announcement so a redelivery can retake it."""
        async with using_connection(self.db_pool, conn) as c:
            await c.execute("""
                UPDATE purchases SET announce_started_at = NULL
                WHERE order_id = $1 AND announced_at IS NULL
            """, order_id)

    async def mark_announced(self, order_id: str, conn: Optional[asyncpg.Connection] = None) -> bool:
        """
        Stamp the receipt once its case_solved events are in the activity log.

        Returns:
            True if this call set announced_at, False if it was already set
            or the order is unknown
        """
        async with using_connection(self.db_pool, conn) as c:
            result = await c.execute("""
                UPDATE purchases SET announced_at = NOW()
                WHERE order_id = $1 AND announced_at IS NULL
            """, order_id)
            return int(result.split()[-1]) > 0

    # =========================================================================
    # DELETE OPERATION
    # =========================================================================

    async def clear(self, conn: Optional[asyncpg.Connection] = None) -> int:
        """Drop every receipt (demo reset only). Returns rows removed."""
        async with using_connection(self.db_pool, conn) as c:
            result = await c.execute("DELETE FROM purchases")
            rows_deleted = int(result.split()[-1])
            logger.warning(f"Cleared {rows_deleted} purchase records")
            return rows_deleted
