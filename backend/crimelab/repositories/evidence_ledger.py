"""
Evidence Ledger - PostgreSQL storage for purchased evidence

Storage: PostgreSQL (purchased_evidence table)

Single global set keyed only by evidence id: there is no per-user or
per-session partition. The ledger only grows (no reversal for refunds).
"""
import logging
from typing import Optional, Set
import asyncpg

from crimelab.services.errors import LedgerWriteError
from .base import using_connection, SERIALIZATION_ERRORS, STORAGE_ERRORS

logger = logging.getLogger(__name__)


class EvidenceLedger:
    """
    Durable, monotonic record of every evidence unit ever purchased.
    """

    def __init__(self, db_pool: asyncpg.Pool):
        self.db_pool = db_pool

    # =========================================================================
    # READ OPERATIONS
    # =========================================================================

    async def is_purchased(self, evidence_id: str, conn: Optional[asyncpg.Connection] = None) -> bool:
        async with using_connection(self.db_pool, conn) as c:
            return await c.fetchval("""
                SELECT EXISTS(
                    SELECT 1 FROM purchased_evidence WHERE evidence_id = $1
                )
            """, evidence_id)

    async def purchased_set(self, conn: Optional[asyncpg.Connection] = None) -> Set[str]:
        """All evidence ids ever purchased, by anyone."""
        async with using_connection(self.db_pool, conn) as c:
            rows = await c.fetch("SELECT evidence_id FROM purchased_evidence")
            return {row['evidence_id'] for row in rows}

    # =========================================================================
    # WRITE OPERATIONS
    # =========================================================================

    async def record_purchased(
        self,
        evidence_id: str,
        order_id: str,
        conn: Optional[asyncpg.Connection] = None,
    ) -> bool:
        """
        Record that an evidence unit has been purchased.

        Idempotent: recording an already-present unit is a no-op.

        Args:
            evidence_id: Storefront product handle
            order_id: Order that conveyed it (kept for the first order only)
            conn: Connection of an enclosing transaction, if any

        Returns:
            True if newly recorded, False if it was already in the ledger

        Raises:
            LedgerWriteError: The write did not happen
        """
        try:
            async with using_connection(self.db_pool, conn) as c:
                recorded = await c.fetchval("""
                    INSERT INTO purchased_evidence (evidence_id, order_id, purchased_at)
                    VALUES ($1, $2, NOW())
                    ON CONFLICT (evidence_id) DO NOTHING
                    RETURNING evidence_id
                """, evidence_id, order_id)
        except SERIALIZATION_ERRORS:
            # Left for the enclosing transaction to retry as a whole
            raise
        except STORAGE_ERRORS as e:
            raise LedgerWriteError(f"Failed to record evidence {evidence_id} for order {order_id}: {e}") from e

        if recorded is None:
            logger.debug(f"Evidence {evidence_id} already in ledger")
            return False

        logger.info(f"Recorded evidence {evidence_id} (order {order_id})")
        return True

    async def clear(self, conn: Optional[asyncpg.Connection] = None) -> int:
        """Empty the ledger (demo reset only). Returns rows removed."""
        async with using_connection(self.db_pool, conn) as c:
            result = await c.execute("DELETE FROM purchased_evidence")
            rows_deleted = int(result.split()[-1])
            logger.warning(f"Cleared evidence ledger ({rows_deleted} rows)")
            return rows_deleted
