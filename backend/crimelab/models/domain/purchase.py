"""
Purchase record domain model
"""
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Optional, FrozenSet


@dataclass
class PurchaseRecord:
    """
    Receipt of one externally completed storefront order.

    Storage: PostgreSQL (purchases table)

    order_id is the idempotency key: a second delivery of the same order finds
    this record and is short-circuited. Evidence and case ids are a
    denormalized snapshot, not foreign keys.
    """
    order_id: str
    evidence_ids: FrozenSet[str] = field(default_factory=frozenset)
    solved_case_ids: FrozenSet[int] = field(default_factory=frozenset)
    total_amount: Decimal = Decimal("0.00")
    completed_at: Optional[datetime] = None

    # Set once every case_solved event for this order has been appended
    announced_at: Optional[datetime] = None

    def __post_init__(self):
        self.evidence_ids = frozenset(self.evidence_ids)
        self.solved_case_ids = frozenset(self.solved_case_ids)
        if not isinstance(self.total_amount, Decimal):
            self.total_amount = Decimal(str(self.total_amount))

    @property
    def is_announced(self) -> bool:
        return self.announced_at is not None
