"""
Repository Pattern - Storage abstraction layer

Repositories hide storage details (PostgreSQL) from business logic.
Consumers work with domain models, not storage-specific types.

Storage Split:
- CaseRepository: PostgreSQL (cases, case_evidence) - requirement index + solve transition
- EvidenceLedger: PostgreSQL (purchased_evidence) - global purchased set
- PurchaseRepository: PostgreSQL (purchases) - order receipts / idempotency keys

Every method accepts an optional `conn`. When given, the query runs on that
connection (and therefore inside the caller's transaction); otherwise a
connection is acquired from the pool.
"""
from .case_repository import CaseRepository
from .evidence_ledger import EvidenceLedger
from .purchase_repository import PurchaseRepository

__all__ = [
    'CaseRepository',
    'EvidenceLedger',
    'PurchaseRepository',
]
