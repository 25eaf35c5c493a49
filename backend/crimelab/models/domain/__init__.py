"""
Domain Models - Storage-agnostic data structures

These models represent the core domain entities independent of storage layer.
Services operate on these models, not raw database rows.

Architecture:
- Domain models are pure Python objects (dataclasses)
- Storage details (PostgreSQL, Redis) are abstracted via repositories
- Business logic operates on these models, not database rows
"""

from .case import Case, CaseStatus, Difficulty
from .evidence import EvidenceItem
from .purchase import PurchaseRecord
from .activity import ActivityEvent, ActivityType, CLIENT_ACTIVITY_TYPES

__all__ = [
    # Catalog
    'Case',
    'CaseStatus',
    'Difficulty',
    'EvidenceItem',

    # Resolution state
    'PurchaseRecord',

    # Live activity
    'ActivityEvent',
    'ActivityType',
    'CLIENT_ACTIVITY_TYPES',
]
