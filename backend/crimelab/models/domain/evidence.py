"""
Evidence domain models

Evidence units are storefront products. The resolution engine only ever needs
their identifiers; display metadata comes from the storefront catalog.
"""
from dataclasses import dataclass
from typing import Optional


@dataclass
class EvidenceItem:
    """Storefront catalog entry (presentation only)."""
    id: str  # product handle, doubles as the evidence unit id
    name: str
    description: str = ""
    price: str = "0.00"
    variant_id: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'name': self.name,
            'description': self.description,
            'price': self.price,
            'variant_id': self.variant_id,
        }
