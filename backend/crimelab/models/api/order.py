"""
Pydantic models for the storefront order webhook
"""

from decimal import Decimal
from typing import List, Set

from pydantic import BaseModel, Field, AliasChoices, field_validator


class OrderLineItem(BaseModel):
    """One purchased evidence unit. Accepts the storefront's `sku` too."""
    evidence_unit_id: str = Field(
        validation_alias=AliasChoices('evidence_unit_id', 'evidence_id', 'sku')
    )

    model_config = {
        "populate_by_name": True,
        "extra": "ignore",
    }


class OrderWebhook(BaseModel):
    """
    Completed order as delivered by the storefront.

    Native storefront payloads use `id` and `total_price`; both spellings
    are accepted.
    """
    order_id: str = Field(validation_alias=AliasChoices('order_id', 'id'))
    line_items: List[OrderLineItem] = []
    total_amount: Decimal = Field(
        default=Decimal("0.00"),
        validation_alias=AliasChoices('total_amount', 'total_price'),
    )

    model_config = {
        "populate_by_name": True,
        "extra": "ignore",
    }

    @field_validator('order_id', mode='before')
    @classmethod
    def coerce_order_id(cls, v):
        """Storefront order ids arrive as integers"""
        if v is None or str(v).strip() == "":
            raise ValueError("order_id is required")
        return str(v).strip()

    @property
    def evidence_ids(self) -> Set[str]:
        return {item.evidence_unit_id for item in self.line_items}


class OrderWebhookResponse(BaseModel):
    success: bool = True
    duplicate: bool = False
    order_id: str
    solved_case_ids: List[int] = []
