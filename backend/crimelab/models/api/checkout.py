"""
Pydantic models for checkout creation
"""

from typing import List, Optional

from pydantic import BaseModel


class CheckoutRequest(BaseModel):
    variant_ids: List[str] = []
    case_ids: List[int] = []
    session_id: Optional[str] = None


class CheckoutResponse(BaseModel):
    checkout_url: Optional[str] = None
    cart_id: Optional[str] = None
    error: Optional[str] = None
