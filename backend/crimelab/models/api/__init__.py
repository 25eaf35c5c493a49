"""
API Models - request/response schemas for the HTTP layer
"""

from .order import OrderLineItem, OrderWebhook, OrderWebhookResponse
from .activity import ActivityCreate
from .checkout import CheckoutRequest, CheckoutResponse

__all__ = [
    'OrderLineItem',
    'OrderWebhook',
    'OrderWebhookResponse',
    'ActivityCreate',
    'CheckoutRequest',
    'CheckoutResponse',
]
