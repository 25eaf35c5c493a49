"""
Storefront webhook intake

POST /api/webhooks/order - completed order -> resolution engine

The storefront redelivers until it gets a 2xx, so a retryable failure must
answer 503 and a duplicate delivery must answer 200.
"""
import logging

from fastapi import APIRouter, Depends, HTTPException, status

from crimelab.models.api.order import OrderWebhook, OrderWebhookResponse
from crimelab.services.errors import RetryableError
from crimelab.services.resolution_committer import ResolutionCommitter
from .dependencies import get_committer

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/webhooks", tags=["Webhooks"])


@router.post("/order", response_model=OrderWebhookResponse)
async def order_webhook(
    order: OrderWebhook,
    committer: ResolutionCommitter = Depends(get_committer),
):
    """Record an order's evidence and solve every case it completes."""
    try:
        result = await committer.process_order(order.order_id, order.evidence_ids, order.total_amount)
    except RetryableError as e:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"Order {order.order_id} not processed, retry later: {e}",
        )

    return OrderWebhookResponse(
        success=True,
        duplicate=result.duplicate,
        order_id=result.order_id,
        solved_case_ids=sorted(result.solved_case_ids),
    )
