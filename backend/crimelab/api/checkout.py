"""
Checkout API

POST /api/checkout - create a storefront cart, return its checkout URL

Prices, lines and payment belong to the storefront. The only thing recorded
here is a checkout_created activity for the live feed.
"""
import logging

from fastapi import APIRouter, Depends

from crimelab.models.api.checkout import CheckoutRequest, CheckoutResponse
from crimelab.models.domain.activity import ActivityEvent, ActivityType
from crimelab.services.activity_recorder import ActivityRecorder
from crimelab.services.errors import StorefrontError, ActivityWriteError
from crimelab.services.storefront_client import StorefrontClient
from .dependencies import WORKER_ID, get_recorder, get_storefront

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api", tags=["Checkout"])


@router.post("/checkout", response_model=CheckoutResponse)
async def create_checkout(
    request: CheckoutRequest,
    storefront: StorefrontClient = Depends(get_storefront),
    recorder: ActivityRecorder = Depends(get_recorder),
):
    if not request.variant_ids:
        return CheckoutResponse(error="Cart is empty")

    try:
        checkout = await storefront.create_checkout(request.variant_ids, request.case_ids)
    except StorefrontError as e:
        logger.error(f"Checkout creation failed: {e}")
        return CheckoutResponse(error=str(e))

    data = {
        'case_ids': request.case_ids,
        'evidence_count': len(request.variant_ids),
        'checkout_id': checkout.cart_id,
    }
    if request.session_id:
        data['session_id'] = request.session_id

    try:
        await recorder.append(ActivityEvent(type=ActivityType.CHECKOUT_CREATED, data=data, worker_id=WORKER_ID))
    except ActivityWriteError as e:
        # The cart exists; the shopper still gets their checkout URL
        logger.error(f"Failed to log checkout activity: {e}")

    return CheckoutResponse(checkout_url=checkout.checkout_url, cart_id=checkout.cart_id)
