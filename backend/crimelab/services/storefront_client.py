"""
Storefront (Shopify) client

The storefront owns products, prices, carts and payment. This client only:
- reads the product catalog for display (Admin REST API)
- creates a cart and returns its checkout URL (Storefront GraphQL API)

Completed orders come back through the order webhook, not through here.
"""
import re
import json
import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence

import httpx

from crimelab.config import Settings
from crimelab.models.domain.evidence import EvidenceItem
from crimelab.services.cache import SimpleCache
from crimelab.services.errors import StorefrontError

logger = logging.getLogger(__name__)

TAG_PATTERN = re.compile(r'<[^>]*>')

CART_CREATE_MUTATION = """
mutation cartCreate($input: CartInput!) {
  cartCreate(input: $input) {
    cart {
      id
      checkoutUrl
    }
    userErrors {
      field
      message
    }
  }
}
"""


@dataclass
class Checkout:
    cart_id: str
    checkout_url: str


class StorefrontClient:
    """Thin async wrapper over the storefront HTTP APIs."""

    def __init__(
        self,
        store_domain: str,
        admin_token: str = "",
        storefront_token: str = "",
        api_version: str = "2024-10",
        timeout: float = 10.0,
        cache: Optional[SimpleCache] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.store_domain = store_domain
        self.admin_token = admin_token
        self.storefront_token = storefront_token
        self.api_version = api_version
        self.timeout = timeout
        self.cache = cache if cache is not None else SimpleCache()
        self._transport = transport

    @classmethod
    def from_settings(cls, settings: Settings) -> 'StorefrontClient':
        return cls(
            store_domain=settings.shopify_store_domain,
            admin_token=settings.shopify_admin_token,
            storefront_token=settings.shopify_storefront_token,
            api_version=settings.shopify_api_version,
            cache=SimpleCache(default_ttl=settings.catalog_cache_ttl_seconds),
        )

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self._transport)

    @staticmethod
    def _json(response: httpx.Response) -> dict:
        try:
            body = response.json()
        except ValueError as e:
            raise StorefrontError(f"Storefront returned a non-JSON body: {e}") from e
        if not isinstance(body, dict):
            raise StorefrontError(f"Storefront returned unexpected JSON: {type(body).__name__}")
        return body

    # =========================================================================
    # CATALOG
    # =========================================================================

    async def list_evidence(self, use_cache: bool = True) -> List[EvidenceItem]:
        """
        Evidence catalog with display metadata.

        Raises:
            StorefrontError: Not configured, the Admin API failed, or a
                product came back without its handle
        """
        cache_key = f"catalog:{self.store_domain}"
        if use_cache:
            cached = self.cache.get(cache_key)
            if cached is not None:
                return cached

        if not self.store_domain or not self.admin_token:
            raise StorefrontError("Storefront not configured: SHOPIFY_STORE_DOMAIN and SHOPIFY_ADMIN_TOKEN required")

        url = f"https://{self.store_domain}/admin/api/{self.api_version}/products.json"
        try:
            async with self._client() as client:
                response = await client.get(url, headers={'X-Shopify-Access-Token': self.admin_token})
        except httpx.HTTPError as e:
            raise StorefrontError(f"Storefront catalog request failed: {e}") from e

        if response.status_code != 200:
            raise StorefrontError(f"Storefront API error: {response.status_code} {response.reason_phrase}")

        try:
            evidence = [self._product_to_evidence(p) for p in self._json(response).get('products') or []]
        except (KeyError, TypeError, AttributeError) as e:
            raise StorefrontError(f"Malformed storefront product: {e!r}") from e
        self.cache.set(cache_key, evidence)
        logger.info(f"Fetched {len(evidence)} evidence items from storefront")
        return evidence

    @staticmethod
    def _product_to_evidence(product: dict) -> EvidenceItem:
        variants = product.get('variants') or [{}]
        variant = variants[0]
        return EvidenceItem(
            id=product['handle'],
            name=product.get('title', product['handle']),
            description=TAG_PATTERN.sub('', product.get('body_html') or ''),
            price=str(variant.get('price') or '0.00'),
            variant_id=f"gid://shopify/ProductVariant/{variant['id']}" if variant.get('id') else None,
        )

    # =========================================================================
    # CHECKOUT
    # =========================================================================

    async def create_checkout(self, variant_ids: Sequence[str], case_ids: Sequence[int]) -> Checkout:
        """
        Create a cart with one unit of each variant.

        case_ids ride along as a cart attribute for the storefront's records.

        Raises:
            StorefrontError: Not configured, HTTP failure, or userErrors
        """
        if not self.store_domain or not self.storefront_token:
            raise StorefrontError("Storefront not configured")

        payload = {
            'query': CART_CREATE_MUTATION,
            'variables': {
                'input': {
                    'lines': [{'merchandiseId': vid, 'quantity': 1} for vid in variant_ids],
                    'attributes': [{'key': 'case_ids', 'value': json.dumps(list(case_ids))}],
                },
            },
        }
        url = f"https://{self.store_domain}/api/{self.api_version}/graphql.json"

        try:
            async with self._client() as client:
                response = await client.post(
                    url,
                    json=payload,
                    headers={'X-Shopify-Storefront-Access-Token': self.storefront_token},
                )
        except httpx.HTTPError as e:
            raise StorefrontError(f"Cart creation request failed: {e}") from e

        if response.status_code != 200:
            raise StorefrontError(f"Storefront API error: {response.status_code} {response.reason_phrase}")

        body = self._json(response)
        try:
            result = (body.get('data') or {}).get('cartCreate') or {}
            cart = result.get('cart')
            errors = result.get('userErrors') or []
            if not cart or errors:
                logger.error(f"Cart creation failed: {errors or body.get('errors') or result}")
                message = errors[0].get('message') if errors else 'Failed to create checkout'
                raise StorefrontError(message or 'Failed to create checkout')

            return Checkout(cart_id=cart['id'], checkout_url=cart['checkoutUrl'])
        except (KeyError, TypeError, AttributeError) as e:
            raise StorefrontError(f"Malformed cartCreate response: {e!r}") from e
