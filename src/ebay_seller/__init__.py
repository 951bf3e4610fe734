"""
eBay Sell API access: environment endpoints, the seller client, and a
diagnostic CLI (python -m ebay_seller).

Usage:
    from config import load_config
    from ebay_seller import EbaySellerClient

    async with EbaySellerClient(load_config()) as client:
        inventory = await client.get("/sell/inventory/v1/inventory_item", params={"limit": 25})
"""

from ebay_seller.client import EbaySellerClient
from ebay_seller.environment import (
    DEFAULT_APPLICATION_SCOPES,
    DEFAULT_USER_SCOPES,
    MARKETPLACE_HEADER,
    Environment,
    get_authorization_endpoint,
    get_base_url,
    get_token_url,
)

__all__ = [
    "EbaySellerClient",
    "Environment",
    "get_base_url",
    "get_token_url",
    "get_authorization_endpoint",
    "DEFAULT_APPLICATION_SCOPES",
    "DEFAULT_USER_SCOPES",
    "MARKETPLACE_HEADER",
]
