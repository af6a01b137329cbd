"""Inventory provider integrations."""

from ..core.config import Settings
from .base import MappedDeal, MappingError, ProviderClient, ProviderError, ProviderFetchError
from .instacharter import InstaCharterClient


def build_provider_client(settings: Settings) -> ProviderClient:
    """Create the configured provider client."""
    return InstaCharterClient(
        base_url=settings.provider_base_url,
        api_key=settings.provider_api_key,
        client_id=settings.provider_client_id,
        page_size=settings.provider_page_size,
        max_pages=settings.provider_max_pages,
        timeout_seconds=settings.provider_timeout_seconds,
        fetch_images=settings.provider_fetch_images,
        currency=settings.price_currency,
    )


__all__ = [
    "InstaCharterClient",
    "MappedDeal",
    "MappingError",
    "ProviderClient",
    "ProviderError",
    "ProviderFetchError",
    "build_provider_client",
]
