"""
Core adapters for the try-on widget: API client, image payloads, store
identity and cache keys.
"""

from .api import TryOnClient
from .blobs import BlobConverter, BlobRegistry, ImageBlob
from .cache_keys import CacheKeyCorrelator, CatalogIndex, normalize_key, pair_key
from .store import detect_store_origin, normalize_shop_domain

__all__ = [
    "TryOnClient",
    "BlobConverter",
    "BlobRegistry",
    "ImageBlob",
    "CacheKeyCorrelator",
    "CatalogIndex",
    "normalize_key",
    "pair_key",
    "detect_store_origin",
    "normalize_shop_domain",
]
