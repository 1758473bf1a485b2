"""
Storefront identity detection.

The widget runs inside an iframe on a Shopify storefront. The store is
identified from the widget URL, the referrer, or messages from the parent.
"""

import re
from typing import Optional
from urllib.parse import parse_qs, urlparse

from ..models import DetectionMethod, StoreIdentity

MYSHOPIFY_SUFFIX = ".myshopify.com"
_MYSHOPIFY_RE = re.compile(r"([a-z0-9-]+\.myshopify\.com)", re.IGNORECASE)


def normalize_shop_domain(shop: Optional[str]) -> str:
    """Normalize "mystore", "https://MyStore.myshopify.com" etc. to "mystore.myshopify.com"."""
    if not shop:
        return ""
    normalized = shop.strip().lower()
    normalized = re.sub(r"^https?://", "", normalized).rstrip("/")
    if not normalized:
        return ""
    if MYSHOPIFY_SUFFIX not in normalized:
        normalized = f"{normalized}{MYSHOPIFY_SUFFIX}"
    return normalized


def extract_shop_domain_from_url(url: Optional[str]) -> Optional[str]:
    """Hostname of a URL, or a *.myshopify.com domain found anywhere in the string."""
    if not url:
        return None
    parsed = urlparse(url)
    if parsed.scheme and parsed.hostname:
        return parsed.hostname
    match = _MYSHOPIFY_RE.search(url)
    if match:
        return match.group(1).lower()
    return None


def _identity_from_shop_param(value: str) -> StoreIdentity:
    domain = value.strip()
    if domain.startswith(("http://", "https://")):
        parsed = urlparse(domain)
        origin = f"{parsed.scheme}://{parsed.netloc}"
        shop_domain = parsed.hostname
    elif "." not in domain:
        shop_domain = f"{domain}{MYSHOPIFY_SUFFIX}"
        origin = f"https://{shop_domain}"
    else:
        shop_domain = domain
        origin = f"https://{domain}"
    return StoreIdentity(
        domain=shop_domain,
        full_url=origin,
        shop_domain=shop_domain,
        origin=origin,
        method=DetectionMethod.URL_PARAM,
    )


def detect_store_origin(
    page_url: Optional[str],
    referrer: Optional[str] = None,
    in_iframe: bool = False,
) -> StoreIdentity:
    """Identify the store from URL heuristics.

    Checks the `shop`, `shop_domain` and `shopDomain` query parameters of the
    widget URL (the app proxy always adds `shop`), then the referrer. When
    nothing matches and the widget is framed, the method is POSTMESSAGE,
    meaning the parent must be asked.
    """
    if page_url:
        params = parse_qs(urlparse(page_url).query)
        for name in ("shop", "shop_domain", "shopDomain"):
            values = params.get(name)
            if values and values[0].strip():
                return _identity_from_shop_param(values[0])

    if referrer:
        parsed = urlparse(referrer)
        if parsed.scheme and parsed.hostname:
            hostname = parsed.hostname
            is_shopify = hostname.endswith(MYSHOPIFY_SUFFIX) or "myshopify.io" in hostname
            return StoreIdentity(
                domain=hostname,
                full_url=referrer,
                shop_domain=hostname if is_shopify else None,
                origin=f"{parsed.scheme}://{parsed.netloc}",
                method=DetectionMethod.REFERRER,
            )

    method = DetectionMethod.POSTMESSAGE if in_iframe else DetectionMethod.UNKNOWN
    return StoreIdentity(method=method)


def store_from_message_origin(origin: Optional[str]) -> Optional[StoreIdentity]:
    """Identity implied by the origin of a message from the parent frame."""
    if not origin:
        return None
    parsed = urlparse(origin)
    if not parsed.scheme or not parsed.hostname:
        return None
    hostname = parsed.hostname
    return StoreIdentity(
        domain=hostname,
        full_url=origin,
        shop_domain=hostname if hostname.endswith(MYSHOPIFY_SUFFIX) else None,
        origin=origin,
        method=DetectionMethod.POSTMESSAGE,
    )


def store_from_store_info_message(data: dict, origin: Optional[str] = None) -> StoreIdentity:
    """Identity from the parent's reply to a store info request."""
    return StoreIdentity(
        domain=data.get("domain") or None,
        full_url=data.get("fullUrl") or None,
        shop_domain=data.get("shopDomain") or None,
        origin=data.get("origin") or origin or None,
        method=DetectionMethod.PARENT_REQUEST,
    )
