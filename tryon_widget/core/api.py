"""
Client for the try-on generation API.

One endpoint per mode. Both are plain request/response calls with no
progress stream. Generation calls are never retried automatically since a
started generation may already have consumed credits.
"""

import json
import logging
import time
import uuid
from typing import Optional, Sequence

import httpx
from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type,
    before_sleep_log,
)

from ..errors import NetworkError, ValidationError
from ..models import CartResult, GenerationMode, GenerationRecord, OutfitResult
from .blobs import ImageBlob
from .store import normalize_shop_domain

logger = logging.getLogger(__name__)

CART_PATH = "/api/fashion-photo/cart"
OUTFIT_PATH = "/api/fashion-photo/outfit"
IMAGE_GENERATIONS_PATH = "/api/image-generations/all"
KEY_MAPPINGS_PATH = "/api/key-mappings"

CONNECTION_ERROR_MESSAGE = "A connection error occurred."
GENERATION_ERROR_MESSAGE = "An error occurred during generation."


def _check_count(mode: GenerationMode, garments: Sequence[ImageBlob]) -> None:
    count = len(garments)
    if not mode.accepts(count):
        raise ValidationError(
            f"{mode.value.capitalize()} generation requires between {mode.min_items} and "
            f"{mode.max_items} garment images. You provided {count} garment(s)."
        )


def _message_from_body(body) -> tuple[Optional[str], Optional[str]]:
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict) and error.get("message"):
            return error["message"], error.get("code")
        if isinstance(error, str) and error:
            return error, None
        if body.get("message"):
            return body["message"], None
    return None, None


def _error_message(response: httpx.Response) -> tuple[str, Optional[str]]:
    """Pull a readable message and code out of an error response."""
    try:
        body = response.json()
    except (json.JSONDecodeError, ValueError):
        body = None

    message, code = _message_from_body(body)
    if message:
        return message, code
    return f"HTTP {response.status_code}: {response.reason_phrase or GENERATION_ERROR_MESSAGE}", None


class TryOnClient:
    """Async client for the fashion-photo generation API."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 180.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Initialize the client.

        Args:
            base_url: API endpoint root, e.g. "https://api.example.com"
            timeout: Request timeout in seconds. Generation can take minutes.
            client: Optional preconfigured httpx.AsyncClient (tests pass a mock transport)
        """
        if not base_url:
            raise ValueError("API endpoint not configured. Set TRYON_API_ENDPOINT or pass base_url.")
        self.base_url = base_url.rstrip("/")
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def _post_generation(self, tag: str, path: str, store_name: str, files: list, data: dict) -> dict:
        request_id = f"{tag}-{int(time.time() * 1000)}-{uuid.uuid4().hex[:9]}"
        started = time.monotonic()
        params = {"shop": normalize_shop_domain(store_name)} if store_name else {}

        logger.info(f"[{tag.upper()}] {request_id} sending {len(files) - 1} garment(s) for {store_name or 'unknown store'}")

        try:
            response = await self._client.post(
                f"{self.base_url}{path}",
                params=params,
                files=files,
                data=data,
            )
        except httpx.HTTPError as e:
            logger.error(f"[{tag.upper()}] {request_id} request failed after {time.monotonic() - started:.1f}s: {e}")
            raise NetworkError(CONNECTION_ERROR_MESSAGE)

        logger.info(
            f"[{tag.upper()}] {request_id} HTTP {response.status_code} in {time.monotonic() - started:.1f}s"
        )

        if not response.is_success:
            message, code = _error_message(response)
            raise NetworkError(message, status_code=response.status_code, code=code)

        if not response.content:
            raise NetworkError("Empty response body", status_code=response.status_code)

        try:
            payload = response.json()
        except (json.JSONDecodeError, ValueError):
            raise NetworkError("Failed to parse server response", status_code=response.status_code)

        if not isinstance(payload, dict):
            raise NetworkError("Failed to parse server response", status_code=response.status_code)
        return payload

    async def generate_cart(
        self,
        person: ImageBlob,
        garments: Sequence[ImageBlob],
        store_name: str,
        garment_keys: Optional[Sequence[str]] = None,
        person_key: Optional[str] = None,
        version: Optional[int] = None,
    ) -> CartResult:
        """
        Generate one try-on image per garment in a single batched request.

        Args:
            person: Person photo
            garments: 1-6 garment images
            store_name: Shop domain, used for credit tracking
            garment_keys: Optional catalog ids of the garments (cache hints)
            person_key: Optional catalog id of the person photo
            version: Version hint; accepted for interface parity, the endpoint ignores it

        Returns:
            CartResult with one entry per garment

        Raises:
            ValidationError: Garment count out of range
            NetworkError: Transport failure, non-2xx response or malformed payload
        """
        _check_count(GenerationMode.CART, garments)

        files = [("personImage", person.as_file())]
        files.extend(("garmentImages", g.as_file()) for g in garments)

        data = {"aspectRatio": "1:1"}
        if store_name:
            data["storeName"] = store_name
        if person_key:
            data["personKey"] = person_key
        if garment_keys:
            data["garmentKeys"] = ",".join(garment_keys)

        payload = await self._post_generation("cart", CART_PATH, store_name, files, data)
        try:
            return CartResult.from_dict(payload)
        except (TypeError, ValueError, KeyError) as e:
            raise NetworkError(f"Failed to parse server response: {e}")

    async def generate_outfit(
        self,
        person: ImageBlob,
        garments: Sequence[ImageBlob],
        garment_types: Sequence[str],
        store_name: str,
        garment_keys: Optional[Sequence[str]] = None,
        person_key: Optional[str] = None,
        version: Optional[int] = None,
    ) -> OutfitResult:
        """
        Generate a single image of the person wearing all garments together.

        Args:
            person: Person photo
            garments: 2-8 garment images
            garment_types: Garment type labels (shirt, pants, ...), may be empty
            store_name: Shop domain, used for credit tracking
            garment_keys: Optional catalog ids of the garments
            person_key: Optional catalog id of the person photo
            version: Version hint; not sent

        Returns:
            OutfitResult

        Raises:
            ValidationError: Garment count out of range
            NetworkError: Transport failure, non-2xx response or malformed payload
        """
        _check_count(GenerationMode.OUTFIT, garments)

        files = [("personImage", person.as_file())]
        files.extend(("garmentImages", g.as_file()) for g in garments)

        data = {"aspectRatio": "1:1"}
        if garment_types:
            data["garmentTypes"] = ",".join(garment_types)
        if store_name:
            data["storeName"] = store_name
        if person_key:
            data["personKey"] = person_key
        if garment_keys:
            data["garmentKeys"] = ",".join(garment_keys)

        payload = await self._post_generation("outfit", OUTFIT_PATH, store_name, files, data)
        if payload.get("success") is False:
            message, code = _message_from_body(payload)
            raise NetworkError(message or GENERATION_ERROR_MESSAGE, code=code)
        try:
            return OutfitResult.from_dict(payload)
        except (TypeError, ValueError, KeyError) as e:
            raise NetworkError(f"Failed to parse server response: {e}")

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_exception_type((
            httpx.ConnectTimeout,
            httpx.ReadTimeout,
            httpx.NetworkError,
        )),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    async def _get_with_retry(self, path: str, params: dict) -> httpx.Response:
        """GET with automatic retry on transient network failures."""
        return await self._client.get(
            f"{self.base_url}{path}",
            params=params,
            headers={"Content-Type": "application/json"},
        )

    async def _get_json(self, path: str, params: dict) -> dict:
        try:
            response = await self._get_with_retry(path, params)
        except httpx.HTTPError as e:
            raise NetworkError(f"Request failed: {e}")

        if not response.is_success:
            message, code = _error_message(response)
            raise NetworkError(message, status_code=response.status_code, code=code)

        try:
            return response.json()
        except (json.JSONDecodeError, ValueError):
            raise NetworkError("Failed to parse server response", status_code=response.status_code)

    async def fetch_image_generations(
        self,
        store_name: Optional[str] = None,
        page: int = 1,
        limit: int = 50,
        status: Optional[str] = None,
    ) -> list[GenerationRecord]:
        """List past generations, newest first. Used to build the session's cache sets."""
        params = {
            "page": str(page),
            "limit": str(limit),
            "orderBy": "created_at",
            "orderDirection": "DESC",
        }
        if status:
            params["status"] = status
        if store_name:
            params["storeName"] = store_name

        payload = await self._get_json(IMAGE_GENERATIONS_PATH, params)
        records = (payload.get("data") or {}).get("records") or []
        return [GenerationRecord.from_dict(r) for r in records]

    async def fetch_key_mappings(
        self,
        clothing_key: Optional[str] = None,
        person_key: Optional[str] = None,
    ) -> dict:
        """
        Look up which keys have been generated together with a given key.

        Returns the `data` object: `personKeys` for a clothing key,
        `clothingKeys` for a person key.
        """
        clothing_key = (clothing_key or "").strip()
        person_key = (person_key or "").strip()
        if not clothing_key and not person_key:
            raise ValidationError("At least one of 'clothingKey' or 'personKey' is required")

        params = {}
        if clothing_key:
            params["clothingKey"] = clothing_key
        if person_key:
            params["personKey"] = person_key

        payload = await self._get_json(KEY_MAPPINGS_PATH, params)
        if payload.get("status") == "error":
            error = payload.get("error_message") or {}
            raise NetworkError(error.get("message", "Failed to fetch key mappings"), code=error.get("code"))
        return payload.get("data") or {}

    async def close(self):
        """Close the HTTP client if this instance created it."""
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
