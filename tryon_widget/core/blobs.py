"""
Image reference to upload payload conversion.

Handles `data:` URIs, `blob:` object URLs and remote image URLs. Remote
images that refuse a CORS-style fetch are refetched as a plain image
request and re-encoded to PNG, the way a canvas redraw would.
"""

import base64
import io
import logging
import mimetypes
import uuid
from dataclasses import dataclass
from typing import Optional
from urllib.parse import unquote_to_bytes

import httpx
from PIL import Image, UnidentifiedImageError

from ..errors import BlobConversionError

logger = logging.getLogger(__name__)

DEFAULT_MIME_TYPE = "image/jpeg"


@dataclass
class ImageBlob:
    """Binary image payload ready for a multipart upload."""

    data: bytes
    mime_type: str = DEFAULT_MIME_TYPE
    filename: str = "image.jpg"

    def as_file(self) -> tuple:
        """The (filename, bytes, content type) triple httpx expects for `files=`."""
        return (self.filename, self.data, self.mime_type)

    def __len__(self) -> int:
        return len(self.data)


def _filename(label: str, mime_type: str) -> str:
    extension = mimetypes.guess_extension(mime_type) or ".bin"
    if extension == ".jpe":
        extension = ".jpg"
    return f"{label}{extension}"


def decode_data_url(data_url: str) -> tuple[bytes, str]:
    """Decode a `data:` URI into (bytes, mime type)."""
    try:
        header, payload = data_url[len("data:"):].split(",", 1)
    except ValueError:
        raise ValueError("Malformed data URL: missing ','")

    parts = header.split(";")
    mime_type = parts[0] or "text/plain"
    if "base64" in parts[1:]:
        try:
            return base64.b64decode(payload, validate=False), mime_type
        except (ValueError, TypeError) as e:
            raise ValueError(f"Invalid base64 data URL: {e}")
    return unquote_to_bytes(payload), mime_type


class BlobRegistry:
    """In-process registry of `blob:` object URLs."""

    def __init__(self, origin: str = "null"):
        self.origin = origin
        self._blobs: dict[str, ImageBlob] = {}

    def create_url(self, blob: ImageBlob) -> str:
        url = f"blob:{self.origin}/{uuid.uuid4()}"
        self._blobs[url] = blob
        return url

    def revoke_url(self, url: str) -> None:
        self._blobs.pop(url, None)

    def get(self, url: str) -> Optional[ImageBlob]:
        return self._blobs.get(url)


class BlobConverter:
    """Turns image references into `ImageBlob`s."""

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        registry: Optional[BlobRegistry] = None,
        origin: Optional[str] = None,
        timeout: float = 30.0,
    ):
        """
        Initialize the converter.

        Args:
            client: HTTP client for remote images. One is created (and owned) if omitted.
            registry: Registry used to resolve `blob:` URLs.
            origin: Origin announced on CORS-style fetches.
            timeout: Timeout for remote fetches, in seconds.
        """
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self.registry = registry or BlobRegistry()
        self.origin = origin

    async def to_blob(self, ref: str, label: str = "image") -> ImageBlob:
        """
        Convert an image reference to a binary payload.

        Args:
            ref: `data:` URI, `blob:` URL or remote http(s) URL
            label: Name used for the upload filename and in error messages

        Returns:
            ImageBlob

        Raises:
            BlobConversionError: If the image cannot be read by any method
        """
        if not ref:
            raise BlobConversionError(f"No image provided for {label}", source="")

        if ref.startswith("data:"):
            try:
                data, mime_type = decode_data_url(ref)
            except ValueError as e:
                raise BlobConversionError(f"Could not read image for {label}: {e}", source=label)
            return ImageBlob(data=data, mime_type=mime_type, filename=_filename(label, mime_type))

        if ref.startswith("blob:"):
            blob = self.registry.get(ref)
            if blob is None:
                raise BlobConversionError(f"Could not read image for {label}: {ref} was revoked", source=ref)
            return ImageBlob(data=blob.data, mime_type=blob.mime_type, filename=_filename(label, blob.mime_type))

        return await self._fetch_remote(ref, label)

    async def _fetch_remote(self, url: str, label: str) -> ImageBlob:
        headers = {"Accept": "image/*"}
        if self.origin:
            headers["Origin"] = self.origin

        try:
            # Credentials omitted: no cookies, no client auth
            request = httpx.Request("GET", url, headers=headers)
            response = await self._client.send(request, auth=None, follow_redirects=True)
            if not response.is_success:
                raise httpx.HTTPStatusError(
                    f"HTTP {response.status_code}", request=request, response=response
                )
            mime_type = response.headers.get("content-type", DEFAULT_MIME_TYPE).split(";")[0].strip()
            return ImageBlob(data=response.content, mime_type=mime_type, filename=_filename(label, mime_type))
        except httpx.InvalidURL as e:
            logger.warning(f"Invalid image URL for {label}: {url} ({e})")
            raise BlobConversionError(f"Could not load the image for {label}: {url}", source=url)
        except httpx.HTTPError as e:
            logger.warning(f"Direct fetch of {url} failed ({e}); re-encoding through image fallback")

        try:
            return await self._reencode_remote(url, label)
        except (httpx.HTTPError, OSError, UnidentifiedImageError) as e:
            logger.error(f"Image fallback failed for {url}: {e}")
            raise BlobConversionError(f"Could not load the image for {label}: {url}", source=url)

    async def _reencode_remote(self, url: str, label: str) -> ImageBlob:
        request = httpx.Request("GET", url)
        response = await self._client.send(request, auth=None, follow_redirects=True)
        response.raise_for_status()

        with Image.open(io.BytesIO(response.content)) as img:
            img.load()
            if img.mode not in ("RGB", "RGBA"):
                img = img.convert("RGBA")
            out = io.BytesIO()
            img.save(out, format="PNG")

        return ImageBlob(data=out.getvalue(), mime_type="image/png", filename=f"{label}.png")

    async def close(self):
        """Close the HTTP client if this converter created it."""
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
