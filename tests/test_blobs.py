"""Tests for image reference conversion."""

import asyncio
import base64
import io

import httpx
import pytest
from PIL import Image

from tryon_widget.core.blobs import BlobConverter, BlobRegistry, ImageBlob, decode_data_url
from tryon_widget.errors import BlobConversionError


def make_image_bytes(fmt="JPEG", mode="RGB") -> bytes:
    buf = io.BytesIO()
    Image.new(mode, (4, 4), color=0).save(buf, format=fmt)
    return buf.getvalue()


def converter_with(handler) -> BlobConverter:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return BlobConverter(client=client, origin="https://widget.example.com")


class TestDecodeDataUrl:
    def test_base64(self):
        payload = base64.b64encode(b"\x89PNG data").decode()
        data, mime_type = decode_data_url(f"data:image/png;base64,{payload}")
        assert data == b"\x89PNG data"
        assert mime_type == "image/png"

    def test_percent_encoded(self):
        data, mime_type = decode_data_url("data:image/svg+xml,%3Csvg%3E")
        assert data == b"<svg>"
        assert mime_type == "image/svg+xml"

    def test_malformed(self):
        with pytest.raises(ValueError):
            decode_data_url("data:image/png;base64")


class TestBlobRegistry:
    def test_create_and_revoke(self):
        registry = BlobRegistry(origin="https://widget.example.com")
        blob = ImageBlob(data=b"abc", mime_type="image/png")
        url = registry.create_url(blob)
        assert url.startswith("blob:https://widget.example.com/")
        assert registry.get(url) is blob

        registry.revoke_url(url)
        assert registry.get(url) is None


class TestBlobConverter:
    def test_data_url(self):
        converter = BlobConverter(client=httpx.AsyncClient())
        payload = base64.b64encode(b"jpegbytes").decode()
        blob = asyncio.run(converter.to_blob(f"data:image/jpeg;base64,{payload}", "person"))
        assert blob.data == b"jpegbytes"
        assert blob.mime_type == "image/jpeg"
        assert blob.filename == "person.jpg"

    def test_blob_url(self):
        registry = BlobRegistry()
        url = registry.create_url(ImageBlob(data=b"png", mime_type="image/png"))
        converter = BlobConverter(client=httpx.AsyncClient(), registry=registry)
        blob = asyncio.run(converter.to_blob(url, "garment-1"))
        assert blob.data == b"png"
        assert blob.filename == "garment-1.png"

    def test_revoked_blob_url(self):
        converter = BlobConverter(client=httpx.AsyncClient())
        with pytest.raises(BlobConversionError):
            asyncio.run(converter.to_blob("blob:null/0000", "garment-1"))

    def test_empty_reference(self):
        converter = BlobConverter(client=httpx.AsyncClient())
        with pytest.raises(BlobConversionError):
            asyncio.run(converter.to_blob("", "person"))

    def test_remote_fetch(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, content=b"remote", headers={"content-type": "image/webp"})

        converter = converter_with(handler)
        blob = asyncio.run(converter.to_blob("https://cdn.example.com/shirt.webp", "garment-1"))

        assert blob.data == b"remote"
        assert blob.mime_type == "image/webp"
        assert seen[0].headers["accept"] == "image/*"
        assert seen[0].headers["origin"] == "https://widget.example.com"
        assert "cookie" not in seen[0].headers

    def test_remote_fallback_reencodes_to_png(self):
        jpeg = make_image_bytes()

        def handler(request):
            # Refuse the CORS-style fetch, serve the plain image request
            if request.headers.get("origin"):
                return httpx.Response(403)
            return httpx.Response(200, content=jpeg, headers={"content-type": "image/jpeg"})

        converter = converter_with(handler)
        blob = asyncio.run(converter.to_blob("https://cdn.example.com/shirt.jpg", "garment-2"))

        assert blob.mime_type == "image/png"
        assert blob.filename == "garment-2.png"
        assert blob.data.startswith(b"\x89PNG")

    def test_remote_fallback_converts_palette_images(self):
        gif = make_image_bytes(fmt="GIF", mode="P")

        def handler(request):
            if request.headers.get("origin"):
                raise httpx.ConnectError("blocked", request=request)
            return httpx.Response(200, content=gif)

        converter = converter_with(handler)
        blob = asyncio.run(converter.to_blob("https://cdn.example.com/anim.gif", "garment-1"))
        with Image.open(io.BytesIO(blob.data)) as img:
            assert img.format == "PNG"
            assert img.mode == "RGBA"

    def test_remote_failure(self):
        def handler(request):
            return httpx.Response(404)

        converter = converter_with(handler)
        with pytest.raises(BlobConversionError, match="garment-3"):
            asyncio.run(converter.to_blob("https://cdn.example.com/missing.jpg", "garment-3"))

    def test_malformed_url_names_the_image(self):
        calls = []
        converter = converter_with(lambda request: calls.append(request))
        with pytest.raises(BlobConversionError, match="garment-2"):
            asyncio.run(converter.to_blob("https://cdn.example.com/bad\x07name.jpg", "garment-2"))
        assert calls == []

    def test_remote_not_an_image(self):
        def handler(request):
            if request.headers.get("origin"):
                return httpx.Response(500)
            return httpx.Response(200, content=b"<html>nope</html>")

        converter = converter_with(handler)
        with pytest.raises(BlobConversionError):
            asyncio.run(converter.to_blob("https://cdn.example.com/page", "garment-1"))
