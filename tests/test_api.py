"""Tests for the generation API client."""

import asyncio
import json

import httpx
import pytest
from tenacity import wait_none

from tryon_widget.core.api import CONNECTION_ERROR_MESSAGE, TryOnClient
from tryon_widget.core.blobs import ImageBlob
from tryon_widget.errors import NetworkError, ValidationError
from tryon_widget.models import ItemStatus

BASE_URL = "https://api.example.com"

PERSON = ImageBlob(data=b"person", mime_type="image/jpeg", filename="person.jpg")


def garments(count):
    return [ImageBlob(data=f"g{i}".encode(), mime_type="image/png", filename=f"garment-{i + 1}.png") for i in range(count)]


def make_client(handler) -> TryOnClient:
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return TryOnClient(BASE_URL, client=http)


CART_RESPONSE = {
    "success": True,
    "requestId": "cart-1",
    "results": [
        {"index": 0, "status": "success", "imageUrl": "https://cdn.example.com/0.png", "cached": True},
        {"index": 1, "status": "error", "error": {"code": "GEN_FAILED", "message": "Model error"}},
    ],
    "summary": {"totalGarments": 2, "successful": 1, "failed": 1, "cached": 1, "totalCreditsDeducted": 1},
}


class TestClientConstruction:
    def test_requires_base_url(self):
        with pytest.raises(ValueError):
            TryOnClient("")

    def test_strips_trailing_slash(self):
        client = TryOnClient("https://api.example.com/", client=httpx.AsyncClient())
        assert client.base_url == "https://api.example.com"


class TestGenerateCart:
    def test_sends_multipart_request(self):
        captured = {}

        def handler(request):
            captured["request"] = request
            captured["body"] = request.read()
            return httpx.Response(200, json=CART_RESPONSE)

        client = make_client(handler)
        result = asyncio.run(client.generate_cart(
            PERSON,
            garments(2),
            "demo",
            garment_keys=["101", "102"],
            person_key="new_demo_person_1",
        ))

        request = captured["request"]
        body = captured["body"]
        assert request.method == "POST"
        assert request.url.path == "/api/fashion-photo/cart"
        assert request.url.params["shop"] == "demo.myshopify.com"
        assert body.count(b'name="garmentImages"') == 2
        assert body.count(b'name="personImage"') == 1
        assert b"101,102" in body
        assert b"new_demo_person_1" in body
        assert b"1:1" in body

        assert result.request_id == "cart-1"
        assert result.summary.successful == 1
        assert result.results[1].status == ItemStatus.ERROR
        assert result.results[1].error_message == "Model error"

    def test_garment_count_validated_before_request(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(200, json=CART_RESPONSE)

        client = make_client(handler)
        with pytest.raises(ValidationError, match="between 1 and 6"):
            asyncio.run(client.generate_cart(PERSON, garments(7), "demo"))
        with pytest.raises(ValidationError):
            asyncio.run(client.generate_cart(PERSON, [], "demo"))
        assert calls == []

    def test_http_error_with_message(self):
        def handler(request):
            return httpx.Response(402, json={"error": {"code": "NO_CREDITS", "message": "Insufficient credits"}})

        client = make_client(handler)
        with pytest.raises(NetworkError) as exc_info:
            asyncio.run(client.generate_cart(PERSON, garments(1), "demo"))
        assert str(exc_info.value) == "Insufficient credits"
        assert exc_info.value.status_code == 402
        assert exc_info.value.code == "NO_CREDITS"

    def test_http_error_without_body(self):
        def handler(request):
            return httpx.Response(500)

        client = make_client(handler)
        with pytest.raises(NetworkError, match="HTTP 500"):
            asyncio.run(client.generate_cart(PERSON, garments(1), "demo"))

    def test_transport_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        client = make_client(handler)
        with pytest.raises(NetworkError) as exc_info:
            asyncio.run(client.generate_cart(PERSON, garments(1), "demo"))
        assert str(exc_info.value) == CONNECTION_ERROR_MESSAGE

    def test_empty_body(self):
        def handler(request):
            return httpx.Response(200, content=b"")

        client = make_client(handler)
        with pytest.raises(NetworkError, match="Empty response body"):
            asyncio.run(client.generate_cart(PERSON, garments(1), "demo"))

    def test_invalid_json(self):
        def handler(request):
            return httpx.Response(200, content=b"<html>")

        client = make_client(handler)
        with pytest.raises(NetworkError, match="Failed to parse server response"):
            asyncio.run(client.generate_cart(PERSON, garments(1), "demo"))


class TestGenerateOutfit:
    def test_success(self):
        captured = {}

        def handler(request):
            captured["path"] = request.url.path
            captured["body"] = request.read()
            return httpx.Response(200, json={
                "success": True,
                "data": {"imageUrl": "https://cdn.example.com/outfit.png", "garmentTypes": ["shirt", "pants"]},
            })

        client = make_client(handler)
        result = asyncio.run(client.generate_outfit(PERSON, garments(2), ["shirt", "pants"], "demo.myshopify.com"))

        assert captured["path"] == "/api/fashion-photo/outfit"
        assert b"shirt,pants" in captured["body"]
        assert result.image.src == "https://cdn.example.com/outfit.png"

    def test_requires_two_garments(self):
        client = make_client(lambda request: httpx.Response(500))
        with pytest.raises(ValidationError, match="between 2 and 8"):
            asyncio.run(client.generate_outfit(PERSON, garments(1), [], "demo"))

    def test_unsuccessful_payload(self):
        def handler(request):
            return httpx.Response(200, json={"success": False, "error": {"code": "BAD", "message": "Could not combine"}})

        client = make_client(handler)
        with pytest.raises(NetworkError, match="Could not combine"):
            asyncio.run(client.generate_outfit(PERSON, garments(2), [], "demo"))

    def test_missing_image(self):
        client = make_client(lambda request: httpx.Response(200, json={"success": True, "data": {}}))
        with pytest.raises(NetworkError, match="Failed to parse server response"):
            asyncio.run(client.generate_outfit(PERSON, garments(2), [], "demo"))


class TestHistoryEndpoints:
    def test_fetch_image_generations(self):
        captured = {}

        def handler(request):
            captured["params"] = dict(request.url.params)
            return httpx.Response(200, json={
                "status": "success",
                "data": {"records": [
                    {"id": "1", "status": "completed", "personKey": "p1", "clothingKey": "g1"},
                    {"id": "2", "status": "pending", "personKey": "p2", "clothingKey": "g2"},
                ]},
            })

        client = make_client(handler)
        records = asyncio.run(client.fetch_image_generations(store_name="demo.myshopify.com", limit=10))

        assert captured["params"]["limit"] == "10"
        assert captured["params"]["storeName"] == "demo.myshopify.com"
        assert captured["params"]["orderDirection"] == "DESC"
        assert [r.id for r in records] == ["1", "2"]
        assert records[0].is_completed

    def test_get_retries_transient_failures(self, monkeypatch):
        monkeypatch.setattr(TryOnClient._get_with_retry.retry, "wait", wait_none())
        attempts = []

        def handler(request):
            attempts.append(request)
            if len(attempts) < 3:
                raise httpx.ReadTimeout("slow", request=request)
            return httpx.Response(200, json={"data": {"records": []}})

        client = make_client(handler)
        assert asyncio.run(client.fetch_image_generations()) == []
        assert len(attempts) == 3

    def test_get_gives_up_after_three_attempts(self, monkeypatch):
        monkeypatch.setattr(TryOnClient._get_with_retry.retry, "wait", wait_none())
        attempts = []

        def handler(request):
            attempts.append(request)
            raise httpx.ConnectTimeout("down", request=request)

        client = make_client(handler)
        with pytest.raises(NetworkError):
            asyncio.run(client.fetch_image_generations())
        assert len(attempts) == 3

    def test_key_mappings_requires_a_key(self):
        client = make_client(lambda request: httpx.Response(200, json={}))
        with pytest.raises(ValidationError):
            asyncio.run(client.fetch_key_mappings(clothing_key=" ", person_key=None))

    def test_key_mappings(self):
        def handler(request):
            assert request.url.params["clothingKey"] == "g1"
            return httpx.Response(200, content=json.dumps({
                "status": "success",
                "data": {"clothingKey": "g1", "personKeys": ["p1", "p2"]},
            }).encode())

        client = make_client(handler)
        data = asyncio.run(client.fetch_key_mappings(clothing_key="g1"))
        assert data["personKeys"] == ["p1", "p2"]

    def test_key_mappings_error_status(self):
        def handler(request):
            return httpx.Response(200, json={
                "status": "error",
                "error_message": {"code": "NOT_FOUND", "message": "Unknown key"},
            })

        client = make_client(handler)
        with pytest.raises(NetworkError, match="Unknown key"):
            asyncio.run(client.fetch_key_mappings(person_key="p9"))
