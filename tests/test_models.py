"""Tests for data models."""

import pytest

from tryon_widget.models import (
    BatchProgress,
    CartResult,
    CartSummary,
    DetectionMethod,
    GenerationMode,
    GenerationRecord,
    ImageRef,
    ItemStatus,
    OutfitResult,
    PerItemResult,
    SelectedGarment,
    StoreIdentity,
    infer_garment_type,
)


class TestGenerationMode:
    def test_bounds(self):
        assert GenerationMode.CART.min_items == 1
        assert GenerationMode.CART.max_items == 6
        assert GenerationMode.OUTFIT.min_items == 2
        assert GenerationMode.OUTFIT.max_items == 8

    def test_accepts(self):
        assert not GenerationMode.CART.accepts(0)
        assert GenerationMode.CART.accepts(1)
        assert GenerationMode.CART.accepts(6)
        assert not GenerationMode.CART.accepts(7)
        assert not GenerationMode.OUTFIT.accepts(1)
        assert GenerationMode.OUTFIT.accepts(8)
        assert not GenerationMode.OUTFIT.accepts(9)

    def test_from_string(self):
        assert GenerationMode.from_string("cart") == GenerationMode.CART
        assert GenerationMode.from_string(" Batch ") == GenerationMode.CART
        assert GenerationMode.from_string("OUTFIT") == GenerationMode.OUTFIT
        assert GenerationMode.from_string("look") == GenerationMode.OUTFIT

    def test_from_string_invalid(self):
        with pytest.raises(ValueError, match="Unknown generation mode"):
            GenerationMode.from_string("gallery")


class TestSelectedGarment:
    def test_roundtrip(self):
        garment = SelectedGarment(url="https://cdn.example.com/a.jpg", type="shirt", catalog_id="42")
        assert SelectedGarment.from_dict(garment.to_dict()) == garment

    def test_from_dict_accepts_numeric_id(self):
        garment = SelectedGarment.from_dict({"url": "https://cdn.example.com/a.jpg", "id": 42})
        assert garment.catalog_id == "42"


class TestImageRef:
    def test_prefers_hosted_url(self):
        ref = ImageRef(data_url="data:image/png;base64,AAAA", url="https://cdn.example.com/r.png")
        assert ref.src == "https://cdn.example.com/r.png"

    def test_from_payload_empty(self):
        assert ImageRef.from_payload({"image": "", "imageUrl": None}) is None

    def test_from_payload_inline(self):
        ref = ImageRef.from_payload({"image": "data:image/png;base64,AAAA"})
        assert ref.src == "data:image/png;base64,AAAA"


class TestPerItemResult:
    def test_error_item(self):
        item = PerItemResult.from_dict({
            "index": 1,
            "status": "error",
            "error": {"code": "GEN_FAILED", "message": "Model timeout"},
        })
        assert item.status == ItemStatus.ERROR
        assert item.error_code == "GEN_FAILED"
        assert item.error_message == "Model timeout"
        assert item.image is None

    def test_unknown_status_is_error(self):
        item = PerItemResult.from_dict({"index": 0, "status": "exploded"})
        assert item.status == ItemStatus.ERROR


class TestCartResult:
    def test_from_dict_with_summary(self):
        result = CartResult.from_dict({
            "requestId": "req-1",
            "results": [
                {"index": 0, "status": "success", "imageUrl": "https://cdn.example.com/0.png", "cached": True},
                {"index": 1, "status": "error", "error": {"message": "failed"}},
                {"index": 2, "status": "success", "image": "data:image/png;base64,AAAA"},
            ],
            "summary": {"totalGarments": 3, "successful": 2, "failed": 1, "cached": 1},
        })
        assert result.request_id == "req-1"
        assert len(result.successes) == 2
        assert len(result.failures) == 1
        assert result.summary.cached == 1

    def test_pads_missing_indices(self):
        result = CartResult.from_dict({
            "results": [{"index": 2, "status": "success", "imageUrl": "https://cdn.example.com/2.png"}],
            "summary": {"totalGarments": 3, "successful": 1},
        })
        assert [r.index for r in result.results] == [0, 1, 2]
        assert result.results[0].status == ItemStatus.PENDING
        assert result.results[2].status == ItemStatus.SUCCESS

    def test_missing_index_uses_position(self):
        result = CartResult.from_dict({
            "results": [
                {"status": "success", "imageUrl": "https://cdn.example.com/0.png"},
                {"status": "error", "error": {"message": "failed"}},
            ],
            "summary": {"totalGarments": 2, "successful": 1, "failed": 1},
        })
        assert len(result.results) == 2
        assert [r.index for r in result.results] == [0, 1]
        assert result.results[0].status == ItemStatus.SUCCESS
        assert result.results[1].status == ItemStatus.ERROR

    def test_drops_duplicate_and_out_of_range_indices(self):
        result = CartResult.from_dict({
            "results": [
                {"index": 0, "status": "success", "imageUrl": "https://cdn.example.com/0.png"},
                {"index": 0, "status": "error"},
                {"index": 5, "status": "success", "imageUrl": "https://cdn.example.com/5.png"},
                {"index": -1, "status": "success", "imageUrl": "https://cdn.example.com/x.png"},
            ],
            "summary": {"totalGarments": 2, "successful": 1},
        })
        assert [r.index for r in result.results] == [0, 1]
        assert result.results[0].status == ItemStatus.SUCCESS
        assert result.results[1].status == ItemStatus.PENDING

    def test_derives_summary_when_missing(self):
        result = CartResult.from_dict({
            "results": [
                {"index": 0, "status": "success", "imageUrl": "https://cdn.example.com/0.png"},
                {"index": 1, "status": "error"},
            ],
        })
        assert result.summary.total_garments == 2
        assert result.summary.successful == 1
        assert result.summary.failed == 1


class TestOutfitResult:
    def test_from_dict(self):
        result = OutfitResult.from_dict({
            "success": True,
            "data": {
                "imageUrl": "https://cdn.example.com/outfit.png",
                "cached": False,
                "garmentTypes": ["shirt", "pants"],
                "creditsDeducted": 1,
            },
        })
        assert result.image.src == "https://cdn.example.com/outfit.png"
        assert result.garment_types == ["shirt", "pants"]
        assert result.credits_deducted == 1

    def test_missing_image(self):
        with pytest.raises(ValueError):
            OutfitResult.from_dict({"success": True, "data": {}})


class TestBatchProgress:
    def test_estimate_defaults_to_ten_seconds_per_pending_item(self):
        progress = BatchProgress(total=3)
        assert progress.pending == 3
        assert progress.estimated_time_remaining == 30.0
        assert progress.percent == 0

    def test_counters_cannot_exceed_total(self):
        with pytest.raises(ValueError):
            BatchProgress(total=2, completed=2, failed=1)

    def test_from_summary(self):
        progress = BatchProgress.from_summary(CartSummary(total_garments=3, successful=2, failed=1))
        assert progress.completed == 2
        assert progress.failed == 1
        assert progress.is_settled
        assert progress.percent == 100
        assert progress.estimated_time_remaining == 0


class TestStoreIdentity:
    def test_store_name_prefers_shop_domain(self):
        identity = StoreIdentity(domain="shop.example.com", shop_domain="demo.myshopify.com")
        assert identity.store_name == "demo.myshopify.com"

    def test_is_resolved(self):
        assert not StoreIdentity().is_resolved
        assert not StoreIdentity(domain="x.com", method=DetectionMethod.POSTMESSAGE).is_resolved
        assert StoreIdentity(domain="x.com", method=DetectionMethod.REFERRER).is_resolved


class TestGenerationRecord:
    def test_from_dict(self):
        record = GenerationRecord.from_dict({
            "id": 7,
            "status": "completed",
            "personKey": "new_demo_person_1",
            "clothingKey": "123",
        })
        assert record.id == "7"
        assert record.is_completed
        assert record.clothing_key == "123"


class TestInferGarmentType:
    def test_title(self):
        assert infer_garment_type("Classic Denim Jeans") == "pants"
        assert infer_garment_type("Wool Blazer") == "jacket"

    def test_url_with_hyphens(self):
        assert infer_garment_type("https://cdn.example.com/files/blue-t-shirt-front.jpg") == "shirt"

    def test_whole_words_only(self):
        assert infer_garment_type("shortcut.png") is None
        assert infer_garment_type("hatband.jpg") is None

    def test_empty(self):
        assert infer_garment_type(None) is None
        assert infer_garment_type("") is None
