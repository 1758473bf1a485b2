"""
Data models for the try-on widget.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional
import re


class GenerationMode(Enum):
    """Generation mode.

    CART produces one independent image per selected garment.
    OUTFIT combines every selected garment into a single image.
    """

    CART = "cart"
    OUTFIT = "outfit"

    @property
    def min_items(self) -> int:
        return 1 if self is GenerationMode.CART else 2

    @property
    def max_items(self) -> int:
        return 6 if self is GenerationMode.CART else 8

    def accepts(self, count: int) -> bool:
        """Check whether a garment count is within this mode's bounds."""
        return self.min_items <= count <= self.max_items

    @classmethod
    def from_string(cls, value: str) -> "GenerationMode":
        """Parse a mode name, accepting a few aliases."""
        normalized = value.strip().lower().replace("-", "_")
        if normalized in ("cart", "batch", "multiple"):
            return cls.CART
        if normalized in ("outfit", "look"):
            return cls.OUTFIT
        raise ValueError(f"Unknown generation mode: {value}")


class PhotoSource(Enum):
    UPLOAD = "upload"
    DEMO = "demo"


class ItemStatus(Enum):
    PENDING = "pending"
    SUCCESS = "success"
    ERROR = "error"


class DetectionMethod(Enum):
    """How the hosting store was identified, most reliable first."""

    URL_PARAM = "url-param"
    REFERRER = "referrer"
    POSTMESSAGE = "postmessage"
    PARENT_REQUEST = "parent-request"
    UNKNOWN = "unknown"


@dataclass
class SelectedGarment:
    """A garment image picked by the shopper. Identity is the URL."""

    url: str
    type: Optional[str] = None
    catalog_id: Optional[str] = None
    title: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "url": self.url,
            "type": self.type,
            "catalog_id": self.catalog_id,
            "title": self.title,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "SelectedGarment":
        catalog_id = data.get("catalog_id", data.get("id"))
        return cls(
            url=data["url"],
            type=data.get("type"),
            catalog_id=str(catalog_id) if catalog_id is not None else None,
            title=data.get("title"),
        )


@dataclass
class PersonPhoto:
    """The active person photo. Selecting a new one replaces it."""

    data_url: str
    source_kind: PhotoSource = PhotoSource.UPLOAD
    demo_url: Optional[str] = None

    @property
    def is_demo(self) -> bool:
        return self.source_kind is PhotoSource.DEMO


@dataclass
class ImageRef:
    """A result image, either inline (data URL) or hosted (URL)."""

    data_url: Optional[str] = None
    url: Optional[str] = None

    @property
    def src(self) -> Optional[str]:
        """Preferred source for rendering: hosted URL first, then inline data."""
        return self.url or self.data_url

    def __bool__(self) -> bool:
        return bool(self.data_url or self.url)

    @classmethod
    def from_payload(cls, data: dict) -> Optional["ImageRef"]:
        """Read whichever of `image` / `imageUrl` the server filled in."""
        ref = cls(data_url=data.get("image") or None, url=data.get("imageUrl") or None)
        return ref if ref else None


@dataclass
class PerItemResult:
    """Result for one garment in a cart batch."""

    index: int
    status: ItemStatus = ItemStatus.PENDING
    image: Optional[ImageRef] = None
    cached: bool = False
    processing_time: int = 0  # ms
    garment_key: Optional[str] = None
    credits_deducted: int = 0
    error_code: Optional[str] = None
    error_message: Optional[str] = None

    @property
    def is_success(self) -> bool:
        return self.status is ItemStatus.SUCCESS

    @classmethod
    def from_dict(cls, data: dict, position: int = 0) -> "PerItemResult":
        """`position` is the entry's place in the list, used when the server omits `index`."""
        try:
            status = ItemStatus(data.get("status", "pending"))
        except ValueError:
            status = ItemStatus.ERROR
        error = data.get("error") or {}
        garment_key = data.get("garmentKey")
        return cls(
            index=int(data["index"]) if data.get("index") is not None else position,
            status=status,
            image=ImageRef.from_payload(data),
            cached=bool(data.get("cached", False)),
            processing_time=int(data.get("processingTime") or 0),
            garment_key=str(garment_key) if garment_key is not None else None,
            credits_deducted=int(data.get("creditsDeducted") or 0),
            error_code=error.get("code"),
            error_message=error.get("message"),
        )


@dataclass
class CartSummary:
    total_garments: int
    successful: int = 0
    failed: int = 0
    cached: int = 0
    credits_deducted: int = 0
    processing_time: int = 0

    @classmethod
    def from_dict(cls, data: dict) -> "CartSummary":
        return cls(
            total_garments=int(data.get("totalGarments", 0)),
            successful=int(data.get("successful", 0)),
            failed=int(data.get("failed", 0)),
            cached=int(data.get("cached", 0)),
            credits_deducted=int(data.get("totalCreditsDeducted", 0)),
            processing_time=int(data.get("processingTime", 0)),
        )


@dataclass
class CartResult:
    """Cart mode response: one result per garment plus a summary."""

    results: list[PerItemResult]
    summary: CartSummary
    request_id: Optional[str] = None

    @property
    def successes(self) -> list[PerItemResult]:
        return [r for r in self.results if r.is_success]

    @property
    def failures(self) -> list[PerItemResult]:
        return [r for r in self.results if r.status is ItemStatus.ERROR]

    @classmethod
    def from_dict(cls, data: dict) -> "CartResult":
        results = []
        seen = set()
        for position, item in enumerate(data.get("results") or []):
            result = PerItemResult.from_dict(item, position)
            if result.index in seen:
                continue
            seen.add(result.index)
            results.append(result)

        summary_data = data.get("summary")
        if summary_data:
            summary = CartSummary.from_dict(summary_data)
        else:
            successful = sum(1 for r in results if r.is_success)
            summary = CartSummary(
                total_garments=len(results),
                successful=successful,
                failed=sum(1 for r in results if r.status is ItemStatus.ERROR),
                cached=sum(1 for r in results if r.cached),
            )

        # Exactly one entry per garment: drop strays, pad gaps
        results = [r for r in results if 0 <= r.index < summary.total_garments]
        known = {r.index for r in results}
        for index in range(summary.total_garments):
            if index not in known:
                results.append(PerItemResult(index=index))
        results.sort(key=lambda r: r.index)

        return cls(results=results, summary=summary, request_id=data.get("requestId"))


@dataclass
class OutfitResult:
    """Outfit mode response: a single combined image."""

    image: ImageRef
    cached: bool = False
    garment_types: list[str] = field(default_factory=list)
    processing_time: int = 0
    credits_deducted: int = 0
    request_id: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict) -> "OutfitResult":
        payload = data.get("data") or {}
        image = ImageRef.from_payload(payload)
        if image is None:
            raise ValueError("Outfit response contains no image")
        return cls(
            image=image,
            cached=bool(payload.get("cached", False)),
            garment_types=list(payload.get("garmentTypes") or []),
            processing_time=int(payload.get("processingTime") or 0),
            credits_deducted=int(payload.get("creditsDeducted") or 0),
            request_id=payload.get("requestId"),
        )


@dataclass
class BatchProgress:
    """Aggregate counters for a cart generation cycle."""

    SECONDS_PER_ITEM = 10.0

    total: int
    completed: int = 0
    failed: int = 0
    estimated_time_remaining: Optional[float] = None  # seconds

    def __post_init__(self):
        if self.completed + self.failed > self.total:
            raise ValueError(
                f"Progress counters exceed total: {self.completed} + {self.failed} > {self.total}"
            )
        if self.estimated_time_remaining is None:
            self.estimated_time_remaining = self.pending * self.SECONDS_PER_ITEM

    @property
    def pending(self) -> int:
        return self.total - self.completed - self.failed

    @property
    def is_settled(self) -> bool:
        return self.pending == 0

    @property
    def percent(self) -> int:
        """Resolved items as a rounded percentage of the batch."""
        if self.total <= 0:
            return 0
        return round((self.completed + self.failed) / self.total * 100)

    @classmethod
    def from_summary(cls, summary: CartSummary) -> "BatchProgress":
        total = max(summary.total_garments, summary.successful + summary.failed)
        return cls(total=total, completed=summary.successful, failed=summary.failed)


@dataclass
class StoreIdentity:
    """Identity of the storefront hosting the widget."""

    domain: Optional[str] = None
    full_url: Optional[str] = None
    shop_domain: Optional[str] = None
    origin: Optional[str] = None
    method: DetectionMethod = DetectionMethod.UNKNOWN

    @property
    def store_name(self) -> str:
        """Name sent to the API for credit tracking."""
        return self.shop_domain or self.domain or ""

    @property
    def is_resolved(self) -> bool:
        return self.method not in (DetectionMethod.UNKNOWN, DetectionMethod.POSTMESSAGE)

    def to_dict(self) -> dict:
        return {
            "domain": self.domain,
            "full_url": self.full_url,
            "shop_domain": self.shop_domain,
            "origin": self.origin,
            "method": self.method.value,
        }


@dataclass
class GenerationRecord:
    """A past generation as listed by the image-generations endpoint."""

    id: str
    status: str
    person_key: Optional[str] = None
    clothing_key: Optional[str] = None
    store_name: Optional[str] = None
    generated_image_url: Optional[str] = None

    @property
    def is_completed(self) -> bool:
        return self.status == "completed"

    @classmethod
    def from_dict(cls, data: dict) -> "GenerationRecord":
        return cls(
            id=str(data.get("id", "")),
            status=data.get("status", ""),
            person_key=data.get("personKey"),
            clothing_key=data.get("clothingKey"),
            store_name=data.get("storeName"),
            generated_image_url=data.get("generatedImageUrl"),
        )


GARMENT_TYPES = (
    "shirt",
    "pants",
    "shorts",
    "dress",
    "jacket",
    "sweater",
    "cap",
    "hat",
    "shoes",
    "boots",
    "accessories",
    "belt",
    "bag",
    "scarf",
)

GARMENT_TYPE_KEYWORDS = {
    "shirt": ["shirt", "t-shirt", "tshirt", "blouse", "top", "tee"],
    "pants": ["pants", "trousers", "jeans", "slacks"],
    "shorts": ["shorts", "short"],
    "dress": ["dress", "gown", "frock"],
    "jacket": ["jacket", "coat", "blazer"],
    "sweater": ["sweater", "pullover", "jumper", "cardigan"],
    "cap": ["cap", "baseball cap"],
    "hat": ["hat", "beanie", "beret"],
    "shoes": ["shoes", "sneakers", "trainers", "footwear"],
    "boots": ["boots", "boot"],
    "accessories": ["accessories", "jewelry", "watch"],
    "belt": ["belt", "waistband"],
    "bag": ["bag", "handbag", "purse", "backpack"],
    "scarf": ["scarf", "shawl"],
}


def infer_garment_type(text: Optional[str]) -> Optional[str]:
    """Guess a garment type from a title or image URL.

    Matches whole words only, so "shortcut" is not "shorts" and
    "hatband.jpg" is not "hat". Returns None when nothing matches.
    """
    if not text:
        return None
    words = [w for w in re.split(r"[^a-z0-9]+", text.lower()) if w]
    padded = f" {' '.join(words)} "
    for garment_type in GARMENT_TYPES:
        for keyword in GARMENT_TYPE_KEYWORDS[garment_type]:
            phrase = keyword.replace("-", " ")
            if f" {phrase} " in padded:
                return garment_type
    return None
