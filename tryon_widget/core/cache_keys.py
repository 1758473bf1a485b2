"""
Cache key correlation between person photos and garment images.

Keys are advisory: they tell the UI a generation is likely to be served from
the server-side cache. They never cause a request to be skipped.
"""

from typing import Iterable, Mapping, Optional, Union

from ..models import GenerationRecord

CatalogId = Union[str, int, None]


def normalize_key(value: CatalogId) -> str:
    """Stringify and trim a catalog identifier. Missing values become ""."""
    if value is None:
        return ""
    return str(value).strip()


def pair_key(person_id: CatalogId, garment_id: CatalogId) -> str:
    """Compose `<person>-<garment>`, or "" when either side is empty."""
    person = normalize_key(person_id)
    garment = normalize_key(garment_id)
    if not person or not garment:
        return ""
    return f"{person}-{garment}"


class CatalogIndex:
    """Maps image URLs to catalog identifiers.

    Filled from the host page's product image list; only the latest list
    received is kept.
    """

    def __init__(self, mapping: Optional[Mapping[str, CatalogId]] = None):
        self._ids: dict[str, str] = {}
        if mapping:
            self.replace(mapping)

    def replace(self, mapping: Mapping[str, CatalogId]) -> None:
        self._ids = {}
        for url, catalog_id in mapping.items():
            key = normalize_key(catalog_id)
            if url and key:
                self._ids[url] = key

    def get(self, url: Optional[str]) -> Optional[str]:
        if not url:
            return None
        return self._ids.get(url)

    def __contains__(self, url: str) -> bool:
        return url in self._ids

    def __len__(self) -> int:
        return len(self._ids)


class CacheKeyCorrelator:
    """Membership tests against sets of already generated identities."""

    def __init__(
        self,
        person_keys: Iterable[CatalogId] = (),
        garment_keys: Iterable[CatalogId] = (),
        pairs: Iterable[str] = (),
    ):
        self.person_keys = {k for k in map(normalize_key, person_keys) if k}
        self.garment_keys = {k for k in map(normalize_key, garment_keys) if k}
        self.pairs = {p.strip() for p in pairs if p and p.strip()}

    @classmethod
    def from_records(cls, records: Iterable[GenerationRecord]) -> "CacheKeyCorrelator":
        """Build the sets from completed generation records."""
        person_keys = set()
        garment_keys = set()
        pairs = set()
        for record in records:
            if not record.is_completed:
                continue
            person = normalize_key(record.person_key)
            garment = normalize_key(record.clothing_key)
            if person:
                person_keys.add(person)
            if garment:
                garment_keys.add(garment)
            combined = pair_key(person, garment)
            if combined:
                pairs.add(combined)
        return cls(person_keys, garment_keys, pairs)

    def has_garment(self, garment_id: CatalogId) -> bool:
        key = normalize_key(garment_id)
        return bool(key) and key in self.garment_keys

    def has_person(self, person_id: CatalogId) -> bool:
        key = normalize_key(person_id)
        return bool(key) and key in self.person_keys

    def has_pair(self, person_id: CatalogId, garment_id: CatalogId) -> bool:
        key = pair_key(person_id, garment_id)
        return bool(key) and key in self.pairs

    def is_garment_generated(self, image_url: str, catalog: CatalogIndex) -> bool:
        """Whether the garment behind an image URL has been generated before."""
        return self.has_garment(catalog.get(image_url))

    def is_person_generated(self, demo_url: Optional[str], demo_photo_ids: Mapping[str, str]) -> bool:
        if not demo_url:
            return False
        return self.has_person(demo_photo_ids.get(demo_url))

    def has_cached_combination(
        self,
        demo_url: Optional[str],
        garment_url: Optional[str],
        catalog: CatalogIndex,
        demo_photo_ids: Mapping[str, str],
    ) -> bool:
        """Whether this person/garment pair already exists server-side."""
        if not demo_url or not garment_url:
            return False
        return self.has_pair(demo_photo_ids.get(demo_url), catalog.get(garment_url))
