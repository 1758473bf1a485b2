"""
Generation orchestrator for the try-on widget.

Owns the mode, the selected person photo and garments, and one generation
cycle at a time:

    idle -> ready -> generating -> success | partial_success | failure

Errors never leave the orchestrator as exceptions. They land in `error`
and `status_message`, and listeners are notified after every change.
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Union

from .bridge.frame import FrameBridge
from .config import Config
from .core.api import TryOnClient
from .core.blobs import BlobConverter
from .core.cache_keys import CacheKeyCorrelator, CatalogIndex
from .demo_photos import DEMO_PHOTO_IDS
from .errors import BlobConversionError, TryOnError, ValidationError
from .models import (
    BatchProgress,
    CartResult,
    GenerationMode,
    OutfitResult,
    PersonPhoto,
    PhotoSource,
    SelectedGarment,
    StoreIdentity,
    infer_garment_type,
)
from .progress import ProgressTicker

logger = logging.getLogger(__name__)

UNEXPECTED_ERROR_MESSAGE = "An unexpected error occurred."
WELCOME_MESSAGE = "Upload your photo, then select the items to try on."


class Phase(Enum):
    IDLE = "idle"
    READY = "ready"
    GENERATING = "generating"
    SUCCESS = "success"
    PARTIAL_SUCCESS = "partial_success"
    FAILURE = "failure"


def _plural(count: int, word: str) -> str:
    return f"{count} {word}{'s' if count != 1 else ''}"


@dataclass
class OrchestratorSettings:
    """Behaviour switches, usually taken from `Config.defaults`."""

    default_mode: GenerationMode = GenerationMode.CART
    default_version_hint: int = 1
    progress_tick_seconds: float = 1.0
    cancel_on_dispose: bool = False
    auto_detect_garment_types: bool = True

    @classmethod
    def from_config(cls, config: Config) -> "OrchestratorSettings":
        return cls(
            default_mode=GenerationMode.from_string(config.defaults.mode),
            default_version_hint=config.defaults.version_hint,
            progress_tick_seconds=config.defaults.progress_tick_seconds,
            cancel_on_dispose=config.defaults.cancel_on_dispose,
            auto_detect_garment_types=config.defaults.auto_detect_garment_types,
        )


class GenerationOrchestrator:
    """State machine turning a photo and garments into try-on results.

    Usage:
        orchestrator = GenerationOrchestrator(client, converter, bridge=bridge)
        orchestrator.subscribe(render)
        orchestrator.set_photo(data_url)
        orchestrator.select_garment(SelectedGarment(url=...))
        await orchestrator.generate()
        ...
        await orchestrator.dispose()
    """

    def __init__(
        self,
        client: TryOnClient,
        converter: BlobConverter,
        bridge: Optional[FrameBridge] = None,
        correlator: Optional[CacheKeyCorrelator] = None,
        settings: Optional[OrchestratorSettings] = None,
        demo_photo_ids: Optional[dict] = None,
        store_identity: Optional[StoreIdentity] = None,
        catalog: Optional[CatalogIndex] = None,
    ):
        """
        Initialize the orchestrator.

        Args:
            client: Generation API client
            converter: Image reference to payload converter
            bridge: Host page bridge; supplies store identity and catalog ids when given
            correlator: Sets of already generated keys, for cache hints
            settings: Behaviour switches
            demo_photo_ids: Demo photo URL -> person key
            store_identity: Store identity when known up front (overrides the bridge)
            catalog: Image URL -> garment key, used when there is no bridge
        """
        self.client = client
        self.converter = converter
        self.bridge = bridge
        self.correlator = correlator or CacheKeyCorrelator()
        self.settings = settings or OrchestratorSettings()
        self.demo_photo_ids = demo_photo_ids if demo_photo_ids is not None else DEMO_PHOTO_IDS
        self._store_identity = store_identity
        self._catalog = catalog or CatalogIndex()

        self.mode = self.settings.default_mode
        self.version_hint = self.settings.default_version_hint
        self.photo: Optional[PersonPhoto] = None
        self.garments: list[SelectedGarment] = []
        self.cart_result: Optional[CartResult] = None
        self.outfit_result: Optional[OutfitResult] = None
        self.progress = 0
        self.batch_progress: Optional[BatchProgress] = None
        self.error: Optional[str] = None
        self.status_message = WELCOME_MESSAGE
        self.status_variant = "info"

        self._generating = False
        self._cycle = 0
        self._inflight: Optional[asyncio.Task] = None
        self._ticker = ProgressTicker(self._on_tick, interval=self.settings.progress_tick_seconds)
        self._listeners: list[Callable[["GenerationOrchestrator"], None]] = []
        self._disposed = False

    # Derived state

    @property
    def min_items(self) -> int:
        return self.mode.min_items

    @property
    def max_items(self) -> int:
        return self.mode.max_items

    @property
    def is_generating(self) -> bool:
        return self._generating

    @property
    def can_generate(self) -> bool:
        return (
            not self._generating
            and self.photo is not None
            and self.mode.accepts(len(self.garments))
        )

    @property
    def phase(self) -> Phase:
        if self._generating:
            return Phase.GENERATING
        if self.cart_result is not None:
            summary = self.cart_result.summary
            if summary.successful == 0:
                return Phase.FAILURE
            if summary.successful < summary.total_garments:
                return Phase.PARTIAL_SUCCESS
            return Phase.SUCCESS
        if self.outfit_result is not None:
            return Phase.SUCCESS
        if self.photo is not None and self.mode.accepts(len(self.garments)):
            return Phase.READY
        return Phase.IDLE

    @property
    def store_identity(self) -> StoreIdentity:
        if self._store_identity is not None:
            return self._store_identity
        if self.bridge is not None:
            return self.bridge.store_identity
        return StoreIdentity()

    @property
    def catalog(self) -> CatalogIndex:
        if self.bridge is not None:
            return self.bridge.catalog
        return self._catalog

    @property
    def person_key(self) -> Optional[str]:
        """Catalog id of the active photo; only demo photos have one."""
        if self.photo is None or not self.photo.is_demo:
            return None
        return self.demo_photo_ids.get(self.photo.demo_url) or None

    def garment_keys(self) -> list[str]:
        """Catalog ids of selected garments that have one."""
        keys = []
        for garment in self.garments:
            key = garment.catalog_id or self.catalog.get(garment.url)
            if key:
                keys.append(key)
        return keys

    def is_garment_generated(self, image_url: str) -> bool:
        return self.correlator.is_garment_generated(image_url, self.catalog)

    def cached_garment_indices(self) -> list[int]:
        """Selected garments whose pairing with the active photo already exists."""
        person_key = self.person_key
        if not person_key:
            return []
        indices = []
        for index, garment in enumerate(self.garments):
            garment_key = garment.catalog_id or self.catalog.get(garment.url)
            if self.correlator.has_pair(person_key, garment_key):
                indices.append(index)
        return indices

    @property
    def cache_hint(self) -> bool:
        """Whether the next generation is likely served from cache. Advisory only."""
        return bool(self.garments) and len(self.cached_garment_indices()) == len(self.garments)

    # Listeners

    def subscribe(self, listener: Callable[["GenerationOrchestrator"], None]) -> Callable[[], None]:
        """Call `listener(orchestrator)` after every state change."""
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener) if listener in self._listeners else None

    def _notify(self) -> None:
        if self._disposed:
            return
        for listener in list(self._listeners):
            listener(self)

    def _info(self, message: str) -> None:
        self.status_variant = "info"
        self.status_message = message

    def _report_error(self, message: str) -> None:
        self.error = message
        self.status_variant = "error"
        self.status_message = message

    def _selection_locked(self, operation: str) -> bool:
        if self._generating or self._disposed:
            logger.debug(f"Ignoring {operation} while a generation is in flight")
            return True
        return False

    # Selection

    def set_mode(self, mode: Union[GenerationMode, str]) -> bool:
        """Switch mode, discarding garments, results and errors."""
        if self._selection_locked("mode change"):
            return False
        if isinstance(mode, str):
            mode = GenerationMode.from_string(mode)

        self.mode = mode
        self.garments = []
        self.cart_result = None
        self.outfit_result = None
        self.batch_progress = None
        self.progress = 0
        self.error = None
        label = "Cart" if mode is GenerationMode.CART else "Outfit"
        self._info(f"{label} mode selected. Select {mode.min_items}-{mode.max_items} items.")
        self._notify()
        return True

    def set_photo(self, data_url: str, demo_url: Optional[str] = None) -> bool:
        """Replace the person photo. `demo_url` marks it as one of the demo photos."""
        if self._selection_locked("photo change"):
            return False
        if demo_url:
            self.photo = PersonPhoto(data_url=data_url, source_kind=PhotoSource.DEMO, demo_url=demo_url)
        else:
            self.photo = PersonPhoto(data_url=data_url)
        self._info("Photo loaded. Select the items to try on.")
        self._notify()
        return True

    def select_garment(self, item: Union[SelectedGarment, str]) -> bool:
        """Append a garment. Ignored at capacity; duplicates are allowed."""
        if self._selection_locked("garment selection"):
            return False
        if len(self.garments) >= self.max_items:
            return False
        if isinstance(item, str):
            item = SelectedGarment(url=item)

        self.garments.append(item)
        self._info(f"{_plural(len(self.garments), 'item')} selected.")
        self._notify()
        return True

    def deselect_garment(self, index: int) -> bool:
        """Remove the garment at `index`."""
        if self._selection_locked("garment removal"):
            return False
        if index < 0 or index >= len(self.garments):
            return False

        del self.garments[index]
        count = len(self.garments)
        self._info(f"{_plural(count, 'item')} selected." if count else "No items selected.")
        self._notify()
        return True

    def set_version_hint(self, version: int) -> bool:
        if self._selection_locked("version change"):
            return False
        if version not in (1, 2):
            raise ValueError(f"Version hint must be 1 or 2, got {version}")
        self.version_hint = version
        self._notify()
        return True

    def set_store_identity(self, identity: StoreIdentity) -> None:
        self._store_identity = identity
        self._notify()

    # Generation

    def _validate(self) -> None:
        if self.photo is None or len(self.garments) < self.min_items:
            raise ValidationError(
                f"Generation requires a photo and at least {_plural(self.min_items, 'item')} selected."
            )
        if len(self.garments) > self.max_items:
            raise ValidationError(f"{self.mode.value.capitalize()} mode accepts at most {_plural(self.max_items, 'item')}.")
        if not self.store_identity.store_name:
            raise ValidationError("Store information not available.")

    def _garment_types(self) -> list[str]:
        types = []
        for garment in self.garments:
            garment_type = garment.type
            if not garment_type and self.settings.auto_detect_garment_types:
                garment_type = infer_garment_type(garment.title) or infer_garment_type(garment.url)
            if garment_type:
                types.append(garment_type)
        return types

    def _on_tick(self, value: int) -> None:
        self.progress = value
        self._notify()

    async def generate(self) -> Optional[Union[CartResult, OutfitResult]]:
        """
        Run one generation cycle with the current selection.

        Returns the result, or None when the cycle failed, was ignored
        (already generating) or was abandoned (reset/dispose).
        """
        if self._generating or self._disposed:
            logger.debug("Ignoring re-entrant generate()")
            return None

        try:
            self._validate()
        except ValidationError as e:
            self._report_error(str(e))
            self._notify()
            return None

        self._cycle += 1
        cycle = self._cycle
        mode = self.mode
        photo = self.photo
        garments = list(self.garments)
        store_name = self.store_identity.store_name

        self._generating = True
        self.error = None
        self.progress = 0
        self.cart_result = None
        self.outfit_result = None
        self.batch_progress = None
        self._info("Preparing images...")
        self._notify()

        try:
            person_blob = await self.converter.to_blob(photo.data_url, "person")
            garment_blobs = []
            for index, garment in enumerate(garments):
                garment_blobs.append(await self.converter.to_blob(garment.url, f"garment-{index + 1}"))
            if cycle != self._cycle:
                return None

            person_key = self.person_key
            garment_keys = self.garment_keys() or None
            logger.info(
                f"Dispatching {mode.value} generation: {len(garment_blobs)} garment(s), "
                f"person key {person_key or 'none'}, {len(garment_keys or [])} garment key(s), "
                f"cache hint {self.cache_hint}"
            )

            if mode is GenerationMode.CART:
                result = await self._run_cart(cycle, person_blob, garment_blobs, store_name, garment_keys, person_key)
            else:
                result = await self._run_outfit(cycle, person_blob, garment_blobs, store_name, garment_keys, person_key)
            return result

        except BlobConversionError as e:
            if cycle == self._cycle:
                logger.warning(f"Image preparation failed: {e}")
                self._report_error(str(e))
            return None
        except TryOnError as e:
            if cycle == self._cycle:
                logger.error(f"{mode.value} generation failed: {e}")
                self._report_error(str(e))
                self.progress = 0
                self.batch_progress = None
            return None
        except Exception:
            # Listeners only ever see a message
            logger.exception(f"Unexpected failure during {mode.value} generation")
            if cycle == self._cycle:
                self._report_error(UNEXPECTED_ERROR_MESSAGE)
                self.progress = 0
                self.batch_progress = None
            return None
        except asyncio.CancelledError:
            if self._disposed or cycle != self._cycle:
                logger.info(f"Generation cycle {cycle} cancelled")
                return None
            raise
        finally:
            if cycle == self._cycle:
                self._ticker.stop()
                self._inflight = None
                self._generating = False
                self._notify()

    async def _await_inflight(self, coro):
        self._inflight = asyncio.ensure_future(coro)
        return await self._inflight

    async def _run_cart(self, cycle, person_blob, garment_blobs, store_name, garment_keys, person_key):
        self.batch_progress = BatchProgress(total=len(garment_blobs))
        self._info(f"Generating {_plural(len(garment_blobs), 'image')}...")
        self._notify()

        result = await self._await_inflight(self.client.generate_cart(
            person_blob,
            garment_blobs,
            store_name,
            garment_keys=garment_keys,
            person_key=person_key,
            version=self.version_hint,
        ))
        if cycle != self._cycle or self._disposed:
            logger.info(f"Discarding result of abandoned cycle {cycle}")
            return None

        self.cart_result = result
        self.batch_progress = BatchProgress.from_summary(result.summary)
        self.progress = self.batch_progress.percent

        summary = result.summary
        message = f"{_plural(summary.successful, 'image')} generated successfully."
        if summary.failed:
            message += f" {summary.failed} failed."
        self._info(message)
        logger.info(
            f"Cart generation settled: {summary.successful}/{summary.total_garments} succeeded, "
            f"{summary.failed} failed, {summary.cached} cached"
        )
        return result

    async def _run_outfit(self, cycle, person_blob, garment_blobs, store_name, garment_keys, person_key):
        garment_types = self._garment_types()
        self._info("Generating the complete outfit...")
        self._notify()

        self._ticker.start()
        try:
            result = await self._await_inflight(self.client.generate_outfit(
                person_blob,
                garment_blobs,
                garment_types,
                store_name,
                garment_keys=garment_keys,
                person_key=person_key,
                version=self.version_hint,
            ))
        finally:
            if cycle == self._cycle:
                self._ticker.stop()

        if cycle != self._cycle or self._disposed:
            logger.info(f"Discarding result of abandoned cycle {cycle}")
            return None

        self.outfit_result = result
        self.progress = 100
        self._info("Complete outfit generated successfully.")
        logger.info(f"Outfit generation settled (cached={result.cached}, credits={result.credits_deducted})")
        return result

    def reset(self) -> None:
        """Return to idle: clear photo, garments, results, progress and error."""
        if self._generating:
            # Abandon the running cycle; its result will be discarded
            self._cycle += 1
            self._ticker.stop()
            if self.settings.cancel_on_dispose and self._inflight is not None:
                self._inflight.cancel()
            self._generating = False

        self.mode = self.settings.default_mode
        self.version_hint = self.settings.default_version_hint
        self.photo = None
        self.garments = []
        self.cart_result = None
        self.outfit_result = None
        self.progress = 0
        self.batch_progress = None
        self.error = None
        self._info(WELCOME_MESSAGE)
        self._notify()

    def close_widget(self) -> None:
        """Ask the host page to close the widget."""
        if self.bridge is not None:
            self.bridge.close_widget()

    async def dispose(self) -> None:
        """Tear down: stop the ticker, drop listeners, release the bridge.

        The in-flight request is cancelled only when `cancel_on_dispose` is
        set; otherwise it runs to completion and its result is ignored.
        """
        if self._disposed:
            return
        self._disposed = True
        self._ticker.stop()
        self._listeners.clear()

        inflight = self._inflight
        if inflight is not None and not inflight.done() and self.settings.cancel_on_dispose:
            inflight.cancel()
            logger.info("Cancelled in-flight generation on dispose")

        if self.bridge is not None:
            self.bridge.dispose()

    @property
    def disposed(self) -> bool:
        return self._disposed

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.dispose()
