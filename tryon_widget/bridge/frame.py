"""
Protocol spoken with the storefront page that embeds the widget.

Requests are one-shot messages with no correlation id. Replies are matched
by message type only, and only the latest reply of a type is kept. Cart
actions are acknowledged by ACTION_SUCCESS / ACTION_ERROR messages naming
the action; if none arrives within the timeout the action is reported as
timed out, although the host may still have performed it.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional

from ..config import Config
from ..core.cache_keys import CatalogIndex
from ..core.store import store_from_message_origin, store_from_store_info_message
from ..errors import ActionTimeoutError
from ..models import DetectionMethod, StoreIdentity
from . import Message, MessagingPort

logger = logging.getLogger(__name__)

ACTION_TIMEOUT_SECONDS = 10.0


class MessageType:
    REQUEST_IMAGES = "NUSENSE_REQUEST_IMAGES"
    PRODUCT_IMAGES = "NUSENSE_PRODUCT_IMAGES"
    REQUEST_STORE_INFO = "NUSENSE_REQUEST_STORE_INFO"
    STORE_INFO = "NUSENSE_STORE_INFO"
    CLOSE_WIDGET = "NUSENSE_CLOSE_WIDGET"
    ADD_TO_CART = "NUSENSE_ADD_TO_CART"
    BUY_NOW = "NUSENSE_BUY_NOW"
    NOTIFY_ME = "NUSENSE_NOTIFY_ME"
    ACTION_SUCCESS = "NUSENSE_ACTION_SUCCESS"
    ACTION_ERROR = "NUSENSE_ACTION_ERROR"


ACTIONS = (MessageType.ADD_TO_CART, MessageType.BUY_NOW, MessageType.NOTIFY_ME)


class ActionStatus(Enum):
    SUCCESS = "success"
    ERROR = "error"
    TIMEOUT = "timeout"
    BUSY = "busy"
    UNAVAILABLE = "unavailable"
    ABANDONED = "abandoned"


@dataclass
class ActionOutcome:
    """How a cart action ended, as far as the widget can tell."""

    action: str
    status: ActionStatus
    message: Optional[str] = None
    payload: dict = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.status is ActionStatus.SUCCESS


@dataclass
class ProductImage:
    url: str
    id: Optional[str] = None


def parse_product_images(images) -> list[ProductImage]:
    """Accept a list of URL strings and/or `{url, id}` objects. Anything else yields []."""
    if not isinstance(images, list):
        return []
    parsed = []
    for img in images:
        if isinstance(img, str) and img:
            parsed.append(ProductImage(url=img))
        elif isinstance(img, dict) and isinstance(img.get("url"), str) and img["url"]:
            image_id = img.get("id")
            parsed.append(ProductImage(url=img["url"], id=str(image_id) if image_id is not None else None))
    return parsed


class FrameBridge:
    """Widget side of the host page protocol.

    Usage:
        bridge = FrameBridge(port, store_identity=detect_store_origin(url, referrer, True))
        bridge.start()
        ...
        outcome = await bridge.add_to_cart(product, quantity=1, variant_id=123)
        if outcome.status is ActionStatus.TIMEOUT:
            show(bridge.action_error)
        ...
        bridge.dispose()
    """

    def __init__(
        self,
        port: MessagingPort,
        store_identity: Optional[StoreIdentity] = None,
        in_iframe: bool = True,
        action_timeout: float = ACTION_TIMEOUT_SECONDS,
        catalog: Optional[CatalogIndex] = None,
    ):
        self.port = port
        self.store_identity = store_identity or StoreIdentity()
        self.in_iframe = in_iframe
        self.action_timeout = action_timeout
        self.catalog = catalog or CatalogIndex()
        self.available_images: list[ProductImage] = []
        self.busy: dict[str, bool] = {action: False for action in ACTIONS}
        self.action_error: Optional[str] = None

        self._pending: dict[str, asyncio.Future] = {}
        self._listeners: list[Callable[["FrameBridge"], None]] = []
        self._unsubscribe: Optional[Callable[[], None]] = None
        self._disposed = False

    @classmethod
    def from_config(
        cls,
        port: MessagingPort,
        config: Config,
        store_identity: Optional[StoreIdentity] = None,
        in_iframe: bool = True,
    ) -> "FrameBridge":
        """Build a bridge using the configured acknowledgement timeout."""
        return cls(
            port,
            store_identity=store_identity,
            in_iframe=in_iframe,
            action_timeout=config.defaults.action_timeout_seconds,
        )

    def start(self) -> None:
        """Register the message handler and ask the parent for images and store identity."""
        if self._unsubscribe is not None or self._disposed:
            return
        self._unsubscribe = self.port.on_message(self._handle_message)

        if not self.in_iframe:
            return

        self.port.send({"type": MessageType.REQUEST_IMAGES})
        if not self.store_identity.is_resolved:
            self.port.send({"type": MessageType.REQUEST_STORE_INFO})

    def subscribe(self, listener: Callable[["FrameBridge"], None]) -> Callable[[], None]:
        """Call `listener(bridge)` whenever images, identity or action state change."""
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener) if listener in self._listeners else None

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener(self)

    def is_busy(self, action: str) -> bool:
        return self.busy.get(action, False)

    def _handle_message(self, message: Message, origin: Optional[str]) -> None:
        if self._disposed or not isinstance(message, dict):
            return

        changed = False

        # Any message from the parent reveals its origin
        if self.store_identity.method in (DetectionMethod.UNKNOWN, DetectionMethod.POSTMESSAGE):
            from_origin = store_from_message_origin(origin)
            if from_origin is not None and from_origin != self.store_identity:
                self.store_identity = from_origin
                changed = True

        message_type = message.get("type")

        if message_type == MessageType.PRODUCT_IMAGES:
            images = parse_product_images(message.get("images"))
            if images:
                self.available_images = images
                self.catalog.replace({img.url: img.id for img in images if img.id})
                logger.info(f"Received {len(images)} product image(s) from host page")
                changed = True

        elif message_type == MessageType.STORE_INFO:
            self.store_identity = store_from_store_info_message(message, origin)
            logger.info(f"Store identified by parent: {self.store_identity.store_name or 'unknown'}")
            changed = True

        elif message_type in (MessageType.ACTION_SUCCESS, MessageType.ACTION_ERROR):
            changed = self._resolve_action(message) or changed

        if changed:
            self._notify()

    def _resolve_action(self, message: Message) -> bool:
        action = message.get("action")
        if not isinstance(action, str):
            logger.debug(f"Ignoring acknowledgement with malformed action: {action!r}")
            return False
        future = self._pending.get(action)
        if future is None or future.done():
            logger.debug(f"Ignoring unmatched acknowledgement for {action}")
            return False

        if message.get("type") == MessageType.ACTION_SUCCESS:
            outcome = ActionOutcome(action, ActionStatus.SUCCESS, payload=message)
        else:
            outcome = ActionOutcome(
                action,
                ActionStatus.ERROR,
                message=message.get("error") or "Please try again.",
                payload=message,
            )
        future.set_result(outcome)
        return True

    def close_widget(self) -> None:
        """Tell the host page to close the widget."""
        if self.in_iframe and not self._disposed:
            self.port.send({"type": MessageType.CLOSE_WIDGET})

    async def add_to_cart(self, product: Optional[dict] = None, quantity: int = 1, variant_id=None) -> ActionOutcome:
        return await self._request_action(MessageType.ADD_TO_CART, product, quantity, variant_id)

    async def buy_now(self, product: Optional[dict] = None, quantity: int = 1, variant_id=None) -> ActionOutcome:
        return await self._request_action(MessageType.BUY_NOW, product, quantity, variant_id)

    async def notify_me(self, product: Optional[dict] = None, variant_id=None) -> ActionOutcome:
        return await self._request_action(MessageType.NOTIFY_ME, product, None, variant_id)

    async def _request_action(self, action: str, product: Optional[dict], quantity: Optional[int], variant_id) -> ActionOutcome:
        if self._disposed:
            return ActionOutcome(action, ActionStatus.ABANDONED)
        if not self.in_iframe:
            return ActionOutcome(action, ActionStatus.UNAVAILABLE, message="This action requires the store integration.")
        if self.busy.get(action):
            return ActionOutcome(action, ActionStatus.BUSY)

        message: Message = {"type": action}
        if product:
            message["product"] = product
        if quantity is not None:
            message["quantity"] = quantity
        if variant_id:
            message["variantId"] = variant_id

        future = asyncio.get_running_loop().create_future()
        self._pending[action] = future
        self.busy[action] = True
        self.action_error = None
        self._notify()

        self.port.send(message)

        try:
            outcome = await asyncio.wait_for(future, timeout=self.action_timeout)
        except asyncio.TimeoutError:
            error = ActionTimeoutError(action, self.action_timeout)
            logger.warning(str(error))
            outcome = ActionOutcome(action, ActionStatus.TIMEOUT, message=str(error))
        finally:
            self._pending.pop(action, None)

        if outcome.status is ActionStatus.ABANDONED:
            return outcome

        self.busy[action] = False
        if outcome.status in (ActionStatus.ERROR, ActionStatus.TIMEOUT):
            self.action_error = outcome.message
        self._notify()
        return outcome

    def dispose(self) -> None:
        """Deregister the handler and abandon pending acknowledgements."""
        if self._disposed:
            return
        self._disposed = True
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        for action, future in list(self._pending.items()):
            if not future.done():
                future.set_result(ActionOutcome(action, ActionStatus.ABANDONED))
        self._pending.clear()
        self._listeners.clear()

    @property
    def disposed(self) -> bool:
        return self._disposed
