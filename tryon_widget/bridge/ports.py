"""In-process messaging port."""

import logging
from typing import Callable, Optional

from . import Message, MessageHandler, MessagingPort

logger = logging.getLogger(__name__)


class InMemoryPort(MessagingPort):
    """Port that records outgoing messages and delivers injected ones synchronously.

    Used when the widget is driven without a browser (CLI, tests) and as the
    loopback side of a host page simulation.
    """

    def __init__(self, origin: Optional[str] = None):
        self.origin = origin
        self.sent: list[Message] = []
        self._handlers: list[MessageHandler] = []
        self._disposed = False

    def send(self, message: Message) -> None:
        if self._disposed:
            logger.debug(f"Dropping {message.get('type')} on disposed port")
            return
        self.sent.append(dict(message))

    def on_message(self, handler: MessageHandler) -> Callable[[], None]:
        self._handlers.append(handler)

        def unsubscribe():
            if handler in self._handlers:
                self._handlers.remove(handler)

        return unsubscribe

    def deliver(self, message: Message, origin: Optional[str] = None) -> None:
        """Inject a message as if it came from the parent frame."""
        if self._disposed:
            return
        for handler in list(self._handlers):
            handler(message, origin if origin is not None else self.origin)

    def sent_types(self) -> list[str]:
        return [m.get("type") for m in self.sent]

    @property
    def handler_count(self) -> int:
        return len(self._handlers)

    def dispose(self) -> None:
        self._handlers.clear()
        self._disposed = True
