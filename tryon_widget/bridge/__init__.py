"""
Cross-frame messaging with the storefront page embedding the widget.
"""

from abc import ABC, abstractmethod
from typing import Callable, Optional

Message = dict
MessageHandler = Callable[[Message, Optional[str]], None]


class MessagingPort(ABC):
    """One-way, unordered, best-effort channel to the embedding page.

    Implementations deliver incoming messages to handlers as
    `handler(message, origin)`.
    """

    @abstractmethod
    def send(self, message: Message) -> None:
        """Post a message to the parent. Delivery is not guaranteed."""
        pass

    @abstractmethod
    def on_message(self, handler: MessageHandler) -> Callable[[], None]:
        """Register a handler and return a callable that removes it."""
        pass

    @abstractmethod
    def dispose(self) -> None:
        """Drop all handlers and stop delivering messages."""
        pass


from .ports import InMemoryPort  # noqa: E402
from .frame import ActionOutcome, FrameBridge  # noqa: E402

__all__ = ["MessagingPort", "Message", "MessageHandler", "InMemoryPort", "FrameBridge", "ActionOutcome"]
