"""Transport interface.

This is the (small) contract that transport implementations should follow.
It lives outside :mod:`vectorlink.protocol` so the protocol remains
transport-agnostic.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Callable, Optional

from .. import errors
from ..protocol.message import Message


# Transport errors are connection errors from the caller's point of view.

class TransportError(errors.ConnectionError):
    """Base class for all transport-layer errors."""


class TransportClosed(TransportError):
    """The transport was closed while a request was outstanding."""


class TransportPortError(TransportError):
    """No suitable port could be bound or connected."""


class Transport(ABC):
    """Minimal contract for a client-side wire-level transport.

    Incoming messages are not pulled; they are handed to the *on_receive*
    callback from the transport's own thread.
    """

    on_receive: Optional[Callable[[Message], None]] = None
    on_close: Optional[Callable[[], None]] = None

    @abstractmethod
    def open(self) -> None:
        """Establish the underlying connection/socket."""

    @abstractmethod
    def close(self) -> None:
        """Tear down the underlying connection/socket."""

    @abstractmethod
    def send(self, msg: Message) -> None:
        """Queue a protocol Message for transmission, in order."""

    @property
    def is_open(self) -> bool:
        """Whether the transport is currently connected."""
        return False
