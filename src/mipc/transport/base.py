"""Transport interface.

This is the (small) contract that name registry implementations should
follow. A registry maps a channel name to a reachable endpoint, moves
frames between connections and channels, and enforces any authorization
policy without the channel or connection knowing how that policy works.
It lives outside :mod:`mipc.protocol` so the protocol remains
transport-agnostic.
"""

from __future__ import annotations

import os
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Optional, Union

from ..protocol.message import Message, Pulse


# Transport agnostic exceptions

class TransportError(Exception):
    """Base class for all transport-layer errors.

    ``code`` is an errno value, when one is known; it is what the channel
    classifies when a receive fails.
    """

    def __init__(self, code: Optional[int] = None, text: Optional[str] = None):
        if text is None:
            text = os.strerror(code) if code is not None else 'transport error'
        super().__init__(text)
        self.code = code
        self.text = text


class AttachError(TransportError):
    """A channel name could not be bound."""


class ResolveError(TransportError):
    """A single attempt to resolve a channel name failed."""


class ConnectError(TransportError):
    """A channel name could not be resolved within the retry budget."""


class ReceiveError(TransportError):
    """A blocking receive on a channel endpoint failed."""


class SecurityViolation(ReceiveError):
    """A receive that failed because the registry rejected a sender."""


class TransportFault(TransportError):
    """A send could not be completed."""


class SendError(TransportFault):
    """The transport failed a send, or the send was denied."""


class NotConnected(TransportFault):
    """A send was attempted without a valid connection handle."""


@dataclass
class Received:
    """A request delivered to a channel, with the token used to reply."""

    message: Message
    token: Any


Incoming = Union[Received, Pulse]


class Registry(ABC):
    """Minimal contract for a name registry and its transport.

    Handles returned by :meth:`bind` and :meth:`resolve` are opaque to the
    caller; they are only ever handed back to the same registry.
    """

    @abstractmethod
    def bind(self, name: str) -> Any:
        """Bind *name* to a new receive endpoint and return it."""

    @abstractmethod
    def unbind(self, endpoint: Any) -> None:
        """Release a bound endpoint; releasing twice is a no-op."""

    @abstractmethod
    def resolve(self, name: str, principal: Any = None) -> Any:
        """Resolve *name* into a connection handle for *principal*."""

    @abstractmethod
    def release(self, link: Any) -> None:
        """Close a connection handle; closing twice is a no-op."""

    @abstractmethod
    def receive(self, endpoint: Any) -> Incoming:
        """Block until a request or a pulse arrives, or raise ReceiveError."""

    @abstractmethod
    def reply(self, token: Any, status: int) -> None:
        """Unblock the sender of a received request with *status*."""

    @abstractmethod
    def send(self, link: Any, payload: bytes) -> int:
        """Send *payload* and block until the reply status arrives."""

    @abstractmethod
    def pulse(self, link: Any, payload: bytes) -> None:
        """Send a pulse frame; no reply is expected."""

    @abstractmethod
    def interrupt(self, endpoint: Any) -> None:
        """Wake a blocked :meth:`receive` on *endpoint* with EINTR.

        This is the only method that may be called from a thread other
        than the one that owns the endpoint.
        """
