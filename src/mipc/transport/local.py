"""In-process name registry.

Channels and connections living in the same Python process exchange frames
through per-endpoint queues. Senders block on a :class:`PendingSend` until
the channel replies, which gives the same one-send-one-reply ordering as
the network backend without any sockets.

Authorization is delegated to an optional ``authorize(principal, name)``
callable supplied by whoever builds the registry; the registry only acts
on its yes/no answer.
"""

from __future__ import annotations

import errno
import queue
import threading
from typing import Any, Callable, Dict, Optional

from ..protocol.message import Message, Pulse
from .base import (
    AttachError,
    Incoming,
    Received,
    ReceiveError,
    Registry,
    ResolveError,
    SendError,
)


class PendingSend:
    """Sender-side helper that provides reply synchronization."""

    def __init__(self, frame: bytes, principal: Any = None):
        self.frame = frame
        self.principal = principal
        self.status: Optional[int] = None
        self.code: Optional[int] = None
        self.event = threading.Event()

    def wait(self) -> int:
        self.event.wait()
        if self.code is not None:
            raise SendError(self.code)
        return self.status

    def _complete(self, status: int) -> None:
        if self.event.is_set():
            raise RuntimeError('request already replied to')
        self.status = status
        self.event.set()

    def _fail(self, code: int) -> None:
        self.code = code
        self.event.set()


class _Rejection:
    """Notice queued to a channel when the registry denies a sender."""

    def __init__(self, principal: Any):
        self.principal = principal


class _Interrupt:
    pass


class Endpoint:

    def __init__(self, name: str):
        self.name = name
        self.inbox: queue.SimpleQueue = queue.SimpleQueue()
        self.closed = False

    def __repr__(self) -> str:
        return f"<local endpoint {self.name!r}>"


class Link:

    def __init__(self, endpoint: Endpoint, principal: Any = None):
        self.endpoint = endpoint
        self.principal = principal
        self.closed = False

    def __repr__(self) -> str:
        return f"<local link {self.endpoint.name!r} as {self.principal!r}>"


class LocalRegistry(Registry):
    """Registry for channels and connections within one process.

    If *report* is true, a denied send is also flagged to the channel,
    whose next receive fails with EACCES.
    """

    def __init__(self, authorize: Optional[Callable[[Any, str], bool]] = None, report: bool = True):
        self.authorize = authorize
        self.report = report
        self._names: Dict[str, Endpoint] = {}
        self._lock = threading.Lock()

    def names(self):
        with self._lock:
            return sorted(self._names)

    # --- channel side ---

    def bind(self, name: str) -> Endpoint:
        with self._lock:
            if name in self._names:
                raise AttachError(errno.EEXIST, f"name already bound: {name}")
            endpoint = Endpoint(name)
            self._names[name] = endpoint
        return endpoint

    def unbind(self, endpoint: Endpoint) -> None:
        with self._lock:
            if endpoint.closed:
                return
            endpoint.closed = True
            if self._names.get(endpoint.name) is endpoint:
                del self._names[endpoint.name]

            # Nobody will ever reply to whatever is still queued.
            while True:
                try:
                    item = endpoint.inbox.get(block=False)
                except queue.Empty:
                    break
                if isinstance(item, PendingSend):
                    item._fail(errno.ESRCH)

    def receive(self, endpoint: Endpoint) -> Incoming:
        if endpoint.closed:
            raise ReceiveError(errno.EBADF, f"endpoint is closed: {endpoint.name}")

        item = endpoint.inbox.get()

        if isinstance(item, _Interrupt):
            raise ReceiveError(errno.EINTR, "receive interrupted")
        if isinstance(item, _Rejection):
            raise ReceiveError(errno.EACCES, f"sender {item.principal!r} rejected by registry")
        if isinstance(item, Pulse):
            return item

        return Received(Message.unpack(item.frame), item)

    def reply(self, token: PendingSend, status: int) -> None:
        token._complete(int(status))

    def interrupt(self, endpoint: Endpoint) -> None:
        endpoint.inbox.put(_Interrupt())

    # --- connection side ---

    def resolve(self, name: str, principal: Any = None) -> Link:
        with self._lock:
            endpoint = self._names.get(name)
        if endpoint is None:
            raise ResolveError(errno.ENOENT, f"no channel named {name!r}")
        return Link(endpoint, principal)

    def release(self, link: Link) -> None:
        link.closed = True

    def send(self, link: Link, payload: bytes) -> int:
        self._admit(link)
        pending = PendingSend(bytes(payload), link.principal)
        self._enqueue(link.endpoint, pending)
        return pending.wait()

    def pulse(self, link: Link, payload: bytes) -> None:
        self._admit(link)
        self._enqueue(link.endpoint, Pulse.unpack(payload))

    def _admit(self, link: Link) -> None:
        if link.closed:
            raise SendError(errno.EBADF, "connection is closed")

        endpoint = link.endpoint
        if self.authorize is None or self.authorize(link.principal, endpoint.name):
            return

        if self.report:
            self._enqueue(endpoint, _Rejection(link.principal))
        raise SendError(errno.EACCES, f"{link.principal!r} may not send to {endpoint.name!r}")

    def _enqueue(self, endpoint: Endpoint, item: Any) -> None:
        with self._lock:
            if endpoint.closed:
                raise SendError(errno.ESRCH, f"channel {endpoint.name!r} is gone")
            endpoint.inbox.put(item)
