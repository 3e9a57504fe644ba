"""ZeroMQ name registry and transport.

A channel is a ROUTER socket bound to a loopback port; a connection is a
DEALER socket connected to it. The name-to-port mapping lives in on-disk
records (see :mod:`.names`). Each request is a single frame; the ROUTER
prepends the sender identity, which is the token used to route the reply
back to the one sender blocked waiting for it.

Secure channels use CURVE encryption, with the ZAP authenticator admitting
only the client keys present in the channel's authorized-keys directory.
A rejected handshake is visible on both sides through the socket monitor:
the channel reports it from :meth:`ZmqRegistry.receive` as EACCES, and the
rejected sender's :meth:`ZmqRegistry.send` fails with EACCES.
"""

from __future__ import annotations

import errno
import os
import threading
import time
from typing import Any, Dict, Optional, Tuple

import structlog
import zmq
import zmq.auth
import zmq.utils.monitor
from zmq.auth.thread import ThreadAuthenticator

from ... import config
from ...protocol import fields
from ...protocol.message import Message, Pulse, pack_status, unpack_status
from ..base import (
    AttachError,
    Incoming,
    Received,
    ReceiveError,
    Registry,
    ResolveError,
    SendError,
)
from . import names


logger = structlog.get_logger(__name__)

zmq_context = zmq.Context()

_handshake_failures = (
    zmq.EVENT_HANDSHAKE_FAILED_AUTH
    | zmq.EVENT_HANDSHAKE_FAILED_NO_DETAIL
    | zmq.EVENT_HANDSHAKE_FAILED_PROTOCOL
)


class Principal:
    """A CURVE keypair identifying a connection to a secure channel."""

    def __init__(self, public: bytes, secret: bytes):
        self.public = public
        self.secret = secret

    def __repr__(self) -> str:
        return f"Principal({self.public.decode()!r})"

    @classmethod
    def load(cls, filename: str) -> "Principal":
        """Load a secret certificate created by zmq.auth.create_certificates."""
        public, secret = zmq.auth.load_certificate(filename)
        if secret is None:
            raise ValueError(f"not a secret certificate: {filename}")
        return cls(public, secret)

    @classmethod
    def generate(cls) -> "Principal":
        """An ephemeral keypair; it is only authorized if someone says so."""
        public, secret = zmq.curve_keypair()
        return cls(public, secret)


class _Authenticator:
    """Process-wide ZAP handler shared by every secure channel.

    Only one ZAP handler can exist per context; each secure channel gets
    its own ZAP domain, configured with its own authorized-keys directory.
    Domains are counted, since two binds of one name may briefly overlap.
    """

    def __init__(self):
        self.lock = threading.Lock()
        self.thread: Optional[ThreadAuthenticator] = None
        self.domains: Dict[str, int] = dict()

    def add(self, domain: str, location: str) -> None:
        with self.lock:
            if self.thread is None:
                self.thread = ThreadAuthenticator(zmq_context)
                self.thread.start()
            self.thread.configure_curve(domain=domain, location=location)
            self.domains[domain] = self.domains.get(domain, 0) + 1

    def remove(self, domain: str) -> None:
        with self.lock:
            count = self.domains.pop(domain, 0) - 1
            if count > 0:
                self.domains[domain] = count
            if self.thread is not None and not self.domains:
                self.thread.stop()
                self.thread = None


_authenticator = _Authenticator()


class Endpoint:

    def __init__(self, name: str, socket: zmq.Socket, address: str, port: int, public: Optional[bytes]):
        self.name = name
        self.socket = socket
        self.address = address
        self.port = port
        self.public = public
        self.pid = os.getpid()
        self.monitor = socket.get_monitor_socket(_handshake_failures)
        self.poller = zmq.Poller()
        self.poller.register(self.socket, zmq.POLLIN)
        self.poller.register(self.monitor, zmq.POLLIN)
        self.interrupted = threading.Event()
        self.closed = False

    def __repr__(self) -> str:
        return f"<zmq endpoint {self.name!r} @ {self.address}:{self.port}>"


class Link:

    def __init__(self, name: str, socket: zmq.Socket, principal: Optional[Principal]):
        self.name = name
        self.socket = socket
        self.principal = principal
        self.monitor = socket.get_monitor_socket(_handshake_failures)
        self.poller = zmq.Poller()
        self.poller.register(self.socket, zmq.POLLIN)
        self.poller.register(self.monitor, zmq.POLLIN)
        self.broken: Optional[SendError] = None
        self.closed = False

    def __repr__(self) -> str:
        return f"<zmq link {self.name!r}>"


class ZmqRegistry(Registry):
    """Registry backed by ZeroMQ sockets and on-disk name records.

    *secure* only affects channels bound through this registry; a
    connection follows whatever the channel's record advertises. *timeout*
    bounds how long :meth:`send` waits for a reply, in seconds; the default
    of None waits until the transport resolves the request.
    """

    poll_interval = 100  # milliseconds between checks for interrupt()

    def __init__(self, address: str = '127.0.0.1', secure: bool = False, timeout: Optional[float] = None):
        self.address = address
        self.secure = secure
        self.timeout = timeout

    # --- channel side ---

    def bind(self, name: str) -> Endpoint:
        try:
            record = names.load(name)
        except OSError as exc:
            raise AttachError(exc.errno, f"registry unavailable: {exc}") from exc

        if record is not None:
            raise AttachError(errno.EEXIST, f"name already bound by pid {record['pid']}: {name}")

        if self.secure and not zmq.has('curve'):
            raise AttachError(errno.EPROTONOSUPPORT, "libzmq was built without CURVE support")

        socket = zmq_context.socket(zmq.ROUTER)
        socket.setsockopt(zmq.LINGER, 0)

        secured = False
        endpoint = None

        try:
            public = None
            if self.secure:
                public, secret = zmq.curve_keypair()
                socket.curve_secretkey = secret
                socket.curve_publickey = public
                socket.curve_server = True
                socket.zap_domain = name.encode()
                _authenticator.add(name, names.authorized(name))
                secured = True

            port = self._bind_any(socket)
            endpoint = Endpoint(name, socket, self.address, port, public)
            claimed = names.claim(name, self._record(endpoint))
        except OSError as exc:
            self._abandon(name, socket, secured, endpoint)
            raise AttachError(exc.errno, f"registry unavailable: {exc}") from exc
        except BaseException:
            self._abandon(name, socket, secured, endpoint)
            raise

        if not claimed:
            self._close(endpoint)
            raise AttachError(errno.EEXIST, f"name already bound: {name}")

        logger.debug("name.bound", name=name, address=self.address, port=port, secure=self.secure)
        return endpoint

    def _record(self, endpoint: Endpoint) -> dict:
        record = dict()
        record['name'] = endpoint.name
        record['address'] = endpoint.address
        record['port'] = endpoint.port
        record['pid'] = endpoint.pid
        if endpoint.public is not None:
            record['public'] = endpoint.public.decode()
        return record

    def _bind_any(self, socket: zmq.Socket) -> int:
        avoid = names.used_ports()

        for port in range(config.minimum_port, config.maximum_port + 1):
            if port in avoid:
                continue
            try:
                socket.bind(f"tcp://{self.address}:{port}")
            except zmq.ZMQError:
                continue
            return port

        raise AttachError(
            errno.EADDRINUSE,
            f"no ports available in range {config.minimum_port}:{config.maximum_port}",
        )

    def _abandon(self, name: str, socket: zmq.Socket, secured: bool, endpoint: Optional[Endpoint]) -> None:
        if endpoint is None:
            self._discard(name, socket, secured)
        else:
            self._close(endpoint)

    def _discard(self, name: str, socket: zmq.Socket, secured: bool) -> None:
        if secured:
            _authenticator.remove(name)
        socket.close(linger=0)

    def _close(self, endpoint: Endpoint) -> None:
        endpoint.socket.disable_monitor()
        endpoint.monitor.close(linger=0)
        self._discard(endpoint.name, endpoint.socket, endpoint.public is not None)

    def unbind(self, endpoint: Endpoint) -> None:
        if endpoint.closed:
            return
        endpoint.closed = True

        try:
            names.remove(endpoint.name, endpoint.pid)
        except OSError as exc:
            logger.warning("name.remove_failed", name=endpoint.name, error=str(exc))

        self._close(endpoint)
        logger.debug("name.unbound", name=endpoint.name)

    def receive(self, endpoint: Endpoint) -> Incoming:
        if endpoint.closed:
            raise ReceiveError(errno.EBADF, f"endpoint is closed: {endpoint.name}")

        while True:
            if endpoint.interrupted.is_set():
                endpoint.interrupted.clear()
                raise ReceiveError(errno.EINTR, "receive interrupted")

            try:
                events = dict(endpoint.poller.poll(self.poll_interval))

                if endpoint.monitor in events:
                    event = zmq.utils.monitor.recv_monitor_message(endpoint.monitor)
                    self._handshake_failed(event)

                if endpoint.socket in events:
                    parts = endpoint.socket.recv_multipart()
                else:
                    continue
            except zmq.ZMQError as exc:
                raise ReceiveError(exc.errno, str(exc)) from exc

            if len(parts) != 2:
                logger.debug("frame.discarded", name=endpoint.name, parts=len(parts))
                continue

            identity, frame = parts

            if len(frame) == fields.PULSE.size:
                return Pulse.unpack(frame)

            return Received(Message.unpack(frame), (endpoint, identity))

    def _handshake_failed(self, event: dict) -> None:
        if event['event'] == zmq.EVENT_HANDSHAKE_FAILED_AUTH:
            raise ReceiveError(
                errno.EACCES,
                f"handshake from {event['endpoint']!r} rejected (ZAP status {event['value']})",
            )

        # A peer that cannot even complete a handshake never becomes a
        # sender; there is nothing to classify.
        logger.debug("handshake.failed", event=event['event'], endpoint=event['endpoint'])

    def reply(self, token: Tuple[Endpoint, bytes], status: int) -> None:
        endpoint, identity = token
        frame = pack_status(status)

        try:
            endpoint.socket.send_multipart((identity, frame))
        except zmq.ZMQError as exc:
            raise SendError(exc.errno, str(exc)) from exc

    def interrupt(self, endpoint: Endpoint) -> None:
        endpoint.interrupted.set()

    # --- connection side ---

    def resolve(self, name: str, principal: Any = None) -> Link:
        try:
            record = names.load(name)
        except OSError as exc:
            raise ResolveError(exc.errno, f"registry unavailable: {exc}") from exc

        if record is None:
            raise ResolveError(errno.ENOENT, f"no channel named {name!r}")

        public = record.get('public')
        if public is None:
            principal = None
        else:
            principal = self._principal(principal)

        socket = zmq_context.socket(zmq.DEALER)
        socket.setsockopt(zmq.LINGER, 0)

        try:
            if principal is not None:
                socket.curve_serverkey = public.encode()
                socket.curve_publickey = principal.public
                socket.curve_secretkey = principal.secret

            address = f"tcp://{record['address']}:{int(record['port'])}"
            link = Link(name, socket, principal)
        except (KeyError, TypeError, ValueError, AttributeError, zmq.ZMQError) as exc:
            socket.close(linger=0)
            raise ResolveError(errno.EBADMSG, f"unusable record for {name!r}: {exc}") from exc

        try:
            socket.connect(address)
        except zmq.ZMQError as exc:
            self.release(link)
            raise ResolveError(exc.errno, f"cannot connect to {name!r}: {exc}") from exc

        return link

    def _principal(self, principal: Any) -> Principal:
        """Turn whatever the caller presented into a CURVE keypair."""

        if principal is None:
            return Principal.generate()

        if isinstance(principal, Principal):
            return principal

        try:
            return Principal.load(str(principal))
        except (OSError, ValueError) as exc:
            code = getattr(exc, 'errno', None) or errno.EINVAL
            raise ResolveError(code, f"cannot load certificate {principal!r}: {exc}") from exc

    def release(self, link: Link) -> None:
        if link.closed:
            return
        link.closed = True

        link.socket.disable_monitor()
        link.monitor.close(linger=0)
        link.socket.close(linger=0)

    def send(self, link: Link, payload: bytes) -> int:
        self._admit(link)

        try:
            link.socket.send(payload)
        except zmq.ZMQError as exc:
            raise SendError(exc.errno, str(exc)) from exc

        if self.timeout is None:
            deadline = None
        else:
            deadline = time.monotonic() + self.timeout

        while True:
            if deadline is None:
                wait = None
            else:
                wait = deadline - time.monotonic()
                if wait <= 0:
                    raise self._break(link, SendError(errno.ETIMEDOUT, f"no reply from {link.name!r} in {self.timeout:.2f} sec"))
                wait = int(wait * 1000) + 1

            try:
                events = dict(link.poller.poll(wait))

                if link.monitor in events:
                    event = zmq.utils.monitor.recv_monitor_message(link.monitor)
                    if event['event'] == zmq.EVENT_HANDSHAKE_FAILED_AUTH:
                        raise self._break(link, SendError(errno.EACCES, f"{link.name!r} rejected this sender (ZAP status {event['value']})"))
                    raise self._break(link, SendError(errno.EPROTO, f"handshake with {link.name!r} failed"))

                if link.socket in events:
                    frame = link.socket.recv()
                else:
                    continue
            except zmq.ZMQError as exc:
                raise SendError(exc.errno, str(exc)) from exc

            try:
                return unpack_status(frame)
            except ValueError as exc:
                raise self._break(link, SendError(errno.EBADMSG, str(exc))) from exc

    def pulse(self, link: Link, payload: bytes) -> None:
        self._admit(link)

        try:
            link.socket.send(payload)
        except zmq.ZMQError as exc:
            raise SendError(exc.errno, str(exc)) from exc

    def _admit(self, link: Link) -> None:
        if link.closed:
            raise SendError(errno.EBADF, "connection is closed")
        if link.broken is not None:
            raise link.broken

    def _break(self, link: Link, error: SendError) -> SendError:
        # Whatever is still queued on the DEALER could turn up as the reply
        # to the next request; the link cannot be used again.
        link.broken = error
        return error
