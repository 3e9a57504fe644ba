"""Name registry and transport implementations."""

import threading

from .. import config
from .base import (
    AttachError,
    ConnectError,
    NotConnected,
    Received,
    ReceiveError,
    Registry,
    ResolveError,
    SecurityViolation,
    SendError,
    TransportError,
    TransportFault,
)
from .local import LocalRegistry


_default = None
_default_lock = threading.Lock()


def create(backend=None, **kwargs):
    """ Return a new :class:`Registry` for the named *backend*, either
        ``zmq`` or ``local``; the default is selected by ``MIPC_TRANSPORT``.
        Keyword arguments are passed to the registry class.
    """

    if backend is None:
        backend = config.transport()

    if backend == 'zmq':
        from .zmq import ZmqRegistry
        return ZmqRegistry(**kwargs)
    elif backend == 'local':
        return LocalRegistry(**kwargs)

    raise ValueError(f"unknown MIPC_TRANSPORT backend: {backend!r}")


def registry():
    """ Return the shared default :class:`Registry` for this process. The
        in-process backend only works if every party shares one instance.
    """

    global _default

    with _default_lock:
        if _default is None:
            _default = create()
        return _default
