"""ZeroMQ backend: name records on disk, ROUTER/DEALER sockets on loopback."""

from . import names
from .registry import Principal, ZmqRegistry
