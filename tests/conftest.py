import errno
import threading

import pytest
import structlog

import mipc
from mipc.protocol.message import Message
from mipc.transport.base import (
    Received,
    ReceiveError,
    Registry,
    ResolveError,
    SendError,
)


@pytest.fixture(autouse=True)
def home(tmp_path, monkeypatch):
    """ Every test gets its own registry directory, so that name records
        never leak from one test to the next.
    """

    directory = tmp_path / 'home'
    directory.mkdir()

    monkeypatch.setenv('MIPC_HOME', str(directory))
    monkeypatch.setattr(mipc.config.directory, 'found', None)

    yield directory

    structlog.reset_defaults()


@pytest.fixture
def registry():
    return mipc.transport.LocalRegistry()


@pytest.fixture
def serve():
    """ Attach a channel and run it in a background thread. The channel is
        stopped and joined when the test finishes.
    """

    running = list()

    def start(channel):
        if channel.endpoint is None:
            channel.attach()
        thread = threading.Thread(target=channel.serve, daemon=True)
        thread.start()
        running.append((channel, thread))
        return thread

    yield start

    for channel, thread in running:
        channel.stop()
        thread.join(5)


class Recorder:
    """ Channel handler that remembers every message it was given.
    """

    def __init__(self, status=0):
        self.status = status
        self.messages = list()
        self.lock = threading.Lock()

    def __call__(self, message):
        with self.lock:
            self.messages.append(message)
        return self.status

    @property
    def bodies(self):
        return [message.text for message in self.messages]


@pytest.fixture
def recorder():
    return Recorder()


class ScriptedRegistry(Registry):
    """ A registry whose every outcome is decided in advance by the test.

        *resolvable_after* is the number of resolve attempts that fail before
        one succeeds; None means resolution never succeeds. *fail_at* is the
        1-based index of the send that fails. *incoming* is the sequence of
        things the channel will receive: :class:`Received` or
        :class:`mipc.Pulse` instances are returned, exceptions are raised.
        Once the script runs out, receive fails with EINTR.
    """

    def __init__(self, resolvable_after=0, fail_at=None, status=0, incoming=()):
        self.resolvable_after = resolvable_after
        self.fail_at = fail_at
        self.status = status
        self.incoming = list(incoming)

        self.resolves = 0
        self.sent = list()
        self.pulses = list()
        self.released = list()
        self.bound = list()
        self.unbound = list()
        self.replies = list()
        self.interrupts = 0

    def bind(self, name):
        endpoint = ('endpoint', name, len(self.bound))
        self.bound.append(endpoint)
        return endpoint

    def unbind(self, endpoint):
        self.unbound.append(endpoint)

    def resolve(self, name, principal=None):
        self.resolves += 1
        if self.resolvable_after is None or self.resolves <= self.resolvable_after:
            raise ResolveError(errno.ENOENT, 'no channel named %r' % (name,))
        return ('link', name, self.resolves)

    def release(self, link):
        self.released.append(link)

    def receive(self, endpoint):
        if not self.incoming:
            raise ReceiveError(errno.EINTR, 'script exhausted')

        item = self.incoming.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    def reply(self, token, status):
        self.replies.append((token, status))

    def send(self, link, payload):
        self.sent.append(Message.unpack(payload))
        if len(self.sent) == self.fail_at:
            raise SendError(errno.EIO, 'scripted failure')
        return self.status

    def pulse(self, link, payload):
        self.pulses.append(payload)

    def interrupt(self, endpoint):
        self.interrupts += 1


def received(token, type=1, subtype=100, body='Hello'):
    return Received(Message(type, subtype, body), token)


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
