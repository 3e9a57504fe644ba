""" The sending side of mIPC: a :class:`Connection` resolves a channel name,
    with a bounded number of retries, and then sends requests to it one
    blocking round trip at a time.
"""

import dataclasses
import errno
import time

import structlog

from . import config
from . import transport
from .protocol.message import Message, Pulse
from .transport.base import ConnectError, NotConnected, ResolveError, TransportFault


logger = structlog.get_logger(__name__)

default_template = 'Hello from {sender} - Message #{sequence}'


@dataclasses.dataclass(frozen=True)
class SendConfig:
    """ Describes one batch of sends: how many messages, the delay in seconds
        between consecutive messages, the *type* and *subtype* stamped on
        every message, and the *template* for each message body. The template
        is formatted with the sender identifier and the 1-based sequence
        number of the message within the batch.
    """

    count: int
    interval: float = 0
    type: int = 0
    subtype: int = 0
    template: str = default_template

    def render(self, sender, sequence):
        return self.template.format(sender=sender, sequence=sequence)


class Connection:
    """ A :class:`Connection` is one sender's link to one remote channel,
        identified by its *target* name. The *sender* identifier is used to
        render message bodies and in diagnostics; the optional *principal*
        is handed to the registry, which decides whether this sender may
        talk to the target.

        The connection handle has a single owner: a :class:`Connection`
        cannot be copied, but the handle can be moved to a new instance
        with :func:`transfer`.
    """

    sleep = staticmethod(time.sleep)

    def __init__(self, sender, target, registry=None, principal=None):

        if registry is None:
            registry = transport.registry()

        self.sender = sender
        self.target = target
        self.registry = registry
        self.principal = principal
        self.link = None


    def __enter__(self):
        return self


    def __exit__(self, *exc_info):
        self.close()
        return False


    def __copy__(self):
        raise TypeError('a Connection cannot be copied; use transfer() to move it')


    def __deepcopy__(self, memo):
        raise TypeError('a Connection cannot be copied; use transfer() to move it')


    def __repr__(self):
        state = 'connected' if self.connected else 'disconnected'
        return '<Connection %r -> %r %s>' % (self.sender, self.target, state)


    @property
    def connected(self):
        return self.link is not None


    def connect(self, attempts=None, delay=None):
        """ Resolve the target name, making up to *attempts* tries and waiting
            *delay* seconds between consecutive failures. If every attempt
            fails a :class:`mipc.transport.ConnectError` is raised and the
            connection remains disconnected.
        """

        if attempts is None:
            attempts = config.attempts
        if delay is None:
            delay = config.retry_delay

        attempts = int(attempts)
        if attempts < 1:
            raise ValueError('at least one connection attempt is required')

        if self.link is not None:
            raise RuntimeError('already connected to ' + repr(self.target))

        last = None

        for attempt in range(1, attempts + 1):
            try:
                link = self.registry.resolve(self.target, self.principal)
            except ResolveError as e:
                last = e
            else:
                self.link = link
                logger.info("connection.connected", sender=self.sender, target=self.target, attempt=attempt)
                return

            if attempt < attempts:
                logger.info("connection.retrying", sender=self.sender, target=self.target, attempt=attempt, error=last.text)
                self.sleep(delay)

        logger.error("connection.failed", sender=self.sender, target=self.target, attempts=attempts, error=last.text)

        error = "cannot connect to %r after %d attempts: %s" % (self.target, attempts, last.text)
        raise ConnectError(last.code, error) from last


    def send(self, message):
        """ Send one :class:`mipc.protocol.Message` and block until the reply
            arrives; the reply status is returned. A
            :class:`mipc.transport.TransportFault` is raised if the send
            fails, without any retry.
        """

        link = self.link

        if link is None:
            raise NotConnected(errno.EBADF, 'not connected to ' + repr(self.target))

        return self.registry.send(link, message.pack())


    def send_batch(self, batch):
        """ Send the batch of messages described by the :class:`SendConfig`
            *batch*, in order, and return the number of messages that were
            acknowledged. The first failed send ends the batch; the remaining
            messages are never attempted. Returns 0 without attempting
            anything if the connection is not established.
        """

        if self.link is None:
            logger.error("connection.not_connected", sender=self.sender, target=self.target)
            return 0

        sent = 0

        for sequence in range(1, batch.count + 1):
            message = Message(batch.type, batch.subtype, batch.render(self.sender, sequence))
            logger.info("message.sending", sender=self.sender, sequence=sequence, body=message.text)

            try:
                status = self.send(message)
            except TransportFault as e:
                logger.error("message.send_failed", sender=self.sender, sequence=sequence, code=e.code, error=e.text)
                break

            sent += 1
            self.reply(message, status)

            if sequence < batch.count:
                self.sleep(batch.interval)

        return sent


    def reply(self, message, status):
        """ Observe the reply *status* to a *message* sent by :func:`send_batch`.
        """

        logger.info("message.replied", sender=self.sender, status=status)


    def pulse(self, code=0, value=0):
        """ Send a pulse to the channel. Pulses are never replied to, and this
            method does not block waiting for one.
        """

        link = self.link

        if link is None:
            raise NotConnected(errno.EBADF, 'not connected to ' + repr(self.target))

        self.registry.pulse(link, Pulse(code, value).pack())


    def close(self):
        """ Close the connection handle. Calling this more than once, or on a
            connection that never connected, does nothing.
        """

        link = self.link
        self.link = None

        if link is None:
            return

        self.registry.release(link)
        logger.debug("connection.closed", sender=self.sender, target=self.target)


    def transfer(self):
        """ Return a new instance of this class that owns this connection's
            handle. This instance is left disconnected.
        """

        moved = type(self)(self.sender, self.target, self.registry, self.principal)
        moved.link = self.link
        self.link = None
        return moved


# end of class Connection


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
