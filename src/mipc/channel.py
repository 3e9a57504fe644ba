""" The receiving side of mIPC: a :class:`Channel` binds a name, then
    serially receives requests and replies to each one before taking the
    next.
"""

import errno

import structlog

from . import transport
from .protocol import fields
from .protocol.message import Pulse, pack_status
from .protocol.security import Verdict, classify
from .transport.base import ReceiveError, SecurityViolation, TransportError


logger = structlog.get_logger(__name__)


class Channel:
    """ A :class:`Channel` is a named receive endpoint serving a single,
        synchronous request/reply loop. The *name* is bound in the *registry*
        by :func:`attach`; if no *registry* is specified the process-wide
        default from :func:`mipc.transport.registry` is used.

        The developer is expected to either pass a *handler* callable, or
        subclass :class:`Channel` and override :func:`handle`. Either way
        the handler receives a :class:`mipc.protocol.Message` and returns
        the integer status that will be sent back to the blocked sender;
        returning None is the same as returning :data:`STATUS_OK`, and a
        handler that raises an exception replies :data:`STATUS_ERROR`.

        Only one thread should ever call :func:`attach`, :func:`run`, and
        :func:`close` for a given instance; :func:`stop` is the exception,
        and may be called from anywhere.

        :ivar received: The number of requests handled so far.
        :ivar pulses: The number of pulses received so far.
        :ivar violations: The number of security violations observed.
        :ivar error: The fatal :class:`ReceiveError` that ended :func:`run`.
    """

    def __init__(self, name, registry=None, handler=None):

        if registry is None:
            registry = transport.registry()

        self.name = name
        self.registry = registry
        self.handler = handler

        self.endpoint = None
        self.closed = False
        self.error = None
        self.stopping = False

        self.received = 0
        self.pulses = 0
        self.violations = 0


    def __enter__(self):
        return self


    def __exit__(self, *exc_info):
        self.close()
        return False


    def __repr__(self):
        if self.endpoint is None:
            state = 'closed' if self.closed else 'unattached'
        else:
            state = 'attached'

        return '<Channel %r %s>' % (self.name, state)


    @property
    def attached(self):
        return self.endpoint is not None


    def attach(self, name=None):
        """ Bind the channel name in the registry, establishing the one and
            only endpoint for this instance. A failure raises
            :class:`mipc.transport.AttachError` and leaves the channel
            unattached; it is safe to call :func:`attach` again.
        """

        if self.closed:
            raise RuntimeError('channel has been closed: ' + repr(self.name))

        if self.endpoint is not None:
            raise RuntimeError('channel is already attached: ' + repr(self.name))

        if name is not None:
            self.name = name

        try:
            endpoint = self.registry.bind(self.name)
        except TransportError as e:
            logger.error("channel.attach_failed", channel=self.name, code=e.code, error=e.text)
            raise

        self.endpoint = endpoint
        self.error = None
        self.stopping = False

        logger.info("channel.attached", channel=self.name, endpoint=repr(endpoint))


    def run(self):
        """ Receive and handle requests until a fatal receive error occurs.
            Security violations are observed via :func:`violation` and do not
            interrupt the loop. The loop also ends, via a fatal EINTR, when
            :func:`stop` is called.
        """

        endpoint = self.endpoint

        if endpoint is None:
            raise RuntimeError('channel is not attached: ' + repr(self.name))

        while True:
            try:
                incoming = self.registry.receive(endpoint)
            except ReceiveError as e:
                if classify(e.code) == Verdict.SECURITY_VIOLATION:
                    self.violations += 1
                    self.violation(SecurityViolation(e.code, e.text))
                    continue

                self.error = e
                break

            if isinstance(incoming, Pulse):
                self.pulses += 1
                self.pulse(incoming)
                continue

            self.received += 1
            self._dispatch(incoming)

        error = self.error

        if self.stopping and error.code == errno.EINTR:
            logger.info("channel.stopped", channel=self.name, received=self.received)
        else:
            logger.error("channel.receive_failed", channel=self.name, code=error.code, error=error.text)


    def _dispatch(self, received):
        """ Hand the request to :func:`handle` and reply exactly once, even
            if the handler fails.
        """

        message = received.message

        try:
            status = self.handle(message)
            if status is None:
                status = fields.STATUS_OK
            pack_status(status)
        except Exception:
            logger.exception("channel.handler_failed", channel=self.name, message=repr(message))
            status = fields.STATUS_ERROR

        try:
            self.registry.reply(received.token, status)
        except TransportError as e:
            # The sender is gone; there is nobody left to tell.
            logger.warning("channel.reply_failed", channel=self.name, code=e.code, error=e.text)


    def handle(self, message):
        """ Handle one authorized request, returning the reply status. The
            default invokes the *handler* passed to the constructor, or logs
            the message and returns :data:`mipc.protocol.STATUS_OK`.
        """

        if self.handler is not None:
            return self.handler(message)

        logger.info("message.received", channel=self.name, type=message.type, subtype=message.subtype, body=message.text)
        return fields.STATUS_OK


    def pulse(self, pulse):
        """ Observe a pulse. No reply is due.
        """

        logger.debug("pulse.received", channel=self.name, code=pulse.code, value=pulse.value)


    def violation(self, error):
        """ Observe a :class:`mipc.transport.SecurityViolation`. The channel
            keeps serving regardless of what this method does, short of
            raising an exception.
        """

        logger.warning("security.violation", channel=self.name, code=error.code, error=error.text)


    def stop(self):
        """ Ask a running :func:`run` loop to return. Safe to call from any
            thread, and harmless if the channel is not running.
        """

        self.stopping = True
        endpoint = self.endpoint

        if endpoint is not None:
            self.registry.interrupt(endpoint)


    def close(self):
        """ Release the endpoint. This happens exactly once; calling
            :func:`close` again, or on a channel that never attached, does
            nothing. A closed channel cannot be attached again.
        """

        endpoint = self.endpoint
        self.endpoint = None
        self.closed = True

        if endpoint is None:
            return

        self.registry.unbind(endpoint)
        logger.info("channel.closed", channel=self.name)


    def serve(self):
        """ Attach (if necessary), run, and close, with the endpoint released
            however :func:`run` exits.
        """

        try:
            if self.endpoint is None:
                self.attach()
            self.run()
        finally:
            self.close()


# end of class Channel


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
