""" Command line wrappers around a :class:`mipc.Channel` and a
    :class:`mipc.Connection`. Both exit 0 on success, and 1 if the channel
    could not attach, the connection could not be established, or a send
    batch did not fully complete.
"""

import argparse
import signal
import sys
import threading
import time

import structlog

from . import config
from . import log
from . import transport
from .channel import Channel
from .connection import Connection, SendConfig, default_template
from .transport.base import TransportError


logger = structlog.get_logger(__name__)


def receiver_parser():

    parser = argparse.ArgumentParser(
        prog='mipc-receiver',
        description='Attach a channel name and reply to every request sent to it.',
    )
    parser.add_argument('name', help='Channel name to attach')
    parser.add_argument(
        '--secure',
        action='store_true',
        help='Only admit senders whose public key is in the authorized-keys directory',
    )
    parser.add_argument('--log-level', default=None, help='Log level (default: $MIPC_LOG_LEVEL or INFO)')

    return parser



def sender_parser():

    parser = argparse.ArgumentParser(
        prog='mipc-sender',
        description='Connect to a channel and send a batch of messages to it.',
    )
    parser.add_argument('sender', help='Identifier for this sender')
    parser.add_argument('name', help='Channel name to connect to')
    parser.add_argument('--count', type=int, default=10, help='Number of messages to send')
    parser.add_argument('--interval', type=float, default=2, help='Seconds between messages')
    parser.add_argument('--type', type=int, default=1, help='Message type')
    parser.add_argument('--subtype', type=int, default=100, help='Message subtype')
    parser.add_argument('--template', default=default_template, help='Message body template')
    parser.add_argument('--attempts', type=int, default=config.attempts, help='Connection attempts')
    parser.add_argument('--delay', type=float, default=config.retry_delay, help='Seconds between connection attempts')
    parser.add_argument('--startup-delay', type=float, default=0, help='Seconds to wait before connecting')
    parser.add_argument('--certificate', default=None, help='Secret certificate presented to secure channels')
    parser.add_argument('--timeout', type=float, default=None, help='Seconds to wait for each reply')
    parser.add_argument('--log-level', default=None, help='Log level (default: $MIPC_LOG_LEVEL or INFO)')

    return parser



def receiver(argv=None):
    """ Run a channel until it is stopped by SIGINT or SIGTERM, or until a
        fatal receive error. Returns the process exit status.
    """

    arguments = receiver_parser().parse_args(argv)
    log.configure(arguments.log_level)

    registry = transport.create('zmq', secure=arguments.secure)
    channel = Channel(arguments.name, registry)

    try:
        channel.attach()
    except TransportError:
        return 1

    if threading.current_thread() is threading.main_thread():
        def stop(signum, frame):
            channel.stop()

        signal.signal(signal.SIGINT, stop)
        signal.signal(signal.SIGTERM, stop)

    try:
        channel.run()
    finally:
        channel.close()

    logger.info("receiver.exiting", channel=arguments.name, received=channel.received, violations=channel.violations)
    return 0



def sender(argv=None):
    """ Connect, send one batch, and return the process exit status.
    """

    arguments = sender_parser().parse_args(argv)
    log.configure(arguments.log_level)

    if arguments.startup_delay > 0:
        time.sleep(arguments.startup_delay)

    batch = SendConfig(
        count=arguments.count,
        interval=arguments.interval,
        type=arguments.type,
        subtype=arguments.subtype,
        template=arguments.template,
    )

    registry = transport.create('zmq', timeout=arguments.timeout)

    with Connection(arguments.sender, arguments.name, registry, arguments.certificate) as connection:
        try:
            connection.connect(arguments.attempts, arguments.delay)
        except TransportError:
            return 1

        sent = connection.send_batch(batch)

    logger.info("sender.completed", sender=arguments.sender, sent=sent, count=batch.count)

    if sent == batch.count:
        return 0
    return 1



def receiver_main():
    sys.exit(receiver())



def sender_main():
    sys.exit(sender())


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
