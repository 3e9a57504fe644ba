#!/usr/bin/env python3
"""
Run a receiver and two senders in one process.

SENDER1 is authorized and has every message acknowledged. SENDER2 is not
authorized: each of its sends is refused by the registry, the receiver
counts a security violation, and keeps serving.
"""

import argparse
import threading

import mipc
from mipc.transport import LocalRegistry


def authorize(principal, name):
    return principal == 'SENDER1'


def send(sender, registry, batch, results):

    connection = mipc.Connection(sender, 'RECEIVER', registry, principal=sender)

    with connection:
        connection.connect()
        results[sender] = connection.send_batch(batch)


def main():

    parser = argparse.ArgumentParser(description='In-process secure channel demonstration.')
    parser.add_argument('--count', type=int, default=5, help='Messages per sender')
    parser.add_argument('--interval', type=float, default=0.5, help='Seconds between messages')
    parser.add_argument('--log-level', default=None, help='Log level')
    arguments = parser.parse_args()

    mipc.log.configure(arguments.log_level)

    registry = LocalRegistry(authorize=authorize)
    channel = mipc.Channel('RECEIVER', registry)
    channel.attach()

    receiver = threading.Thread(target=channel.serve)
    receiver.start()

    batch = mipc.SendConfig(count=arguments.count, interval=arguments.interval, type=1, subtype=100)
    results = dict()

    senders = list()
    for sender in ('SENDER1', 'SENDER2'):
        thread = threading.Thread(target=send, args=(sender, registry, batch, results))
        thread.start()
        senders.append(thread)

    for thread in senders:
        thread.join()

    channel.stop()
    receiver.join()

    for sender in sorted(results):
        print('%s: %d of %d acknowledged' % (sender, results[sender], batch.count))

    print('RECEIVER: %d handled, %d security violations' % (channel.received, channel.violations))


if __name__ == '__main__':
    main()
