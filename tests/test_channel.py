import errno

import pytest
from structlog.testing import capture_logs

import mipc
from mipc.transport import AttachError, ReceiveError, SecurityViolation

from conftest import Recorder, ScriptedRegistry, received


def test_run_requires_attach():

    channel = mipc.Channel('RECEIVER', ScriptedRegistry())

    with pytest.raises(RuntimeError):
        channel.run()


def test_attach_and_close():

    registry = ScriptedRegistry()
    channel = mipc.Channel('RECEIVER', registry)

    channel.attach()
    assert channel.attached
    endpoint = channel.endpoint

    channel.close()
    channel.close()

    assert registry.unbound == [endpoint]
    assert channel.attached is False

    with pytest.raises(RuntimeError):
        channel.attach()


def test_close_without_attach():

    registry = ScriptedRegistry()
    channel = mipc.Channel('RECEIVER', registry)

    channel.close()
    assert registry.unbound == []


def test_attach_with_a_new_name():

    registry = ScriptedRegistry()
    channel = mipc.Channel('RECEIVER', registry)

    channel.attach('OTHER')

    assert channel.name == 'OTHER'
    assert registry.bound[0][1] == 'OTHER'

    with pytest.raises(RuntimeError):
        channel.attach()


def test_attach_failure_leaves_channel_unattached(registry):

    first = mipc.Channel('RECEIVER', registry)
    first.attach()

    second = mipc.Channel('RECEIVER', registry)

    with pytest.raises(AttachError) as caught:
        second.attach()

    assert caught.value.code == errno.EEXIST
    assert second.attached is False

    first.close()
    second.attach()
    assert second.attached
    second.close()


def test_requests_are_handled_in_order():

    registry = ScriptedRegistry(incoming=[
        received('a', body='one'),
        received('b', body='two'),
        received('c', body='three'),
    ])

    recorder = Recorder(status=5)
    channel = mipc.Channel('RECEIVER', registry, recorder)
    channel.attach()
    channel.run()

    assert recorder.bodies == ['one', 'two', 'three']
    assert registry.replies == [('a', 5), ('b', 5), ('c', 5)]
    assert channel.received == 3
    assert channel.error.code == errno.EINTR


def test_security_violation_keeps_serving():

    registry = ScriptedRegistry(incoming=[
        ReceiveError(errno.EACCES),
        received('a'),
        ReceiveError(errno.EPERM),
        received('b'),
    ])

    seen = list()

    class Watchful(mipc.Channel):
        def violation(self, error):
            seen.append(error)

    channel = Watchful('RECEIVER', registry)
    channel.attach()
    channel.run()

    assert channel.violations == 2
    assert channel.received == 2
    assert [token for token, status in registry.replies] == ['a', 'b']

    assert all(isinstance(error, SecurityViolation) for error in seen)
    assert [error.code for error in seen] == [errno.EACCES, errno.EPERM]


def test_security_violation_is_logged():

    registry = ScriptedRegistry(incoming=[ReceiveError(errno.EACCES), received('a')])
    channel = mipc.Channel('RECEIVER', registry)
    channel.attach()

    with capture_logs() as logs:
        channel.run()

    warnings = [entry for entry in logs if entry['event'] == 'security.violation']
    assert len(warnings) == 1
    assert warnings[0]['log_level'] == 'warning'
    assert warnings[0]['code'] == errno.EACCES

    assert registry.replies == [('a', mipc.STATUS_OK)]


@pytest.mark.parametrize('code', [errno.EBADF, errno.ESRCH, errno.EIO, None])
def test_fatal_error_stops_serving(code):

    registry = ScriptedRegistry(incoming=[ReceiveError(code), received('never')])
    channel = mipc.Channel('RECEIVER', registry)
    channel.attach()

    with capture_logs() as logs:
        channel.run()

    assert channel.error.code == code
    assert channel.received == 0
    assert registry.replies == []
    assert len(registry.incoming) == 1

    errors = [entry for entry in logs if entry['event'] == 'channel.receive_failed']
    assert len(errors) == 1


def test_stop_is_not_an_error():

    registry = ScriptedRegistry()
    channel = mipc.Channel('RECEIVER', registry)
    channel.attach()
    channel.stop()

    assert registry.interrupts == 1

    with capture_logs() as logs:
        channel.run()

    assert [entry['event'] for entry in logs] == ['channel.stopped']


def test_stop_before_attach_is_harmless():

    registry = ScriptedRegistry()
    channel = mipc.Channel('RECEIVER', registry)
    channel.stop()

    assert registry.interrupts == 0


def test_pulses_are_not_replied_to():

    registry = ScriptedRegistry(incoming=[mipc.Pulse(1, 2), received('a'), mipc.Pulse(3, 4)])

    pulses = list()

    class Counting(mipc.Channel):
        def pulse(self, pulse):
            pulses.append(pulse)

    channel = Counting('RECEIVER', registry)
    channel.attach()
    channel.run()

    assert channel.pulses == 2
    assert pulses == [mipc.Pulse(1, 2), mipc.Pulse(3, 4)]
    assert registry.replies == [('a', mipc.STATUS_OK)]


def test_handler_failure_replies_error():

    def broken(message):
        raise KeyError(message.text)

    registry = ScriptedRegistry(incoming=[received('a'), received('b')])
    channel = mipc.Channel('RECEIVER', registry, broken)
    channel.attach()

    with capture_logs() as logs:
        channel.run()

    assert registry.replies == [('a', mipc.STATUS_ERROR), ('b', mipc.STATUS_ERROR)]
    assert len([entry for entry in logs if entry['event'] == 'channel.handler_failed']) == 2


@pytest.mark.parametrize('status,expected', [
    (None, mipc.STATUS_OK),
    (0, 0),
    (12, 12),
    (-3, -3),
    (2 ** 40, mipc.STATUS_ERROR),
    ('not a number', mipc.STATUS_ERROR),
])
def test_handler_status(status, expected):

    registry = ScriptedRegistry(incoming=[received('a')])
    channel = mipc.Channel('RECEIVER', registry, lambda message: status)
    channel.attach()
    channel.run()

    assert registry.replies == [('a', expected)]


def test_default_handler_logs_the_message():

    registry = ScriptedRegistry(incoming=[received('a', type=1, subtype=100, body='Hello from S1 - Message #1')])
    channel = mipc.Channel('RECEIVER', registry)
    channel.attach()

    with capture_logs() as logs:
        channel.run()

    entries = [entry for entry in logs if entry['event'] == 'message.received']
    assert len(entries) == 1
    assert entries[0]['type'] == 1
    assert entries[0]['subtype'] == 100
    assert entries[0]['body'] == 'Hello from S1 - Message #1'


def test_serve_releases_the_endpoint():

    registry = ScriptedRegistry(incoming=[received('a'), ReceiveError(errno.EBADF)])
    channel = mipc.Channel('RECEIVER', registry)

    channel.serve()

    assert len(registry.bound) == 1
    assert registry.unbound == registry.bound
    assert channel.attached is False
    assert channel.error.code == errno.EBADF


def test_serve_releases_the_endpoint_when_receive_raises():

    registry = ScriptedRegistry(incoming=[received('a'), RuntimeError('receive exploded')])
    channel = mipc.Channel('RECEIVER', registry)

    with pytest.raises(RuntimeError):
        channel.serve()

    assert len(registry.bound) == 1
    assert registry.unbound == registry.bound
    assert registry.replies == [('a', mipc.STATUS_OK)]
    assert channel.attached is False

    channel.close()
    assert len(registry.unbound) == 1


def test_serve_releases_the_endpoint_when_a_hook_raises():

    class Strict(mipc.Channel):
        def violation(self, error):
            raise error

    registry = ScriptedRegistry(incoming=[ReceiveError(errno.EACCES), received('never')])
    channel = Strict('RECEIVER', registry)

    with pytest.raises(SecurityViolation):
        channel.serve()

    assert registry.unbound == registry.bound
    assert registry.replies == []


def test_context_manager_releases_the_endpoint():

    registry = ScriptedRegistry()

    with mipc.Channel('RECEIVER', registry) as channel:
        channel.attach()

    assert registry.unbound == registry.bound


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
