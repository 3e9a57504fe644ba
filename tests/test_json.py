import pytest

import mipc


def test_record_round_trip():

    record = dict()
    record['name'] = 'group/RECEIVER'
    record['address'] = '127.0.0.1'
    record['port'] = 10079
    record['pid'] = 4242
    record['public'] = 'rq:rM>}U?@Lns47E1%kR.o@n%FcmmsL/@{H8]yf7'

    encoded = mipc.json.dumps(record)

    assert isinstance(encoded, bytes)
    assert mipc.json.loads(encoded) == record


def test_truncated_record_is_rejected():

    encoded = mipc.json.dumps(dict(name='RECEIVER', port=10079))

    with pytest.raises(mipc.json.DecodeError):
        mipc.json.loads(encoded[:-3])


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
