''' JSON encoding for the name registry records that map a channel name to
    an endpoint; the messages themselves use a fixed binary layout. The
    :func:`dumps` method returns bytes, which is what gets written to disk.
'''

import msgspec


encoder = msgspec.json.Encoder()
decoder = msgspec.json.Decoder()

dumps = encoder.encode
loads = decoder.decode

# Raised by loads() for malformed input.

DecodeError = msgspec.DecodeError

# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
