""" A class representation of an mIPC message, the fixed-layout value that
    a connection sends to a channel, plus the two small frames that travel
    alongside it: the reply status, and the pulse.
"""

import struct

from . import fields


class Message:
    """ The :class:`Message` is the only request format understood by a
        channel. The fields are in the same order as they appear on the
        wire: the request *type*, the request *subtype*, and the *body*.
        Both ends of a channel use the same fixed capacity for the body;
        there is no negotiation, and no sequence number or other identity
        beyond the content itself.

        The body is an opaque fixed-capacity buffer. A :class:`str` body is
        encoded as UTF-8 first. A body longer than :data:`fields.CAPACITY`
        bytes is truncated to exactly that many bytes; a body of exactly
        that length is carried intact, without a terminating NUL. Shorter
        bodies are padded with NUL bytes, and :attr:`body` returns the
        buffer contents up to the first NUL.

        :ivar type: Request category, an unsigned 16-bit integer.
        :ivar subtype: Request sub-category, an unsigned 16-bit integer.
        :ivar data: The full fixed-capacity buffer, as bytes.
    """

    capacity = fields.CAPACITY

    def __init__(self, type=0, subtype=0, body=b''):

        self.type = _uint16('type', type)
        self.subtype = _uint16('subtype', subtype)
        self.data = _fill(body, self.capacity)


    def __eq__(self, other):
        if isinstance(other, Message):
            pass
        else:
            return NotImplemented

        return (self.type, self.subtype, self.data) == (other.type, other.subtype, other.data)


    def __hash__(self):
        return hash((self.type, self.subtype, self.data))


    def __repr__(self):
        return 'Message(type=%d, subtype=%d, body=%r)' % (self.type, self.subtype, self.body)


    @property
    def body(self):
        """ The buffer contents up to, but not including, the first NUL.
        """

        return self.data.split(b'\x00', 1)[0]


    @body.setter
    def body(self, body):
        self.data = _fill(body, self.capacity)


    @property
    def text(self):
        """ The :attr:`body` decoded as UTF-8. A multi-byte character cut
            in half by truncation is replaced rather than raising an error.
        """

        return self.body.decode('utf-8', errors='replace')


    def pack(self):
        """ Return the fixed-size frame for this message.
        """

        return fields.MESSAGE.pack(self.type, self.subtype, self.data)


    @classmethod
    def unpack(cls, frame):
        """ Build a :class:`Message` from a received *frame*. The frame is
            read into a fixed-size buffer: a short frame is zero-filled, and
            anything beyond the fixed size is discarded.
        """

        size = fields.MESSAGE.size
        frame = bytes(frame[:size]).ljust(size, b'\x00')

        type, subtype, data = fields.MESSAGE.unpack(frame)

        message = cls(type, subtype)
        message.data = data
        return message


# end of class Message



class Pulse:
    """ A :class:`Pulse` is a liveness or notification signal delivered
        through the same receive path as requests. It carries a small
        *code* and a *value*, and is never replied to.
    """

    def __init__(self, code=0, value=0):
        self.code = int(code)
        self.value = int(value)


    def __eq__(self, other):
        if isinstance(other, Pulse):
            return (self.code, self.value) == (other.code, other.value)
        return NotImplemented


    def __hash__(self):
        return hash((self.code, self.value))


    def __repr__(self):
        return 'Pulse(code=%d, value=%d)' % (self.code, self.value)


    def pack(self):
        try:
            return fields.PULSE.pack(self.code, self.value)
        except struct.error as e:
            raise ValueError('pulse out of range: ' + str(e))


    @classmethod
    def unpack(cls, frame):
        code, value = fields.PULSE.unpack(frame)
        return cls(code, value)


# end of class Pulse



def pack_status(status):
    """ Return the reply frame for the integer *status*.
    """

    try:
        return fields.REPLY.pack(int(status))
    except struct.error:
        raise ValueError('reply status does not fit in 32 bits: ' + repr(status))



def unpack_status(frame):
    """ Return the integer status contained in a reply *frame*.
    """

    if len(frame) != fields.REPLY.size:
        raise ValueError('malformed reply: %d bytes' % (len(frame)))

    return fields.REPLY.unpack(frame)[0]



def _uint16(name, value):

    value = int(value)

    if value < 0 or value > fields.UINT16_MAX:
        raise ValueError('%s must be an unsigned 16-bit integer: %d' % (name, value))

    return value



def _fill(body, capacity):
    """ Apply the truncation policy and return exactly *capacity* bytes.
    """

    if body is None:
        body = b''
    elif isinstance(body, str):
        body = body.encode('utf-8')
    else:
        body = bytes(body)

    body = body[:capacity]
    return body.ljust(capacity, b'\x00')


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
