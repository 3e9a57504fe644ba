"""Protocol constants.

Keep these in one place so both ends of a channel agree on sizes and
status values.
"""

import struct

from .. import config


CAPACITY = config.capacity

# Request frame: type, subtype, fixed-capacity body.
MESSAGE = struct.Struct('<HH%ds' % (CAPACITY,))

# Reply frame: a single signed status value.
REPLY = struct.Struct('<i')

# Pulse frame: a small code and a value, never replied to.
PULSE = struct.Struct('<bi')

UINT16_MAX = 0xFFFF

STATUS_OK = 0
STATUS_ERROR = -1
