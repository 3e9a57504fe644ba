""" Python implementation of mIPC: synchronous, named-channel message passing
    between one receiving :class:`Channel` and any number of sending
    :class:`Connection` instances, with authorization enforced by the name
    registry underneath them.
"""

# Utility components.

from . import json
from . import config
from . import log
home = config.directory

# Submodules used by multiple other components.

from . import protocol
from . import transport

# Primary public-facing interfaces.

from .protocol import Message, Pulse, CAPACITY, STATUS_OK, STATUS_ERROR
from .channel import Channel
from .connection import Connection, SendConfig

# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
