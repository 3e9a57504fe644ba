"""
mIPC Protocol Layer
===================

This package defines the transport-agnostic pieces of the mIPC protocol:
the fixed-layout :class:`Message`, the reply and pulse frames, and the
classification of receive errors. Nothing here depends on a transport
implementation; dependencies flow downward only:

    Channel / Connection -> Registry (transport) -> Protocol
"""

from . import fields
from . import message
from . import security

from .fields import CAPACITY, STATUS_OK, STATUS_ERROR
from .message import Message, Pulse
from .security import Verdict, classify


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
