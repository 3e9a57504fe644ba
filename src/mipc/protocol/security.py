""" Classification of receive errors. A channel keeps serving after a
    security violation, where the registry's authorization mechanism
    rejected a sender, and stops serving after anything else.
"""

import enum
import errno


class Verdict(enum.Enum):
    SECURITY_VIOLATION = 'security-violation'
    FATAL = 'fatal'


# Permission-denied codes raised by the registry's authorization mechanism.

security_codes = frozenset((errno.EACCES, errno.EPERM))


def classify(code):
    """ Map an error *code* (an errno value) to a :class:`Verdict`. Any code
        not explicitly recognized, including None, is fatal.
    """

    if code in security_codes:
        return Verdict.SECURITY_VIOLATION

    return Verdict.FATAL


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
