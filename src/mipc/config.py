""" Configuration for mIPC: where the name registry lives on disk, which
    transport backend is used by default, and the protocol defaults shared
    by every channel and connection on a host.
"""

import errno
import os


# Protocol defaults. The capacity must be identical on both ends of the
# transport; there is no negotiation.

capacity = 256
attempts = 5
retry_delay = 1

# Loopback port range used by the zmq backend when binding a channel.

minimum_port = 10079
maximum_port = 13679

default_transport = 'zmq'
default_log_level = 'INFO'


def directory(default=None):
    """ Return the mIPC home directory, where the name registry and the
        authorized keys live. The location is, in order of preference:
        the *default* most recently passed to this function, which must
        be absolute and is created if necessary; ``$MIPC_HOME``, read once
        on first use; or ``$HOME/.mIPC``.
    """

    if default is not None:
        location = os.path.expanduser(os.path.expandvars(str(default)))

        if not os.path.isabs(location):
            raise ValueError('the mIPC home directory must be an absolute path: ' + repr(default))

        os.makedirs(location, mode=0o775, exist_ok=True)
        os.environ['MIPC_HOME'] = location
        directory.found = location

    if directory.found is None:
        location = os.environ.get('MIPC_HOME')

        if location is None:
            home = os.environ.get('HOME')
            if home is None:
                raise RuntimeError('neither MIPC_HOME nor HOME is set; cannot locate the mIPC home directory')
            location = os.path.join(home, '.mIPC')

        directory.found = location

    return directory.found

directory.found = None



def subdirectory(*parts):
    """ Return (and create, if necessary) a directory underneath the
        :func:`directory` location.
    """

    target = os.path.join(directory(), *parts)

    if os.path.exists(target):
        if os.access(target, os.W_OK) != True:
            raise PermissionError(errno.EACCES, 'cannot write to directory', target)
    else:
        os.makedirs(target, mode=0o775, exist_ok=True)

    return target



def transport():
    """ Return the name of the default transport backend, as selected by
        the ``MIPC_TRANSPORT`` environment variable.
    """

    backend = os.environ.get('MIPC_TRANSPORT', default_transport)
    return backend.strip().lower()



def log_level():
    """ Return the log level requested via ``MIPC_LOG_LEVEL``.
    """

    level = os.environ.get('MIPC_LOG_LEVEL', default_log_level)
    return level.strip().upper()


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
