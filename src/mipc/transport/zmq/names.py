""" On-disk name records for the zmq backend. Each bound channel name has a
    single JSON record in the ``registry`` subdirectory of
    :func:`mipc.config.directory`, describing where the channel can be
    reached and which process owns it. A record whose owner is no longer
    running is stale, and is treated as if it were not there.
"""

import os
import threading
import urllib.parse

from ... import config
from ... import json


def filename(name):
    """ Return the path of the record for the channel *name*. Channel names
        may contain slashes, and are quoted to form a single filename.
    """

    registry = config.subdirectory('registry')
    return os.path.join(registry, _quote(name) + '.json')



def authorized(name):
    """ Return the directory of public keys permitted to send to the channel
        *name*. The contents of this directory are the authorization policy
        for a secure channel; they are managed outside of mIPC.
    """

    return config.subdirectory('authorized', _quote(name))



def load(name):
    """ Return the record for *name*, or None if there is no live record.
        An unreadable record raises :class:`OSError`.
    """

    record = _read(filename(name))

    if record is not None and alive(record.get('pid')):
        return record

    return None



def save(name, record):
    """ Atomically write the *record* for *name*, replacing any record
        already there.
    """

    target = filename(name)
    temporary = _write_temporary(target, record)
    os.replace(temporary, target)



def claim(name, record):
    """ Atomically write the *record* for *name* if, and only if, no live
        record exists. Returns True if the record was written, and False if
        another live process holds the name. A stale record is removed and
        the claim retried.
    """

    target = filename(name)
    temporary = _write_temporary(target, record)

    try:
        for attempt in range(3):
            try:
                os.link(temporary, target)
            except FileExistsError:
                pass
            else:
                return True

            existing = _read(target)

            if existing is not None and alive(existing.get('pid')):
                return False

            if existing is None:
                remove(name)
            else:
                remove(name, existing.get('pid'))
    finally:
        os.remove(temporary)

    return False



def remove(name, pid=None):
    """ Remove the record for *name*. If *pid* is specified the record is
        only removed if that process still owns it.
    """

    target = filename(name)

    if pid is not None:
        try:
            record = _read(target)
        except OSError:
            return

        if record is None or record.get('pid') != pid:
            return

    try:
        os.remove(target)
    except FileNotFoundError:
        pass



def used_ports():
    """ Return the set of port numbers claimed by live records. Records that
        cannot be read or do not name a port are skipped.
    """

    registry = config.subdirectory('registry')
    ports = set()

    for thing in os.listdir(registry):
        if thing.endswith('.json'):
            pass
        else:
            continue

        try:
            record = load(urllib.parse.unquote(thing[:-5]))
        except OSError:
            continue

        if record is None:
            continue

        try:
            ports.add(int(record['port']))
        except (KeyError, TypeError, ValueError):
            continue

    return ports



def alive(pid):
    """ Return True if the process *pid* exists.
    """

    if pid is None:
        return False

    try:
        os.kill(int(pid), 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        # It exists, it just isn't ours.
        return True
    except (TypeError, ValueError, OverflowError):
        return False

    return True



def _read(target):
    """ Return the decoded record at *target*, or None if it is missing,
        corrupt, or not a JSON object.
    """

    try:
        raw_json = open(target, 'rb').read()
    except FileNotFoundError:
        return None

    try:
        record = json.loads(raw_json)
    except json.DecodeError:
        # A corrupt record is no better than none.
        return None

    if isinstance(record, dict):
        return record

    return None



def _write_temporary(target, record):

    temporary = '%s.%d.%d.tmp' % (target, os.getpid(), threading.get_ident())

    with open(temporary, 'wb') as record_file:
        record_file.write(json.dumps(record))

    return temporary



def _quote(name):
    name = str(name)

    if name == '':
        raise ValueError('channel names cannot be empty')

    return urllib.parse.quote(name, safe='')


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
