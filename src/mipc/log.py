""" Logging setup for mIPC processes. Library modules only ever call
    :func:`structlog.get_logger`; an application (such as the command line
    wrappers in :mod:`mipc.cli`) calls :func:`configure` once at startup
    to decide how those events are rendered.
"""

import logging
import sys

import structlog

from . import config


def configure(level=None, renderer=None):
    """ Configure structlog and the standard library logging machinery it
        feeds into. The *level* defaults to ``MIPC_LOG_LEVEL``; the
        *renderer* defaults to the structlog console renderer.
    """

    if level is None:
        level = config.log_level()

    level = str(level).upper()

    numeric = logging.getLevelName(level)

    if isinstance(numeric, int):
        pass
    else:
        raise ValueError('unknown log level: ' + repr(level))

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=numeric,
    )

    if renderer is None:
        renderer = structlog.dev.ConsoleRenderer(colors=False)

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.format_exc_info,
        renderer,
    ]

    structlog.configure(
        processors=processors,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )

    logging.getLogger('mipc').setLevel(numeric)


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
