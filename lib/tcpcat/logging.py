#
# This file is part of tcpcat. tcpcat is free software available under the
# terms of the MIT license. See the file "LICENSE" that was provided
# together with this source file for the licensing terms.
#
# Copyright (c) 2024-2026 the tcpcat authors. See the file "AUTHORS" for a
# complete list.

import os
import sys
import logging
import threading

import greenlet

from . import util

__all__ = ['get_logger', 'setup_logging']

# Add a new level: TRACE.
logging.TRACE = 5
assert logging.NOTSET < logging.TRACE < logging.DEBUG
logging.addLevelName(logging.TRACE, 'TRACE')

_logger_name = 'tcpcat'
_logger_dict = {}

# The logging module documents this slight hack to disable finding caller
# information (via sys._getframe()) for every logging call. In our logger we
# only get logging information if needed (at the DEBUG level or higher), so we
# can disable collecting it for every call.
logging._srcfile = None


def get_logger(context=None, name=None):
    """Return a logger for *context*.

    Return a :class:`ContextLogger` instance. The instance implements the
    standard library's :class:`logging.Logger` interface.
    """
    # Many class instances have their own logger. Share them to save memory if
    # possible, i.e. when *context* is not set.
    if name is None:
        name = _logger_name
    if context is None and name in _logger_dict:
        return _logger_dict[name]
    if context is not None and not isinstance(context, str):
        context = util.objref(context)
    logger = logging.getLogger(name)
    logger = ContextLogger(logger, context)
    if context is None:
        _logger_dict[name] = logger
    return logger


def setup_logging(verbose=None, stream=None):
    """Configure the root logger to write to *stream* (default: stderr).

    The *verbose* level maps 0 to no logs, 1 to CRITICAL, and so on up to 6
    for TRACE. If it is not provided, it is taken from the ``$VERBOSE``
    environment variable, defaulting to 5 when ``$DEBUG`` is set and to 2
    otherwise. Nothing happens if the root logger already has handlers.
    """
    logger = logging.getLogger()
    if logger.handlers:
        return
    if verbose is None:
        debug = int(os.environ.get('DEBUG', '0'))
        verbose = int(os.environ.get('VERBOSE', '5' if debug else '2'))
    handler = logging.StreamHandler(stream or sys.stderr)
    # Smarty-pants way to say 0 = no logs (60), 1 = CRITICAL (50), ... 6 = TRACE (5)
    level = max(5, 10 * (6 - verbose))
    logger.setLevel(level)
    template = '%(levelname)s %(message)s'
    handler.setFormatter(logging.Formatter(template))
    logger.addHandler(handler)


class ContextLogger(object):
    """A logger adapter that prepends a context string to log messages.

    It also supports passing arguments via '{}' format operations.
    """

    __slots__ = ('_logger', '_context')

    def __init__(self, logger, context=None):
        self._logger = logger
        self._context = context or ''

    @property
    def context(self):
        """Return the logging context."""
        return self._context

    def thread_info(self):
        """Return a string identifying the current thread and fiber."""
        tid = threading.current_thread().name
        if tid == 'MainThread':
            tid = 'Main'
        current = greenlet.getcurrent()
        fid = getattr(current, 'name', util.objref(current)) if current.parent else 'Root'
        return '{}/{}'.format(tid, fid)

    def frame_info(self):
        """Return a string identifying the current frame."""
        if not self._logger.isEnabledFor(logging.DEBUG):
            return ''
        f = sys._getframe(3)
        fname = os.path.split(f.f_code.co_filename)[1]
        return '{}:{}'.format(fname, f.f_lineno)

    def isEnabledFor(self, level):
        return self._logger.isEnabledFor(level)

    def log(self, level, msg, *args, **kwargs):
        if not self._logger.isEnabledFor(level):
            return
        prefix = '{}|{}|{}'.format(self.thread_info(), self.context or '-', self.frame_info())
        if args:
            msg = msg.format(*args)
        msg = '[{}] {}'.format(prefix, msg)
        self._logger._log(level, msg, (), **kwargs)

    def trace(self, msg, *args, **kwargs):
        self.log(logging.TRACE, msg, *args, **kwargs)

    def debug(self, msg, *args, **kwargs):
        self.log(logging.DEBUG, msg, *args, **kwargs)

    def info(self, msg, *args, **kwargs):
        self.log(logging.INFO, msg, *args, **kwargs)

    def warning(self, msg, *args, **kwargs):
        self.log(logging.WARNING, msg, *args, **kwargs)

    def error(self, msg, *args, **kwargs):
        self.log(logging.ERROR, msg, *args, **kwargs)

    def critical(self, msg, *args, **kwargs):
        self.log(logging.CRITICAL, msg, *args, **kwargs)

    def exception(self, msg, *args, **kwargs):
        kwargs['exc_info'] = True
        self.log(logging.ERROR, msg, *args, **kwargs)
