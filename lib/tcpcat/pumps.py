#
# This file is part of tcpcat. tcpcat is free software available under the
# terms of the MIT license. See the file "LICENSE" that was provided
# together with this source file for the licensing terms.
#
# Copyright (c) 2024-2026 the tcpcat authors. See the file "AUTHORS" for a
# complete list.

import sys

from . import logging
from .transports import TransportError, is_expected_closure

__all__ = ['InboundPump', 'OutboundPump', 'report']


def report(diag, message):
    """Write the diagnostic line *message* to the text stream *diag*.

    Diagnostics are for humans and never mix with the relayed data.
    """
    if diag is None:
        diag = sys.stderr
    print(message, file=diag)
    diag.flush()
    logging.get_logger().debug('diag: {}', message.strip())


io_errors = (TransportError, OSError, ValueError)


class InboundPump(object):
    """Copy data from the remote end to a local sink.

    The *sink* is a binary file-like object with ``write()`` and ``flush()``.
    Whatever way the copy loop ends, the pump requests shutdown of the whole
    session: once the remote stops sending there is nothing left to wait for.
    """

    #: Maximum size of a single read from the remote.
    bufsize = 32*1024

    def __init__(self, handle, coordinator, sink, diag=None):
        self._handle = handle
        self._coordinator = coordinator
        self._sink = sink
        self._diag = diag
        self._nbytes = 0
        self._log = logging.get_logger(self)

    @property
    def bytes_copied(self):
        """The number of bytes written to the sink so far."""
        return self._nbytes

    def run(self):
        reason = 'remote closed'
        try:
            while True:
                buf = self._handle.read(self.bufsize)
                if not buf:
                    report(self._diag, '\n[connection closed by remote]')
                    break
                self._sink.write(buf)
                self._sink.flush()
                self._nbytes += len(buf)
        except io_errors as e:
            if is_expected_closure(e):
                self._log.debug('read loop ended by local closure: {!s}', e)
                reason = 'closed locally'
            else:
                report(self._diag, 'read error: {!s}'.format(e))
                reason = 'read error'
        finally:
            self._log.debug('copied {} bytes from remote', self._nbytes)
            self._coordinator.request_shutdown(reason)


class OutboundPump(object):
    """Copy local input, line by line, to the remote end.

    The *source* must have a blocking ``readline()`` that returns an empty
    bytes object at end of input, e.g. a :class:`~tcpcat.StreamReader`.

    At end of input the write direction of the handle is shut down, so that
    the remote can still answer. If the handle cannot do that, the whole
    session is shut down instead. A failed write only ends this pump; it is
    up to the inbound side to decide when the session is over.
    """

    def __init__(self, handle, coordinator, source, diag=None):
        self._handle = handle
        self._coordinator = coordinator
        self._source = source
        self._diag = diag
        self._nbytes = 0
        self._log = logging.get_logger(self)

    @property
    def bytes_copied(self):
        """The number of bytes written to the remote so far."""
        return self._nbytes

    def run(self):
        while True:
            try:
                buf = self._source.readline()
            except io_errors as e:
                if not is_expected_closure(e):
                    report(self._diag, 'stdin read error: {!s}'.format(e))
                self._log.debug('local input failed: {!s}', e)
                return
            if not buf:
                break
            try:
                self._handle.write(buf)
            except io_errors as e:
                if not is_expected_closure(e):
                    report(self._diag, 'write error: {!s}'.format(e))
                self._log.debug('write failed after {} bytes: {!s}', self._nbytes, e)
                return
            self._nbytes += len(buf)
        self._end_of_input()

    def _end_of_input(self):
        self._log.debug('end of local input after {} bytes', self._nbytes)
        if not self._handle.can_write_eof():
            report(self._diag, '[stdin closed] closing connection')
            self._coordinator.request_shutdown('end of input, no half-close')
            return
        try:
            self._handle.write_eof()
        except io_errors as e:
            if not is_expected_closure(e):
                report(self._diag, 'write error: {!s}'.format(e))
            return
        report(self._diag, '[stdin closed] sending FIN; waiting for remote...')
