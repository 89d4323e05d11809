#
# This file is part of tcpcat. tcpcat is free software available under the
# terms of the MIT license. See the file "LICENSE" that was provided
# together with this source file for the licensing terms.
#
# Copyright (c) 2024-2026 the tcpcat authors. See the file "AUTHORS" for a
# complete list.

import os
import errno
import socket

from . import logging
from .errors import Error
from .hub import get_hub, switchpoint, switch_back, READABLE, WRITABLE

__all__ = ['TransportError', 'ClosedError', 'is_expected_closure', 'StreamHandle']


class TransportError(Error):
    """A transport error."""

    def __init__(self, message, errno=None):
        super(TransportError, self).__init__(message)
        self._errno = errno

    @property
    def errno(self):
        return self._errno

    @classmethod
    def from_errno(cls, errno):
        """Create a new instance from an errno."""
        message = '{}: {}'.format(_errorcode(errno), os.strerror(errno))
        return cls(message, errno)


class ClosedError(TransportError):
    """The transport was closed locally.

    This is raised into fibers blocked on a handle when the handle is closed
    from elsewhere, and by any operation started on a closed handle.
    """


def _errorcode(num):
    return errno.errorcode.get(num, 'E{}'.format(num))


# OS errors that mean "this stream is already closed" rather than something
# going wrong on the wire.
closed_errors = frozenset(getattr(errno, name) for name in
                          ('EBADF', 'EPIPE', 'ESHUTDOWN', 'ENOTSOCK')
                          if hasattr(errno, name))


def is_expected_closure(exc):
    """Return whether the I/O error *exc* is the result of a closure that
    already happened, either locally or by the peer shutting down its end."""
    if isinstance(exc, ClosedError):
        return True
    elif isinstance(exc, (TransportError, OSError)):
        return exc.errno in closed_errors
    elif isinstance(exc, ValueError):
        # Python file objects raise this for I/O on a closed file.
        return 'closed file' in str(exc)
    return False


_half_close_families = frozenset(getattr(socket, name) for name in
                                 ('AF_INET', 'AF_INET6', 'AF_UNIX')
                                 if hasattr(socket, name))


def can_half_close(sock):
    """Return whether *sock* supports shutting down only its write side."""
    return sock.type == socket.SOCK_STREAM and sock.family in _half_close_families


class StreamHandle(object):
    """A bidirectional byte stream on top of a connected socket.

    The handle offers blocking :meth:`read` and :meth:`write` methods that
    only block the calling fiber. Closing the handle makes any fiber that is
    blocked on it raise :class:`ClosedError`.

    Whether the write direction can be closed on its own (half-close) is
    decided once, when the handle is created. See :meth:`can_write_eof`.
    """

    #: The default maximum number of bytes returned by :meth:`read`.
    read_size = 65536

    def __init__(self, sock, can_write_eof=None, hub=None):
        """
        The *sock* argument must be a connected stream socket. It will be put
        in non-blocking mode and is owned by the handle from now on.

        The *can_write_eof* argument overrides the half-close capability that
        is otherwise derived from the socket's family and type.
        """
        self._hub = hub if hub is not None else get_hub()
        self._sock = sock
        self._sock.setblocking(False)
        self._fd = sock.fileno()
        if can_write_eof is None:
            can_write_eof = can_half_close(sock)
        self._can_write_eof = bool(can_write_eof)
        self._eof_written = False
        self._closed = False
        self._waiters = set()
        self._log = logging.get_logger(self)

    @property
    def closed(self):
        """Whether the handle is closed."""
        return self._closed

    @property
    def eof_written(self):
        """Whether :meth:`write_eof` was called."""
        return self._eof_written

    def fileno(self):
        """Return the file descriptor of the underlying socket."""
        return self._fd

    def can_write_eof(self):
        """Whether this handle can close the write direction only."""
        return self._can_write_eof

    def get_extra_info(self, name, default=None):
        """Get transport specific data.

        The following information is available:

        ==================  ===================================================
        Name                Description
        ==================  ===================================================
        ``'socket'``        The underlying socket.
        ``'sockname'``      The local socket address.
        ``'peername'``      The remote socket address.
        ==================  ===================================================
        """
        if name == 'socket':
            return self._sock
        elif self._closed:
            return default
        try:
            if name == 'sockname':
                return self._sock.getsockname()
            elif name == 'peername':
                return self._sock.getpeername()
        except OSError:
            pass
        return default

    def _check_open(self):
        if self._closed:
            raise ClosedError('transport is closed', errno.EBADF)

    def _wait(self, events):
        # Wait until the socket is ready for *events*, or the handle is closed.
        hub = self._hub
        with switch_back(hub=hub) as switcher:
            handle = hub.poll.add_callback(self._fd, events, switcher)
            switcher.add_cleanup(hub.poll.remove_callback, self._fd, handle)
            self._waiters.add(switcher)
            switcher.add_cleanup(self._waiters.discard, switcher)
            hub.switch()

    def _retry(self, method, args, events):
        while True:
            self._check_open()
            try:
                return method(*args)
            except (BlockingIOError, InterruptedError):
                pass
            except OSError as e:
                raise TransportError.from_errno(e.errno)
            self._wait(events)

    @switchpoint
    def read(self, size=None):
        """Read up to *size* bytes.

        This returns as soon as some data is available. An empty bytes object
        is returned when the peer closed its write direction.
        """
        if size is None:
            size = self.read_size
        return self._retry(self._sock.recv, (size,), READABLE)

    @switchpoint
    def write(self, data):
        """Write *data* to the transport.

        This returns when all data was handed to the operating system.
        """
        if self._eof_written:
            raise TransportError('cannot write after write_eof()', errno.ESHUTDOWN)
        view = memoryview(data).cast('B')
        while view:
            nbytes = self._retry(self._sock.send, (view,), WRITABLE)
            view = view[nbytes:]

    def write_eof(self):
        """Shut down the write direction of the transport.

        The read direction stays open, so data that the peer still sends can
        be read until it closes its side too.
        """
        if not self._can_write_eof:
            raise TransportError('transport does not support write_eof()')
        self._check_open()
        if self._eof_written:
            return
        try:
            self._sock.shutdown(socket.SHUT_WR)
        except OSError as e:
            raise TransportError.from_errno(e.errno)
        self._eof_written = True
        self._log.debug('write direction shut down')

    def close(self):
        """Close the transport.

        Any fiber that is blocked in :meth:`read` or :meth:`write` raises a
        :class:`ClosedError`. Calling this method more than once is allowed;
        only the first call has an effect.
        """
        if self._closed:
            return
        self._closed = True
        self._hub.poll.remove_fd(self._fd)
        waiters = list(self._waiters)
        self._waiters.clear()
        for switcher in waiters:
            switcher.throw(ClosedError, ClosedError('transport was closed', errno.EBADF))
        self._sock.close()
        self._log.debug('transport closed, {} waiter(s) woken up', len(waiters))
