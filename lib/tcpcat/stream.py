#
# This file is part of tcpcat. tcpcat is free software available under the
# terms of the MIT license. See the file "LICENSE" that was provided
# together with this source file for the licensing terms.
#
# Copyright (c) 2024-2026 the tcpcat authors. See the file "AUTHORS" for a
# complete list.

import os
import errno
import threading

from . import logging
from .sync import Event
from .hub import get_hub, switchpoint
from .transports import ClosedError, TransportError

__all__ = ['StreamReader', 'StdinReader']


class StreamReader(object):
    """A stream reader.

    This is a utility class that is used to implement a blocking reader
    interface on top of a memory buffer. Data is added with :meth:`feed` and
    end-of-file is signalled with :meth:`feed_eof`.

    A stream reader always operates on ``bytes`` instances.
    """

    def __init__(self, on_buffer_size_change=None):
        self._on_buffer_size_change = on_buffer_size_change
        self._can_read = Event()
        self._buffers = []
        self._buffer_size = 0
        self._offset = 0
        self._eof = False
        self._error = None

    @property
    def buffer_size(self):
        """Return the amount of bytes currently in the buffer."""
        return self._buffer_size

    @property
    def eof(self):
        """Return whether the stream is currently at end-of-file."""
        return self._eof and self._buffer_size == 0

    @property
    def closed(self):
        """Whether :meth:`close` was called."""
        return isinstance(self._error, ClosedError)

    def _set_buffer_size(self, newsize):
        oldsize = self._buffer_size
        self._buffer_size = newsize
        if self._on_buffer_size_change:
            self._on_buffer_size_change(self, oldsize, newsize)

    def feed(self, data):
        """Add *data* to the buffer."""
        if self._eof or self._error:
            return
        self._buffers.append(data)
        self._set_buffer_size(self._buffer_size + len(data))
        self._can_read.set()

    def feed_eof(self):
        """Set the EOF condition."""
        self._eof = True
        self._can_read.set()

    def feed_error(self, exc):
        """Set the error condition to *exc*.

        Data that is still buffered is returned first, then *exc* is raised.
        """
        self._error = exc
        self._can_read.set()

    def close(self):
        """Close the reader.

        Buffered data is discarded and readers, including those currently
        blocked, raise :class:`ClosedError`.
        """
        if self.closed:
            return
        del self._buffers[:]
        self._offset = 0
        self._set_buffer_size(0)
        self.feed_error(ClosedError('reader was closed', errno.EBADF))

    @switchpoint
    def _get_chunk(self, size=-1, delim=None):
        # Get a single chunk of data. The chunk will be at most *size* bytes.
        # If *delim* is provided, then return a partial chunk if it contains
        # the delimiter.
        if size != 0:
            self._can_read.wait()
        if not self._buffers:
            return b''  # EOF or error
        # Clamp the current buffer to *size* bytes.
        endpos = len(self._buffers[0])
        if size == -1:
            size = endpos
        if self._offset + size < endpos:
            endpos = self._offset + size
        # Reduce it even further if the delimiter is found
        if delim:
            pos = self._buffers[0].find(delim, self._offset, endpos)
            if pos != -1:
                endpos = pos + len(delim)
        nbytes = endpos - self._offset
        # Try to move a buffer instead of copying.
        if self._offset == 0 and endpos == len(self._buffers[0]):
            chunk = self._buffers.pop(0)
        else:
            chunk = self._buffers[0][self._offset:endpos]
            self._offset = endpos
            if self._offset == len(self._buffers[0]):
                del self._buffers[0]
                self._offset = 0
        self._set_buffer_size(self._buffer_size - nbytes)
        # If there's no data and no error, clear the reading indicator.
        if not self._buffers and not self._eof and not self._error:
            self._can_read.clear()
        return chunk

    @switchpoint
    def readline(self, limit=-1, delim=b'\n'):
        """Read a single line.

        If EOF is reached before a full line can be read, a partial line is
        returned. If *limit* is specified, at most this many bytes will be read.
        """
        chunks = []
        while True:
            chunk = self._get_chunk(limit, delim)
            if not chunk:
                break
            chunks.append(chunk)
            if chunk.endswith(delim):
                break
            if limit >= 0:
                limit -= len(chunk)
                if limit == 0:
                    break
        if not chunks and self._error:
            raise self._error
        return b''.join(chunks)


class StdinReader(StreamReader):
    """A stream reader that is fed from a file descriptor by a helper thread.

    Reading standard input with blocking reads from a separate thread works
    the same for terminals, pipes and regular files, and leaves the blocking
    mode of the descriptor alone. Terminals often share that mode with
    standard output and standard error.

    The thread hands everything over to the hub with
    :meth:`~tcpcat.Hub.run_callback`, so the buffer is only ever touched from
    the hub's thread. It stops reading while more than :attr:`high_water`
    bytes are buffered.
    """

    #: Size of the reads done by the helper thread.
    bufsize = 32*1024
    #: Reading pauses when this many bytes are buffered.
    high_water = 64*1024

    def __init__(self, fd=0, hub=None):
        super(StdinReader, self).__init__(self._update_read_buffer)
        self._fd = fd
        self._hub = hub if hub is not None else get_hub()
        self._can_feed = threading.Event()
        self._can_feed.set()
        self._thread = None
        self._log = logging.get_logger(self)

    def _update_read_buffer(self, reader, oldsize, newsize):
        # Flow control towards the helper thread.
        if newsize > self.high_water:
            self._can_feed.clear()
        else:
            self._can_feed.set()

    def start(self):
        """Start the helper thread."""
        if self._thread is not None:
            return
        name = 'StdinReader-{}'.format(self._fd)
        self._thread = threading.Thread(target=self._read_loop, name=name)
        self._thread.daemon = True
        self._thread.start()

    def _read_loop(self):
        # Runs in the helper thread.
        while True:
            self._can_feed.wait()
            if self.closed:
                break
            try:
                data = os.read(self._fd, self.bufsize)
            except InterruptedError:
                continue
            except OSError as e:
                self._deliver(self.feed_error, TransportError.from_errno(e.errno))
                break
            if not data:
                self._deliver(self.feed_eof)
                break
            self._deliver(self.feed, data)
        self._log.debug('reader thread exiting')

    def _deliver(self, method, *args):
        try:
            self._hub.run_callback(method, *args)
        except RuntimeError:
            pass  # hub is gone, nobody is reading anymore

    def close(self):
        """Close the reader. The helper thread exits after its current read."""
        super(StdinReader, self).close()
        self._can_feed.set()
