#
# This file is part of tcpcat. tcpcat is free software available under the
# terms of the MIT license. See the file "LICENSE" that was provided
# together with this source file for the licensing terms.
#
# Copyright (c) 2024-2026 the tcpcat authors. See the file "AUTHORS" for a
# complete list.

import io
import os
import sys
import socket
import threading
import unittest

from tcpcat.hub import get_hub
from tcpcat.logging import setup_logging

__all__ = []


def socketpair(family=socket.AF_UNIX, type=socket.SOCK_STREAM, proto=0):
    """Return a pair of connected sockets.

    With *family* set to ``AF_INET`` a real TCP connection over the loopback
    interface is created.
    """
    if family == socket.AF_UNIX:
        return socket.socketpair(family, type, proto)
    lsock = socket.socket(family, type, proto)
    lsock.bind(('localhost', 0))
    lsock.listen(1)
    csock = socket.create_connection(lsock.getsockname()[:2])
    ssock, _ = lsock.accept()
    lsock.close()
    return (ssock, csock)


class TextSink(io.StringIO):
    """A diagnostic stream that can be inspected while it is written to."""

    def lines(self):
        return self.getvalue().splitlines()


class ScriptedSource(object):
    """A local input that returns scripted lines from :meth:`readline`.

    An entry that is an exception instance is raised instead of returned.
    After the last entry, end of input is returned.
    """

    def __init__(self, lines):
        self._lines = list(lines)
        self.closed = False

    def readline(self):
        if not self._lines:
            return b''
        line = self._lines.pop(0)
        if isinstance(line, BaseException):
            raise line
        return line

    def close(self):
        self.closed = True


class EchoServer(object):
    """A TCP echo server that runs in a separate thread.

    The server accepts a single connection and echoes everything it reads.
    When the client shuts down its write direction, the server sends
    *farewell*, if any, and closes the connection.

    When *hold* is true, the server never closes the connection by itself.
    It is released with :meth:`close`.
    """

    def __init__(self, farewell=None, hold=False):
        self.farewell = farewell
        self.hold = hold
        self.received = b''
        self._sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self._sock.bind(('127.0.0.1', 0))
        self._sock.listen(1)
        self.address = self._sock.getsockname()
        self._release = threading.Event()
        self._thread = threading.Thread(target=self._run, name='EchoServer')
        self._thread.daemon = True
        self._thread.start()

    def _run(self):
        try:
            conn, _ = self._sock.accept()
        except OSError:
            return
        with conn:
            while True:
                try:
                    buf = conn.recv(4096)
                except OSError:
                    return
                if not buf:
                    break
                self.received += buf
                conn.sendall(buf)
            if self.farewell:
                conn.sendall(self.farewell)
            if self.hold:
                self._release.wait(10)

    def close(self):
        self._release.set()
        self._sock.close()
        self._thread.join(5)


class TestCase(unittest.TestCase):
    """Base class for test suites."""

    @classmethod
    def setUpClass(cls):
        setup_logging(stream=sys.stdout)
        cls.testdir = os.path.abspath(os.path.split(__file__)[0])
        cls.topdir = os.path.split(cls.testdir)[0]

    def tearDown(self):
        # Check that no poll callbacks remain. This would mess with other tests.
        hub = get_hub()
        leaked = len(hub.poll)
        hub.close()
        if leaked:
            raise RuntimeError('test leaked {} poll callbacks'.format(leaked))

    def assertRaises(self, exc, func, *args, **kwargs):
        # Like unittest.assertRaises, but returns the exception.
        try:
            func(*args, **kwargs)
        except exc as e:
            exc = e
        except Exception as e:
            self.fail('Wrong exception raised: {0!s}'.format(e))
        else:
            self.fail('Exception not raised: {0!s}'.format(exc))
        return exc


class UnitTest(TestCase):
    """Base class for unit tests."""
