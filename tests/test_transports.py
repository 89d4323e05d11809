#
# This file is part of tcpcat. tcpcat is free software available under the
# terms of the MIT license. See the file "LICENSE" that was provided
# together with this source file for the licensing terms.
#
# Copyright (c) 2024-2026 the tcpcat authors. See the file "AUTHORS" for a
# complete list.

import errno
import socket
import threading
import unittest

import tcpcat
from tcpcat.transports import StreamHandle, TransportError, ClosedError
from tcpcat.transports import is_expected_closure, can_half_close
from support import UnitTest, socketpair


class TestStreamHandle(UnitTest):

    def test_read_write(self):
        s1, s2 = socketpair()
        handle = StreamHandle(s1)
        s2.sendall(b'foo')
        self.assertEqual(handle.read(), b'foo')
        handle.write(b'bar')
        self.assertEqual(s2.recv(10), b'bar')
        handle.close()
        s2.close()

    def test_read_wait(self):
        s1, s2 = socketpair()
        handle = StreamHandle(s1)
        def send_later():
            tcpcat.sleep(0.01)
            s2.sendall(b'foo')
        tcpcat.spawn(send_later)
        self.assertEqual(handle.read(), b'foo')
        handle.close()
        s2.close()

    def test_read_eof(self):
        s1, s2 = socketpair()
        handle = StreamHandle(s1)
        s2.close()
        self.assertEqual(handle.read(), b'')
        handle.close()

    def test_write_large(self):
        # A write larger than the socket buffers blocks until the peer reads.
        s1, s2 = socketpair(socket.AF_INET)
        handle = StreamHandle(s1)
        data = b'x' * (4*1024*1024)
        received = []
        def receive():
            while True:
                buf = s2.recv(65536)
                if not buf:
                    break
                received.append(buf)
        thread = threading.Thread(target=receive)
        thread.start()
        handle.write(data)
        handle.close()
        thread.join(10)
        self.assertEqual(b''.join(received), data)
        s2.close()

    def test_write_eof(self):
        # After write_eof() the peer sees end of input, and can still reply.
        s1, s2 = socketpair(socket.AF_INET)
        handle = StreamHandle(s1)
        self.assertTrue(handle.can_write_eof())
        handle.write(b'foo')
        handle.write_eof()
        self.assertTrue(handle.eof_written)
        buf = b''
        while True:
            chunk = s2.recv(10)
            if not chunk:
                break
            buf += chunk
        self.assertEqual(buf, b'foo')
        s2.sendall(b'bar')
        self.assertEqual(handle.read(), b'bar')
        s2.close()
        self.assertEqual(handle.read(), b'')
        handle.close()

    def test_write_after_eof(self):
        s1, s2 = socketpair()
        handle = StreamHandle(s1)
        handle.write_eof()
        handle.write_eof()
        exc = self.assertRaises(TransportError, handle.write, b'foo')
        self.assertEqual(exc.errno, errno.ESHUTDOWN)
        self.assertTrue(is_expected_closure(exc))
        handle.close()
        s2.close()

    def test_no_half_close(self):
        s1, s2 = socketpair()
        handle = StreamHandle(s1, can_write_eof=False)
        self.assertFalse(handle.can_write_eof())
        self.assertRaises(TransportError, handle.write_eof)
        self.assertFalse(handle.eof_written)
        handle.close()
        s2.close()

    def test_write_to_closed_peer(self):
        s1, s2 = socketpair()
        handle = StreamHandle(s1)
        s2.close()
        exc = self.assertRaises(TransportError, handle.write, b'foo' * 100000)
        self.assertIn(exc.errno, (errno.EPIPE, errno.ECONNRESET))
        handle.close()

    def test_close(self):
        s1, s2 = socketpair()
        handle = StreamHandle(s1)
        handle.close()
        self.assertTrue(handle.closed)
        self.assertEqual(s1.fileno(), -1)
        handle.close()
        exc = self.assertRaises(ClosedError, handle.read)
        self.assertEqual(exc.errno, errno.EBADF)
        self.assertRaises(ClosedError, handle.write, b'foo')
        self.assertRaises(ClosedError, handle.write_eof)
        s2.close()

    def test_close_wakes_reader(self):
        # Closing the handle makes a fiber blocked in read() raise ClosedError.
        s1, s2 = socketpair()
        handle = StreamHandle(s1)
        errors = []
        def reader():
            try:
                handle.read()
            except ClosedError as e:
                errors.append(e)
        fiber = tcpcat.spawn(reader)
        tcpcat.sleep(0.01)
        self.assertTrue(fiber.alive)
        handle.close()
        fiber.join(1)
        self.assertEqual(len(errors), 1)
        self.assertTrue(is_expected_closure(errors[0]))
        s2.close()

    def test_close_from_fiber(self):
        # Closing from another fiber while a read is blocked.
        s1, s2 = socketpair()
        handle = StreamHandle(s1)
        def closer():
            tcpcat.sleep(0.01)
            handle.close()
        tcpcat.spawn(closer)
        self.assertRaises(ClosedError, handle.read)
        s2.close()

    def test_extra_info(self):
        s1, s2 = socketpair(socket.AF_INET)
        handle = StreamHandle(s1)
        self.assertIs(handle.get_extra_info('socket'), s1)
        self.assertEqual(handle.get_extra_info('sockname'), s1.getsockname())
        self.assertEqual(handle.get_extra_info('peername'), s2.getsockname())
        self.assertIsNone(handle.get_extra_info('foo'))
        handle.close()
        self.assertIsNone(handle.get_extra_info('peername'))
        s2.close()


class TestClosureErrors(UnitTest):

    def test_expected(self):
        self.assertTrue(is_expected_closure(ClosedError('closed')))
        self.assertTrue(is_expected_closure(TransportError.from_errno(errno.EPIPE)))
        self.assertTrue(is_expected_closure(TransportError.from_errno(errno.EBADF)))
        self.assertTrue(is_expected_closure(OSError(errno.ENOTSOCK, 'not a socket')))
        self.assertTrue(is_expected_closure(ValueError('I/O operation on closed file.')))

    def test_unexpected(self):
        self.assertFalse(is_expected_closure(TransportError.from_errno(errno.ECONNRESET)))
        self.assertFalse(is_expected_closure(TransportError('other')))
        self.assertFalse(is_expected_closure(OSError(errno.EIO, 'I/O error')))
        self.assertFalse(is_expected_closure(ValueError('foo')))
        self.assertFalse(is_expected_closure(RuntimeError('foo')))

    def test_from_errno(self):
        exc = TransportError.from_errno(errno.ECONNRESET)
        self.assertEqual(exc.errno, errno.ECONNRESET)
        self.assertIn('ECONNRESET', str(exc))

    def test_can_half_close(self):
        s1, s2 = socketpair()
        self.assertTrue(can_half_close(s1))
        s1.close(); s2.close()
        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        self.assertFalse(can_half_close(sock))
        sock.close()


if __name__ == '__main__':
    unittest.main()
