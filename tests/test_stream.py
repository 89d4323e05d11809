#
# This file is part of tcpcat. tcpcat is free software available under the
# terms of the MIT license. See the file "LICENSE" that was provided
# together with this source file for the licensing terms.
#
# Copyright (c) 2024-2026 the tcpcat authors. See the file "AUTHORS" for a
# complete list.

import os
import errno
import unittest

import tcpcat
from tcpcat.stream import StreamReader, StdinReader
from tcpcat.transports import ClosedError, TransportError
from support import UnitTest


class TestStreamReader(UnitTest):

    def test_readline_wait(self):
        reader = StreamReader()
        def write_more():
            tcpcat.sleep(0.01)
            reader.feed(b'bar\n')
        tcpcat.spawn(write_more)
        self.assertEqual(reader.readline(), b'bar\n')

    def test_readline(self):
        reader = StreamReader()
        reader.feed(b'foo\nbar\n')
        self.assertEqual(reader.readline(), b'foo\n')
        self.assertEqual(reader.readline(), b'bar\n')

    def test_readline_incr(self):
        reader = StreamReader()
        buf = b'foo\nbar\n'
        for i in range(len(buf)):
            reader.feed(buf[i:i+1])
        self.assertEqual(reader.readline(), b'foo\n')
        self.assertEqual(reader.readline(), b'bar\n')

    def test_readline_limit(self):
        reader = StreamReader()
        reader.feed(b'foobar\n')
        self.assertEqual(reader.readline(3), b'foo')
        self.assertEqual(reader.readline(), b'bar\n')

    def test_readline_eof(self):
        # A partial line is returned at end of input.
        reader = StreamReader()
        reader.feed(b'foo')
        reader.feed_eof()
        self.assertEqual(reader.readline(), b'foo')
        self.assertEqual(reader.readline(), b'')

    def test_readline_wait_eof(self):
        reader = StreamReader()
        reader.feed(b'foo')
        def write_more():
            tcpcat.sleep(0.01)
            reader.feed(b'bar\nbaz')
            tcpcat.sleep(0.01)
            reader.feed_eof()
        tcpcat.spawn(write_more)
        self.assertEqual(reader.readline(), b'foobar\n')
        self.assertEqual(reader.readline(), b'baz')
        self.assertEqual(reader.readline(), b'')

    def test_readline_error(self):
        reader = StreamReader()
        reader.feed(b'foo\nbar')
        reader.feed_error(RuntimeError('baz'))
        self.assertEqual(reader.readline(), b'foo\n')
        self.assertEqual(reader.readline(), b'bar')
        self.assertRaises(RuntimeError, reader.readline)

    def test_buffer_size(self):
        sizes = []
        def on_change(reader, oldsize, newsize):
            sizes.append(newsize)
        reader = StreamReader(on_change)
        reader.feed(b'foo')
        reader.feed(b'bar')
        self.assertEqual(reader.buffer_size, 6)
        reader.readline(3)
        self.assertEqual(reader.buffer_size, 3)
        self.assertEqual(sizes, [3, 6, 3])

    def test_close(self):
        # Closing drops buffered data and fails readers.
        reader = StreamReader()
        reader.feed(b'foo')
        reader.close()
        self.assertTrue(reader.closed)
        self.assertEqual(reader.buffer_size, 0)
        exc = self.assertRaises(ClosedError, reader.readline)
        self.assertEqual(exc.errno, errno.EBADF)
        reader.feed(b'bar')
        self.assertEqual(reader.buffer_size, 0)

    def test_close_wakes_reader(self):
        # A fiber blocked in readline() raises ClosedError on close.
        reader = StreamReader()
        errors = []
        def read():
            try:
                reader.readline()
            except ClosedError as e:
                errors.append(e)
        fiber = tcpcat.spawn(read)
        tcpcat.sleep(0)
        reader.close()
        fiber.join()
        self.assertEqual(len(errors), 1)


class TestStdinReader(UnitTest):

    def test_read_pipe(self):
        rfd, wfd = os.pipe()
        os.write(wfd, b'foo\nbar\nbaz')
        os.close(wfd)
        reader = StdinReader(rfd)
        reader.start()
        self.assertEqual(reader.readline(), b'foo\n')
        self.assertEqual(reader.readline(), b'bar\n')
        self.assertEqual(reader.readline(), b'baz')
        self.assertEqual(reader.readline(), b'')
        os.close(rfd)

    def test_read_wait(self):
        # Data written later is picked up by the helper thread.
        rfd, wfd = os.pipe()
        reader = StdinReader(rfd)
        reader.start()
        def write_later():
            tcpcat.sleep(0.05)
            os.write(wfd, b'foo\n')
        tcpcat.spawn(write_later)
        self.assertEqual(reader.readline(), b'foo\n')
        os.close(wfd)
        self.assertEqual(reader.readline(), b'')
        os.close(rfd)

    def test_read_error(self):
        # A read error is raised in the reading fiber.
        rfd, wfd = os.pipe()
        reader = StdinReader(rfd)
        os.close(rfd)
        os.close(wfd)
        reader.start()
        exc = self.assertRaises(TransportError, reader.readline)
        self.assertEqual(exc.errno, errno.EBADF)

    def test_close(self):
        rfd, wfd = os.pipe()
        reader = StdinReader(rfd)
        reader.start()
        def close_later():
            tcpcat.sleep(0.01)
            reader.close()
        tcpcat.spawn(close_later)
        self.assertRaises(ClosedError, reader.readline)
        # Let the helper thread finish its read.
        os.close(wfd)
        reader._thread.join(5)
        self.assertFalse(reader._thread.is_alive())
        os.close(rfd)

    def test_flow_control(self):
        # Reading pauses above the high water mark.
        reader = StdinReader(-1)
        reader.feed(b'x' * (reader.high_water + 1))
        self.assertFalse(reader._can_feed.is_set())
        reader.readline(reader.high_water)
        self.assertTrue(reader._can_feed.is_set())


if __name__ == '__main__':
    unittest.main()
