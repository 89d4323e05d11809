#
# This file is part of tcpcat. tcpcat is free software available under the
# terms of the MIT license. See the file "LICENSE" that was provided
# together with this source file for the licensing terms.
#
# Copyright (c) 2024-2026 the tcpcat authors. See the file "AUTHORS" for a
# complete list.

import time
import heapq
import signal
import socket
import functools
import itertools
import threading
import selectors
import collections

import greenlet

from . import logging
from .errors import Timeout

__all__ = ['switchpoint', 'switch_back', 'get_hub', 'Hub', 'sleep',
           'READABLE', 'WRITABLE']


READABLE = selectors.EVENT_READ
WRITABLE = selectors.EVENT_WRITE


def switchpoint(func):
    """Mark *func* as a switchpoint.

    All methods and functions that call :meth:`Hub.switch` directly, and all
    public APIs that can cause an indirect switch, are marked as a switchpoint.
    Calling a switchpoint from the hub itself raises a ``RuntimeError``, as
    the hub has nobody to switch to. Example::

      @switchpoint
      def myfunc():
          # may call Hub.switch() here
    """
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        hub = get_hub()
        if greenlet.getcurrent() is hub:
            raise RuntimeError('cannot call switchpoint "{}" from the Hub'.format(func.__name__))
        return func(*args, **kwargs)
    doc = func.__doc__ or ''
    if doc and not doc.endswith('*This method is a switchpoint.*\n'):
        wrapper.__doc__ = doc.rstrip() + '\n\n*This method is a switchpoint.*\n'
    wrapper.__switchpoint__ = True
    return wrapper


class switch_back(object):
    """A context manager to facilitate switching back to the current fiber.

    Instances of this class are callable, and are intended to be used as the
    callback argument for an asynchronous operation. When called, the
    switchback object causes :meth:`Hub.switch` to return in the *origin* fiber
    (the fiber that created the switchback object). The return value in the
    origin fiber will be an ``(args, kwargs)`` tuple containing positional and
    keyword arguments passed to the callback.

    When the context manager exits it will be deactivated. If it is called
    after that then no switch will happen. Also the cleanup callbacks are run
    when the context manager exits.

    In the example below, a switchback object is used to wait for at most 10
    seconds for a socket to become readable::

      hub = get_hub()
      with switch_back(timeout=10) as switcher:
          handle = hub.poll.add_callback(sock.fileno(), READABLE, switcher)
          switcher.add_cleanup(hub.poll.remove_callback, sock.fileno(), handle)
          hub.switch()
    """

    __slots__ = ('_timeout', '_hub', '_fiber', '_timer', '_cleanups', '_lock')

    def __init__(self, timeout=None, hub=None, lock=None):
        """
        The *timeout* argument can be used to force a timeout after this many
        seconds. It can be an int or a float. If a timeout happens,
        :meth:`Hub.switch` will raise a :class:`Timeout` exception in the
        origin fiber. The default is None, meaning there is no timeout.

        The *lock* argument makes the switchback thread safe. Pass a lock if
        the switchback may be triggered from a different thread than the one
        running the hub.
        """
        self._timeout = timeout
        self._hub = hub if hub is not None else get_hub()
        self._fiber = greenlet.getcurrent()
        self._timer = None
        self._cleanups = []
        self._lock = lock

    @property
    def fiber(self):
        """The origin fiber."""
        return self._fiber

    @property
    def timeout(self):
        """The :class:`~tcpcat.Timeout` exception if a timeout has occurred.
        Otherwise the *timeout* parameter provided to the constructor."""
        return self._timeout

    @property
    def active(self):
        """Whether the switchback object is currently active."""
        return self._hub is not None and not self._fiber.dead

    def switch(self, value=None):
        """Switch back to the origin fiber. The fiber is switched to the next
        time the event loop runs."""
        if self._lock:
            self._lock.acquire()
        try:
            if self._hub is None or self._hub.closing or self._fiber.dead:
                return
            self._hub.run_callback(self._fiber.switch, value)
            self._hub = self._fiber = None  # switch back at most once!
        finally:
            if self._lock:
                self._lock.release()

    def throw(self, *exc_info):
        """Throw an exception into the origin fiber. The exception is thrown
        the next time the event loop runs."""
        if self._lock:
            self._lock.acquire()
        try:
            if self._hub is None or self._hub.closing or self._fiber.dead:
                return
            self._hub.run_callback(self._fiber.throw, *exc_info)
            self._hub = self._fiber = None  # switch back at most once!
        finally:
            if self._lock:
                self._lock.release()

    def add_cleanup(self, callback, *args):
        """Add a cleanup action. The callback is run with the provided
        positional arguments when the context manager exits."""
        self._cleanups.append((callback, args))

    def _on_timeout(self):
        self._timeout = Timeout('timeout in switch_back() block')
        self.throw(Timeout, self._timeout)

    def __enter__(self):
        if self._timeout is not None:
            self._timer = self._hub.call_later(self._timeout, self._on_timeout)
        return self

    def __exit__(self, *exc_info):
        # Deactivate, a late callback from another thread must not resume
        # the origin fiber once it has left the block.
        if self._lock:
            self._lock.acquire()
        try:
            self._hub = None
        finally:
            if self._lock:
                self._lock.release()
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        cleanups, self._cleanups = self._cleanups, []
        for callback, args in cleanups:
            callback(*args)

    def __call__(self, *args, **kwargs):
        self.switch((args, kwargs))


class Timer(object):
    """A one-shot timer created by :meth:`Hub.call_later`."""

    __slots__ = ('deadline', 'callback', 'args', 'cancelled')

    def __init__(self, deadline, callback, args):
        self.deadline = deadline
        self.callback = callback
        self.args = args
        self.cancelled = False

    def cancel(self):
        """Cancel the timer. This is a no-op if it already fired."""
        self.cancelled = True


class _PollEntry(object):

    __slots__ = ('events', 'callback')

    def __init__(self, events, callback):
        self.events = events
        self.callback = callback


class Poller(object):
    """A file descriptor watcher.

    A Poller can watch multiple file descriptors, and each file descriptor can
    have multiple callbacks registered to it. A reader and a writer waiting on
    the same socket each get their own callback.

    Normally you should not instantiate this class yourself. Instead, use the
    per-hub instance that is available as :attr:`Hub.poll`.
    """

    def __init__(self, selector):
        self._selector = selector
        self._fds = {}
        self._log = logging.get_logger()

    def __len__(self):
        if self._fds is None:
            return 0
        return sum(len(entries) for entries in self._fds.values())

    def _sync(self, fd):
        # Synchronize the union of the registered events with the selector.
        events = 0
        for entry in self._fds.get(fd, ()):
            events |= entry.events
        try:
            key = self._selector.get_key(fd)
        except KeyError:
            key = None
        if not events:
            if key is not None:
                self._selector.unregister(fd)
        elif key is None:
            self._selector.register(fd, events)
        elif key.events != events:
            self._selector.modify(fd, events)

    def add_callback(self, fd, events, callback):
        """Add a new callback.

        The file descriptor *fd* will be watched for the events specified by
        the *events* parameter, which should be a bitwise OR of the constants
        ``READABLE`` and ``WRITABLE``. Whenever one or more of the specified
        events occur, *callback* will be called with the fd and the bitwise OR
        of the current events.

        The return value of this method is an opaque handle that can be used
        to remove the callback.
        """
        if self._fds is None:
            raise RuntimeError('Poller instance is closed')
        if not events or events & ~(READABLE|WRITABLE):
            raise ValueError('illegal event mask: {}'.format(events))
        entry = _PollEntry(events, callback)
        self._fds.setdefault(fd, []).append(entry)
        self._sync(fd)
        return entry

    def remove_callback(self, fd, handle):
        """Remove a callback added by :meth:`~Poller.add_callback`.

        Removing a callback that is no longer registered is a no-op, which
        happens e.g. after :meth:`remove_fd`.
        """
        if self._fds is None:
            return
        entries = self._fds.get(fd)
        if not entries or handle not in entries:
            return
        entries.remove(handle)
        if not entries:
            del self._fds[fd]
        self._sync(fd)

    def remove_fd(self, fd):
        """Stop watching *fd* and drop all of its callbacks.

        This must be called before the file descriptor is closed.
        """
        if self._fds is None or fd not in self._fds:
            return
        del self._fds[fd]
        self._sync(fd)

    def dispatch(self, fd, events):
        """Run the callbacks for *fd* that are interested in *events*."""
        for entry in list(self._fds.get(fd, ())):
            masked = entry.events & events
            if not masked:
                continue
            try:
                entry.callback(fd, masked)
            except Exception:
                self._log.exception('uncaught exception in poll callback')

    def close(self):
        """Stop watching all file descriptors and remove all callbacks."""
        if self._fds is None:
            return
        for fd in list(self._fds):
            self.remove_fd(fd)
        self._fds = None


_local = threading.local()

def get_hub():
    """Return the instance of the hub for the current thread.

    A new hub is created when none exists yet, or when the previous one has
    exited.
    """
    hub = getattr(_local, 'hub', None)
    if hub is None or hub.dead or hub.closing:
        hub = _local.hub = Hub()
    return hub


class Hub(greenlet.greenlet):
    """The central fiber scheduler and event loop manager."""

    # The hub is created automatically the first time it is needed, so it is
    # not necessary to instantiate this class yourself.
    #
    # There is one hub per thread. To access the per thread instance, use
    # get_hub(). The hub is used by fibers to pause themselves until a wake-up
    # condition becomes true. See the documentation for switch_back for
    # details.

    def __init__(self):
        if greenlet.getcurrent().parent is not None:
            raise RuntimeError('Hub must be created in the root fiber')
        super(Hub, self).__init__()
        self.name = 'Hub'
        self._selector = selectors.DefaultSelector()
        self._data = {}
        self._callbacks = collections.deque()
        self._timers = []
        self._seqno = itertools.count()
        # Thread IDs may be recycled when a thread exits. But as long as the
        # hub is alive, it won't be recycled so in that case we can use just
        # the ID as a check whether we are in the same thread or not.
        self._thread = threading.get_ident()
        # Other threads and signal handlers wake up the selector by writing a
        # byte to this socket pair.
        self._wakeup_r, self._wakeup_w = socket.socketpair()
        self._wakeup_r.setblocking(False)
        self._wakeup_w.setblocking(False)
        self._selector.register(self._wakeup_r, READABLE)
        self._poll = Poller(self._selector)
        self._signals = {}
        self._old_wakeup_fd = None
        self._closing = False
        self._log = logging.get_logger()
        self._log.debug('new Hub for {.name}', threading.current_thread())

    @property
    def data(self):
        """A per-hub dictionary that can be used by applications to store data.

        Keys starting with ``'tcpcat:'`` are reserved for internal use."""
        return self._data

    @property
    def poll(self):
        """A centrally managed poller that can be used to install callbacks
        for file descriptor readiness events."""
        return self._poll

    @property
    def closing(self):
        """Whether :meth:`close` was called."""
        return self._closing

    def now(self):
        """Return the current time of the event loop's clock, in seconds."""
        return time.monotonic()

    def _wakeup(self):
        try:
            self._wakeup_w.send(b'\0')
        except OSError:
            pass  # buffer full: a wakeup is pending already

    def _drain_wakeup(self):
        try:
            while self._wakeup_r.recv(4096):
                pass
        except (BlockingIOError, InterruptedError):
            pass

    def close(self):
        """Close the hub.

        This sets a flag that will cause the event loop to exit when it next
        runs. The hub fiber will then exit and control is transferred back to
        the root fiber. When called from the root fiber, this method returns
        after the hub has exited.
        """
        if threading.get_ident() != self._thread:
            raise RuntimeError('cannot close the hub from a different thread')
        if self._closing:
            return
        self._closing = True
        current = greenlet.getcurrent()
        if not self:
            # Never started: there is no loop to exit from.
            self._cleanup()
        elif current is self.parent:
            super(Hub, self).switch()

    def _cleanup(self):
        for signum in list(self._signals):
            self.remove_signal_handler(signum)
        self._poll.close()
        self._selector.close()
        self._wakeup_r.close()
        self._wakeup_w.close()
        self._callbacks.clear()
        del self._timers[:]
        if getattr(_local, 'hub', None) is self:
            del _local.hub
        self._log.debug('hub fiber terminated')

    def run(self):
        # Target of Hub.switch().
        if greenlet.getcurrent() is not self:
            raise RuntimeError('run() may only be called from the Hub')
        self._log.debug('starting hub fiber')
        try:
            while True:
                self._run_callbacks()
                if self._closing:
                    break
                self._run_once()
        finally:
            self._closing = True
            self._cleanup()

    def _run_once(self):
        if self._callbacks:
            timeout = 0
        elif self._timers:
            timeout = max(0, self._timers[0][0] - self.now())
        else:
            timeout = None
        for key, events in self._selector.select(timeout):
            if key.fileobj is self._wakeup_r:
                self._drain_wakeup()
            else:
                self._poll.dispatch(key.fd, events)
        now = self.now()
        while self._timers and self._timers[0][0] <= now:
            _, _, timer = heapq.heappop(self._timers)
            if not timer.cancelled:
                self._callbacks.append((timer.callback, timer.args))

    def switch(self):
        """Switch to the hub.

        This method pauses the current fiber and runs the event loop. The
        caller should ensure that it has set up appropriate callbacks so that
        it will get scheduled again, preferably using :class:`switch_back`. In
        this case the return value of this method will be an ``(args,
        kwargs)`` tuple containing the arguments passed to the switch back
        instance.
        """
        if self._closing or self.dead:
            raise RuntimeError('hub is closed/dead')
        elif greenlet.getcurrent() is self:
            raise RuntimeError('cannot switch to myself')
        elif threading.get_ident() != self._thread:
            raise RuntimeError('cannot switch from a different thread')
        return super(Hub, self).switch()

    def _run_callbacks(self):
        """Run registered callbacks."""
        for i in range(len(self._callbacks)):
            callback, args = self._callbacks.popleft()
            try:
                callback(*args)
            except Exception:
                self._log.exception('Ignoring exception in callback:')

    def run_callback(self, callback, *args):
        """Queue a callback.

        The *callback* will be called with positional arguments *args* in the
        next iteration of the event loop. If you add multiple callbacks, they
        will be called in the order that you added them. The callback will run
        in the Hub's fiber.

        This method is thread-safe. It is allowed to queue a callback from a
        different thread than the one running the Hub.
        """
        if self._closing:
            raise RuntimeError('hub is closed')
        elif not callable(callback):
            raise TypeError('"callback": expecting a callable')
        self._callbacks.append((callback, args))  # atomic
        if threading.get_ident() != self._thread:
            self._wakeup()

    def call_later(self, delay, callback, *args):
        """Run *callback* with *args* in the hub after *delay* seconds.

        Returns a :class:`Timer` that can be cancelled. This method may only
        be called from the hub's thread.
        """
        timer = Timer(self.now() + delay, callback, args)
        heapq.heappush(self._timers, (timer.deadline, next(self._seqno), timer))
        return timer

    def add_signal_handler(self, signum, callback, *args):
        """Run *callback* with *args* in the hub when signal *signum* arrives.

        The Python level signal handler only queues the callback; the write
        to the wakeup socket done by the interpreter interrupts the selector.
        Only one callback can be installed per signal. This must be called
        from the main thread.
        """
        if threading.current_thread() is not threading.main_thread():
            raise RuntimeError('signal handlers can only be added in the main thread')
        if self._old_wakeup_fd is None:
            self._old_wakeup_fd = signal.set_wakeup_fd(self._wakeup_w.fileno(),
                                                       warn_on_full_buffer=False)
        previous = self._signals.get(signum, (None, None, None))[2]
        if previous is None:
            previous = signal.signal(signum, self._on_signal)
        self._signals[signum] = (callback, args, previous)

    def remove_signal_handler(self, signum):
        """Remove the callback for *signum* and restore the previous handler.

        Returns whether a callback was installed.
        """
        entry = self._signals.pop(signum, None)
        if entry is None:
            return False
        signal.signal(signum, entry[2])
        if not self._signals and self._old_wakeup_fd is not None:
            signal.set_wakeup_fd(self._old_wakeup_fd)
            self._old_wakeup_fd = None
        return True

    def _on_signal(self, signum, frame):
        # Runs asynchronously between two bytecodes of the main thread, which
        # may be in the middle of the loop. Only queue the dispatch.
        self._callbacks.append((self._dispatch_signal, (signum,)))

    def _dispatch_signal(self, signum):
        entry = self._signals.get(signum)
        if entry is None:
            return
        self._log.debug('signal {} received', signum)
        callback, args, _ = entry
        callback(*args)


@switchpoint
def sleep(secs):
    """Sleep for *secs* seconds. The *secs* argument can be an int or a float."""
    hub = get_hub()
    try:
        with switch_back(secs, hub=hub):
            hub.switch()
    except Timeout:
        pass
