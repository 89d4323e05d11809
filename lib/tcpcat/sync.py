#
# This file is part of tcpcat. tcpcat is free software available under the
# terms of the MIT license. See the file "LICENSE" that was provided
# together with this source file for the licensing terms.
#
# Copyright (c) 2024-2026 the tcpcat authors. See the file "AUTHORS" for a
# complete list.

import threading

from . import logging
from .hub import switchpoint, get_hub, switch_back

__all__ = ['Event']


# The primitives in this module are thread safe. They use a thread lock
# internally, and never call hub.switch() while it is held.


class Event(object):
    """An event.

    An event contains an internal flag that is initially False. The flag can be
    set using the :meth:`set` method and cleared using the :meth:`clear`
    method. Fibers can wait for the flag to become set using :meth:`wait`.

    Events are level triggered, meaning that the condition set by :meth:`set`
    is "sticky". Setting the event will unblock all current waiters and will
    cause future calls to :meth:`wait` not to block, until :meth:`clear` is
    called again.

    An event also keeps a list of done callbacks, which makes it usable as a
    cancellation signal: interested parties register a callback with
    :meth:`add_done_callback` and it runs once, when the flag is set.
    """

    __slots__ = ('_flag', '_lock', '_callbacks')

    def __init__(self):
        self._flag = False
        self._lock = threading.Lock()
        self._callbacks = []

    def __bool__(self):
        return self._flag

    def is_set(self):
        return self._flag

    def set(self):
        """Set the internal flag, and wake up any fibers blocked on :meth:`wait`."""
        with self._lock:
            if self._flag:
                return
            self._flag = True
            callbacks, self._callbacks = self._callbacks, []
        # Run the callbacks outside the lock, a callback may well set() or
        # inspect this event again.
        for callback, args in callbacks:
            try:
                callback(*args)
            except Exception:
                logging.get_logger().exception('uncaught exception in Event callback')

    def clear(self):
        """Clear the internal flag."""
        with self._lock:
            self._flag = False

    def add_done_callback(self, callback, *args):
        """Run *callback* with *args* when the flag gets set.

        If the flag is already set, the callback is run immediately and None
        is returned. Otherwise the return value is a handle that can be passed
        to :meth:`remove_done_callback`.
        """
        with self._lock:
            if not self._flag:
                handle = (callback, args)
                self._callbacks.append(handle)
                return handle
        callback(*args)

    def remove_done_callback(self, handle):
        """Remove a callback added with :meth:`add_done_callback`."""
        with self._lock:
            for i, entry in enumerate(self._callbacks):
                if entry is handle:
                    del self._callbacks[i]
                    break

    @switchpoint
    def wait(self, timeout=None):
        """If the internal flag is set, return immediately. Otherwise block
        until the flag gets set by another fiber calling :meth:`set`.

        The return value is the flag, which is False only on timeout.
        """
        # Optimization for the case the Event is already set.
        if self._flag:
            return True
        hub = get_hub()
        try:
            with switch_back(timeout, hub=hub, lock=threading.Lock()) as switcher:
                handle = self.add_done_callback(switcher.switch)
                # If the flag got set in the meantime the switch back is
                # already queued. It is consumed here either way.
                if handle is not None:
                    switcher.add_cleanup(self.remove_done_callback, handle)
                hub.switch()
        except Exception as e:
            if e is switcher.timeout:
                return False
            raise
        return True
