#
# This file is part of tcpcat. tcpcat is free software available under the
# terms of the MIT license. See the file "LICENSE" that was provided
# together with this source file for the licensing terms.
#
# Copyright (c) 2024-2026 the tcpcat authors. See the file "AUTHORS" for a
# complete list.

import threading

from . import logging
from .sync import Event

__all__ = ['ShutdownLatch', 'ShutdownCoordinator']


class ShutdownLatch(object):
    """A flag that goes from open to closed exactly once.

    The transition runs a close action. The action runs while the latch lock
    is held, so anyone that reads :attr:`closed` afterwards also sees the
    effects of the action. Requests made from within the action itself, or
    after the transition, are no-ops.
    """

    __slots__ = ('_closed', '_lock')

    def __init__(self, lock=None):
        self._closed = False
        self._lock = lock if lock is not None else threading.RLock()

    @property
    def closed(self):
        """Whether the latch has been closed."""
        with self._lock:
            return self._closed

    def close(self, action=None, *args):
        """Close the latch, running *action* with *args* if this call is the
        one doing the transition.

        Return True for the call that closed the latch, and False otherwise.
        The latch is closed even if *action* raises.
        """
        with self._lock:
            if self._closed:
                return False
            self._closed = True
            if action is not None:
                action(*args)
        return True


class ShutdownCoordinator(object):
    """Coordinate the shutdown of a session.

    The coordinator holds the session's cancellation context, an
    :class:`~tcpcat.Event`, and the stream handle once there is one. Any
    party may call :meth:`request_shutdown`, any number of times and from any
    fiber or thread. The first call sets the context, which runs the
    callbacks that were registered on it, and then closes the handle. Later
    calls do nothing.
    """

    def __init__(self, context=None):
        self._context = context if context is not None else Event()
        # The latch and the handle share one lock, so a handle is closed either
        # by attach() or by the shutdown action, never by both.
        self._lock = threading.RLock()
        self._latch = ShutdownLatch(self._lock)
        self._handle = None
        self._log = logging.get_logger(self)

    @property
    def context(self):
        """The cancellation context. It is set when shutdown starts."""
        return self._context

    @property
    def handle(self):
        """The attached stream handle, or None."""
        return self._handle

    def attach(self, handle):
        """Attach the stream *handle*.

        If shutdown was already requested, the handle is closed right away.
        """
        with self._lock:
            if self._handle is not None:
                raise RuntimeError('a handle is already attached')
            self._handle = handle
            if self._latch.closed:
                self._log.debug('shutdown already requested, closing new handle')
                handle.close()

    def is_shutting_down(self):
        """Whether shutdown has been requested."""
        return self._context.is_set()

    def request_shutdown(self, reason=None):
        """Request shutdown of the session.

        This method is idempotent. Only the first call cancels the context and
        closes the handle. Return whether this call started the shutdown.
        """
        started = self._latch.close(self._shutdown, reason)
        if not started:
            self._log.trace('shutdown already requested ({})', reason or 'no reason')
        return started

    def _shutdown(self, reason):
        self._log.debug('shutting down ({})', reason or 'no reason')
        try:
            self._context.set()
        finally:
            if self._handle is not None:
                self._handle.close()
