#
# This file is part of tcpcat. tcpcat is free software available under the
# terms of the MIT license. See the file "LICENSE" that was provided
# together with this source file for the licensing terms.
#
# Copyright (c) 2024-2026 the tcpcat authors. See the file "AUTHORS" for a
# complete list.

import greenlet

from . import logging
from .hub import get_hub, switchpoint
from .sync import Event
from .errors import Timeout

__all__ = ['Fiber', 'spawn']


class Fiber(greenlet.greenlet):
    """A cooperatively scheduled execution context aka *green thread* aka
    *co-routine*."""

    # This class is a thin layer on top of greenlet.greenlet. It adds a start()
    # method that schedules a switch via the hub. It also enforces that only
    # the hub may call switch().
    #
    # All user created fibers should use this interface. The only greenlets
    # that use the "raw" interface are the root greenlet and the Hub.

    def __init__(self, target, args=(), kwargs={}, name=None, hub=None):
        """
        The *target* argument is the main function of the fiber. It must be a
        Python callable. The *args* and *kwargs* specify its arguments and
        keyword arguments, respectively.

        The *name* argument specifies the fiber name. This is purely a
        diagnostic tool used e.g. in log messages.

        The *hub* argument can be used to override the hub that will be used to
        schedule this fiber.
        """
        self._hub = hub if hub is not None else get_hub()
        super(Fiber, self).__init__(parent=self._hub)
        if name is None:
            fid = self._hub.data.setdefault('tcpcat:next_fiber', 1)
            name = 'Fiber-{}'.format(fid)
            self._hub.data['tcpcat:next_fiber'] += 1
        self.name = name
        self._target = target
        self._args = args
        self._kwargs = kwargs
        self._log = logging.get_logger()
        self._done = Event()

    @property
    def alive(self):
        """Whether the fiber is alive."""
        return not self.dead

    def start(self):
        """Schedule the fiber to be started in the next iteration of the
        event loop."""
        target = getattr(self._target, '__qualname__', self._target.__name__)
        self._log.debug('starting fiber {}, target {}', self.name, target)
        self._hub.run_callback(self.switch)

    def switch(self, value=None):
        # Only the hub may call this.
        if greenlet.getcurrent() is not self._hub:
            raise RuntimeError('only the Hub may switch() to a fiber')
        if self.dead:
            self._log.warning('attempt to switch to a dead Fiber')
            return
        return super(Fiber, self).switch(value)

    def throw(self, typ, val=None, tb=None):
        # Only the hub may call this.
        if greenlet.getcurrent() is not self._hub:
            raise RuntimeError('only the Hub may throw() into a fiber')
        return super(Fiber, self).throw(typ, val, tb)

    @switchpoint
    def join(self, timeout=None):
        """Wait until the fiber completes."""
        if not self._done.wait(timeout):
            raise Timeout('timeout waiting for fiber to exit')

    def run(self, *ignored):
        # Target of the first :meth:`switch()` call.
        try:
            self._target(*self._args, **self._kwargs)
        except greenlet.GreenletExit:
            self._log.debug('fiber was killed')
        except BaseException:
            self._log.exception('uncaught exception in fiber')
        finally:
            self._done.set()

    def add_done_callback(self, callback, *args):
        """Run *callback* with *args* once the fiber has exited."""
        return self._done.add_done_callback(callback, *args)


def spawn(func, *args, **kwargs):
    """Spawn a new fiber.

    A new :class:`Fiber` is created with main function *func* and positional
    arguments *args*. The keyword arguments are passed to the :class:`Fiber`
    constructor, not to the main function. The fiber is then scheduled to start
    by calling its :meth:`~Fiber.start` method.

    The fiber instance is returned.
    """
    fiber = Fiber(func, args, **kwargs)
    fiber.start()
    return fiber
