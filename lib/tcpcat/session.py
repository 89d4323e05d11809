#
# This file is part of tcpcat. tcpcat is free software available under the
# terms of the MIT license. See the file "LICENSE" that was provided
# together with this source file for the licensing terms.
#
# Copyright (c) 2024-2026 the tcpcat authors. See the file "AUTHORS" for a
# complete list.

import signal

from . import logging
from .hub import get_hub, switchpoint
from .fibers import spawn
from .pumps import InboundPump, OutboundPump, report

__all__ = ['Session', 'SignalListener']


class SignalListener(object):
    """Turn termination signals into a shutdown request.

    On each of :attr:`signals` a diagnostic line is written and *callback* is
    called without arguments. The callback runs in the hub, never inside the
    Python signal handler itself.
    """

    signals = (signal.SIGINT, signal.SIGTERM)

    def __init__(self, callback, diag=None, hub=None):
        self._callback = callback
        self._diag = diag
        self._hub = hub if hub is not None else get_hub()
        self._installed = []

    def start(self):
        """Install the signal handlers."""
        for signum in self.signals:
            self._hub.add_signal_handler(signum, self._on_signal, signum)
            self._installed.append(signum)

    def stop(self):
        """Restore the previous signal handlers."""
        while self._installed:
            self._hub.remove_signal_handler(self._installed.pop())

    def _on_signal(self, signum):
        report(self._diag, '\n[{}] signal received, closing...'.format(signal.Signals(signum).name))
        self._callback()

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, *exc_info):
        self.stop()


class Session(object):
    """A relay session between a stream handle and local input and output.

    The session attaches *handle* to *coordinator* and runs an
    :class:`InboundPump` and an :class:`OutboundPump`, each in its own fiber.
    When the coordinator shuts down, the local *source* is closed as well, so
    that a pump waiting for local input returns.
    """

    def __init__(self, handle, coordinator, source, sink, diag=None):
        self._handle = handle
        self._coordinator = coordinator
        self._source = source
        self._sink = sink
        self._diag = diag
        self._inbound = InboundPump(handle, coordinator, sink, diag)
        self._outbound = OutboundPump(handle, coordinator, source, diag)
        self._fibers = []
        self._log = logging.get_logger(self)

    @property
    def inbound(self):
        return self._inbound

    @property
    def outbound(self):
        return self._outbound

    @property
    def coordinator(self):
        return self._coordinator

    def start(self):
        """Start both pumps."""
        if self._fibers:
            raise RuntimeError('session already started')
        close = getattr(self._source, 'close', None)
        if close is not None:
            self._coordinator.context.add_done_callback(close)
        self._coordinator.attach(self._handle)
        self._fibers = [spawn(self._inbound.run, name='inbound'),
                        spawn(self._outbound.run, name='outbound')]

    @switchpoint
    def join(self):
        """Wait until both pumps have returned.

        On return the handle is closed.
        """
        for fiber in self._fibers:
            fiber.join()
        self._coordinator.request_shutdown('session finished')
        self._log.debug('session finished, {} bytes in, {} bytes out',
                        self._inbound.bytes_copied, self._outbound.bytes_copied)

    @switchpoint
    def run(self):
        """Run the session to completion."""
        self.start()
        self.join()
