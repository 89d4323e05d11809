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
import threading

from . import logging
from .errors import Error, Timeout
from .hub import get_hub, switchpoint, switch_back, WRITABLE
from .address import saddr, paddr
from .transports import StreamHandle

__all__ = ['ConnectError', 'ConnectTimeout', 'ConnectCancelled', 'getaddrinfo',
           'connect']


class ConnectError(Error):
    """A connection could not be established.

    The underlying error, if any, is available as :attr:`cause`.
    """

    def __init__(self, message, cause=None):
        super(ConnectError, self).__init__(message)
        self.cause = cause

    def __str__(self):
        message = super(ConnectError, self).__str__()
        if self.cause is not None:
            message = '{}: {!s}'.format(message, self.cause)
        return message

class ConnectTimeout(ConnectError):
    """The connect timeout elapsed."""

class ConnectCancelled(ConnectError):
    """The connect attempt was cancelled."""


connect_errors = (errno.EINPROGRESS, errno.EALREADY, errno.EWOULDBLOCK)


def _wait(hub, timeout, cancel, start):
    # Switch to the hub until the operation started by *start* calls back. A
    # timeout raises Timeout, setting *cancel* raises ConnectCancelled.
    if timeout is not None and timeout <= 0:
        raise Timeout('connect timeout')
    if cancel is not None and cancel.is_set():
        raise ConnectCancelled('connect cancelled')
    with switch_back(timeout, hub=hub, lock=threading.Lock()) as switcher:
        if cancel is not None:
            handle = cancel.add_done_callback(switcher.throw, ConnectCancelled,
                                              ConnectCancelled('connect cancelled'))
            if handle is None:
                # Set by another thread after the check above. The throw is
                # already queued and the hub delivers it below.
                hub.switch()
            switcher.add_cleanup(cancel.remove_done_callback, handle)
        start(switcher)
        args, _ = hub.switch()
    return args


@switchpoint
def getaddrinfo(host, port=0, family=0, socktype=0, protocol=0, flags=0,
                timeout=None, cancel=None):
    """Resolve an Internet *host* name and *port* into socket addresses.

    The *family*, *socktype*, *protocol* and *flags* arguments have the same
    meaning as for :func:`socket.getaddrinfo`.

    The address resolution is performed in a separate thread so that other
    fibers keep running. The *timeout* and *cancel* arguments behave as for
    :func:`connect`.
    """
    hub = get_hub()
    def start(switcher):
        def resolve():
            try:
                result = socket.getaddrinfo(host, port, family, socktype, protocol, flags)
            except OSError as e:
                result = e
            switcher(result)
        thread = threading.Thread(target=resolve, name='getaddrinfo')
        thread.daemon = True
        thread.start()
    result, = _wait(hub, timeout, cancel, start)
    if isinstance(result, Exception):
        raise result
    return result


def _connect_socket(hub, sock, address, timeout, cancel):
    # Connect the non-blocking socket *sock* to *address*.
    sock.setblocking(False)
    error = sock.connect_ex(address)
    if error in connect_errors:
        fd = sock.fileno()
        def start(switcher):
            handle = hub.poll.add_callback(fd, WRITABLE, switcher)
            switcher.add_cleanup(hub.poll.remove_callback, fd, handle)
        _wait(hub, timeout, cancel, start)
        error = sock.getsockopt(socket.SOL_SOCKET, socket.SO_ERROR)
    if error:
        raise OSError(error, os.strerror(error))


@switchpoint
def connect(address, timeout=None, cancel=None):
    """Connect to a TCP service and return a :class:`StreamHandle`.

    The *address* is either a ``'host:port'`` string or a ``(host, port)``
    tuple. The host name is resolved first and then the resolved addresses
    are tried in order until one of them accepts the connection.

    The *timeout* argument bounds the whole attempt, including the name
    resolution, in seconds. When it elapses, :class:`ConnectTimeout` is
    raised.

    The *cancel* argument may be an :class:`~tcpcat.Event`. If it gets set
    before the connection is established, the attempt is aborted with
    :class:`ConnectCancelled`.

    Any other failure raises :class:`ConnectError` with the underlying error
    as its :attr:`~ConnectError.cause`. There are no retries.
    """
    hub = get_hub()
    log = logging.get_logger()
    if isinstance(address, str):
        try:
            host, port = paddr(address)
        except ValueError as e:
            raise ConnectError('illegal address', e)
    elif isinstance(address, tuple):
        host, port = address[:2]
    else:
        raise TypeError('expecting a string or a (host, port) tuple')
    deadline = None if timeout is None else hub.now() + timeout
    def remaining():
        return None if deadline is None else deadline - hub.now()
    try:
        try:
            result = getaddrinfo(host, port, 0, socket.SOCK_STREAM, socket.IPPROTO_TCP,
                                 timeout=remaining(), cancel=cancel)
        except OSError as e:
            raise ConnectError('cannot resolve {}'.format(host), e)
        error = None
        for family, socktype, proto, _, sockaddr in result:
            log.debug('trying address {}', saddr(sockaddr[:2]))
            sock = socket.socket(family, socktype, proto)
            try:
                _connect_socket(hub, sock, sockaddr, remaining(), cancel)
            except OSError as e:
                sock.close()
                log.debug('connect() to {} failed: {!s}', saddr(sockaddr[:2]), e)
                error = e
                continue
            except BaseException:
                sock.close()
                raise
            log.debug('connected to {}', saddr(sockaddr[:2]))
            return StreamHandle(sock, hub=hub)
    except Timeout:
        raise ConnectTimeout('timeout connecting to {}'.format(saddr((host, port))))
    raise ConnectError('cannot connect to {}'.format(saddr((host, port))), error)
