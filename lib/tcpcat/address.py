#
# This file is part of tcpcat. tcpcat is free software available under the
# terms of the MIT license. See the file "LICENSE" that was provided
# together with this source file for the licensing terms.
#
# Copyright (c) 2024-2026 the tcpcat authors. See the file "AUTHORS" for a
# complete list.

__all__ = ['saddr', 'paddr', 'join_host_port', 'parse_address']


def saddr(address):
    """Return a string representation for an address.

    The *address* paramater can be a string, an IP address tuple, or a socket
    address. IPv6 addresses are put in brackets.

    The return value is always a ``str`` instance.
    """
    if isinstance(address, bytes):
        return address.decode('utf8')
    elif isinstance(address, str):
        return address
    elif isinstance(address, tuple) and ':' in address[0]:
        return '[{}]:{}'.format(address[0], address[1])
    elif isinstance(address, tuple):
        return '{}:{}'.format(*address)
    else:
        raise TypeError('illegal address type: {!s}'.format(type(address)))


def paddr(address):
    """Parse a string representation of an address into a ``(host, port)``
    tuple.

    This function is the inverse of :func:`saddr`. The port may be a number
    or a service name; numbers are returned as an ``int``.
    """
    if address.startswith('['):
        p1 = address.find(']:')
        if p1 == -1:
            raise ValueError('missing port in address: {!r}'.format(address))
        host, port = address[1:p1], address[p1+2:]
    elif address.count(':') == 1:
        host, port = address.split(':')
    elif ':' in address:
        raise ValueError('too many colons in address: {!r}'.format(address))
    else:
        raise ValueError('missing port in address: {!r}'.format(address))
    if not port:
        raise ValueError('missing port in address: {!r}'.format(address))
    return (host, int(port) if port.isdigit() else port)


def join_host_port(host, port):
    """Combine *host* and *port* into a ``host:port`` string."""
    if ':' in host:
        return '[{}]:{}'.format(host, port)
    return '{}:{}'.format(host, port)


def parse_address(args):
    """Turn positional command-line arguments into a ``host:port`` string.

    Either a single ``host:port`` argument or separate *host* and *port*
    arguments are accepted. Raises :exc:`ValueError` otherwise.
    """
    if len(args) == 1:
        if ':' not in args[0]:
            raise ValueError('single argument must be in host:port form')
        paddr(args[0])
        return args[0]
    elif len(args) == 2:
        if not args[1]:
            raise ValueError('missing port')
        return join_host_port(args[0], args[1])
    raise ValueError('invalid arguments')
