#
# This file is part of tcpcat. tcpcat is free software available under the
# terms of the MIT license. See the file "LICENSE" that was provided
# together with this source file for the licensing terms.
#
# Copyright (c) 2024-2026 the tcpcat authors. See the file "AUTHORS" for a
# complete list.

import sys
import argparse

from . import logging, __version__
from .util import parse_duration, format_duration
from .address import parse_address
from .endpoints import connect, ConnectError
from .shutdown import ShutdownCoordinator
from .session import Session, SignalListener
from .stream import StdinReader
from .pumps import report

__all__ = ['create_parser', 'main']

default_timeout = '10s'


def duration(value):
    """Argument type for a duration."""
    try:
        return parse_duration(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(str(e))


def create_parser():
    """Create the command-line parser."""
    parser = argparse.ArgumentParser(
        prog='tcpcat',
        usage='%(prog)s [--timeout=10s] <host> <port>\n   or:  %(prog)s [--timeout=10s] <host:port>',
        description='Relay standard input and output over a TCP connection.')
    parser.add_argument('address', nargs='*', help='<host> <port> or <host:port>')
    parser.add_argument('--timeout', type=duration, default=default_timeout,
                        help='dial timeout (e.g. 5s, 250ms), 0 means none (default: %(default)s)')
    parser.add_argument('-v', '--version', action='store_true',
                        help='print version and exit')
    parser.add_argument('-d', '--debug', action='count', default=0,
                        help='log debugging information to stderr, repeat for more')
    return parser


def main(argv=None, stdin=None, stdout=None, stderr=None):
    """Run the tcpcat command line tool and return its exit code.

    The *stdin* argument is a file descriptor, *stdout* a binary file and
    *stderr* a text file. They default to the process's standard streams.
    """
    if stdin is None:
        stdin = sys.stdin.fileno()
    if stdout is None:
        stdout = sys.stdout.buffer
    if stderr is None:
        stderr = sys.stderr
    parser = create_parser()
    args = parser.parse_args(argv)
    if args.version:
        stdout.write((__version__ or 'unknown').encode('ascii') + b'\n')
        stdout.flush()
        return 0
    try:
        address = parse_address(args.address)
    except ValueError as e:
        print(e, file=stderr)
        parser.print_usage(stderr)
        return 2
    if args.debug:
        logging.setup_logging(4 + args.debug, stderr)
    else:
        logging.setup_logging()
    timeout = args.timeout or None
    coordinator = ShutdownCoordinator()
    with SignalListener(coordinator.request_shutdown, stderr):
        try:
            handle = connect(address, timeout, cancel=coordinator.context)
        except ConnectError as e:
            report(stderr, 'connect {}: {!s}'.format(address, e))
            return 1
        report(stderr, 'connected to {} (timeout {})'.format(address, format_duration(args.timeout)))
        source = StdinReader(stdin)
        session = Session(handle, coordinator, source, stdout, stderr)
        source.start()
        session.run()
    return 0


if __name__ == '__main__':
    sys.exit(main())
