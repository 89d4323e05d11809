#
# This file is part of tcpcat. tcpcat is free software available under the
# terms of the MIT license. See the file "LICENSE" that was provided
# together with this source file for the licensing terms.
#
# Copyright (c) 2024-2026 the tcpcat authors. See the file "AUTHORS" for a
# complete list.

__all__ = ['Error', 'Timeout']


class Error(Exception):
    """Base class for tcpcat exceptions."""

class Timeout(Error):
    """A timeout has occurred."""
