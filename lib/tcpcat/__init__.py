#
# This file is part of tcpcat. tcpcat is free software available under the
# terms of the MIT license. See the file "LICENSE" that was provided
# together with this source file for the licensing terms.
#
# Copyright (c) 2024-2026 the tcpcat authors. See the file "AUTHORS" for a
# complete list.

# Suppress warnings about 'import *' here. The submodules are designed to
# export their symbols to a global package namespace like this.
# flake8: noqa

# should not use "from tcpcat import *"
__all__ = []

from importlib import metadata

try:
    __version__ = metadata.version(__name__)
except metadata.PackageNotFoundError:
    # Happens when running from a source tree that was not installed.
    __version__ = None

# clean up module namespace
del metadata

# import all the subpackages into the "tcpcat" namespace
from .errors import *
from .hub import *
from .fibers import *
from .sync import *
from .transports import *
from .stream import *
from .address import *
from .endpoints import *
from .shutdown import *
from .pumps import *
from .session import *
from .util import *
