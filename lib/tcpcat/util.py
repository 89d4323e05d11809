#
# This file is part of tcpcat. tcpcat is free software available under the
# terms of the MIT license. See the file "LICENSE" that was provided
# together with this source file for the licensing terms.
#
# Copyright (c) 2024-2026 the tcpcat authors. See the file "AUTHORS" for a
# complete list.

import re

from weakref import WeakKeyDictionary

__all__ = ['parse_duration', 'format_duration']


_objrefs = WeakKeyDictionary()  # obj -> objref
_lastids = {}  # classname -> lastid

def objref(obj):
    """Return a string that uniquely and compactly identifies an object."""
    ref = _objrefs.get(obj)
    if ref is None:
        clsname = obj.__class__.__name__.split('.')[-1]
        seqno = _lastids.setdefault(clsname, 1)
        ref = '{0}-{1}'.format(clsname, seqno)
        _objrefs[obj] = ref
        _lastids[clsname] += 1
    return ref


_units = {'ns': 1e-9, 'us': 1e-6, 'µs': 1e-6, 'ms': 1e-3, 's': 1.0,
          'm': 60.0, 'h': 3600.0}

re_component = re.compile(r'(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|ms|s|m|h)')
re_number = re.compile(r'^(\d+(?:\.\d*)?|\.\d+)$')

def parse_duration(s):
    """Parse a duration like ``"10s"``, ``"250ms"`` or ``"1m30s"``.

    The return value is the duration in seconds, as a float. A bare number is
    interpreted as seconds. Raises :exc:`ValueError` for malformed input or a
    negative duration.
    """
    text = s.strip()
    if not text:
        raise ValueError('invalid duration: {!r}'.format(s))
    sign = 1
    if text[0] in '+-':
        sign = -1 if text[0] == '-' else 1
        text = text[1:]
    if not text:
        raise ValueError('invalid duration: {!r}'.format(s))
    if re_number.match(text):
        seconds = float(text)
    else:
        pos = 0
        seconds = 0.0
        while pos < len(text):
            mobj = re_component.match(text, pos)
            if mobj is None:
                raise ValueError('invalid duration: {!r}'.format(s))
            seconds += float(mobj.group(1)) * _units[mobj.group(2)]
            pos = mobj.end()
    seconds *= sign
    if seconds < 0:
        raise ValueError('negative duration: {!r}'.format(s))
    return seconds


def format_duration(seconds):
    """Format *seconds* the way :func:`parse_duration` reads it back.

    Whole-second durations render as ``"10s"`` or ``"1m30s"``, sub-second
    ones as ``"250ms"``.
    """
    if seconds == 0:
        return '0s'
    if seconds < 1:
        millis = seconds * 1000
        if millis >= 1:
            return '{:g}ms'.format(round(millis, 3))
        return '{:g}us'.format(round(seconds * 1e6, 3))
    hours, rest = divmod(seconds, 3600)
    minutes, secs = divmod(rest, 60)
    parts = []
    if hours:
        parts.append('{:d}h'.format(int(hours)))
    if hours or minutes:
        parts.append('{:d}m'.format(int(minutes)))
    parts.append('{:g}s'.format(round(secs, 6)))
    return ''.join(parts)
