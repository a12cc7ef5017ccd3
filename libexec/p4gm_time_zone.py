#! /usr/bin/env python3
"""Tools for converting Perforce changelist times to Git signature times.

Perforce reports changelist times as seconds since the epoch. Git wants
those seconds plus the author's offset from UTC in minutes. We use the
Perforce server's time zone for that offset, as git-p4 does.

    offset = utc_offset_minutes(seconds, 'US/Pacific')   # -480 or -420
"""

import datetime
from   functools    import lru_cache
import logging

import pytz

LOG = logging.getLogger(__name__)


@lru_cache(maxsize=8)
def server_tzinfo(tzname):
    """pytz zone for tzname. UTC if tzname is empty or not a zone pytz knows."""
    if not tzname:
        return pytz.utc
    try:
        return pytz.timezone(tzname)
    except pytz.exceptions.UnknownTimeZoneError:
        LOG.warning("unknown p4-time-zone {!r}, treating Perforce times as UTC"
                    .format(tzname))
        return pytz.utc


def seconds_to_utc_dt(seconds_int):
    """Aware UTC datetime for a Perforce changelist time."""
    return datetime.datetime.fromtimestamp(int(seconds_int), tz=pytz.utc)


def utc_offset_minutes(seconds_int, tzname):
    """Return the UTC offset, in minutes, of tzname at the given moment.

    Daylight saving time applies: the same zone yields different offsets
    in January and July.
    """
    local_dt = seconds_to_utc_dt(seconds_int).astimezone(server_tzinfo(tzname))
    return int(local_dt.utcoffset().total_seconds() // 60)
