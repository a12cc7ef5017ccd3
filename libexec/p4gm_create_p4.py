#! /usr/bin/env python3
"""The one place p4gitmirror makes P4.P4() connections."""

import logging

import P4

import p4gm_bootstrap  # pylint: disable=unused-import
import p4gm_const
from   p4gm_l10n import NTR

LOG = logging.getLogger(__name__)

# Connections opened by create_p4(), for close_all().
_CONNECTIONS = []


def create_p4(port=None, user=None):
    """Return a new, connected P4.P4().

    Anything not given comes from P4PORT/P4USER/P4CONFIG, as P4Python
    reads them. Returns None if the connection fails; the log has the
    reason.
    """
    p4 = P4.P4()
    p4.prog = NTR('{}/{}').format(p4gm_const.P4GM_PROG, p4gm_const.P4GM_VERSION)
    p4.exception_level = P4.P4.RAISE_ERRORS     # warnings are not errors
    if port:
        p4.port = port
    if user:
        p4.user = user
    _CONNECTIONS.append(p4)

    try:
        p4.connect()
    except P4.P4Exception:
        LOG.exception("cannot connect to Perforce at {} as {}".format(p4.port, p4.user))
        return None
    LOG.debug("connected to {} as {} ({})".format(p4.port, p4.user, p4.prog))
    return p4


def close_all():
    """Disconnect every connection create_p4() made."""
    while _CONNECTIONS:
        p4 = _CONNECTIONS.pop()
        if not p4.connected():
            continue
        try:
            p4.disconnect()
            LOG.debug2("disconnected {}".format(p4.port))
        except P4.P4Exception as e:
            LOG.warning("disconnect from {} failed: {}".format(p4.port, e))
