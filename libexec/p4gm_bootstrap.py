#! /usr/bin/env python3
"""Things every p4gitmirror module needs before anything else runs.

Import this first, and import nothing from p4gitmirror in here.

Adds two log levels below DEBUG:

    LOG.debug2(...)     per-commit detail: refs moved, commits replayed
    LOG.debug3(...)     per-line detail: every marker decoded, command output
"""

import logging

logging.DEBUG2 = 8
logging.DEBUG3 = 7

for _level, _name in ((logging.DEBUG2, 'DEBUG2'), (logging.DEBUG3, 'DEBUG3')):
    logging.addLevelName(_level, _name)


def _log_at(level):
    """Return a Logger method that logs at level."""
    def _method(self, msg, *args, **kwargs):
        if self.isEnabledFor(level):
            self._log(level, msg, args, **kwargs)  # pylint:disable=protected-access
    _method.__doc__ = "Log msg at {}.".format(logging.getLevelName(level))
    return _method


logging.Logger.debug2 = _log_at(logging.DEBUG2)
logging.Logger.debug3 = _log_at(logging.DEBUG3)
