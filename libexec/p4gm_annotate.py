#! /usr/bin/env python3
"""Tell the build pipeline about warnings and errors, and why it ran us.

Pipeline annotations are single lines on stdout:

    ##vso[task.logissue type=warning]Branch 'dev' has 1 change, skipping.

The pipeline shows them in the run summary. We also log the same text.
"""

import logging
import os
import sys

import p4gm_config
import p4gm_const
from   p4gm_l10n import NTR

LOG = logging.getLogger(__name__)

TYPE_WARNING = NTR('warning')
TYPE_ERROR   = NTR('error')


def _annotate(type_, message, out=None):
    """Write one annotation line."""
    out = out or sys.stdout
    for line in str(message).splitlines() or ['']:
        out.write(p4gm_const.P4GM_ANNOTATION.format(type=type_, message=line) + '\n')
    out.flush()


def warning(message, out=None):
    """Log and annotate a warning. The run continues and still succeeds."""
    LOG.warning(message)
    _annotate(TYPE_WARNING, message, out)


def error(message, out=None):
    """Log and annotate an error. Caller decides whether to stop."""
    LOG.error(message)
    _annotate(TYPE_ERROR, message, out)


def trigger_reason(config, environ=None):
    """Return why the pipeline ran us, or None if it did not say."""
    environ = os.environ if environ is None else environ
    return environ.get(config.get(p4gm_config.KEY_TRIGGER_ENV))


def is_manual_trigger(config, environ=None):
    """Did a human start this run by hand?"""
    reason = trigger_reason(config, environ)
    manual = config.getlist(p4gm_config.KEY_MANUAL_TRIGGERS)
    LOG.debug("trigger reason={} manual={}".format(reason, manual))
    return reason is not None and reason in manual
