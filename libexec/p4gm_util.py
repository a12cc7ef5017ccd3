#! /usr/bin/env python3
"""Command-line plumbing shared by p4gitmirror scripts."""

import argparse
import logging
import sys

import p4gm_bootstrap  # pylint: disable=unused-import
import p4gm_const
from   p4gm_l10n       import _, NTR
import p4gm_marker

LOG = logging.getLogger(__name__)

                        # --debug value => log level
_DEBUG_LEVELS = NTR({
    'none':     logging.DEBUG,
    'true':     logging.DEBUG,
    '1':        logging.DEBUG,
    'debug':    logging.DEBUG,
    '2':        logging.DEBUG2,
    'debug2':   logging.DEBUG2,
    '3':        logging.DEBUG3,
    'debug3':   logging.DEBUG3,
})


class CommandError(RuntimeError):

    """Cannot carry on, for a reason the user can fix: bad input, no server."""

    def __init__(self, val, usage=None):
        self.usage = usage      # Shown on stdout if set.
        RuntimeError.__init__(self, val)


def version_string():
    """Return "p4gitmirror 1.0.0 (marker grammar 1)"."""
    return NTR('{prog} {version} (marker grammar {grammar})').format(
          prog    = p4gm_const.P4GM_PROG
        , version = p4gm_const.P4GM_VERSION
        , grammar = p4gm_marker.MARKER_GRAMMAR_VERSION)


def create_arg_parser( desc          = None
                     , *
                     , usage         = None
                     , add_p4_args   = False
                     , add_log_args  = False
                     , add_debug_arg = False
                     ):
    """Return an ArgumentParser with -h and -V, plus whichever common options you ask for.

    add_p4_args:    --p4port/-p, --p4user/-u
    add_log_args:   --verbose/-v, --quiet/-q (see apply_log_args())
    add_debug_arg:  --debug [1|2|3]
    """
    parser = argparse.ArgumentParser(description=desc, usage=usage)
    parser.add_argument('-V', action=NTR('version'), version=version_string(),
                        help=_('displays version information and exits'))
    if add_p4_args:
        group = parser.add_argument_group(_('Perforce'))
        group.add_argument('--p4port', '-p', metavar='P4PORT',
                           help=_('P4PORT of server'))
        group.add_argument('--p4user', '-u', metavar='P4USER',
                           help=_('P4USER of user'))
    if add_log_args:
        parser.add_argument('--verbose', '-v', action=NTR('store_true'),
                            help=_('Write additional diagnostics to standard output.'))
        parser.add_argument('--quiet', '-q', action=NTR('store_true'),
                            help=_('Write nothing but errors to standard output.'))
    if add_debug_arg:
                        # Absent unless given, None if given without a value.
        parser.add_argument('--debug', nargs='?', default=argparse.SUPPRESS,
                            help=_('Write debug diagnostics to standard output.'))
    return parser


def log_level_from_args(args):
    """--quiet beats --debug beats --verbose. None of them: WARNING."""
    if getattr(args, 'quiet', False):
        return logging.ERROR
    if 'debug' in args:
        return _DEBUG_LEVELS.get(str(args.debug).lower(), logging.DEBUG)
    if getattr(args, 'verbose', False):
        return logging.INFO
    return logging.WARNING


def apply_log_args(args, logger=None, for_stdout=True):
    """Set logger's level (root logger if None) from --verbose/--quiet/--debug.

    for_stdout also sends that logger's messages, unadorned, to stdout.
    """
    log = logger if logger else logging.getLogger()
    log.setLevel(log_level_from_args(args))
    if for_stdout:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter("%(message)s"))
        log.addHandler(handler)


def positive_int(text):
    """argparse type= for a changelist number: an integer greater than zero."""
    try:
        value = int(text)
    except ValueError:
        raise argparse.ArgumentTypeError(_("'{text}' is not a changelist number")
                                         .format(text=text))
    if value <= 0:
        raise argparse.ArgumentTypeError(_("changelist number must be positive, got {value}")
                                         .format(value=value))
    return value


def non_empty(text):
    """argparse type= for a branch name: anything but blank."""
    if not text or not text.strip():
        raise argparse.ArgumentTypeError(_("branch name must not be empty"))
    return text.strip()
