#! /usr/bin/env python3
"""Read and write the Perforce changelist marker in a Git commit message.

git-p4 ends every commit message it writes with one line:

    [git-p4: depot-paths = "//stream/main/": change = 1234]

Grammar (version 1):

    marker      := '[git-p4:' WS assignments WS? ']'
    assignments := 'depot-paths = ' path ': change = ' DIGITS (': ' key ' = ' value)*
    path        := '"' <any text but '"'> '"' | <any text but ':'>

Anything after the change number (": options = ...") is ignored.

The marker is the only link between a Git commit and the Perforce
changelist it came from. Commits without one (our own publish commits,
anything a human wrote) are normal, not errors.
"""

from collections import namedtuple
import logging
import re

import pygit2

import p4gm_bootstrap  # pylint: disable=unused-import
from   p4gm_l10n import NTR

LOG = logging.getLogger(__name__)

MARKER_GRAMMAR_VERSION = 1

_MARKER_START = NTR('[git-p4:')
_MARKER_TEMPLATE = NTR('[git-p4: depot-paths = "{path}": change = {change}]')

                        # Anchored to the line. A quoted path may hold ':', a bare one may not.
_MARKER_RE = re.compile(r'^\s*\[git-p4: depot-paths = (?:"([^"]*)"|([^":]*)): change = (\d+)[^\]]*\]\s*$')

# "struct" for one decoded marker.
Marker = namedtuple('Marker', ['depot_path', 'change'])


class ParseResult:

    """Outcome of parse(): found, not found, or malformed.

    Exactly one of found, not_found, malformed is true.
    """

    FOUND     = NTR('found')
    NOT_FOUND = NTR('not-found')
    MALFORMED = NTR('malformed')

    def __init__(self, status, marker=None, text=None):
        self.status = status
        self.marker = marker
        self.text = text

    @property
    def found(self):
        """Did we find a well-formed marker?"""
        return self.status == ParseResult.FOUND

    @property
    def not_found(self):
        """No marker at all?"""
        return self.status == ParseResult.NOT_FOUND

    @property
    def malformed(self):
        """Something that starts like a marker but does not parse?"""
        return self.status == ParseResult.MALFORMED

    def change_or_zero(self):
        """Return the changelist number, or 0 if we have none."""
        return self.marker.change if self.found else 0

    def __repr__(self):
        return "ParseResult({}, {}, {})".format(self.status, self.marker, self.text)


def _enslash(depot_path):
    """git-p4 stores depot paths with a trailing slash."""
    return depot_path if depot_path.endswith('/') else depot_path + '/'


def encode(depot_path, change):
    """Return the marker line for the given depot path and changelist number."""
    return _MARKER_TEMPLATE.format(path=_enslash(depot_path), change=int(change))


def parse(message):
    """Find the marker in a commit message.

    Returns a ParseResult. Never raises.
    """
    if not message:
        return ParseResult(ParseResult.NOT_FOUND)
    malformed = None
    # The last marker wins, as it does for git-p4.
    for line in reversed(message.splitlines()):
        m = _MARKER_RE.match(line)
        if m:
            quoted, bare, change = m.groups()
            return ParseResult(ParseResult.FOUND,
                               marker=Marker(depot_path=bare if quoted is None else quoted,
                                             change=int(change)))
        if malformed is None and line.strip().startswith(_MARKER_START):
            malformed = line.strip()
    if malformed is not None:
        return ParseResult(ParseResult.MALFORMED, text=malformed)
    return ParseResult(ParseResult.NOT_FOUND)


def decode_message(message):
    """Return the changelist number in message, or 0 if none."""
    result = parse(message)
    if result.malformed:
        LOG.warning("malformed changelist marker: {}".format(result.text))
    return result.change_or_zero()


def decode(repo, commit_id):
    """Return the changelist number recorded in a commit, or 0 if none.

    :param repo:      pygit2.Repository
    :param commit_id: sha1 string, pygit2.Oid, or pygit2.Commit
    """
    if isinstance(commit_id, pygit2.Commit):
        commit = commit_id
    else:
        try:
            commit = repo.get(str(commit_id))
        except (KeyError, ValueError):
            commit = None
    if not isinstance(commit, pygit2.Commit):
        LOG.debug("decode(): no such commit {}".format(commit_id))
        return 0
    change = decode_message(commit.message)
    LOG.debug3("decode() {} => {}".format(commit.id, change))
    return change
