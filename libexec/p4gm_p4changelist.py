#! /usr/bin/env python3
"""P4Changelist class, and P4Source: everything we ask Perforce."""

import logging
import re

import P4

import p4gm_bootstrap  # pylint: disable=unused-import
from   p4gm_l10n   import _, NTR

LOG = logging.getLogger(__name__)

                        # Untagged 'p4 changes' or 'p4 interchanges' line:
                        # Change 1234 on 2016/01/31 by bob@bob-ws 'Fix it'
_CHANGE_LINE_RE = re.compile(r'^Change (\d+) ')


class ChangeNumberError(RuntimeError):

    """Perforce replied, but not with a changelist number we can read."""

    pass


def change_num_from(result):
    """Extract the changelist number from one 'p4 changes'-like result.

    Tagged results are dicts with a 'change' key. Untagged results are
    strings beginning "Change NNN ". Anything else raises ChangeNumberError.
    """
    if isinstance(result, dict):
        value = result.get('change')
        if value is not None and str(value).isdigit():
            return int(value)
    elif isinstance(result, str):
        m = _CHANGE_LINE_RE.match(result)
        if m:
            return int(m.group(1))
    raise ChangeNumberError(_("Cannot find a changelist number in '{result}'")
                            .format(result=result))


def first_dict_with_key(result_list, key):
    """Return the first dict result that has the given key, or None."""
    for e in result_list:
        if isinstance(e, dict) and key in e:
            return e
    return None


class P4Changelist:

    """A changelist, as reported by p4 changes or p4 describe.

    change, user, time are always set. full_name and email only after
    P4Source.describe(), which looks up the user.
    """

    def __init__(self, change=None, user=None, time=None, description=None):
        self.change      = change
        self.user        = user
        self.time        = time
        self.description = description
        self.full_name   = None
        self.email       = None

    @staticmethod
    def from_vardict(vardict):
        """Build from one tagged p4 changes or p4 describe result."""
        time = vardict.get(NTR("time"))
        return P4Changelist( change      = change_num_from(vardict)
                           , user        = vardict.get(NTR("user"))
                           , time        = int(time) if time else None
                           , description = vardict.get(NTR("desc"), "") )

    @staticmethod
    def from_describe(p4, change):
        """Run p4 describe -s and build from its result."""
        vardict = first_dict_with_key(p4.run("describe", "-s", str(change)), "change")
        if vardict is None:
            raise ChangeNumberError(_("p4 describe {change} returned no changelist")
                                    .format(change=change))
        return P4Changelist.from_vardict(vardict)

    def __str__(self):
        return NTR("@{change} {user}").format(change=self.change, user=self.user)

    def __repr__(self):
        return NTR("P4Changelist(change={!r}, user={!r}, time={!r}, description={!r})")\
            .format(self.change, self.user, self.time, self.description)


class P4Source:

    """Perforce queries the sync needs, all read-only.

    Wraps one connected P4.P4 instance.
    """

    def __init__(self, p4):
        self.p4 = p4
        self._users = {}

    def changes(self, depot_path, max_count):
        """Return at most max_count submitted changes under depot_path, newest first."""
        path = depot_path.rstrip('/') + NTR('/...')
        result = self.p4.run('changes', '-l', '-s', 'submitted', '-m', str(max_count), path)
        changes = [P4Changelist.from_vardict(r) for r in result
                   if isinstance(r, dict)]
        changes.sort(key=lambda cl: cl.change, reverse=True)
        LOG.debug("changes() {} -m {} => {}"
                  .format(path, max_count, [cl.change for cl in changes]))
        return changes

    def oldest_changes(self, depot_path, count):
        """Return the first count submitted changes under depot_path, oldest first.

        p4 changes -m always picks the newest, so this lists them all.
        """
        path = depot_path.rstrip('/') + NTR('/...')
        result = self.p4.run('changes', '-s', 'submitted', path)
        changes = sorted((P4Changelist.from_vardict(r) for r in result
                          if isinstance(r, dict)),
                         key=lambda cl: cl.change)
        LOG.debug("oldest_changes() {} {} => {}"
                  .format(path, count, [cl.change for cl in changes[:count]]))
        return changes[:count]

    def stream_parent(self, stream):
        """Return the parent stream of stream, or None for a mainline."""
        try:
            result = self.p4.run('stream', '-o', stream.rstrip('/'))
        except P4.P4Exception as e:
            LOG.warning("p4 stream -o {} failed: {}".format(stream, e))
            return None
        stream_spec = first_dict_with_key(result, 'Stream')
        if not stream_spec:
            return None
        parent = stream_spec.get('Parent')
        if not parent or parent == NTR('none'):
            return None
        return parent

    def unintegrated_changes(self, stream, parent=None):
        """Return change numbers on parent not yet integrated into stream, ascending.

        Raises ChangeNumberError if Perforce's reply does not carry a
        readable changelist number.
        """
        cmd = ['interchanges', '-r', '-S', stream.rstrip('/')]
        if parent:
            cmd.extend(['-P', parent.rstrip('/')])
        result = self.p4.run(cmd)
        change_nums = sorted(change_num_from(r) for r in result)
        LOG.debug("unintegrated_changes() {} <= {} => {}".format(stream, parent, change_nums))
        return change_nums

    def _user(self, user):
        """Return (full_name, email) for a Perforce user, cached."""
        if user not in self._users:
            full_name, email = user, None
            try:
                result = self.p4.run('users', user)
            except P4.P4Exception as e:
                LOG.warning("p4 users {} failed: {}".format(user, e))
                result = []
            vardict = first_dict_with_key(result, 'User')
            if vardict:
                full_name = vardict.get('FullName') or user
                email = vardict.get('Email')
            self._users[user] = (full_name, email)
        return self._users[user]

    def describe(self, change):
        """Return a P4Changelist with user name and email filled in."""
        cl = P4Changelist.from_describe(self.p4, change)
        cl.full_name, cl.email = self._user(cl.user)
        if not cl.email:
            cl.email = NTR('{}@localhost').format(cl.user)
        LOG.debug2("describe() {}".format(repr(cl)))
        return cl
