#! /usr/bin/env python3
"""Import Perforce changes into a Git branch, up to and not past a changelist number.

git-p4 always imports everything Perforce has. We let it, onto a
disposable ref, then walk back from the new tip until we reach a commit
whose changelist is within the bound, and point the branch there.
Whatever we walked past is left for the next run with a higher bound.
"""

import logging

import p4gm_bootstrap  # pylint: disable=unused-import
import p4gm_const
from   p4gm_l10n import _
import p4gm_marker

LOG = logging.getLogger(__name__)


class WalkExhausted(RuntimeError):

    """Walked past the root commit without the predicate ever going false."""

    pass


def walk_back_while(git, start_sha1, predicate):
    """Follow first parents from start_sha1 while predicate(commit) is true.

    Return the first commit for which predicate is false (possibly the
    start commit itself). Raise WalkExhausted if we run out of parents.
    """
    commit = git.commit(start_sha1)
    if commit is None:
        raise WalkExhausted(_("No such commit: {sha1}").format(sha1=start_sha1))
    steps = 0
    while predicate(commit):
        parent = git.first_parent(commit)
        if parent is None:
            raise WalkExhausted(_("Walked past root commit {sha1} after {steps} steps")
                                .format(sha1=commit.id, steps=steps))
        commit = parent
        steps += 1
    LOG.debug("walk_back_while() {} back {} to {}".format(start_sha1, steps, commit.id))
    return commit


def change_above(git, bound):
    """Return a walk predicate: is this commit's changelist greater than bound?"""
    def _pred(commit):
        return p4gm_marker.decode(git.repo, commit) > bound
    return _pred


def import_to_bound(git, branch, depot_path, upper_bound):
    """Bring branch up to the newest Perforce change <= upper_bound.

    Returns the branch's new tip sha1, or None if the branch does not exist
    and nothing within the bound could be imported for it.

    Never moves the branch to an ancestor of its current tip: with a bound
    lower than everything newly imported, the branch stays where it was.

    Raises ImportFailed if git-p4 fails.
    """
    temp_ref = p4gm_const.P4GM_IMPORT_REF.format(branch=branch)
    git.delete_ref(temp_ref)    # left over from a crashed run?

    old_tip = git.ref_sha1(branch)
    if old_tip:
        git.force_ref(temp_ref, old_tip)
        git.p4_sync(temp_ref)
    else:
        git.p4_sync(temp_ref, depot_path)

    new_tip = git.ref_sha1(temp_ref)
    if new_tip is None:
        LOG.warning("nothing imported for {} from {}".format(branch, depot_path))
        return None

    above = change_above(git, upper_bound)
    try:
        stop = walk_back_while(git, new_tip,
                               lambda c: str(c.id) != old_tip and above(c))
    except WalkExhausted:
        # Only possible without an old tip: every change is past the bound.
        LOG.warning("every change imported for {} is after {}, not creating branch"
                    .format(branch, upper_bound))
        git.delete_ref(temp_ref)
        return None

    git.force_ref(branch, stop.id)
    git.delete_ref(temp_ref)
    LOG.info("{branch}: {old} => {new} (change {change}, bound {bound})"
             .format(branch=branch, old=old_tip, new=stop.id,
                     change=p4gm_marker.decode(git.repo, stop), bound=upper_bound))
    return str(stop.id)
