#! /usr/bin/env python3
"""Remove one commit from the middle of a branch's history.

Every commit after the removed one is replayed, in order, onto the removed
commit's parent. Replayed commits keep their author name, email, time and
offset. Their committer is set to that same author signature, one replay at
a time, so that a replayed commit does not pick up our own identity or the
time we happened to run.
"""

import logging

import pygit2

import p4gm_bootstrap  # pylint: disable=unused-import
import p4gm_const
import p4gm_git
from   p4gm_l10n import _

LOG = logging.getLogger(__name__)


class SurgeryError(RuntimeError):

    """Asked to remove a commit that is not on the branch, or cannot be removed."""

    pass


def committer_override(commit):
    """Return the committer signature to use when replaying commit."""
    a = commit.author
    return pygit2.Signature(a.name, a.email, a.time, a.offset)


def remove_commit(git, branch_name, commit_to_remove):
    """Excise commit_to_remove from branch_name. Return the branch's new tip sha1.

    The pre-surgery tip is tagged until we finish. If a replay fails, the
    branch goes back to that tip before the error propagates.

    Raises SurgeryError if commit_to_remove is not on the branch or is a
    root commit, ReplayConflict if a replay does not apply cleanly.
    """
    tip = git.ref_sha1(branch_name)
    victim = git.commit(commit_to_remove)
    if tip is None or victim is None or not git.is_ancestor(victim.id, tip):
        raise SurgeryError(_("Commit {sha1} is not on branch '{branch}'.")
                           .format(sha1=commit_to_remove, branch=branch_name))
    parent = git.first_parent(victim)
    if parent is None:
        raise SurgeryError(_("Cannot remove root commit {sha1} from branch '{branch}'.")
                           .format(sha1=commit_to_remove, branch=branch_name))

    tag = p4gm_const.P4GM_SURGERY_TAG.format(branch=branch_name)
    git.force_ref(tag, tip)
    try:
        to_replay = git.commits_after(victim.id, tip)
        LOG.info("removing {} from {}: replaying {} commit(s) onto {}"
                 .format(victim.id, branch_name, len(to_replay), parent.id))
        git.checkout_branch(branch_name)
        git.reset_hard(parent.id)
        try:
            for commit in to_replay:
                git.replay(commit, committer_override(commit))
        except p4gm_git.ReplayConflict:
            LOG.error("replay failed, restoring {} to {}".format(branch_name, tip))
            git.reset_hard(tip)
            raise
    finally:
        git.delete_ref(tag)

    new_tip = git.ref_sha1(branch_name)
    LOG.debug("remove_commit() {} {} => {}".format(branch_name, tip, new_tip))
    return new_tip
