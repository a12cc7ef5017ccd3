#! /usr/bin/env python3
"""Create a Git branch for a Perforce stream that has never been mirrored.

A new stream starts as a copy of its parent. Rather than import that copy
from scratch, we start the new branch at the parent branch's commit for
the change the stream was populated from, seed it with one empty commit
whose marker tells git-p4 where to continue, import, then cut the seed
commit back out.

                 fork    seed
    main:  ---A---B---C---D
                   \\
    dev:            S---E---F      import after seed
                   \\
    dev:            E'--F'         after removing S

Where the stream's parent has changes that were never integrated into
the stream, the stream does not contain them, so the fork has to come
before the oldest of those changes, not at the stream's first change.
"""

from collections import namedtuple
import logging

import p4gm_bootstrap  # pylint: disable=unused-import
import p4gm_config
import p4gm_const
from   p4gm_import import import_to_bound, walk_back_while, change_above, WalkExhausted
from   p4gm_l10n import _
import p4gm_marker
from   p4gm_p4changelist import ChangeNumberError
import p4gm_surgeon

LOG = logging.getLogger(__name__)

# created: we made the branch this time.
# skipped: the stream is not ready for a branch yet. Try again later.
EnsureResult = namedtuple('EnsureResult', ['created', 'skipped'])


class ForkPointError(RuntimeError):

    """Cannot work out where a new branch should fork from its parent."""

    pass


def _eligible_changes(ctx, depot_path, upper_bound):
    """Return the stream's oldest changes if it is ready for a branch, else None.

    Ready means it has at least min-branch-changes submitted changes, and
    the last of the oldest few is within upper_bound. The first change on
    a new stream is nearly always the bulk copy from its parent, which is
    not worth a branch on its own.
    """
    min_changes = ctx.config.getint(p4gm_config.KEY_MIN_BRANCH_CHANGES)
    newest = ctx.p4source.changes(depot_path, min_changes)
    if len(newest) < min_changes:
        LOG.info("{}: {} change(s), need {}".format(depot_path, len(newest), min_changes))
        return None
    oldest = ctx.p4source.oldest_changes(depot_path, min_changes)
    if len(oldest) < min_changes:
        LOG.info("{}: history shorter than {} change(s)".format(depot_path, min_changes))
        return None
    if oldest[-1].change > upper_bound:
        LOG.info("{}: change {} is after {}".format(depot_path, oldest[-1].change, upper_bound))
        return None
    return oldest


def fork_change(ctx, depot_path, first_change):
    """Return the parent-branch changelist number that the new branch starts from.

    That is first_change, or the change just before the oldest parent
    change not yet integrated into this stream, whichever is lower.
    """
    parent = ctx.p4source.stream_parent(depot_path)
    if not parent:
        parent = ctx.depot_path(ctx.default_branch)
    try:
        unintegrated = ctx.p4source.unintegrated_changes(depot_path, parent)
    except ChangeNumberError as e:
        raise ForkPointError(_("Cannot compute fork point of '{path}' from '{parent}': {e}")
                             .format(path=depot_path, parent=parent, e=e))
    if unintegrated:
        LOG.info("{}: {} change(s) on {} not yet integrated, oldest {}"
                 .format(depot_path, len(unintegrated), parent, unintegrated[0]))
        return min(first_change, unintegrated[0] - 1)
    return first_change


def _locate_fork_commit(ctx, change_num, upper_bound):
    """Catch the default branch up to upper_bound, return its commit for change_num."""
    base = ctx.default_branch
    base_tip = import_to_bound(ctx.git, base, ctx.depot_path(base), upper_bound)
    if base_tip is None:
        raise ForkPointError(_("Default branch '{branch}' has no commits to fork from.")
                             .format(branch=base))
    try:
        return walk_back_while(ctx.git, base_tip, change_above(ctx.git, change_num))
    except WalkExhausted:
        raise ForkPointError(_("No commit on '{branch}' at or before change {change}.")
                             .format(branch=base, change=change_num))


def _insert_seed_commit(ctx, branch_name, depot_path, fork_commit, change_num):
    """Create branch_name at fork_commit plus one empty commit marked change_num."""
    git = ctx.git
    git.force_ref(branch_name, fork_commit.id)
    git.checkout_branch(branch_name)
    message = p4gm_const.P4GM_FORK_COMMIT_MESSAGE.format(
          depot_path = depot_path
        , change     = change_num
        , marker     = p4gm_marker.encode(depot_path, change_num))
    return git.commit_empty(branch_name, message, ctx.service_signature())


def _abandon(ctx, branch_name):
    """Forget a branch we started but could not fill."""
    ctx.git.checkout_detached()
    ctx.git.delete_ref(branch_name)


def ensure_branch(ctx, branch_name, depot_path, upper_bound):
    """Create branch_name from depot_path if it does not exist yet.

    Returns EnsureResult. Raises ForkPointError, ImportFailed,
    ReplayConflict; all fatal.
    """
    if ctx.git.branch_exists(branch_name):
        return EnsureResult(created=False, skipped=False)

    oldest = _eligible_changes(ctx, depot_path, upper_bound)
    if oldest is None:
        return EnsureResult(created=False, skipped=True)

    change_num = fork_change(ctx, depot_path, oldest[0].change)
    fork_commit = _locate_fork_commit(ctx, change_num, upper_bound)
    LOG.info("{}: forking from {} at {} (change {})"
             .format(branch_name, ctx.default_branch, fork_commit.id,
                     p4gm_marker.decode(ctx.git.repo, fork_commit)))

    seed = _insert_seed_commit(ctx, branch_name, depot_path, fork_commit, change_num)
    tip = import_to_bound(ctx.git, branch_name, depot_path, upper_bound)
    if tip == seed:
        LOG.warning("{}: nothing imported after change {}".format(branch_name, change_num))
        _abandon(ctx, branch_name)
        return EnsureResult(created=False, skipped=True)

    p4gm_surgeon.remove_commit(ctx.git, branch_name, seed)
    return EnsureResult(created=True, skipped=False)
