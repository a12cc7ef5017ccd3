#! /usr/bin/env python3
"""Publish mirrored branches: one composite commit per Perforce change.

The publish repository holds one gitlink per mirror branch, under
submodule-root:

    branches/main   -> 1f3e...   (tip of mirror branch "main")
    branches/dev    -> 8a0c...

Each run points the gitlinks it synced at their new tips, commits that as
the Perforce change's author, and pushes. Other writers may push between
our fetch and our push, so we fetch, rebase, and push again a bounded
number of times.
"""

import logging
import random
import time

import pygit2

import p4gm_annotate
import p4gm_bootstrap  # pylint: disable=unused-import
import p4gm_config
import p4gm_const
from   p4gm_l10n import _, NTR
import p4gm_time_zone

LOG = logging.getLogger(__name__)


class PublishFailed(RuntimeError):

    """Could not push, even after retrying."""

    pass


def prepare(ctx):
    """Start the publish repository from its remote's current state.

    Discards anything a crashed run committed locally but never pushed.
    NOP if publishing is disabled.
    """
    pub = ctx.publish_git
    if pub is None:
        return
    branch = ctx.config.get(p4gm_config.KEY_PUBLISH_BRANCH)
    if not pub.fetch():
        LOG.warning("fetch from {} failed, publishing from local state".format(pub.remote))
    upstream = pub.remote_branch_sha1(branch)
    if upstream is None:
        LOG.info("{}/{} does not exist yet".format(pub.remote, branch))
        return
    pub.force_ref(branch, upstream)
    pub.checkout_branch(branch)
    pub.reset_hard(upstream)


def gitlink_path(ctx, branch_name):
    """Where in the publish repository a mirror branch's gitlink lives."""
    return NTR('{root}/{branch}').format(
          root   = ctx.config.get(p4gm_config.KEY_SUBMODULE_ROOT).rstrip('/')
        , branch = branch_name)


def stage_branches(ctx, branch_names):
    """Point each branch's gitlink at the branch's tip. Return True if anything changed."""
    pub = ctx.publish_git
    url = ctx.config.get(p4gm_config.KEY_SUBMODULE_URL) or ctx.git.remote_url()
    for branch_name in branch_names:
        sha1 = ctx.git.ref_sha1(branch_name)
        if sha1 is None:
            LOG.debug("stage_branches() no branch {}, skipping".format(branch_name))
            continue
        pub.stage_gitlink(gitlink_path(ctx, branch_name), sha1, url, branch_name)
    return pub.has_staged_changes()


def push_mirror_branches(ctx, branch_names):
    """Push mirror branches. We are their only writer, so no retry."""
    for branch_name in branch_names:
        if not ctx.git.branch_exists(branch_name):
            continue
        if not ctx.git.push(branch_name):
            raise PublishFailed(_("Unable to push mirror branch '{branch}' to '{remote}'.")
                                .format(branch=branch_name, remote=ctx.git.remote))


def changelist_signature(ctx, cl):
    """Author signature for a Perforce changelist: its user, at its time."""
    tzname = ctx.config.get(p4gm_config.KEY_P4_TIME_ZONE)
    return pygit2.Signature( cl.full_name or cl.user
                           , cl.email
                           , cl.time
                           , p4gm_time_zone.utc_offset_minutes(cl.time, tzname))


def commit_composite(ctx, change_num):
    """Commit the staged gitlinks as Perforce change change_num. Return the new sha1."""
    cl = ctx.p4source.describe(change_num)
    message = p4gm_const.P4GM_PUBLISH_MESSAGE.format(
          change      = cl.change
        , description = (cl.description or '').strip())
    return ctx.publish_git.commit_index( message
                                       , author    = changelist_signature(ctx, cl)
                                       , committer = ctx.service_signature())


def _attempt(pub, branch):
    """One fetch, rebase, push. Return True if the push went through."""
    if not pub.fetch():
        return False
    if pub.remote_branch_sha1(branch) is not None and not pub.rebase(branch):
        return False
    return pub.push(branch)


def push_with_retry(ctx, sleep=time.sleep, uniform=random.uniform):
    """Fetch, rebase and push the publish branch, retrying on failure.

    Raises PublishFailed once publish-attempts attempts have all failed.
    """
    pub      = ctx.publish_git
    branch   = ctx.config.get(p4gm_config.KEY_PUBLISH_BRANCH)
    attempts = ctx.config.getint(p4gm_config.KEY_PUBLISH_ATTEMPTS)
    lo       = ctx.config.getfloat(p4gm_config.KEY_BACKOFF_MIN_SECONDS)
    hi       = ctx.config.getfloat(p4gm_config.KEY_BACKOFF_MAX_SECONDS)

    for attempt in range(1, attempts + 1):
        if _attempt(pub, branch):
            LOG.info("published {} to {} on attempt {}".format(branch, pub.remote, attempt))
            return attempt
        pub.rebase_abort()
        if attempt < attempts:
            delay = uniform(lo, hi)
            LOG.warning("push of {} to {} failed, attempt {} of {}, retrying in {:.1f}s"
                        .format(branch, pub.remote, attempt, attempts, delay))
            sleep(delay)

    raise PublishFailed(_("Unable to push '{branch}' to '{remote}' after {attempts} attempts.")
                        .format(branch=branch, remote=pub.remote, attempts=attempts))


def publish(ctx, branch_names, change_num, sleep=time.sleep, uniform=random.uniform):
    """Publish the synced mirror branches as Perforce change change_num.

    Returns True on success, or when a manual run finds nothing to publish.
    Any other run commits change_num even if no gitlink moved.
    Raises PublishFailed.
    """
    if ctx.publish_git is None:
        LOG.info("publish-dir not set, pushing mirror branches only")
        push_mirror_branches(ctx, branch_names)
        return True

    if not stage_branches(ctx, branch_names):
        if p4gm_annotate.is_manual_trigger(ctx.config):
            LOG.info("manual run with nothing new to publish, skipping")
            return True
        LOG.info("no gitlink moved, recording change {} anyway".format(change_num))

    push_mirror_branches(ctx, branch_names)
    sha1 = commit_composite(ctx, change_num)
    LOG.info("committed {} for change {}".format(sha1, change_num))
    push_with_retry(ctx, sleep=sleep, uniform=uniform)
    return True
