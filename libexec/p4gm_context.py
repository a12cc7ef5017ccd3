#! /usr/bin/env python3
"""Context: the repositories, Perforce connection and settings for one run."""

import logging

import pygit2

import p4gm_bootstrap  # pylint: disable=unused-import
import p4gm_config
import p4gm_create_p4
import p4gm_git
from   p4gm_l10n import _
from   p4gm_p4changelist import P4Source
import p4gm_util

LOG = logging.getLogger(__name__)


class Context:

    """Everything one sync run needs.

    Use as a context manager to connect to Perforce on entry and
    disconnect on exit. Tests can skip that and hand in their own
    git/publish_git/p4source fakes.
    """

    def __init__(self, config, git=None, publish_git=None, p4source=None):
        self.config = config
        self.p4port = None
        self.p4user = None
        self._git = git
        self._publish_git = publish_git
        self.p4source = p4source
        self.entered = False

    def __enter__(self):
        if self.entered:
            raise RuntimeError(_("Context is already open."))
        self.connect()
        self.entered = True
        return self

    def __exit__(self, _exc_type, _exc_value, _traceback):
        self.entered = False
        self.disconnect()
        return False

    def connect(self):
        """Connect to Perforce, unless someone already handed us a P4Source."""
        if self.p4source is not None:
            return
        p4 = p4gm_create_p4.create_p4(port=self.p4port, user=self.p4user)
        if p4 is None:
            raise p4gm_util.CommandError(_("Unable to connect to Perforce."))
        self.p4source = P4Source(p4)

    def disconnect(self):
        """Close every Perforce connection this process opened."""
        p4gm_create_p4.close_all()

    @property
    def git(self):
        """The mirror repository: one Git branch per Perforce stream."""
        if self._git is None:
            self._git = p4gm_git.GitRepo(
                  self.config.get(p4gm_config.KEY_MIRROR_DIR)
                , remote = self.config.get(p4gm_config.KEY_MIRROR_REMOTE))
        return self._git

    @property
    def publish_git(self):
        """The publish repository with one gitlink per mirror branch, or None."""
        if self._publish_git is None:
            path = self.config.get(p4gm_config.KEY_PUBLISH_DIR)
            if path:
                self._publish_git = p4gm_git.GitRepo(
                      path
                    , remote = self.config.get(p4gm_config.KEY_PUBLISH_REMOTE))
        return self._publish_git

    @property
    def default_branch(self):
        """The branch every other branch eventually forks from."""
        return self.config.get(p4gm_config.KEY_DEFAULT_BRANCH)

    def depot_path(self, branch_name):
        """Perforce stream that feeds branch_name."""
        return self.config.depot_path_for_branch(branch_name)

    def service_signature(self):
        """Our own identity, now, for commits that no Perforce user wrote."""
        return pygit2.Signature( self.config.get(p4gm_config.KEY_SERVICE_USER_NAME)
                               , self.config.get(p4gm_config.KEY_SERVICE_USER_EMAIL))
