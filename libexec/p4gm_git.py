#! /usr/bin/env python3
"""Functions for operating on Git repositories.

GitRepo reads and rewrites commits in-process with pygit2. Anything that
talks to another process or machine (git-p4, fetch, rebase, push) runs
the git command line through p4gm_proc.
"""

import configparser
import logging
import os

import pygit2
from   pygit2.enums import CheckoutStrategy, FileMode, ResetMode, SortMode

import p4gm_bootstrap  # pylint: disable=unused-import
import p4gm_const
from   p4gm_l10n import _, NTR
import p4gm_proc

LOG = logging.getLogger(__name__)

GITMODULES = NTR('.gitmodules')


class NotARepository(RuntimeError):

    """No Git repository where we expected one."""

    pass


class ImportFailed(RuntimeError):

    """git-p4 failed. Never expected; something is wrong with the environment."""

    pass


class ReplayConflict(RuntimeError):

    """Replaying a commit onto a new parent did not apply cleanly."""

    pass


def fully_qualify(branch_ref_name):
    """What we usually call 'main' is actually 'refs/heads/main'."""
    if branch_ref_name.startswith('refs/'):
        return branch_ref_name
    return 'refs/heads/' + branch_ref_name


def signature_str(sig):
    """Format a pygit2.Signature for the debug log."""
    return NTR('{name} <{email}> {time} {offset:+05d}').format(
        name=sig.name, email=sig.email, time=sig.time, offset=sig.offset)


class GitRepo:

    """One local, non-bare Git repository and the remote it publishes to."""

    def __init__(self, path='.', remote=NTR('origin')):
        try:
            discovered = pygit2.discover_repository(path)
        except pygit2.GitError:
            discovered = None
        if not discovered:
            raise NotARepository(_("Not a Git repository: '{path}'").format(path=path))
        self.repo = pygit2.Repository(discovered)
        if self.repo.is_bare:
            raise NotARepository(_("Git repository '{path}' is bare, need a work tree.")
                                 .format(path=path))
        self.workdir = self.repo.workdir
        self.remote = remote

    # -- reading --------------------------------------------------------------

    def commit(self, sha1):
        """Return the pygit2.Commit for sha1, or None if no such commit."""
        try:
            obj = self.repo.get(str(sha1))
        except (KeyError, ValueError):
            return None
        if obj is None or not isinstance(obj, pygit2.Commit):
            return None
        return obj

    def first_parent(self, commit):
        """Return commit's first parent, or None for a root commit."""
        if not commit.parent_ids:
            return None
        return self.repo.get(commit.parent_ids[0])

    def ref_sha1(self, ref_name):
        """Return the sha1 a ref points to, or None if no such ref."""
        ref = self.repo.references.get(fully_qualify(ref_name))
        if ref is None:
            return None
        return str(ref.peel(pygit2.Commit).id)

    def branch_exists(self, branch_name):
        """Does refs/heads/<branch_name> exist?"""
        return self.ref_sha1(branch_name) is not None

    def is_ancestor(self, ancestor_sha1, descendant_sha1):
        """Is ancestor reachable from descendant (or the same commit)?"""
        if str(ancestor_sha1) == str(descendant_sha1):
            return True
        return self.repo.descendant_of(pygit2.Oid(hex=str(descendant_sha1)),
                                       pygit2.Oid(hex=str(ancestor_sha1)))

    def commits_after(self, exclusive_sha1, inclusive_sha1):
        """Return commits in (exclusive, inclusive], oldest first, first parent only."""
        walker = self.repo.walk(pygit2.Oid(hex=str(inclusive_sha1)),
                                SortMode.TOPOLOGICAL | SortMode.REVERSE)
        walker.simplify_first_parent()
        walker.hide(pygit2.Oid(hex=str(exclusive_sha1)))
        return list(walker)

    # -- refs and work tree ---------------------------------------------------

    def force_ref(self, ref_name, sha1):
        """Create or move one reference."""
        LOG.debug2("force_ref() {} => {}".format(ref_name, sha1))
        self.repo.references.create(fully_qualify(ref_name),
                                    pygit2.Oid(hex=str(sha1)), force=True)

    def delete_ref(self, ref_name):
        """Delete one reference. NOP if it does not exist."""
        full = fully_qualify(ref_name)
        if self.repo.references.get(full) is not None:
            LOG.debug2("delete_ref() {}".format(full))
            self.repo.references.delete(full)

    def checkout_branch(self, branch_name):
        """Make branch_name the current branch and force the work tree to match."""
        full = fully_qualify(branch_name)
        self.repo.checkout(full, strategy=CheckoutStrategy.FORCE)
        LOG.debug("checked out {}".format(full))

    def checkout_detached(self):
        """Detach HEAD so that every branch is free to be moved or deleted."""
        if self.repo.head_is_unborn:
            return
        self.repo.set_head(self.repo.head.peel(pygit2.Commit).id)

    def reset_hard(self, sha1):
        """Move the current branch and work tree to sha1."""
        LOG.debug("reset --hard {}".format(sha1))
        self.repo.reset(pygit2.Oid(hex=str(sha1)), ResetMode.HARD)

    def head_commit(self):
        """Return the commit at HEAD, or None in an empty repo."""
        if self.repo.head_is_unborn:
            return None
        return self.repo.head.peel(pygit2.Commit)

    # -- creating commits -----------------------------------------------------

    def commit_empty(self, branch_name, message, author, committer=None):
        """Add a commit to branch_name that changes nothing.

        Tree is the same as the branch tip's. Returns the new sha1.
        """
        full = fully_qualify(branch_name)
        parent = self.repo.references.get(full).peel(pygit2.Commit)
        oid = self.repo.create_commit(full, author, committer or author, message,
                                      parent.tree_id, [parent.id])
        LOG.debug("commit_empty() {} on {}".format(oid, full))
        return str(oid)

    def replay(self, commit, committer):
        """Re-apply commit's change as a new commit on top of HEAD.

        The new commit keeps commit's author and message. Its committer is
        exactly the given committer signature; nothing is read from the
        process environment.

        Raises ReplayConflict if the change does not apply cleanly.
        Returns the new sha1.
        """
        head = self.head_commit()
        base = self.first_parent(commit)
        if base is not None:
            base_tree = base.tree
        else:
            base_tree = self.repo.get(self.repo.TreeBuilder().write())
        index = self.repo.merge_trees(base_tree, head.tree, commit.tree)
        if index.conflicts is not None:
            paths = sorted({e.path for conflict in index.conflicts
                            for e in conflict if e is not None})
            raise ReplayConflict(_("Conflict replaying {sha1} onto {head}: {paths}")
                                 .format(sha1=commit.id, head=head.id,
                                         paths=', '.join(paths)))
        tree_id = index.write_tree(self.repo)
        oid = self.repo.create_commit('HEAD', commit.author, committer, commit.message,
                                      tree_id, [head.id])
        self.repo.checkout_head(strategy=CheckoutStrategy.FORCE)
        LOG.debug2("replay() {} => {} author={} committer={}"
                   .format(commit.id, oid, signature_str(commit.author),
                           signature_str(committer)))
        return str(oid)

    # -- git-p4 ---------------------------------------------------------------

    def p4_sync(self, ref_name, depot_path=None):
        """Import Perforce changes onto ref_name with git-p4.

        With depot_path, import that path's entire history (ref_name has
        no marker yet). Without, git-p4 continues from the marker at
        ref_name's tip.

        Raises ImportFailed if git-p4 fails.
        """
        cmd = ['git', 'p4', 'sync', '--branch', fully_qualify(ref_name)]
        if depot_path:
            cmd.append(depot_path.rstrip('/') + NTR('@all'))
        result = p4gm_proc.popen_no_throw(cmd, cwd=self.workdir)
        if result['ec']:
            raise ImportFailed(_("git-p4 import into '{ref}' failed: {err}")
                               .format(ref=ref_name, err=result['err'].strip()))

    # -- remote ---------------------------------------------------------------

    def remote_url(self):
        """Return the URL of our remote, or None if it is not configured."""
        try:
            return self.repo.remotes[self.remote].url
        except (KeyError, ValueError):
            return None

    def remote_branch_sha1(self, branch_name):
        """Return the sha1 of <remote>/<branch_name> as of the last fetch, or None."""
        return self.ref_sha1(NTR('refs/remotes/{remote}/{branch}')
                             .format(remote=self.remote, branch=branch_name))

    def fetch(self):
        """git fetch <remote>. Return True on success."""
        result = p4gm_proc.popen_no_throw(['git', 'fetch', self.remote], cwd=self.workdir)
        return result['ec'] == 0

    def rebase(self, branch_name):
        """Rebase the current branch onto <remote>/<branch_name>. Return True on success."""
        upstream = NTR('{remote}/{branch}').format(remote=self.remote, branch=branch_name)
        result = p4gm_proc.popen_no_throw(['git', 'rebase', upstream], cwd=self.workdir)
        return result['ec'] == 0

    def rebase_in_progress(self):
        """Is a rebase stopped half way?"""
        return any(os.path.isdir(os.path.join(self.repo.path, d))
                   for d in (NTR('rebase-merge'), NTR('rebase-apply')))

    def rebase_abort(self):
        """Abandon a half-done rebase, if any.

        Raises p4gm_proc.CommandFailed if the abort fails: the work tree
        is in no state for another attempt.
        """
        if self.rebase_in_progress():
            p4gm_proc.popen(['git', 'rebase', '--abort'], cwd=self.workdir)

    def push(self, branch_name):
        """git push <remote> <branch>. Return True on success."""
        refspec = NTR('{ref}:{ref}').format(ref=fully_qualify(branch_name))
        result = p4gm_proc.popen_no_throw(['git', 'push', self.remote, refspec],
                                          cwd=self.workdir)
        return result['ec'] == 0

    # -- gitlinks -------------------------------------------------------------

    def parse_gitmodules(self):
        """Read the work tree's .gitmodules file into a ConfigParser.

        If no such file exists, the parser will be empty.
        """
        parser = configparser.ConfigParser(interpolation=None)
        path = os.path.join(self.workdir, GITMODULES)
        if os.path.exists(path):
            with open(path, 'r', encoding='utf-8') as f:
                parser.read_string(f.read(), source=GITMODULES)
        return parser

    def _add_to_gitmodules(self, path, url, tag):
        """Append a [submodule] section for path unless one is already there.

        Returns True if .gitmodules changed.
        """
        header = NTR('submodule "{}"').format(path)
        if self.parse_gitmodules().has_section(header):
            return False
        section = NTR("[{header}]\n\t{tag} = {tag_value}\n\tpath = {path}\n\turl = {url}\n"
                     ).format(header=header, tag=p4gm_const.P4GM_MODULE_TAG,
                              tag_value=tag, path=path, url=url)
        gm_path = os.path.join(self.workdir, GITMODULES)
        text = ''
        if os.path.exists(gm_path):
            with open(gm_path, 'r', encoding='utf-8') as f:
                text = f.read()
            if text and not text.endswith('\n'):
                text += '\n'
        with open(gm_path, 'w', encoding='utf-8') as f:
            f.write(text + section)
        return True

    def stage_gitlink(self, path, sha1, url, tag):
        """Point the submodule at path to sha1 in the index.

        Registers path in .gitmodules if this is the first time we have
        seen it. Does not touch the submodule's own work tree.
        """
        index = self.repo.index
        index.read()
        if self._add_to_gitmodules(path, url, tag):
            index.add(GITMODULES)
        index.add(pygit2.IndexEntry(path, pygit2.Oid(hex=str(sha1)), FileMode.COMMIT))
        index.write()
        LOG.debug("stage_gitlink() {} => {}".format(path, sha1))

    def has_staged_changes(self):
        """Does the index differ from HEAD's tree?"""
        index = self.repo.index
        index.read()
        tree_id = index.write_tree()
        head = self.head_commit()
        if head is None:
            return len(index) > 0
        return tree_id != head.tree_id

    def commit_index(self, message, author, committer):
        """Commit the index to the current branch. Return the new sha1."""
        index = self.repo.index
        index.read()
        tree_id = index.write_tree()
        head = self.head_commit()
        parents = [] if head is None else [head.id]
        oid = self.repo.create_commit('HEAD', author, committer, message, tree_id, parents)
        LOG.debug("commit_index() {} author={} committer={}"
                  .format(oid, signature_str(author), signature_str(committer)))
        return str(oid)
