"""Shared fixtures: throwaway Git repositories and a fake Perforce."""

import pygit2
from pygit2.enums import FileMode
import pytest

import p4gm_config
import p4gm_context
import p4gm_git
import p4gm_marker
from p4gm_p4changelist import P4Changelist


BASE_TIME = 1600000000


def user_signature(change):
    """The Perforce user who submitted change, as git-p4 would record them."""
    return pygit2.Signature('User {}'.format(change), 'user{}@example.com'.format(change),
                            BASE_TIME + change * 60, 120)


def write_commit(repo, ref, message, files, parents, author=None, committer=None):
    """Create a commit whose tree is the first parent's tree plus files."""
    if parents:
        tb = repo.TreeBuilder(repo.get(parents[0]).tree)
    else:
        tb = repo.TreeBuilder()
    for name, text in files.items():
        tb.insert(name, repo.create_blob(text.encode('utf-8')), FileMode.BLOB)
    author = author or pygit2.Signature('Alice', 'alice@example.com', BASE_TIME, 0)
    return repo.create_commit(ref, author, committer or author, message,
                              tb.write(), list(parents))


def init_repo(path, initial_files=None):
    """A non-bare repository with HEAD at refs/heads/main, optionally one commit."""
    repo = pygit2.init_repository(str(path), bare=False, initial_head='main')
    if initial_files:
        write_commit(repo, 'HEAD', 'initial\n', initial_files, [])
        repo.checkout_head(strategy=pygit2.enums.CheckoutStrategy.FORCE)
    return repo


class FakeStreams:

    """Stands in for git-p4 and the Perforce depot it reads.

    streams maps depot path ("//stream/main") to a list of
    (change, {file: text}) in submit order.
    """

    def __init__(self, streams=None):
        self.streams = streams or {}
        self.calls = []
        self.fail = False

    def add(self, depot_path, change, files=None):
        """Submit one change."""
        self.streams.setdefault(depot_path, []).append(
            (change, files or {'{}.txt'.format(change): 'change {}\n'.format(change)}))

    def p4_sync(self, git, ref_name, depot_path=None):
        """Append every change after the ref's marker, as git-p4 would."""
        self.calls.append((ref_name, depot_path))
        if self.fail:
            raise p4gm_git.ImportFailed('git-p4 exploded')
        repo = git.repo
        tip = git.ref_sha1(ref_name)
        if depot_path:
            last = 0
            parents = []
        else:
            result = p4gm_marker.parse(repo.get(tip).message)
            depot_path = result.marker.depot_path
            last = result.marker.change
            parents = [tip]
        for change, files in self.streams.get(depot_path.rstrip('/'), []):
            if change <= last:
                continue
            message = 'Change {}\n\n{}\n'.format(change, p4gm_marker.encode(depot_path, change))
            oid = write_commit(repo, None, message, files, parents,
                               author=user_signature(change))
            parents = [oid]
        if parents:
            git.force_ref(ref_name, parents[0])


@pytest.fixture
def streams(monkeypatch):
    """Replace git-p4 with FakeStreams for the duration of one test."""
    fake = FakeStreams()

    def _p4_sync(self, ref_name, depot_path=None):
        fake.p4_sync(self, ref_name, depot_path)

    monkeypatch.setattr(p4gm_git.GitRepo, 'p4_sync', _p4_sync)
    return fake


@pytest.fixture
def mirror(tmp_path):
    """An empty mirror repository."""
    init_repo(tmp_path / 'mirror')
    return p4gm_git.GitRepo(str(tmp_path / 'mirror'))


class FakeP4Source:

    """Stands in for P4Source: answers from dicts, records nothing."""

    def __init__(self, changes=None, parents=None, unintegrated=None):
        self._changes = changes or {}           # depot path => [change, ...]
        self._parents = parents or {}           # depot path => parent depot path
        self._unintegrated = unintegrated or {} # depot path => [change, ...] or exception
        self.described = []

    def _cls(self, depot_path):
        return [_changelist(c) for c in sorted(self._changes.get(depot_path, []))]

    def changes(self, depot_path, max_count):
        return list(reversed(self._cls(depot_path)))[:max_count]

    def oldest_changes(self, depot_path, count):
        return self._cls(depot_path)[:count]

    def stream_parent(self, stream):
        return self._parents.get(stream)

    def unintegrated_changes(self, stream, parent=None):
        value = self._unintegrated.get(stream, [])
        if isinstance(value, Exception):
            raise value
        return sorted(value)

    def describe(self, change):
        self.described.append(change)
        cl = _changelist(change)
        cl.description = 'Fix the frobnicator\n'
        cl.full_name = 'Bob Builder'
        cl.email = 'bob@example.com'
        return cl


def _changelist(change):
    return P4Changelist(change, 'bob', BASE_TIME + change, 'change {}'.format(change))


def make_context(config_text='', git=None, publish_git=None, p4source=None):
    """A Context built from INI text and whatever fakes the test supplies."""
    config = p4gm_config.MirrorConfig.from_string('[p4gitmirror]\n' + config_text)
    return p4gm_context.Context(config, git=git, publish_git=publish_git,
                                p4source=p4source or FakeP4Source())
