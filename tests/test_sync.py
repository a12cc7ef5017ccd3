"""Tests for p4gm_sync: command line and the whole run."""

import pytest

import p4gm_config
import p4gm_context
import p4gm_git
import p4gm_import
import p4gm_marker
import p4gm_sync
from conftest import FakeP4Source, make_context


MAIN = '//stream/main'
DEV = '//stream/dev'


@pytest.mark.parametrize('argv', [[], ['500'], ['0', 'main'], ['-3', 'main'],
                                  ['abc', 'main'], ['500', '']])
def test_bad_arguments_exit_2(argv):
    with pytest.raises(SystemExit) as e:
        p4gm_sync.parse_argv(argv)
    assert e.value.code == 2


def test_good_arguments():
    args = p4gm_sync.parse_argv(['500', 'dev', '--config', '/tmp/x.conf', '-v'])
    assert (args.upper_bound, args.branch, args.config, args.verbose) == \
        (500, 'dev', '/tmp/x.conf', True)


def _push_ok(git):
    pushed = []
    git.push = lambda branch: pushed.append(branch) or True
    return pushed


def test_first_sync_of_default_branch(mirror, streams):
    for change in (3, 120, 497, 501):
        streams.add(MAIN, change)
    ctx = make_context(git=mirror)
    pushed = _push_ok(mirror)

    assert p4gm_sync.run(ctx, 'main', 500) == 0

    assert p4gm_marker.decode(mirror.repo, mirror.ref_sha1('main')) == 497
    assert pushed == ['main']


def test_existing_branch_is_imported(mirror, streams):
    for change in (10, 20):
        streams.add(MAIN, change)
    p4gm_import.import_to_bound(mirror, 'main', MAIN, 10)
    ctx = make_context(git=mirror)

    assert p4gm_sync.sync_branch(ctx, 'main', 100) == ['main']
    assert p4gm_marker.decode(mirror.repo, mirror.ref_sha1('main')) == 20


def test_new_branch_syncs_default_branch_too(mirror, streams):
    for change in (10, 20):
        streams.add(MAIN, change)
    for change in (30, 40):
        streams.add(DEV, change)
    p4gm_import.import_to_bound(mirror, 'main', MAIN, 10)
    ctx = make_context(git=mirror, p4source=FakeP4Source(changes={DEV: [30, 40]}))

    assert p4gm_sync.sync_branch(ctx, 'dev', 100) == ['main', 'dev']
    assert p4gm_marker.decode(mirror.repo, mirror.ref_sha1('dev')) == 40


def test_branch_not_ready_is_a_warning(mirror, streams, capsys):
    streams.add(MAIN, 10)
    p4gm_import.import_to_bound(mirror, 'main', MAIN, 10)
    ctx = make_context(git=mirror, p4source=FakeP4Source(changes={DEV: [30]}))
    pushed = _push_ok(mirror)

    assert p4gm_sync.run(ctx, 'dev', 100) == 0

    assert '##vso[task.logissue type=warning]' in capsys.readouterr().out
    assert pushed == []
    assert not mirror.branch_exists('dev')


def test_fatal_error_is_annotated_and_raised(tmp_path, mirror, monkeypatch, capsys):
    conf = tmp_path / 'p4gitmirror.conf'
    conf.write_text('[p4gitmirror]\nmirror-dir = {}\n'.format(mirror.workdir))

    def _connect(self):
        self.p4source = FakeP4Source()

    def _boom(_self, _ref_name, depot_path=None):
        raise p4gm_git.ImportFailed('git-p4 exploded')

    monkeypatch.setattr(p4gm_context.Context, 'connect', _connect)
    monkeypatch.setattr(p4gm_git.GitRepo, 'p4_sync', _boom)

    with pytest.raises(p4gm_git.ImportFailed):
        p4gm_sync.main(['500', 'main', '--config', str(conf)])

    out = capsys.readouterr().out
    assert "##vso[task.logissue type=error]" in out
    assert 'git-p4 exploded' in out


def test_missing_mirror_repo_is_fatal(tmp_path, monkeypatch):
    conf = tmp_path / 'p4gitmirror.conf'
    conf.write_text('[p4gitmirror]\nmirror-dir = {}\n'.format(tmp_path / 'nowhere'))
    monkeypatch.setattr(p4gm_context.Context, 'connect',
                        lambda self: setattr(self, 'p4source', FakeP4Source()))

    with pytest.raises(p4gm_git.NotARepository):
        p4gm_sync.main(['500', 'main', '--config', str(conf)])


def test_bad_setting_is_annotated_and_raised(tmp_path, capsys):
    conf = tmp_path / 'p4gitmirror.conf'
    conf.write_text('[p4gitmirror]\npublish-attempts = many\n')

    with pytest.raises(p4gm_config.ConfigValueError):
        p4gm_sync.main(['500', 'main', '--config', str(conf)])

    out = capsys.readouterr().out
    assert "##vso[task.logissue type=error]" in out
    assert 'publish-attempts' in out
