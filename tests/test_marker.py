"""Tests for p4gm_marker."""

import pytest

import p4gm_marker
from conftest import init_repo, write_commit


def test_encode_matches_git_p4():
    assert p4gm_marker.encode('//stream/main', 1234) == \
        '[git-p4: depot-paths = "//stream/main/": change = 1234]'


def test_encode_keeps_existing_trailing_slash():
    assert p4gm_marker.encode('//stream/main/', 7) == \
        '[git-p4: depot-paths = "//stream/main/": change = 7]'


@pytest.mark.parametrize('change', [0, 1, 99, 500, 2 ** 31 + 5])
@pytest.mark.parametrize('path', ['//stream/main', '//depot/a b/c-d_e', '//x/'])
def test_marker_in_message_decodes_to_change(path, change):
    message = 'Subject\n\nBody text.\n\n{}\n'.format(p4gm_marker.encode(path, change))
    result = p4gm_marker.parse(message)
    assert result.found
    assert result.marker.change == change
    assert result.marker.depot_path == path.rstrip('/') + '/'
    assert p4gm_marker.decode_message(message) == change


def test_git_p4_options_after_change_are_ignored():
    message = 'x\n\n[git-p4: depot-paths = "//stream/main/": change = 42: options = 2]\n'
    assert p4gm_marker.decode_message(message) == 42


def test_unquoted_path():
    assert p4gm_marker.decode_message('[git-p4: depot-paths = //s/m/: change = 8]') == 8


def test_quoted_path_may_contain_colon():
    message = 'x\n\n{}\n'.format(p4gm_marker.encode('//stream/a:b', 42))
    assert p4gm_marker.parse(message).marker == p4gm_marker.Marker('//stream/a:b/', 42)
    assert p4gm_marker.decode_message('[git-p4: depot-paths = "//stream/a:b/": change = 42]') == 42


def test_no_marker_is_not_found():
    result = p4gm_marker.parse('Perforce change 12\n\nNo marker here.\n')
    assert result.not_found
    assert result.change_or_zero() == 0


@pytest.mark.parametrize('message', ['', None])
def test_empty_message_is_not_found(message):
    assert p4gm_marker.parse(message).not_found


def test_broken_marker_is_malformed():
    result = p4gm_marker.parse('x\n\n[git-p4: depot-paths = "//s/m/": change = twelve]\n')
    assert result.malformed
    assert not result.found
    assert result.change_or_zero() == 0
    assert p4gm_marker.decode_message('[git-p4: garbage]') == 0


def test_last_marker_wins():
    message = '{}\n{}\n'.format(p4gm_marker.encode('//s/a', 5), p4gm_marker.encode('//s/b', 9))
    assert p4gm_marker.parse(message).marker == p4gm_marker.Marker('//s/b/', 9)


def test_marker_must_be_on_its_own_line():
    message = 'see [git-p4: depot-paths = "//s/m/": change = 3] for details\n'
    assert p4gm_marker.decode_message(message) == 0


def test_decode_reads_commit(tmp_path):
    repo = init_repo(tmp_path / 'r')
    marked = write_commit(repo, 'refs/heads/main',
                          'Imported\n\n{}\n'.format(p4gm_marker.encode('//stream/main', 497)),
                          {'a': 'a\n'}, [])
    plain = write_commit(repo, 'refs/heads/main', 'Perforce change 500\n', {'b': 'b\n'},
                         [marked])
    assert p4gm_marker.decode(repo, marked) == 497
    assert p4gm_marker.decode(repo, str(marked)) == 497
    assert p4gm_marker.decode(repo, repo.get(marked)) == 497
    assert p4gm_marker.decode(repo, plain) == 0


@pytest.mark.parametrize('bogus', ['0' * 40, 'not-a-sha1', ''])
def test_decode_never_raises(tmp_path, bogus):
    repo = init_repo(tmp_path / 'r', {'a': 'a\n'})
    assert p4gm_marker.decode(repo, bogus) == 0


def test_decode_of_tree_or_blob_is_zero(tmp_path):
    repo = init_repo(tmp_path / 'r', {'a': 'a\n'})
    head = repo[repo.head.target]
    blob_id = head.tree['a'].id
    assert p4gm_marker.decode(repo, str(head.tree_id)) == 0
    assert p4gm_marker.decode(repo, head.tree_id) == 0
    assert p4gm_marker.decode(repo, str(blob_id)) == 0
    assert p4gm_marker.decode(repo, head.tree) == 0
