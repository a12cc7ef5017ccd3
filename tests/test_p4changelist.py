"""Tests for p4gm_p4changelist against a scripted P4 connection."""

import P4
import pytest

from p4gm_p4changelist import (P4Changelist, P4Source, ChangeNumberError,
                               change_num_from, first_dict_with_key)


class FakeP4:

    """Answers p4.run() from a dict keyed on the command name."""

    def __init__(self, replies):
        self.replies = replies
        self.commands = []

    def run(self, *args):
        cmd = list(args[0]) if isinstance(args[0], list) else list(args)
        self.commands.append(cmd)
        reply = self.replies.get(cmd[0], [])
        if isinstance(reply, Exception):
            raise reply
        return reply


def _change(num, user='bob', desc='desc', time=1600000000):
    return {'change': str(num), 'user': user, 'desc': desc, 'time': str(time)}


@pytest.mark.parametrize('result, expected', [
    ({'change': '1234'}, 1234),
    ("Change 77 on 2016/01/31 by bob@ws 'Fix it'", 77),
])
def test_change_num_from(result, expected):
    assert change_num_from(result) == expected


@pytest.mark.parametrize('result', [{'change': 'new'}, {}, 'All revision(s) integrated.', None])
def test_change_num_from_garbage(result):
    with pytest.raises(ChangeNumberError):
        change_num_from(result)


def test_first_dict_with_key():
    assert first_dict_with_key(['text', {'a': 1}, {'b': 2}], 'b') == {'b': 2}
    assert first_dict_with_key(['text'], 'b') is None


def test_changes_newest_first():
    p4 = FakeP4({'changes': [_change(3), _change(10)]})
    changes = P4Source(p4).changes('//stream/dev/', 2)
    assert [cl.change for cl in changes] == [10, 3]
    assert p4.commands == [['changes', '-l', '-s', 'submitted', '-m', '2', '//stream/dev/...']]


def test_oldest_changes():
    p4 = FakeP4({'changes': [_change(30), _change(20), _change(10)]})
    assert [cl.change for cl in P4Source(p4).oldest_changes('//stream/dev', 2)] == [10, 20]


def test_stream_parent():
    p4 = FakeP4({'stream': [{'Stream': '//stream/dev', 'Parent': '//stream/main'}]})
    assert P4Source(p4).stream_parent('//stream/dev') == '//stream/main'


def test_mainline_has_no_parent():
    p4 = FakeP4({'stream': [{'Stream': '//stream/main', 'Parent': 'none'}]})
    assert P4Source(p4).stream_parent('//stream/main') is None


def test_stream_parent_of_non_stream():
    p4 = FakeP4({'stream': P4.P4Exception('not a stream')})
    assert P4Source(p4).stream_parent('//depot/x') is None


def test_unintegrated_changes_sorted():
    p4 = FakeP4({'interchanges': [_change(200), _change(100), _change(150)]})
    assert P4Source(p4).unintegrated_changes('//stream/dev', '//stream/main') == [100, 150, 200]
    assert p4.commands == [['interchanges', '-r', '-S', '//stream/dev', '-P', '//stream/main']]


def test_unintegrated_changes_unreadable():
    p4 = FakeP4({'interchanges': ['Change ??? by nobody']})
    with pytest.raises(ChangeNumberError):
        P4Source(p4).unintegrated_changes('//stream/dev')


def test_describe_fills_in_user():
    p4 = FakeP4({'describe': [_change(500, desc='Fix\n')],
                 'users': [{'User': 'bob', 'FullName': 'Bob Builder',
                            'Email': 'bob@example.com'}]})
    cl = P4Source(p4).describe(500)
    assert (cl.change, cl.user, cl.full_name, cl.email, cl.time, cl.description) == \
        (500, 'bob', 'Bob Builder', 'bob@example.com', 1600000000, 'Fix\n')


def test_describe_unknown_user():
    p4 = FakeP4({'describe': [_change(500, user='ghost')], 'users': []})
    cl = P4Source(p4).describe(500)
    assert (cl.full_name, cl.email) == ('ghost', 'ghost@localhost')


def test_users_are_looked_up_once():
    p4 = FakeP4({'describe': [_change(500)], 'users': [{'User': 'bob', 'Email': 'b@x'}]})
    source = P4Source(p4)
    source.describe(500)
    source.describe(500)
    assert sum(1 for c in p4.commands if c[0] == 'users') == 1


def test_describe_missing_change():
    with pytest.raises(ChangeNumberError):
        P4Changelist.from_describe(FakeP4({'describe': []}), 9)
