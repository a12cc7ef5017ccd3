"""Tests for p4gm_log."""

import logging

import pytest

import p4gm_log


@pytest.fixture(autouse=True)
def _reset_log(monkeypatch):
    monkeypatch.setattr(p4gm_log, '_configured_path', None)
    yield
    root = logging.getLogger()
    for h in root.handlers[:]:
        if isinstance(h, logging.FileHandler):
            root.removeHandler(h)
            h.close()


def test_log_config_file(tmp_path, monkeypatch):
    log_file = tmp_path / 'p4gm.log'
    conf = tmp_path / 'log.conf'
    conf.write_text('[general]\nfilename = {}\nroot = info\np4gm_import = debug\n'
                    .format(log_file))
    monkeypatch.setenv('P4GM_LOG_CONFIG_FILE', str(conf))

    p4gm_log._lazy_init()
    logging.getLogger('p4gm_import').debug('walked back 3')
    logging.getLogger('p4gm_other').debug('not me')

    text = log_file.read_text()
    assert 'walked back 3' in text
    assert 'not me' not in text


def test_run_with_exception_logger_exit_code():
    with pytest.raises(SystemExit) as e:
        p4gm_log.run_with_exception_logger(lambda: 0)
    assert e.value.code == 0


def test_run_with_exception_logger_exception(capsys):
    def _fail():
        raise RuntimeError('it broke')

    with pytest.raises(SystemExit) as e:
        p4gm_log.run_with_exception_logger(_fail, write_to_stderr=True)
    assert e.value.code == 1
    assert 'it broke' in capsys.readouterr().err


def test_run_with_exception_logger_keeps_sys_exit_code():
    def _usage():
        raise SystemExit(2)

    with pytest.raises(SystemExit) as e:
        p4gm_log.run_with_exception_logger(_usage)
    assert e.value.code == 2
