#! /usr/bin/env python3
"""Run git (and git-p4) as a child process, with the command and its result in the log.

Log categories, so that a log config can turn each up or down:

    cmd.cmd     command line, DEBUG
    cmd.exit    exit code, DEBUG, or ERROR when a failure was not expected
    cmd.out     stdout length at DEBUG, full text at DEBUG3
    cmd.err     stderr text, same level as cmd.exit

Every call returns a dict: cmd (str), ec (int), out (str), err (str).
"""

import logging
import os
import subprocess

import p4gm_bootstrap  # pylint: disable=unused-import
import p4gm_const
from   p4gm_l10n      import _, NTR

LOG = logging.getLogger(__name__)

LOG_CMD  = logging.getLogger('cmd.cmd')
LOG_EXIT = logging.getLogger('cmd.exit')
LOG_OUT  = logging.getLogger('cmd.out')
LOG_ERR  = logging.getLogger('cmd.err')


class CommandFailed(RuntimeError):

    """A command run with popen() exited non-zero."""

    pass


def translate_git_cmd(cmd):
    """Run $GIT_BIN instead of whatever 'git' is first on $PATH, if set."""
    git_bin = os.environ.get(p4gm_const.GIT_BIN_NAME)
    if not git_bin or cmd[0] != p4gm_const.GIT_BIN_DEFAULT:
        return cmd
    return [git_bin] + list(cmd[1:])


def _record(result, expect_error):
    """Log one finished command.

    Unexpected failures go out at ERROR, command line included, so that
    they show up even when cmd.* is turned down to INFO.
    """
    failed = result['ec'] != 0 and not expect_error
    level = logging.ERROR if failed else logging.DEBUG
    if failed and not LOG_CMD.isEnabledFor(logging.DEBUG):
        LOG_CMD.error(result['cmd'])
    LOG_EXIT.log(level, NTR("exit: {}").format(result['ec']))
    LOG_OUT.debug(NTR("out : {} chars").format(len(result['out'])))
    if result['out']:
        LOG_OUT.debug3(NTR("out :\n{}").format(result['out']))
    if result['err']:
        LOG_ERR.log(level, NTR("err :\n{}").format(result['err']))


def _run(cmd, expect_error, stdin=None, env=None, cwd=None):
    """subprocess.run() with logging. Never raises for a failed command."""
    if not isinstance(cmd, list):
        LOG.error("command must be a list, not {!r}".format(cmd))
        return None
    line = ' '.join(cmd)
    LOG_CMD.debug(line)
    full_env = None
    if env:
        full_env = dict(os.environ)
        full_env.update(env)
    try:
        p = subprocess.run(translate_git_cmd(cmd), input=stdin, cwd=cwd, env=full_env,
                           stdout=subprocess.PIPE, stderr=subprocess.PIPE,
                           universal_newlines=True, check=False)
        result = {'cmd': line, 'ec': p.returncode, 'out': p.stdout, 'err': p.stderr}
    except OSError as e:
                        # No such program, not executable, bad cwd.
        result = {'cmd': line, 'ec': os.EX_OSERR, 'out': '', 'err': str(e)}
    _record(result, expect_error)
    return result


def popen_no_throw(cmd, stdin=None, env=None, cwd=None):
    """Run cmd. A non-zero exit is the caller's to handle, and logged at DEBUG."""
    return _run(cmd, True, stdin, env, cwd)


def popen(cmd, stdin=None, env=None, cwd=None):
    """Run cmd. Raise CommandFailed, with everything the command said, on non-zero exit."""
    result = _run(cmd, False, stdin, env, cwd)
    if result is None:
        raise RuntimeError(_("Command is not a list: {cmd!r}").format(cmd=cmd))
    if result['ec']:
        raise CommandFailed(_("Command failed with exit code {ec}: {cmd}\n"
                              "stdout:\n{out}\nstderr:\n{err}")
                            .format(**result))
    return result
