#! /usr/bin/env python3
"""Debug/error log setup for p4gitmirror scripts.

Log configuration is an INI file, /etc/p4gitmirror.log.conf unless
$P4GM_LOG_CONFIG_FILE names another:

    [general]
    root        = warning
    filename    = /var/log/p4gitmirror/sync.log
    format      = %(asctime)s %(name)-10s %(levelname)-8s %(message)s
    datefmt     = %m-%d %H:%M:%S
    p4gm_import = debug
    cmd         = info

'root' is the level for every logger not named. Any key that is not one
of root, filename (or file), handler, format, datefmt is a logger name
and its level. 'handler = console' sends everything to stderr instead of
a file. A file without a [general] header is read as if it had one.

No file: warnings and errors to stderr.
"""

import configparser
import logging
import os
import sys

import p4gm_bootstrap  # pylint: disable=unused-import
import p4gm_const
from   p4gm_l10n      import _, NTR

LOG_SECTION     = NTR('general')
CONSOLE         = NTR('console')

_DEFAULTS = NTR({
    'root':     'WARNING',
    'format':   '%(asctime)s %(name)-10s %(levelname)-8s %(message)s',
    'datefmt':  '%m-%d %H:%M:%S',
})

# Path we configured from (or '<defaults>'), and the handler we installed.
_configured_path    = None
_handler            = None


def log_config_path():
    """Return the log config file to read, or None if there is none."""
    for path in (os.environ.get(p4gm_const.P4GM_LOG_CONFIG_NAME),
                 p4gm_const.P4GM_LOG_CONFIG_DEFAULT_PATH):
        if path and os.path.exists(path):
            return path
    return None


def _read_settings(path):
    """Return the [general] settings from path merged over the defaults."""
    settings = dict(_DEFAULTS)
    if not path:
        return settings
    with open(path, 'r') as f:
        text = f.read()
    parser = configparser.ConfigParser(interpolation=None)
    try:
        try:
            parser.read_string(text, source=path)
        except configparser.MissingSectionHeaderError:
            parser.read_string('[{}]\n{}'.format(LOG_SECTION, text), source=path)
    except configparser.Error as e:
        sys.stderr.write(_("p4gitmirror: cannot parse log config '{path}', using defaults:"
                           " {e}\n").format(path=path, e=e))
        return settings
    if parser.has_section(LOG_SECTION):
        settings.update(parser[LOG_SECTION])
    return settings


def _create_handler(settings):
    """Pop handler/filename settings, return the logging.Handler they describe."""
    name = settings.pop('handler', None)
    filename = settings.pop('filename', None) or settings.pop('file', None)
    settings.pop('file', None)
    if name:
        if name != CONSOLE:
            sys.stderr.write(_("p4gitmirror: unknown log handler '{name}', using console\n")
                             .format(name=name))
        return logging.StreamHandler()
    if filename:
        filename = os.path.expanduser(filename)
        os.makedirs(os.path.dirname(os.path.abspath(filename)), exist_ok=True)
        return logging.FileHandler(filename, 'a', 'utf-8')
    return logging.StreamHandler()


def configure(path=None):
    """Set up the root logger and any per-logger levels from path.

    Replaces whatever handler an earlier configure() installed.
    """
    global _handler
    settings = _read_settings(path)
    handler = _create_handler(settings)
    handler.setFormatter(logging.Formatter(settings.pop('format'), settings.pop('datefmt')))

    root = logging.getLogger()
    if _handler is not None:
        root.removeHandler(_handler)
        _handler.close()
    root.addHandler(handler)
    _handler = handler
    root.setLevel(settings.pop('root').upper())
    for logger_name, level in settings.items():
        logging.getLogger(logger_name).setLevel(level.upper())


def _lazy_init(config_path=None):
    """Configure logging unless already configured from the same file."""
    global _configured_path
    path = config_path or log_config_path()
    wanted = path or NTR('<defaults>')
    if _configured_path == wanted:
        return
    try:
        configure(path)
        _configured_path = wanted
    except (OSError, ValueError) as e:
        # Unwritable log file, or a level name logging does not know.
        sys.stderr.write(_('p4gitmirror: unable to configure log: {e}\n').format(e=e))


def _script_name():
    """'p4gm_sync.py' from '/usr/libexec/p4gitmirror/p4gm_sync.py'."""
    return os.path.basename(sys.argv[0]) if sys.argv and sys.argv[0] else NTR('p4gitmirror')


class ExceptionLogger:

    """Context manager that sends any escaping exception to the log.

        exit_code = [1]
        with p4gm_log.ExceptionLogger(exit_code):
            exit_code[0] = main()

    sys.exit(n) inside the block is not an error: n is stored in
    exit_code[0]. Anything else is logged with its traceback under
    category, and optionally its message written to stderr. The exception
    is squelched unless squelch is False.
    """

    def __init__(self, exit_code_array=None, category=None,
                 squelch=True, write_to_stderr_=False):
        self.exit_code_array = exit_code_array if exit_code_array else [1]
        self.category = category or _script_name()
        self.squelch = squelch
        self.write_to_stderr = write_to_stderr_
        _lazy_init()

    def __enter__(self):
        return None

    def __exit__(self, exc_type, exc_value, exc_traceback):
        if isinstance(exc_value, SystemExit):
            self.exit_code_array[0] = exc_value.code
            return self.squelch
        if exc_type:
            logging.getLogger(self.category).error(
                "Caught exception", exc_info=(exc_type, exc_value, exc_traceback))
            if self.write_to_stderr:
                sys.stderr.write('{}\n'.format(exc_value.args[0] if exc_value.args
                                               else exc_value))
        return self.squelch


def run_with_exception_logger(func, *args, write_to_stderr=False):
    """Run func(*args) as a script's main, then exit with its return code.

    Exit code is 1 if func raises, or whatever sys.exit() func called.
    """
    exit_code = [1]
    log = logging.getLogger(_script_name())
    with ExceptionLogger(exit_code, write_to_stderr_=write_to_stderr):
        log.debug("{} start --".format(func.__name__))
        exit_code[0] = func(*args)
    log.debug("{} exit={} --".format(func.__name__, exit_code[0]))
    sys.exit(exit_code[0])
