#! /usr/bin/env python3
"""p4gitmirror configuration file.

One local INI file, read with the configparser module:

    [p4gitmirror]
    mirror-dir     = /var/lib/p4gitmirror/mirror
    publish-dir    = /var/lib/p4gitmirror/super
    depot-path     = //stream/{branch}
    ...

Path is taken from --config, then $P4GM_CONFIG, then /etc/p4gitmirror.conf.
Missing file means all defaults. Missing options take their default.
"""

import configparser
import logging
import os

import p4gm_const
import p4gm_bootstrap  # pylint: disable=unused-import
from   p4gm_l10n import _, NTR

LOG = logging.getLogger(__name__)

SECTION_MIRROR              = NTR('p4gitmirror')

KEY_MIRROR_DIR              = NTR('mirror-dir')
KEY_MIRROR_REMOTE           = NTR('mirror-remote')
KEY_PUBLISH_DIR             = NTR('publish-dir')
KEY_PUBLISH_REMOTE          = NTR('publish-remote')
KEY_PUBLISH_BRANCH          = NTR('publish-branch')
KEY_SUBMODULE_ROOT          = NTR('submodule-root')
KEY_SUBMODULE_URL           = NTR('submodule-url')
KEY_DEFAULT_BRANCH          = NTR('default-branch')
KEY_DEPOT_PATH              = NTR('depot-path')
KEY_MIN_BRANCH_CHANGES      = NTR('min-branch-changes')
KEY_PUBLISH_ATTEMPTS        = NTR('publish-attempts')
KEY_BACKOFF_MIN_SECONDS     = NTR('backoff-min-seconds')
KEY_BACKOFF_MAX_SECONDS     = NTR('backoff-max-seconds')
KEY_SERVICE_USER_NAME       = NTR('service-user-name')
KEY_SERVICE_USER_EMAIL      = NTR('service-user-email')
KEY_TRIGGER_ENV             = NTR('trigger-env')
KEY_MANUAL_TRIGGERS         = NTR('manual-triggers')
KEY_P4_TIME_ZONE            = NTR('p4-time-zone')

VALUE_NONE                  = NTR('none')

_DEFAULTS = NTR({
    KEY_MIRROR_DIR:             '.',
    KEY_MIRROR_REMOTE:          'origin',
    KEY_PUBLISH_DIR:            VALUE_NONE,
    KEY_PUBLISH_REMOTE:         'origin',
    KEY_PUBLISH_BRANCH:         'main',
    KEY_SUBMODULE_ROOT:         'branches',
    KEY_SUBMODULE_URL:          VALUE_NONE,
    KEY_DEFAULT_BRANCH:         'main',
    KEY_DEPOT_PATH:             '//stream/{branch}',
    KEY_MIN_BRANCH_CHANGES:     '2',
    KEY_PUBLISH_ATTEMPTS:       '3',
    KEY_BACKOFF_MIN_SECONDS:    '3',
    KEY_BACKOFF_MAX_SECONDS:    '9',
    KEY_SERVICE_USER_NAME:      'p4gitmirror',
    KEY_SERVICE_USER_EMAIL:     'p4gitmirror@localhost',
    KEY_TRIGGER_ENV:            'BUILD_REASON',
    KEY_MANUAL_TRIGGERS:        'Manual',
    KEY_P4_TIME_ZONE:           'UTC',
})


class ConfigLoadError(RuntimeError):

    """Config file named but not readable."""

    def __init__(self, path, e=None):
        msg = _("Cannot read config file '{path}'.").format(path=path)
        if e:
            msg = NTR('{msg} {e}').format(msg=msg, e=e)
        RuntimeError.__init__(self, msg)


class ConfigParseError(RuntimeError):

    """Config file readable but not valid INI."""

    def __init__(self, path, e):
        msg = _("Config file '{path}' is not valid: {e}").format(path=path, e=e)
        LOG.error(msg)
        RuntimeError.__init__(self, msg)


class ConfigValueError(RuntimeError):

    """Config file parses, but a setting has a value we cannot use."""

    def __init__(self, option, value, need):
        msg = _("Config setting '{option}' = '{value}': {need}").format(
            option=option, value=value, need=need)
        LOG.error(msg)
        RuntimeError.__init__(self, msg)


                        # option => (type, smallest allowed value)
_NUMBERS = {
    KEY_MIN_BRANCH_CHANGES:     (int,   1),
    KEY_PUBLISH_ATTEMPTS:       (int,   1),
    KEY_BACKOFF_MIN_SECONDS:    (float, 0),
    KEY_BACKOFF_MAX_SECONDS:    (float, 0),
}


def _check_values(config):
    """Raise ConfigValueError for the first numeric or template setting we cannot use."""
    numbers = {}
    for option, (kind, least) in _NUMBERS.items():
        value = config.get(SECTION_MIRROR, option)
        try:
            numbers[option] = kind(value)
        except ValueError:
            raise ConfigValueError(option, value, _("must be a number"))
        if numbers[option] < least:
            raise ConfigValueError(option, value, _("must be at least {least}")
                                   .format(least=least))
    if numbers[KEY_BACKOFF_MAX_SECONDS] < numbers[KEY_BACKOFF_MIN_SECONDS]:
        raise ConfigValueError(KEY_BACKOFF_MAX_SECONDS,
                               config.get(SECTION_MIRROR, KEY_BACKOFF_MAX_SECONDS),
                               _("must not be less than {option}")
                               .format(option=KEY_BACKOFF_MIN_SECONDS))
    template = config.get(SECTION_MIRROR, KEY_DEPOT_PATH)
    try:
        template.format(branch=NTR('main'))
    except (KeyError, IndexError, ValueError):
        raise ConfigValueError(KEY_DEPOT_PATH, template,
                               _("may name no placeholder but {branch}"))


def _is_none_value(value):
    """Does this value mean "not set"?"""
    return value is None or value == '' or value.lower() == VALUE_NONE


def _new_parser():
    return configparser.ConfigParser(interpolation=None)


def default_config():
    """Return a ConfigParser holding nothing but default settings."""
    config = _new_parser()
    _apply_defaults(config)
    return config


def _apply_defaults(config):
    """Fill in any option the config file left out."""
    if not config.has_section(SECTION_MIRROR):
        config.add_section(SECTION_MIRROR)
    for key, value in _DEFAULTS.items():
        if not config.has_option(SECTION_MIRROR, key):
            config.set(SECTION_MIRROR, key, value)


def _parse(text, source):
    """INI text to ConfigParser. source only labels the error."""
    config = _new_parser()
    try:
        config.read_string(text, source=source)
    except configparser.Error as e:
        raise ConfigParseError(source, e)
    return config


def _load(file_path):
    """File to ConfigParser, or ConfigLoadError/ConfigParseError."""
    try:
        with open(file_path, 'r') as f:
            text = f.read()
    except OSError as e:
        LOG.debug("cannot read {}: {}".format(file_path, e))
        raise ConfigLoadError(file_path, e)
    return _parse(text, file_path)


def config_path(explicit_path=None):
    """Which config file should we read? None if no file applies."""
    if explicit_path:
        return explicit_path
    if p4gm_const.P4GM_CONFIG_NAME in os.environ:
        return os.environ[p4gm_const.P4GM_CONFIG_NAME]
    if os.path.exists(p4gm_const.P4GM_CONFIG_DEFAULT_PATH):
        return p4gm_const.P4GM_CONFIG_DEFAULT_PATH
    return None


class MirrorConfig:

    """Access to the p4gitmirror settings."""

    def __init__(self, config):
        self._config = config

    @staticmethod
    def from_file(path=None):
        """Load from the given path, or whatever config_path() finds.

        An explicitly named file that cannot be read raises ConfigLoadError.
        """
        file_path = config_path(path)
        if not file_path:
            LOG.debug("no config file, using defaults")
            return MirrorConfig(default_config())
        config = _load(file_path)
        _apply_defaults(config)
        _check_values(config)
        LOG.debug("read config from {}".format(file_path))
        return MirrorConfig(config)

    @staticmethod
    def from_string(contents):
        """Load from INI text. Used by tests and embedding callers."""
        config = _parse(contents, NTR("<string>"))
        _apply_defaults(config)
        _check_values(config)
        return MirrorConfig(config)

    def get(self, option):
        """Return one setting as a string. "none" and "" come back as None."""
        value = self._config.get(SECTION_MIRROR, option)
        if _is_none_value(value):
            value = None
        if LOG.isEnabledFor(logging.DEBUG2):
            LOG.debug2("get() [{}]/{} => {}".format(SECTION_MIRROR, option, value))
        return value

    def getint(self, option):
        """Setting as int, or None if unset. ValueError if not a number."""
        value = self.get(option)
        return None if value is None else int(value)

    def getfloat(self, option):
        """Setting as float, or None if unset."""
        value = self.get(option)
        return None if value is None else float(value)

    def getlist(self, option):
        """Setting split on commas and whitespace. Unset is []."""
        value = self.get(option)
        if value is None:
            return []
        return [v for v in value.replace(',', ' ').split() if v]

    def set(self, option, value):
        """Override one setting in memory."""
        self._config.set(SECTION_MIRROR, option, value)

    def depot_path_for_branch(self, branch_name):
        """Return the Perforce stream path that feeds the given Git branch.

        //stream/{branch} with branch "dev" becomes //stream/dev.
        """
        return self.get(KEY_DEPOT_PATH).format(branch=branch_name).rstrip('/')
