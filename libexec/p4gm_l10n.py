#! /usr/bin/env python3
"""Translation hooks.

    from p4gm_l10n import _, NTR

_("text") marks user-visible text for translation. NTR("text") marks text
that must stay exactly as written: ref names, Perforce commands, config
keys, git-p4 grammar.

Catalogs, if any, are libexec/mo/<lang>/LC_MESSAGES/p4gitmirror.mo.
"""
import gettext
import os

# No p4gm_xxx imports here: every other module imports this one.

DOMAIN      = 'p4gitmirror'
LOCALE_DIR  = os.path.join(os.path.dirname(os.path.realpath(__file__)), 'mo')


def NTR(x):             # pylint:disable=invalid-name
    """Not To be tRanslated."""
    return x


gettext.bindtextdomain(DOMAIN, localedir=LOCALE_DIR)
gettext.textdomain(DOMAIN)
_ = gettext.gettext
