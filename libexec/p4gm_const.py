#! /usr/bin/env python3
"""p4gitmirror package constants."""

from   p4gm_l10n import NTR

# pylint:disable=line-too-long

P4GM_PROG                           = NTR('p4gitmirror')
P4GM_VERSION                        = NTR('1.0.0')

# Environment vars
P4GM_CONFIG_NAME                    = NTR('P4GM_CONFIG')
P4GM_LOG_CONFIG_NAME                = NTR('P4GM_LOG_CONFIG_FILE')
GIT_BIN_NAME                        = NTR('GIT_BIN')
GIT_BIN_DEFAULT                     = NTR('git')

# Config files on the local filesystem
P4GM_CONFIG_DEFAULT_PATH            = NTR('/etc/p4gitmirror.conf')
P4GM_LOG_CONFIG_DEFAULT_PATH        = NTR('/etc/p4gitmirror.log.conf')

# Disposable refs. Anything under these names may be deleted at any time;
# a crashed run leaves nothing here that the next run depends upon.
P4GM_IMPORT_REF                     = NTR('refs/heads/p4gm-import-{branch}')
P4GM_SURGERY_TAG                    = NTR('refs/tags/p4gm-surgery-{branch}')

# Commit message for the zero-diff commit that seeds a new branch's import.
P4GM_FORK_COMMIT_MESSAGE            = NTR('p4gitmirror: fork point for {depot_path} at change {change}\n\n{marker}\n')

# Commit message for the composite commit in the publish repository.
P4GM_PUBLISH_MESSAGE                = NTR('Perforce change {change}\n\n{description}\n')

# Label added to .gitmodules entries that p4gitmirror manages.
P4GM_MODULE_TAG                     = NTR('p4gm')

# Pipeline annotation prefix (Azure Pipelines logging command syntax).
P4GM_ANNOTATION                     = NTR('##vso[task.logissue type={type}]{message}')

