#! /usr/bin/env python3
"""Mirror one Perforce stream into its Git branch, up to a changelist, and publish.

    p4gm_sync.py <upper-bound> <branch> [--config PATH] [-v|-q|--debug]

Run by the build pipeline once per Perforce change. Imports every change on
the stream for <branch> up to and including <upper-bound>, never past it.
Creates the branch on first sight of a new stream (once the stream has
enough history), then pushes mirror branches and the publish repository.

Exit status 0: published, nothing to publish, or branch not ready yet.
Exit status 1: anything else. The pipeline sees an error annotation.
Exit status 2: bad command line.

Requires P4Python, pygit2, and git-p4 on $PATH. Perforce connection from
P4PORT/P4USER/P4CLIENT in the environment, or --p4port/--p4user.
"""

import logging

import P4

import p4gm_bootstrap  # pylint: disable=unused-import
import p4gm_annotate
import p4gm_branch_origin
import p4gm_config
import p4gm_const
import p4gm_context
import p4gm_git
from   p4gm_import import import_to_bound, WalkExhausted
from   p4gm_l10n   import _, NTR
import p4gm_log
import p4gm_proc
from   p4gm_p4changelist import ChangeNumberError
import p4gm_publish
import p4gm_surgeon
import p4gm_util

LOG = logging.getLogger(__name__)

# Errors that stop the run. Reported to the pipeline, then logged with
# traceback by run_with_exception_logger().
FATAL_ERRORS = ( p4gm_git.ImportFailed
               , p4gm_git.ReplayConflict
               , p4gm_git.NotARepository
               , p4gm_surgeon.SurgeryError
               , p4gm_branch_origin.ForkPointError
               , WalkExhausted
               , ChangeNumberError
               , p4gm_publish.PublishFailed
               , p4gm_util.CommandError
               , p4gm_config.ConfigLoadError
               , p4gm_config.ConfigParseError
               , p4gm_config.ConfigValueError
               , p4gm_proc.CommandFailed
               , P4.P4Exception
               )


def parse_argv(argv=None):
    """Convert command line into a usable dict.

    argparse exits 2 on a missing, non-numeric or non-positive upper
    bound, or an empty branch name.
    """
    usage = _("""p4gm_sync.py [options] <upper-bound> <branch>
options:
    --config PATH   p4gitmirror config file
    --p4port/-p     Perforce server
    --p4user/-u     Perforce user
    --verbose/-v    write more to console
    --quiet/-q      write nothing but errors to console
""")
    parser = p4gm_util.create_arg_parser(
          desc         = _("Mirror one Perforce stream into Git, up to a changelist.")
        , usage        = usage
        , add_p4_args  = True
        , add_log_args = True
        , add_debug_arg= True
        )
    parser.add_argument('upper_bound', metavar=NTR('upper-bound'),
                        type=p4gm_util.positive_int,
                        help=_('highest Perforce changelist number to import'))
    parser.add_argument('branch', metavar=NTR('branch'),
                        type=p4gm_util.non_empty,
                        help=_('Git branch (and Perforce stream) name'))
    parser.add_argument('--config', metavar=NTR('PATH'),
                        help=_('config file (default $P4GM_CONFIG or {path})')
                        .format(path=p4gm_const.P4GM_CONFIG_DEFAULT_PATH))

    args = parser.parse_args(argv)
    p4gm_util.apply_log_args(args, for_stdout=False)
    LOG.debug("args={}".format(args))
    return args


def sync_branch(ctx, branch_name, upper_bound):
    """Bring one branch up to upper_bound, creating it if need be.

    Return the list of branches that may have moved, or None if the branch
    is not ready to exist yet.
    """
    depot_path = ctx.depot_path(branch_name)

    if branch_name == ctx.default_branch or ctx.git.branch_exists(branch_name):
        tip = import_to_bound(ctx.git, branch_name, depot_path, upper_bound)
        return None if tip is None else [branch_name]

    result = p4gm_branch_origin.ensure_branch(ctx, branch_name, depot_path, upper_bound)
    if result.skipped:
        return None
                        # Creating a branch catches the default branch up too.
    return [ctx.default_branch, branch_name]


def run(ctx, branch_name, upper_bound):
    """Sync and publish. Return the process exit code."""
    ctx.git.checkout_detached()
    p4gm_publish.prepare(ctx)

    synced = sync_branch(ctx, branch_name, upper_bound)
    if synced is None:
        p4gm_annotate.warning(_("Branch '{branch}' is not ready to mirror at change"
                                " {change}, will try again later.")
                              .format(branch=branch_name, change=upper_bound))
        return 0

    ctx.git.checkout_detached()
    p4gm_publish.publish(ctx, synced, upper_bound)
    LOG.info("{} synced to {}".format(', '.join(synced), upper_bound))
    return 0


def main(argv=None):
    """Do the thing."""
    args = parse_argv(argv)
    try:
        config = p4gm_config.MirrorConfig.from_file(args.config)
        ctx = p4gm_context.Context(config)
        ctx.p4port = args.p4port
        ctx.p4user = args.p4user
        with ctx:
            return run(ctx, args.branch, args.upper_bound)
    except FATAL_ERRORS as e:
        p4gm_annotate.error(_("p4gitmirror failed for branch '{branch}' at change"
                              " {change}: {e}")
                            .format(branch=args.branch, change=args.upper_bound, e=e))
        raise


def cli():
    """Console entry point: main() with every exception logged."""
    p4gm_log.run_with_exception_logger(main, write_to_stderr=True)


if __name__ == "__main__":
    cli()
