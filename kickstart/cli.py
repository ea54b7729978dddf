#!/usr/bin/env python3
"""kickstart CLI entrypoint."""

import argparse
import logging
import sys

from kickstart.agents import AgentNotInstalled, AgentTimeout, ProfileError
from kickstart.lib import output as out
from kickstart.lib.config import ConfigError, RunOptions
from kickstart.lib.github import GitHubError
from kickstart.lib.issues import WorkItemError
from kickstart.vcs import VcsError
from kickstart.workflow import engine
from kickstart.workflow.decisions import DecisionRequired

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_USAGE = 2


def parse_answers(pairs: list[str] | None) -> dict | None:
    """``--answer key=value`` pairs for headless runs; None when none given."""
    if not pairs:
        return None
    answers = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key.strip():
            raise ValueError(f"Invalid --answer '{pair}'. Expected key=value")
        answers[key.strip()] = value.strip()
    return answers


def build_options(args, **overrides) -> RunOptions:
    values = {
        "reference": getattr(args, "reference", None),
        "use_cursor": getattr(args, "cursor", False),
        "plan_name": getattr(args, "plan_name", None),
        "preserve": getattr(args, "save_ctx", False),
        "workspace_root": getattr(args, "workspace", None),
    }
    values.update(overrides)
    return RunOptions(**values)


def _run_kwargs(args) -> dict:
    answers = parse_answers(getattr(args, "answer", None))
    return {"answers": answers, "interactive": answers is None}


def _outcome_exit(outcome) -> int:
    if outcome.pr_url:
        out.info(f"Pull request: {outcome.pr_url}")
    return outcome.exit_code


def cmd_start(args):
    options = build_options(args, full_automation=args.awp)
    return _outcome_exit(engine.start_flow(options, **_run_kwargs(args)))


def cmd_prep(args):
    if args.update_issue:
        options = build_options(args, update_issue=True, dry_run=args.dry_run)
        result = engine.fill_issue_flow(options)
        if result.error:
            out.error(result.error)
        return result.exit_code
    if args.dry_run:
        out.error("--dry-run only applies to --update-issue")
        return EXIT_USAGE
    return _outcome_exit(engine.prep_flow(build_options(args), **_run_kwargs(args)))


def cmd_loop(args):
    settings = engine.resolve_settings(build_options(args))
    plan_file = args.plan_file or settings.plan
    if not plan_file:
        out.error("Either provide --plan-file or set PLAN environment variable")
        return EXIT_USAGE
    options = build_options(args, plan_file=plan_file)
    return _outcome_exit(engine.loop_flow(options, **_run_kwargs(args)))


def cmd_fixup(args):
    options = build_options(args, pr_url=args.pr_url)
    return _outcome_exit(engine.fixup_flow(options, **_run_kwargs(args)))


def _add_common(parser: argparse.ArgumentParser) -> None:
    parser.add_argument('--cursor', action='store_true', help='Use the Cursor headless agent instead of opencode')
    parser.add_argument('--workspace', help='Workspace root (default: WORKSPACE_ROOT or current directory)')
    parser.add_argument('--save-ctx', action='store_true', help='Keep the scratch directory on success')
    parser.add_argument('--answer', action='append', metavar='KEY=VALUE',
                        help='Answer a prompt non-interactively (repeatable), e.g. plan_name=my-plan')


def main(argv=None):
    parser = argparse.ArgumentParser(prog='kickstart', description='Plan-driven coding agent workflow')
    parser.add_argument('--verbose', '-v', action='store_true', help='Debug logging')
    subparsers = parser.add_subparsers(dest='command', required=True)

    # start
    p_start = subparsers.add_parser('start', help='Plan and implement an issue or local document')
    p_start.add_argument('reference', nargs='?', help='Issue URL, issue number, or markdown file (default: ISSUE)')
    p_start.add_argument('--awp', action='store_true', help='Full automation: branch, commit, push and open a PR')
    p_start.add_argument('--plan-name', help='Plan name under plans/')
    _add_common(p_start)
    p_start.set_defaults(func=cmd_start)

    # prep
    p_prep = subparsers.add_parser('prep', help='Write a plan without implementing it')
    p_prep.add_argument('reference', nargs='?', help='Issue URL, issue number, or markdown file (default: ISSUE)')
    p_prep.add_argument('--plan-name', help='Plan name under plans/')
    p_prep.add_argument('--update-issue', '--fill-template', dest='update_issue', action='store_true',
                        help='Fill empty issue template sections instead of writing a plan')
    p_prep.add_argument('--dry-run', action='store_true', help='Preview the filled issue body without updating it')
    _add_common(p_prep)
    p_prep.set_defaults(func=cmd_prep)

    # loop
    p_loop = subparsers.add_parser('loop', help='Continue implementing an existing plan')
    p_loop.add_argument('--plan-file', help='Plan file to resume (default: PLAN)')
    _add_common(p_loop)
    p_loop.set_defaults(func=cmd_loop)

    # fixup
    p_fixup = subparsers.add_parser('fixup', help='Address review feedback on a pull request')
    p_fixup.add_argument('pr_url', nargs='?', help='Pull request URL (default: PR_URL)')
    _add_common(p_fixup)
    p_fixup.set_defaults(func=cmd_fixup)

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        return args.func(args)
    except (ConfigError, ValueError, DecisionRequired) as e:
        out.error(str(e))
        return EXIT_USAGE
    except EOFError:
        out.error("Input closed while waiting for an answer")
        return EXIT_USAGE
    except (WorkItemError, GitHubError, VcsError, AgentNotInstalled, AgentTimeout, ProfileError) as e:
        out.error(str(e))
        return EXIT_FAILED
    except KeyboardInterrupt:
        out.error("Interrupted")
        return 130


if __name__ == '__main__':
    sys.exit(main())
