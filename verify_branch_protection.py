#!/usr/bin/env python3
"""
Verify branch protection rules for every repository in the workspace that has
a CI workflow. Read-only: nothing is written to GitHub.

Exit code is 0 only when every checked repository is correctly configured.
"""
import argparse
import logging
import sys

from github_client import GitHubClient, GitHubError
from protection_logging import setup_logging
from protection_reconcile import CORRECT, SKIPPED_NO_FILE, SKIPPED_NO_RUNS, reconcile_all
from protection_report import Tally, export_results
from protection_settings import ConfigError, load_settings
from workflow_jobs import discover_repositories

LOG = logging.getLogger("branch-protection")


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Report repositories whose CI jobs are not all required status checks.")
    parser.add_argument("--org", help="GitHub organization (default: cryptellation)")
    parser.add_argument("--branch", help="Protected branch (default: main)")
    parser.add_argument("--workspace", dest="workspace_root", help="Directory holding the repository checkouts (default: ../)")
    parser.add_argument("--no-fallback", dest="fallback_to_declared", action="store_false", default=None,
                        help="Skip repos without workflow runs instead of using the declared job names")
    parser.add_argument("--stop-on-error", action="store_true", default=None, help="Abort on the first repository error")
    parser.add_argument("--report", help="Write per-repository results to this .xlsx file")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)
    setup_logging(args.debug)

    try:
        settings = load_settings(
            org=args.org,
            branch=args.branch,
            workspace_root=args.workspace_root,
            fallback_to_declared=args.fallback_to_declared,
            stop_on_error=args.stop_on_error,
        )
        repos = discover_repositories(settings.workspace_root, settings.workflow_path)
    except (ConfigError, OSError) as e:
        LOG.critical("Fatal error: %s", e)
        return 2

    LOG.info("Verifying branch protection rules for all repositories...")
    client = GitHubClient(settings.token, settings.api_url, settings.timeout)

    try:
        results = reconcile_all(client, settings, repos, apply=False)
    except GitHubError as e:
        LOG.critical("Aborting: %s", e)
        return 1

    tally = Tally(total=len(repos))
    tally.extend(results)
    tally.log_verify_summary()
    if args.report:
        export_results(results, args.report)

    processed = [r for r in results if r.outcome not in (SKIPPED_NO_FILE, SKIPPED_NO_RUNS)]
    return 0 if all(r.outcome == CORRECT for r in processed) else 1


if __name__ == "__main__":
    sys.exit(main())
