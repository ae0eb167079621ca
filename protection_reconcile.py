import logging
from typing import List, Optional

from github_client import GitHubClient, GitHubError
from protection_logging import log_success
from protection_settings import ProtectionSettings
from workflow_jobs import expected_jobs, gating_jobs

LOG = logging.getLogger("branch-protection")

# -------------------- OUTCOMES --------------------
CORRECT = "correct"
FIXED = "fixed"
NEEDS_UPDATE = "needs_update"
SKIPPED_NO_FILE = "skipped_no_file"
SKIPPED_NO_RUNS = "skipped_no_runs"
ERROR = "error"

OUTCOMES = (CORRECT, FIXED, NEEDS_UPDATE, SKIPPED_NO_FILE, SKIPPED_NO_RUNS, ERROR)


class RepoResult:
    def __init__(self, repo: str, outcome: str = ERROR):
        self.repo = repo
        self.outcome = outcome
        self.expected_jobs: List[str] = []
        self.live_jobs: List[str] = []
        self.current_checks: Optional[List[str]] = None
        self.missing: List[str] = []
        self.used_fallback = False
        self.error: Optional[str] = None

    @property
    def protection_absent(self) -> bool:
        return self.current_checks is None

    def as_row(self) -> dict:
        return {
            "repository": self.repo,
            "outcome": self.outcome,
            "expected_jobs": ", ".join(self.expected_jobs),
            "live_jobs": ", ".join(self.live_jobs),
            "current_checks": "none" if self.current_checks is None else ", ".join(self.current_checks),
            "missing": ", ".join(self.missing),
            "used_fallback": self.used_fallback,
            "error": self.error or "",
        }

    def __repr__(self):
        return f"RepoResult({self.repo!r}, {self.outcome!r}, missing={self.missing!r})"


# -------------------- LIVE JOBS --------------------
def live_jobs(client: GitHubClient, settings: ProtectionSettings, repo: str) -> List[str]:
    """Gating job names from the most recent workflow run; [] when there is no run."""
    run_id = client.latest_run_id(settings.org, repo)
    if run_id is None:
        return []
    return gating_jobs(client.run_job_names(settings.org, repo, run_id))


# -------------------- PROTECTION --------------------
def required_contexts(protection: Optional[dict]) -> Optional[List[str]]:
    """Required status-check contexts; None when protection is absent."""
    if protection is None:
        return None
    checks = protection.get("required_status_checks") or {}
    contexts = list(checks.get("contexts") or [])
    if not contexts:
        contexts = [c["context"] for c in checks.get("checks") or [] if c.get("context")]
    return contexts


def missing_checks(live: List[str], current: Optional[List[str]]) -> List[str]:
    """Live jobs not required today. Exact string match, no case folding or trimming."""
    if current is None:
        return list(live)
    required = set(current)
    return [job for job in live if job not in required]


def build_protection_payload(contexts: List[str]) -> dict:
    return {
        "required_status_checks": {
            "strict": False,
            "contexts": list(contexts),
        },
        "enforce_admins": True,
        "required_pull_request_reviews": {
            "dismiss_stale_reviews": False,
            "require_code_owner_reviews": False,
            "require_last_push_approval": False,
            "required_approving_review_count": 0,
        },
        "restrictions": None,
        "allow_force_pushes": False,
        "allow_deletions": False,
        "required_conversation_resolution": False,
        "lock_branch": False,
        "allow_fork_syncing": False,
    }


def desired_contexts(live: List[str], current: Optional[List[str]], preserve_existing: bool) -> List[str]:
    contexts = list(live)
    if preserve_existing and current:
        contexts.extend(c for c in current if c not in contexts)
    return contexts


# -------------------- PER REPO --------------------
def evaluate_repository(client: GitHubClient, settings: ProtectionSettings, repo: str, apply: bool) -> RepoResult:
    """
    Run one repository through extract -> fetch -> read -> compare (-> write).
    GitHubError is left to the caller, which owns the error policy.
    """
    result = RepoResult(repo)

    result.expected_jobs = expected_jobs(settings.workflow_file(repo))
    if not result.expected_jobs:
        LOG.warning("No CI jobs found for %s, skipping...", repo)
        result.outcome = SKIPPED_NO_FILE
        return result

    result.live_jobs = live_jobs(client, settings, repo)
    if not result.live_jobs:
        if not settings.fallback_to_declared:
            LOG.warning("No recent workflow runs found for %s, skipping...", repo)
            result.outcome = SKIPPED_NO_RUNS
            return result
        LOG.warning("No recent workflow runs found for %s, using expected jobs", repo)
        result.live_jobs = list(result.expected_jobs)
        result.used_fallback = True

    LOG.info("Expected jobs: %s", ", ".join(result.expected_jobs))
    LOG.info("Actual job names: %s", ", ".join(result.live_jobs))

    result.current_checks = required_contexts(client.get_branch_protection(settings.org, repo, settings.branch))
    if result.protection_absent:
        # verify has nothing to fix it with, so absence is an error there
        LOG.log(logging.WARNING if apply else logging.ERROR, "No branch protection found for %s", repo)
    else:
        LOG.info("Current required checks: %s", ", ".join(result.current_checks))

    result.missing = missing_checks(result.live_jobs, result.current_checks)
    if not result.missing and not result.protection_absent:
        log_success(LOG, "Branch protection correctly configured for %s", repo)
        result.outcome = CORRECT
        return result

    if result.missing:
        LOG.warning("Missing required checks for %s: %s", repo, ", ".join(result.missing))
    result.outcome = NEEDS_UPDATE
    if not apply:
        return result

    contexts = desired_contexts(result.live_jobs, result.current_checks, settings.preserve_existing_checks)
    payload = build_protection_payload(contexts)
    if settings.dry_run:
        LOG.info("[DRY-RUN] PUT protection %s/%s@%s contexts=%s", settings.org, repo, settings.branch, contexts)
        return result

    LOG.info("Setting branch protection for %s...", repo)
    client.put_branch_protection(settings.org, repo, settings.branch, payload)
    log_success(LOG, "Branch protection updated for %s", repo)
    result.outcome = FIXED
    return result


# -------------------- BATCH --------------------
def reconcile_all(client: GitHubClient, settings: ProtectionSettings, repos: List[str], apply: bool) -> List[RepoResult]:
    """
    Process repositories one at a time in the given order. A GitHubError marks that
    repository as an error and the batch moves on, unless stop_on_error is set.
    """
    results = []
    for repo in repos:
        LOG.info("%s %s...", "Checking" if apply else "Verifying", repo)
        try:
            result = evaluate_repository(client, settings, repo, apply)
        except GitHubError as e:
            LOG.error("%s: %s", repo, e)
            if settings.stop_on_error:
                raise
            result = RepoResult(repo, ERROR)
            result.error = str(e)
        results.append(result)
    return results
