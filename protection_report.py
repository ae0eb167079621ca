import logging
from pathlib import Path
from typing import Dict, List

import pandas as pd

from protection_logging import log_success
from protection_reconcile import (
    CORRECT, ERROR, FIXED, NEEDS_UPDATE, OUTCOMES, SKIPPED_NO_FILE, SKIPPED_NO_RUNS, RepoResult,
)

LOG = logging.getLogger("branch-protection")

RULE = "=" * 42


class Tally:
    """Running outcome counts for one run."""

    def __init__(self, total: int = 0):
        self.total = total
        self.counts: Dict[str, int] = {o: 0 for o in OUTCOMES}

    def record(self, result: RepoResult):
        self.counts[result.outcome] += 1

    def extend(self, results: List[RepoResult]):
        for r in results:
            self.record(r)

    @property
    def skipped(self) -> int:
        return self.counts[SKIPPED_NO_FILE] + self.counts[SKIPPED_NO_RUNS]

    @property
    def errors(self) -> int:
        return self.counts[ERROR]

    def log_check_summary(self):
        LOG.info(RULE)
        LOG.info("Summary:")
        log_success(LOG, "Already correctly configured: %d", self.counts[CORRECT])
        log_success(LOG, "Fixed: %d", self.counts[FIXED])
        if self.counts[NEEDS_UPDATE]:
            LOG.warning("Needing update (not written): %d", self.counts[NEEDS_UPDATE])
        LOG.error("Errors: %d", self.errors)
        LOG.info("Skipped: %d", self.skipped)
        LOG.info("Total repositories checked: %d", self.total)
        LOG.info(RULE)

    def log_verify_summary(self):
        LOG.info(RULE)
        LOG.info("Verification Summary:")
        log_success(LOG, "Correctly configured: %d", self.counts[CORRECT])
        LOG.warning("Incorrectly configured: %d", self.counts[NEEDS_UPDATE])
        LOG.error("Errors: %d", self.errors)
        LOG.info("Skipped: %d", self.skipped)
        LOG.info("Total repositories checked: %d", self.total)
        LOG.info(RULE)


def export_results(results: List[RepoResult], path: Path) -> Path:
    """One row per repository, written as an Excel sheet."""
    path = Path(path)
    df = pd.DataFrame([r.as_row() for r in results],
                      columns=["repository", "outcome", "expected_jobs", "live_jobs",
                               "current_checks", "missing", "used_fallback", "error"])
    with pd.ExcelWriter(path, engine="openpyxl") as writer:
        df.to_excel(writer, sheet_name="Branch_Protection", index=False)
    LOG.info("Report saved to: %s", path)
    return path
