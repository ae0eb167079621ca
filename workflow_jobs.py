import logging
from pathlib import Path
from typing import Iterable, List

import yaml

LOG = logging.getLogger("branch-protection")

PUBLISH_KEYWORD = "publish"


def is_publish_job(name: str) -> bool:
    """Publish/release jobs never gate merges."""
    return PUBLISH_KEYWORD in name.lower()


def gating_jobs(names: Iterable[str]) -> List[str]:
    """Drop publish jobs and duplicates, keep first-seen order."""
    seen = set()
    out = []
    for name in names:
        if is_publish_job(name) or name in seen:
            continue
        seen.add(name)
        out.append(name)
    return out


def discover_repositories(workspace_root: Path, workflow_path: str) -> List[str]:
    """
    Names of the workspace's child directories that carry the CI workflow file,
    sorted. An unreadable workspace root raises OSError.
    """
    root = Path(workspace_root)
    repos = []
    for entry in root.iterdir():
        if not entry.is_dir() or entry.name.startswith("."):
            continue
        if (entry / workflow_path).is_file():
            repos.append(entry.name)
    return sorted(repos)


def expected_jobs(workflow_file: Path) -> List[str]:
    """Display names declared under jobs.<key>.name, publish jobs excluded."""
    path = Path(workflow_file)
    if not path.is_file():
        LOG.warning("CI file not found: %s", path)
        return []
    try:
        with path.open("r", encoding="utf-8") as f:
            doc = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        LOG.warning("Could not parse %s: %s", path, e)
        return []

    jobs = doc.get("jobs") if isinstance(doc, dict) else None
    if not isinstance(jobs, dict):
        LOG.warning("No jobs mapping in %s", path)
        return []

    names = []
    for job_key, job in jobs.items():
        if not isinstance(job, dict):
            continue
        name = job.get("name")
        if name is None:
            LOG.debug("Job '%s' in %s has no display name", job_key, path)
            continue
        names.append(str(name))
    return gating_jobs(names)
