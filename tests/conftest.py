"""
Pytest configuration and shared fixtures.
"""

import json
from pathlib import Path
from typing import Dict, List, Optional

import pytest

from github_client import GitHubClient
from protection_settings import ProtectionSettings


class FakeResponse:
    def __init__(self, status_code: int = 200, payload=None, headers: Optional[Dict[str, str]] = None):
        self.status_code = status_code
        self._payload = payload
        self.headers = headers or {}
        self.content = b"" if payload is None else json.dumps(payload).encode("utf-8")
        self.text = self.content.decode("utf-8")

    @classmethod
    def html(cls, status_code: int = 200, text: str = "<html><body>Bad Gateway</body></html>"):
        resp = cls(status_code)
        resp.content = text.encode("utf-8")
        resp.text = text
        return resp

    def json(self):
        if self._payload is None:
            raise ValueError("no JSON body")
        return self._payload


class FakeGitHub:
    """
    In-memory stand-in for requests.Session that answers the four endpoints the
    reconciler uses. Protection written by PUT is visible to later GETs.
    """

    def __init__(self, org: str = "acme", branch: str = "main"):
        self.org = org
        self.branch = branch
        self.headers: Dict[str, str] = {}
        self.runs: Dict[str, List[dict]] = {}
        self.jobs: Dict[int, List[str]] = {}
        self.protection: Dict[str, dict] = {}
        self.protection_status: Dict[str, int] = {}
        self.put_status: Dict[str, int] = {}
        self.runs_response: Dict[str, FakeResponse] = {}
        self.jobs_page_status: Dict[int, int] = {}
        self.calls: List[tuple] = []
        self.puts: List[tuple] = []
        self._next_run_id = 1000

    # ---- fixture helpers ----
    def add_run(self, repo: str, job_names: List[str]) -> int:
        run_id = self._next_run_id
        self._next_run_id += 1
        self.runs.setdefault(repo, []).insert(0, {"id": run_id})
        self.jobs[run_id] = list(job_names)
        return run_id

    def protect(self, repo: str, contexts: List[str]):
        self.protection[repo] = {
            "required_status_checks": {"strict": False, "contexts": list(contexts)},
        }

    # ---- requests.Session surface ----
    def request(self, method, url, timeout=None, params=None, json=None, **kwargs):
        self.calls.append((method, url, params))
        path = url.split("/repos/", 1)[1]
        parts = path.split("/")
        repo = parts[1]

        if parts[2:4] == ["actions", "runs"] and len(parts) == 4:
            if repo in self.runs_response:
                return self.runs_response[repo]
            runs = self.runs.get(repo, [])
            per_page = (params or {}).get("per_page", 30)
            return FakeResponse(200, {"total_count": len(runs), "workflow_runs": runs[:per_page]})

        if parts[2:4] == ["actions", "runs"] and parts[-1] == "jobs":
            run_id = int(parts[4])
            names = self.jobs.get(run_id, [])
            params = params or {}
            per_page = params.get("per_page", 30)
            page = params.get("page", 1)
            status = self.jobs_page_status.get(page)
            if status:
                return FakeResponse(status, {"message": "Server Error"})
            chunk = names[(page - 1) * per_page:page * per_page]
            return FakeResponse(200, {"total_count": len(names), "jobs": [{"name": n} for n in chunk]})

        if parts[2] == "branches" and parts[-1] == "protection":
            if method == "GET":
                status = self.protection_status.get(repo)
                if status:
                    return FakeResponse(status, {"message": "Server Error"})
                if repo not in self.protection:
                    return FakeResponse(404, {"message": "Branch not protected"})
                return FakeResponse(200, self.protection[repo])
            if method == "PUT":
                self.puts.append((repo, json))
                status = self.put_status.get(repo)
                if status == 404:
                    return FakeResponse(404, {"message": "Not Found"})
                if status == 401:
                    return FakeResponse(401, {"message": "Bad credentials"})
                if status:
                    return FakeResponse(status, {"message": "Validation Failed"})
                self.protection[repo] = json
                return FakeResponse(200, json)

        return FakeResponse(404, {"message": "Not Found"})


WORKFLOW_TEMPLATE = """name: CI

on:
  pull_request:
  push:
    branches: [main]

jobs:
{jobs}
"""


def write_workflow(workspace: Path, repo: str, job_names: Dict[str, str]) -> Path:
    """Create <workspace>/<repo>/.github/workflows/ci.yaml with the given key -> name jobs."""
    lines = []
    for key, name in job_names.items():
        lines.append(f"  {key}:")
        lines.append(f"    name: {name}")
        lines.append("    runs-on: ubuntu-latest")
        lines.append("    steps:")
        lines.append("      - uses: actions/checkout@v4")
    path = workspace / repo / ".github" / "workflows" / "ci.yaml"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(WORKFLOW_TEMPLATE.format(jobs="\n".join(lines)), encoding="utf-8")
    return path


@pytest.fixture
def workspace(tmp_path) -> Path:
    root = tmp_path / "workspace"
    root.mkdir()
    return root


@pytest.fixture
def fake_github() -> FakeGitHub:
    return FakeGitHub()


@pytest.fixture
def settings(workspace) -> ProtectionSettings:
    return ProtectionSettings(token="test-token", org="acme", branch="main", workspace_root=str(workspace))


@pytest.fixture
def client(fake_github) -> GitHubClient:
    return GitHubClient("test-token", session=fake_github)
