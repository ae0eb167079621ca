import time
import logging
from typing import Dict, List, Optional

import requests

LOG = logging.getLogger("branch-protection")

RATE_LIMIT_RETRIES = 3
JOBS_PER_PAGE = 100


class GitHubError(Exception):
    pass


def _redact_headers(h: Dict[str, str]) -> Dict[str, str]:
    redacted = dict(h)
    for k in list(redacted.keys()):
        if k.lower() == "authorization":
            redacted[k] = "***redacted***"
    return redacted


def _body_text(resp: requests.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return resp.text[:400]
    if isinstance(body, dict) and body.get("message"):
        return body["message"]
    return str(body)[:400]


def _json(resp: requests.Response, method: str, path: str):
    """Decoded body of a successful response; a body that is not JSON is a GitHubError."""
    try:
        return resp.json()
    except ValueError as e:
        raise GitHubError(f"{method} {path} -> {resp.status_code}: response is not JSON ({e})") from e


def _is_rate_limited(resp: requests.Response) -> bool:
    return resp.status_code == 429 or (resp.status_code == 403 and "rate limit" in resp.text.lower())


class GitHubClient:
    def __init__(self, token: str, api_url: str = "https://api.github.com", timeout: int = 60, session=None):
        self.session = session or requests.Session()
        self.session.headers.update({
            "Authorization": f"Bearer {token}",
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
            "User-Agent": "branch-protection-reconciler",
        })
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout

    def _url(self, path): return f"{self.api_url}{path}"

    def _req(self, method: str, path: str, **kwargs) -> requests.Response:
        url = self._url(path)
        LOG.debug("HTTP %s %s headers=%s", method, url, _redact_headers(dict(self.session.headers)))
        for attempt in range(1, RATE_LIMIT_RETRIES + 1):
            try:
                r = self.session.request(method, url, timeout=self.timeout, **kwargs)
            except requests.RequestException as e:
                raise GitHubError(f"{method} {url} failed: {e}") from e
            LOG.debug("-> %s %s (attempt %d) status=%d", method, url, attempt, r.status_code)
            if not _is_rate_limited(r):
                return r
            reset = int(r.headers.get("X-RateLimit-Reset", time.time() + 5))
            sleep_for = max(1, reset - int(time.time())) + 1
            LOG.warning("Rate limited on %s %s. Sleeping %ss then retrying...", method, url, sleep_for)
            time.sleep(sleep_for)
        raise GitHubError(f"{method} {url}: exceeded retry attempts due to rate limiting.")

    # ------- Actions -------
    def latest_run_id(self, owner: str, repo: str) -> Optional[int]:
        """
        Id of the most recent workflow run, or None when the repo has no runs
        (or Actions is disabled, 404). Any other failure raises GitHubError.
        """
        path = f"/repos/{owner}/{repo}/actions/runs"
        r = self._req("GET", path, params={"per_page": 1})
        if r.status_code == 404:
            LOG.debug("latest_run_id %s/%s -> 404 %s", owner, repo, _body_text(r))
            return None
        if r.status_code != 200:
            raise GitHubError(f"GET workflow runs {owner}/{repo} -> {r.status_code}: {_body_text(r)}")
        runs = _json(r, "GET", path).get("workflow_runs") or []
        if not runs:
            return None
        return runs[0].get("id")

    def run_job_names(self, owner: str, repo: str, run_id: int) -> List[str]:
        """All job names of the run. A failed page raises; a partial list is never returned."""
        path = f"/repos/{owner}/{repo}/actions/runs/{run_id}/jobs"
        names = []
        page = 1
        while True:
            r = self._req("GET", path, params={"per_page": JOBS_PER_PAGE, "page": page})
            if r.status_code != 200:
                raise GitHubError(f"GET jobs {owner}/{repo} run={run_id} page={page} -> "
                                  f"{r.status_code}: {_body_text(r)}")
            jobs = _json(r, "GET", path).get("jobs") or []
            names.extend(j["name"] for j in jobs if j.get("name"))
            if len(jobs) < JOBS_PER_PAGE:
                break
            page += 1
        return names

    # ------- Branch protection -------
    def get_branch_protection(self, owner: str, repo: str, branch: str) -> Optional[dict]:
        """Protection resource for the branch; None when GitHub reports it absent (404)."""
        path = f"/repos/{owner}/{repo}/branches/{branch}/protection"
        r = self._req("GET", path)
        if r.status_code == 404:
            return None
        if r.status_code != 200:
            raise GitHubError(f"GET protection {owner}/{repo}@{branch} -> {r.status_code}: {_body_text(r)}")
        return _json(r, "GET", path)

    def put_branch_protection(self, owner: str, repo: str, branch: str, payload: dict) -> dict:
        path = f"/repos/{owner}/{repo}/branches/{branch}/protection"
        r = self._req("PUT", path, json=payload)
        if r.status_code == 404:
            raise GitHubError(f"Repository {owner}/{repo} not found or no access")
        if r.status_code == 401:
            raise GitHubError(f"Bad credentials for {owner}/{repo}")
        if r.status_code not in (200, 201):
            raise GitHubError(f"PUT protection {owner}/{repo}@{branch} -> {r.status_code}: {_body_text(r)}")
        return _json(r, "PUT", path) if r.content else {}
