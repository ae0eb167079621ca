import os
import subprocess
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

# -------------------- DEFAULTS --------------------
DEFAULT_ORG = "cryptellation"
DEFAULT_BRANCH = "main"
DEFAULT_WORKSPACE = "../"
DEFAULT_WORKFLOW_PATH = ".github/workflows/ci.yaml"
DEFAULT_API_URL = "https://api.github.com"
DEFAULT_TIMEOUT = 60
# ---------------------------------------------------

TRUTHY = ("1", "true", "yes", "on")


class ConfigError(Exception):
    pass


def getenv_default(name: str, default: str) -> str:
    v = os.getenv(name)
    return default if v is None or v.strip() == "" else v.strip()


def getenv_bool(name: str, default: bool) -> bool:
    v = os.getenv(name)
    if v is None or v.strip() == "":
        return default
    return v.strip().lower() in TRUTHY


def getenv_int(name: str, default: int) -> int:
    raw = getenv_default(name, str(default))
    try:
        return int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be integer, got '{raw}'")


def gh_cli_token() -> Optional[str]:
    """Ask the GitHub CLI for its stored token; None when gh is missing or logged out."""
    try:
        result = subprocess.run(["gh", "auth", "token"], capture_output=True, text=True, check=True)
    except (OSError, subprocess.CalledProcessError):
        return None
    token = result.stdout.strip()
    return token or None


def resolve_token() -> str:
    for name in ("GITHUB_TOKEN", "GH_TOKEN"):
        v = os.getenv(name)
        if v and v.strip():
            return v.strip()
    token = gh_cli_token()
    if not token:
        raise ConfigError("No GitHub token: set GITHUB_TOKEN or run 'gh auth login'.")
    return token


class ProtectionSettings:
    """Everything a run needs to know about where it looks and what it enforces."""

    def __init__(
        self,
        token: str,
        org: str = DEFAULT_ORG,
        branch: str = DEFAULT_BRANCH,
        workspace_root: str = DEFAULT_WORKSPACE,
        workflow_path: str = DEFAULT_WORKFLOW_PATH,
        api_url: str = DEFAULT_API_URL,
        timeout: int = DEFAULT_TIMEOUT,
        dry_run: bool = False,
        stop_on_error: bool = False,
        preserve_existing_checks: bool = False,
        fallback_to_declared: bool = True,
    ):
        self.token = token
        self.org = org
        self.branch = branch
        self.workspace_root = Path(workspace_root)
        self.workflow_path = workflow_path
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout
        self.dry_run = dry_run
        self.stop_on_error = stop_on_error
        self.preserve_existing_checks = preserve_existing_checks
        self.fallback_to_declared = fallback_to_declared

    def workflow_file(self, repo: str) -> Path:
        return self.workspace_root / repo / self.workflow_path

    def __repr__(self):
        return (f"ProtectionSettings(org={self.org!r}, branch={self.branch!r}, "
                f"workspace_root={str(self.workspace_root)!r}, dry_run={self.dry_run})")


def load_settings(env_file: Optional[Path] = None, **overrides) -> ProtectionSettings:
    """
    Build settings from CLI overrides, then environment, then .env, then defaults.
    Overrides set to None are ignored so argparse defaults can be passed straight through.
    """
    env_path = env_file if env_file is not None else Path.cwd() / ".env"
    if env_path.exists():
        load_dotenv(dotenv_path=env_path, override=False)

    values = {
        "org": getenv_default("GITHUB_ORG", DEFAULT_ORG),
        "branch": getenv_default("DEFAULT_BRANCH", DEFAULT_BRANCH),
        "workspace_root": getenv_default("WORKSPACE_ROOT", DEFAULT_WORKSPACE),
        "workflow_path": getenv_default("CI_WORKFLOW_PATH", DEFAULT_WORKFLOW_PATH),
        "api_url": getenv_default("GITHUB_API_URL", DEFAULT_API_URL),
        "timeout": getenv_int("GITHUB_TIMEOUT", DEFAULT_TIMEOUT),
        "dry_run": getenv_bool("DRY_RUN", False),
        "stop_on_error": getenv_bool("STOP_ON_ERROR", False),
        "preserve_existing_checks": getenv_bool("PRESERVE_EXISTING_CHECKS", False),
        "fallback_to_declared": getenv_bool("FALLBACK_TO_DECLARED", True),
    }
    for key, value in overrides.items():
        if key not in values and key != "token":
            raise ConfigError(f"Unknown setting '{key}'")
        if value is not None:
            values[key] = value

    token = values.pop("token", None) or resolve_token()
    return ProtectionSettings(token=token, **values)
