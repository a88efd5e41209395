"""Configuration sources.

Two layers feed a run:

- CiEnvironment: signals a CI runner exposes through environment variables
  (whether we are in GitHub Actions, ref overrides, repository identity).
- ToolConfig: optional defaults from ``[tool.version-generator]`` in the
  project's pyproject.toml. Secrets are never read from this file.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import tomlkit
from pydantic import BaseModel, ConfigDict, ValidationError
from tomlkit.exceptions import ParseError

from .errors import ConfigError, MissingConfigError

DEFAULT_GITHUB_API_URL = "https://api.github.com"
TOOL_TABLE = "version-generator"


class CiEnvironment(BaseModel):
    """Snapshot of the CI-related environment variables.

    Attributes:
        github_actions: True when running inside GitHub Actions. Tag lookup
            and commit counting then go through the GitHub API, because the
            checkout may be shallow.
        head_ref: Source branch of a pull request (GITHUB_HEAD_REF).
        ref_name: Branch or tag name of the triggering ref (GITHUB_REF_NAME).
        sha: Full commit hash (GITHUB_SHA).
        repository: ``owner/repo`` (GITHUB_REPOSITORY).
        repository_owner: Repository owner (GITHUB_REPOSITORY_OWNER).
        token: API token (GITHUB_TOKEN).
        api_url: GitHub API base URL (GITHUB_API_URL).
    """

    model_config = ConfigDict(frozen=True)

    github_actions: bool = False
    head_ref: str | None = None
    ref_name: str | None = None
    sha: str | None = None
    repository: str | None = None
    repository_owner: str | None = None
    token: str | None = None
    api_url: str = DEFAULT_GITHUB_API_URL

    @classmethod
    def from_environ(cls, environ: Mapping[str, str] | None = None) -> CiEnvironment:
        """Build from a mapping of environment variables (default: os.environ).

        Empty values are treated as unset.
        """
        env = os.environ if environ is None else environ

        def get(name: str) -> str | None:
            return env.get(name) or None

        return cls(
            github_actions=(env.get("GITHUB_ACTIONS") or "").lower() == "true",
            head_ref=get("GITHUB_HEAD_REF"),
            ref_name=get("GITHUB_REF_NAME"),
            sha=get("GITHUB_SHA"),
            repository=get("GITHUB_REPOSITORY"),
            repository_owner=get("GITHUB_REPOSITORY_OWNER"),
            token=get("GITHUB_TOKEN"),
            api_url=get("GITHUB_API_URL") or DEFAULT_GITHUB_API_URL,
        )

    def owner_and_repo(self) -> tuple[str, str]:
        """Return (owner, repo) for the GitHub API.

        Raises:
            MissingConfigError: If GITHUB_REPOSITORY_OWNER or GITHUB_REPOSITORY
                is not set.
        """
        owner = self.repository_owner
        repo = self.repository.split("/")[-1] if self.repository else None
        if not owner or not repo:
            raise MissingConfigError(
                "Missing required GitHub environment variables: "
                "GITHUB_REPOSITORY_OWNER and GITHUB_REPOSITORY"
            )
        return owner, repo


class ToolConfig(BaseModel):
    """Defaults read from ``[tool.version-generator]``."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    output_file: str | None = None
    format: str | None = None
    android_package: str | None = None
    android_track: str | None = None
    android_major_increment: int | None = None
    ios_bundle_id: str | None = None


def load_tool_config(project_dir: Path) -> ToolConfig:
    """Read ``[tool.version-generator]`` from ``project_dir/pyproject.toml``.

    Keys use the CLI spelling (``android-package``). A missing file or
    table yields an empty ToolConfig.

    Raises:
        ConfigError: If the file cannot be parsed or a value has the wrong type.
    """
    pyproject = project_dir / "pyproject.toml"
    if not pyproject.exists():
        return ToolConfig()

    try:
        doc = tomlkit.parse(pyproject.read_text())
    except ParseError as exc:
        raise ConfigError(f"Cannot parse {pyproject}: {exc}") from exc

    table: Any = doc.get("tool", {}).get(TOOL_TABLE)
    if table is None:
        return ToolConfig()
    if not isinstance(table, Mapping):
        raise ConfigError(f"[tool.{TOOL_TABLE}] in {pyproject} must be a table")

    values = {key.replace("-", "_"): value for key, value in table.unwrap().items()}
    try:
        return ToolConfig.model_validate(values)
    except ValidationError as exc:
        raise ConfigError(f"Invalid [tool.{TOOL_TABLE}] in {pyproject}: {exc}") from exc
