"""Repository sources: where tags, commit counts, branch and hash come from.

Two backings share one shape:

- LocalRepository queries the git checkout directly.
- GitHubRepository asks the GitHub API for tags and commit distance, which
  is required in CI where the checkout may be a shallow clone without tags
  or full ancestry. Branch and hash still come from the environment or the
  local checkout.

Both honour the CI ref overrides: GITHUB_HEAD_REF beats GITHUB_REF_NAME
beats ``git rev-parse``, and GITHUB_SHA beats the local short hash.
"""

from __future__ import annotations

import asyncio
import fnmatch
import subprocess
from pathlib import Path
from typing import Any, Protocol

import httpx

from .config import CiEnvironment
from .errors import (
    CommitCountError,
    MissingConfigError,
    NoTagsError,
    RepositoryError,
)
from .log import logger
from .shell import git
from .transport import USER_AGENT, client_scope

VERSION_TAG_GLOB = "v*.*"
SHORT_HASH_LENGTH = 8


class RepositorySource(Protocol):
    """Anything that can answer the four repository questions."""

    async def list_tags(self, pattern: str = VERSION_TAG_GLOB) -> list[str]: ...

    async def count_commits_since(self, tag: str) -> int: ...

    async def current_branch(self) -> str: ...

    async def current_commit_hash(self) -> str: ...


def _git_failure(exc: Exception) -> str:
    if isinstance(exc, subprocess.CalledProcessError) and exc.stderr:
        return exc.stderr.strip()
    return str(exc)


class LocalRepository:
    """Repository source backed by the local git checkout."""

    def __init__(self, cwd: str | Path | None = None, env: CiEnvironment | None = None):
        self.cwd = cwd
        self.env = env or CiEnvironment()

    async def _git(self, *args: str) -> str:
        # subprocess blocks; keep it off the event loop
        return await asyncio.to_thread(git, *args, cwd=self.cwd)

    async def list_tags(self, pattern: str = VERSION_TAG_GLOB) -> list[str]:
        """Tags matching ``pattern`` in HEAD's ancestry, newest first."""
        try:
            output = await self._git(
                "tag",
                "--list",
                pattern,
                "--sort=-creatordate",
                "--merged",
                "HEAD",
            )
        except (subprocess.CalledProcessError, OSError) as exc:
            raise NoTagsError(f"No git tags found: {_git_failure(exc)}") from exc
        return [tag.strip() for tag in output.splitlines() if tag.strip()]

    async def count_commits_since(self, tag: str) -> int:
        try:
            return int(await self._git("rev-list", f"{tag}..HEAD", "--count"))
        except (subprocess.CalledProcessError, OSError, ValueError) as exc:
            raise CommitCountError(
                f"Failed to get commit count from tag {tag}: {_git_failure(exc)}"
            ) from exc

    async def current_branch(self) -> str:
        # On pull requests GITHUB_REF_NAME is the synthetic merge ref
        # (e.g. 42/merge); GITHUB_HEAD_REF holds the real source branch.
        if self.env.head_ref:
            return self.env.head_ref
        if self.env.ref_name:
            return self.env.ref_name
        try:
            return await self._git("rev-parse", "--abbrev-ref", "HEAD")
        except (subprocess.CalledProcessError, OSError) as exc:
            raise RepositoryError(
                f"Failed to get current branch: {_git_failure(exc)}"
            ) from exc

    async def current_commit_hash(self) -> str:
        if self.env.sha:
            return self.env.sha[:SHORT_HASH_LENGTH]
        try:
            return await self._git("rev-parse", f"--short={SHORT_HASH_LENGTH}", "HEAD")
        except (subprocess.CalledProcessError, OSError) as exc:
            raise RepositoryError(
                f"Failed to get commit hash: {_git_failure(exc)}"
            ) from exc


class GitHubRepository(LocalRepository):
    """Repository source backed by the GitHub REST API.

    Raises:
        MissingConfigError: On construction, if the repository identity is
            not available from the environment.
    """

    def __init__(
        self,
        env: CiEnvironment,
        cwd: str | Path | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        super().__init__(cwd, env)
        self.owner, self.repo = env.owner_and_repo()
        self.client = client

    def _headers(self) -> dict[str, str]:
        headers = {
            "Accept": "application/vnd.github.v3+json",
            "User-Agent": USER_AGENT,
        }
        if self.env.token:
            headers["Authorization"] = f"token {self.env.token}"
        elif self.env.github_actions:
            raise MissingConfigError(
                "GITHUB_TOKEN environment variable is not set. This is required "
                "for GitHub API access when running in GitHub Actions."
            )
        else:
            logger.warning(
                "GITHUB_TOKEN is not set; GitHub API requests may be rate-limited"
            )
        return headers

    async def _get_json(self, path: str, params: dict[str, Any] | None = None) -> Any:
        url = f"{self.env.api_url.rstrip('/')}/repos/{self.owner}/{self.repo}{path}"
        headers = self._headers()
        async with client_scope(self.client) as client:
            logger.debug("GET %s", url)
            resp = await client.get(url, headers=headers, params=params)
            resp.raise_for_status()
            return resp.json()

    async def list_tags(self, pattern: str = VERSION_TAG_GLOB) -> list[str]:
        """Tags matching ``pattern`` in API order (first is newest)."""
        try:
            data = await self._get_json("/tags", params={"per_page": 100})
        except (httpx.HTTPError, ValueError) as exc:
            raise RepositoryError(f"Failed to get tags from GitHub: {exc}") from exc

        if not isinstance(data, list) or not data:
            raise NoTagsError("No tags found in repository")
        names = [
            tag["name"]
            for tag in data
            if isinstance(tag, dict) and isinstance(tag.get("name"), str)
        ]
        return [name for name in names if fnmatch.fnmatchcase(name, pattern)]

    async def count_commits_since(self, tag: str) -> int:
        """Commits HEAD is ahead of ``tag``, from the compare endpoint."""
        if not self.env.sha:
            raise MissingConfigError(
                "Missing required GitHub environment variable: GITHUB_SHA"
            )
        try:
            data = await self._get_json(f"/compare/{tag}...{self.env.sha}")
        except (httpx.HTTPError, ValueError) as exc:
            raise CommitCountError(
                f"Failed to get commit count from tag {tag} via GitHub API: {exc}"
            ) from exc

        ahead_by = data.get("ahead_by") if isinstance(data, dict) else None
        if not isinstance(ahead_by, int) or isinstance(ahead_by, bool):
            raise CommitCountError(
                "Invalid response from GitHub API: ahead_by is not a number: "
                f"{ahead_by}"
            )
        return ahead_by


def open_repository(
    repo_dir: str | Path | None = None,
    env: CiEnvironment | None = None,
    client: httpx.AsyncClient | None = None,
) -> RepositorySource:
    """Pick the repository backing for the current execution context."""
    env = env or CiEnvironment.from_environ()
    if env.github_actions:
        logger.debug("Running in GitHub Actions; using the GitHub API for tags")
        return GitHubRepository(env, cwd=repo_dir, client=client)
    return LocalRepository(repo_dir, env)
