"""Base version assembly from repository state.

The version anchor is the newest ``v<major>.<minor>`` tag reachable from
HEAD. The patch number is the commit distance from that tag, so every commit
gets a distinct, increasing version without anyone bumping a file:

    v1.2 + 42 commits on main at abcdef12 → 1.2.42-main.abcdef12
"""

from __future__ import annotations

import re
from collections.abc import Iterable

from .errors import CommitCountError, NoTagsError, TagFormatError
from .log import logger, step
from .models import BaseVersionInfo
from .repository import VERSION_TAG_GLOB, RepositorySource

VERSION_TAG_RE = re.compile(r"^v([0-9]+)\.([0-9]+)$")
_REF_PREFIX_RE = re.compile(r"^refs/(heads|pull)/")
_BRANCH_UNSAFE_RE = re.compile(r"[^a-zA-Z0-9]")


def is_version_tag(tag: str) -> bool:
    """True for ``v1.2``; false for ``v1``, ``v1.2.3`` or ``release-1.0``."""
    return VERSION_TAG_RE.fullmatch(tag.strip()) is not None


def select_version_tag(tags: Iterable[str]) -> str:
    """Return the first ``v<major>.<minor>`` tag of an ordered candidate list.

    Args:
        tags: Tag names ordered newest first.

    Raises:
        NoTagsError: If no candidate has the required shape.
    """
    for tag in tags:
        if is_version_tag(tag):
            return tag.strip()
    raise NoTagsError(
        "No tags matching the required format vX.Y found in repository ancestry"
    )


def parse_version_tag(tag: str) -> tuple[str, str]:
    """Split ``v<major>.<minor>`` into its components, kept as strings.

    Examples:
        "v1.2" → ("1", "2")
        "v01.2" → ("01", "2")

    Raises:
        TagFormatError: If the tag does not have the required shape.
    """
    match = VERSION_TAG_RE.fullmatch(tag)
    if not match:
        raise TagFormatError(
            f"Invalid tag format: {tag!r}. Expected v<major>.<minor>"
        )
    return match.group(1), match.group(2)


def clean_branch_name(branch_name: str) -> str:
    """Make a branch name safe for a version string.

    Strips a leading ``refs/heads/`` or ``refs/pull/`` and replaces every
    character outside ``[A-Za-z0-9]`` with a hyphen.

    Examples:
        "feature/new_feature@123" → "feature-new-feature-123"
        "refs/heads/main" → "main"
    """
    return _BRANCH_UNSAFE_RE.sub("-", _REF_PREFIX_RE.sub("", branch_name))


def compose_base_version(
    major: str, minor: str, patch: int, branch_name: str, commit_hash: str
) -> BaseVersionInfo:
    """Build the BaseVersionInfo for already-resolved components."""
    app_release_version = f"{major}.{minor}.{patch}"
    return BaseVersionInfo(
        major=major,
        minor=minor,
        patch=patch,
        branch_name=branch_name,
        commit_hash=commit_hash,
        version=f"{app_release_version}-{branch_name}.{commit_hash}",
        app_release_version=app_release_version,
    )


async def assemble_base_version(source: RepositorySource) -> BaseVersionInfo:
    """Derive the base version fields from a repository source.

    Raises:
        NoTagsError: If no ``v<major>.<minor>`` tag is reachable.
        TagFormatError: If the selected tag cannot be split.
        CommitCountError: If the commit distance cannot be determined.
    """
    step("Finding version tag")
    tag = select_version_tag(await source.list_tags(VERSION_TAG_GLOB))
    major, minor = parse_version_tag(tag)
    logger.info("  tag: %s", tag)

    patch = await source.count_commits_since(tag)
    if patch < 0:
        raise CommitCountError(f"Negative commit count {patch} since {tag}")
    logger.info("  commits since %s: %d", tag, patch)

    branch_name = clean_branch_name(await source.current_branch())
    commit_hash = await source.current_commit_hash()

    return compose_base_version(major, minor, patch, branch_name, commit_hash)
