"""Shared test fixtures."""

from __future__ import annotations

import base64
import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from version_generator.models import Track

SERVICE_ACCOUNT = {
    "type": "service_account",
    "project_id": "example",
    "client_email": "ci@example.iam.gserviceaccount.com",
}


def b64(text: str) -> str:
    return base64.b64encode(text.encode()).decode()


@pytest.fixture
def service_account_json() -> str:
    return json.dumps(SERVICE_ACCOUNT)


@pytest.fixture
def service_account_b64() -> str:
    return b64(json.dumps(SERVICE_ACCOUNT))


@pytest.fixture
def repo_source() -> MagicMock:
    """A RepositorySource for tag v1.2, 42 commits, branch main, hash abcdef12."""
    source = MagicMock()
    source.list_tags = AsyncMock(return_value=["v1.2", "v1.1"])
    source.count_commits_since = AsyncMock(return_value=42)
    source.current_branch = AsyncMock(return_value="main")
    source.current_commit_hash = AsyncMock(return_value="abcdef12")
    return source


@pytest.fixture
def android_gateway() -> MagicMock:
    """An AndroidGateway with no published releases."""
    gateway = MagicMock()
    gateway.query_track = AsyncMock(return_value=None)
    gateway.query_all_tracks = AsyncMock(return_value=[])
    return gateway


@pytest.fixture
def ios_gateway() -> MagicMock:
    """An IosGateway with no uploaded builds."""
    gateway = MagicMock()
    gateway.sign_token = MagicMock(return_value="signed-token")
    gateway.query_builds = AsyncMock(return_value={"data": []})
    return gateway


def make_track(name: str, *releases: tuple[list[str], str | None]) -> Track:
    """Build a Track from (version_codes, release_name) pairs."""
    return Track.model_validate(
        {
            "track": name,
            "releases": [
                {"versionCodes": codes, "name": release_name}
                for codes, release_name in releases
            ],
        }
    )


def build_record(version: str, build_number: str) -> dict:
    return {"attributes": {"version": version, "buildNumber": build_number}}
