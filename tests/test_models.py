"""Tests for version_generator.models."""

from __future__ import annotations

import json

import pytest
from pydantic import ValidationError

from version_generator.models import (
    AndroidVersionOptions,
    AppStoreBuild,
    IosBuildInfo,
    Track,
    VersionInfo,
)

BASE = {
    "major": "1",
    "minor": "2",
    "patch": 42,
    "branch_name": "main",
    "commit_hash": "abcdef12",
    "version": "1.2.42-main.abcdef12",
    "app_release_version": "1.2.42",
}


class TestVersionInfo:
    def test_to_dict_uses_camel_case(self) -> None:
        info = VersionInfo(**BASE, ios_build_number=6, ios_build_number_string="6.1")

        assert info.to_dict() == {
            "major": "1",
            "minor": "2",
            "patch": 42,
            "branchName": "main",
            "commitHash": "abcdef12",
            "version": "1.2.42-main.abcdef12",
            "appReleaseVersion": "1.2.42",
            "iosBuildNumber": 6,
            "iosBuildNumberString": "6.1",
        }

    def test_absent_platforms_are_omitted(self) -> None:
        data = json.loads(VersionInfo(**BASE).to_json())

        assert "androidVersionCode" not in data
        assert "iosBuildNumber" not in data
        assert "iosBuildNumberString" not in data

    def test_accepts_camel_case_input(self) -> None:
        document = VersionInfo(**BASE, android_version_code=106).to_dict()

        assert VersionInfo.model_validate(document).android_version_code == 106

    def test_is_frozen(self) -> None:
        info = VersionInfo(**BASE)

        with pytest.raises(ValidationError):
            info.patch = 43


class TestOptions:
    def test_android_defaults(self) -> None:
        options = AndroidVersionOptions()

        assert options.enabled is False
        assert options.major_version_increment == 10
        assert options.current_major_version == 0

    def test_ios_build_info_alias(self) -> None:
        info = IosBuildInfo(build_number=3, build_version="3")

        assert info.model_dump(by_alias=True, exclude_none=True) == {
            "buildNumber": 3,
            "buildVersion": "3",
        }


class TestApiRecords:
    def test_track_from_api_payload(self) -> None:
        track = Track.model_validate(
            {
                "track": "production",
                "releases": [
                    {"name": "1.0.0", "versionCodes": ["1", "2"], "status": "completed"},
                    {"status": "draft"},
                    {"versionCodes": None},
                ],
            }
        )

        assert [r.version_codes for r in track.releases] == [["1", "2"], [], []]
        assert track.releases[0].name == "1.0.0"

    def test_build_without_attributes(self) -> None:
        build = AppStoreBuild.model_validate({"id": "b1", "type": "builds"})

        assert build.attributes.version is None
        assert build.attributes.build_number is None
