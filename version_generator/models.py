"""Data models for version-generator.

These Pydantic models represent the values that flow from repository and
platform queries to the final version document. Python attributes are
snake_case; serialized documents use the camelCase names consumers expect
(``branchName``, ``androidVersionCode``, ...).
"""

from __future__ import annotations

import json
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

DEFAULT_MAJOR_VERSION_INCREMENT = 10


class _Frozen(BaseModel):
    model_config = ConfigDict(
        frozen=True, alias_generator=to_camel, populate_by_name=True
    )


class BaseVersionInfo(_Frozen):
    """Version fields derived from the repository alone.

    Attributes:
        major: Major component of the tag, kept as a string so ``v01.2``
               stays ``"01"``.
        minor: Minor component of the tag.
        patch: Commits reachable from HEAD but not from the tag.
        branch_name: Sanitized branch name (only ``[A-Za-z0-9-]``).
        commit_hash: 8-character short commit hash.
        version: ``{major}.{minor}.{patch}-{branch_name}.{commit_hash}``.
        app_release_version: ``{major}.{minor}.{patch}``.
    """

    major: str
    minor: str
    patch: int
    branch_name: str
    commit_hash: str
    version: str
    app_release_version: str


class VersionInfo(BaseVersionInfo):
    """Final result: base fields plus any requested platform counters.

    The optional fields are set if and only if the platform was enabled.
    """

    android_version_code: int | None = None
    ios_build_number: int | None = None
    ios_build_number_string: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Return the camelCase document, omitting absent platform fields."""
        return self.model_dump(by_alias=True, exclude_none=True)

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2)


class AndroidVersionOptions(_Frozen):
    """Options for Android version code generation.

    Attributes:
        enabled: When false the counter returns 0 without any query.
        package_name: Application id on Google Play.
        service_account_key: Service account JSON, raw or base64-encoded.
        track: Track to check first; all tracks are checked when unset.
        major_version_increment: Step applied when the major version grows.
        current_major_version: Major version of the build being produced.
    """

    enabled: bool = False
    package_name: str | None = None
    service_account_key: str | None = None
    track: str | None = None
    major_version_increment: int | None = DEFAULT_MAJOR_VERSION_INCREMENT
    current_major_version: int = 0


class IosVersionOptions(_Frozen):
    """Options for iOS build number generation.

    Attributes:
        enabled: When false the counter returns build 0 without any query.
        api_key_id: App Store Connect API key id.
        api_issuer_id: App Store Connect API issuer id.
        api_private_key: PEM private key, raw or base64-encoded.
        bundle_id: Bundle identifier, e.g. ``com.example.app``.
        app_release_version: ``major.minor.patch`` (CFBundleShortVersionString).
        commit_hash: Commit hash to encode into the build version.
    """

    enabled: bool = False
    api_key_id: str | None = None
    api_issuer_id: str | None = None
    api_private_key: str | None = None
    bundle_id: str | None = None
    app_release_version: str = ""
    commit_hash: str | None = None


class IosBuildInfo(_Frozen):
    """Next iOS build number and the version string stamped into the IPA."""

    build_number: int
    encoded_commit_hash: int | None = None
    build_version: str


class PlayStoreRelease(BaseModel):
    """A release on a Google Play track."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    version_codes: list[str] = Field(default_factory=list)
    name: str | None = None

    @field_validator("version_codes", mode="before")
    @classmethod
    def _codes_as_strings(cls, value: Any) -> Any:
        # The API serializes int64 codes as strings; fixtures may not.
        if value is None:
            return []
        return [str(code) for code in value]


class Track(BaseModel):
    """A Google Play distribution channel and its releases."""

    track: str = ""
    releases: list[PlayStoreRelease] = Field(default_factory=list)


class BuildAttributes(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    version: str | None = None
    build_number: str | None = None

    @field_validator("build_number", mode="before")
    @classmethod
    def _build_number_as_string(cls, value: Any) -> Any:
        return value if value is None else str(value)


class AppStoreBuild(BaseModel):
    """A build record returned by App Store Connect."""

    attributes: BuildAttributes = Field(default_factory=BuildAttributes)


class PlayStoreVersionInfo(_Frozen):
    """Highest version code found on Google Play and its major version."""

    version_code: int
    major_version: int = 0
