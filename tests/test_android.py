"""Tests for version_generator.android."""

from __future__ import annotations

import logging
from unittest.mock import AsyncMock, MagicMock, patch

import google.auth.transport.requests
import httpx
import pytest

from conftest import SERVICE_ACCOUNT, make_track
from version_generator.android import (
    ANDROID_PUBLISHER_SCOPE,
    ANDROID_PUBLISHER_URL,
    ERROR_PREFIX,
    GooglePlayGateway,
    highest_version_code,
    next_version_code,
    process_releases,
)
from version_generator.errors import MissingOptionsError, PlatformQueryError
from version_generator.models import AndroidVersionOptions, PlayStoreRelease

PACKAGE = "com.example.app"
EDITS_PATH = f"/androidpublisher/v3/applications/{PACKAGE}/edits"


def _options(**overrides) -> AndroidVersionOptions:
    values = {
        "enabled": True,
        "package_name": PACKAGE,
        "service_account_key": '{"type": "service_account"}',
        "current_major_version": 1,
    }
    values.update(overrides)
    return AndroidVersionOptions(**values)


def _published_track():
    return make_track("production", (["100", "101"], "1.0.0"), (["105"], "1.1.0"))


class TestProcessReleases:
    def test_highest_and_major(self) -> None:
        releases = _published_track().releases
        assert process_releases(releases) == (105, 1)

    def test_skips_unparsable_codes(self) -> None:
        releases = [PlayStoreRelease(version_codes=["abc", "7", "12x"], name="3.0.0")]
        assert process_releases(releases) == (7, 3)

    def test_keeps_major_when_name_has_none(self) -> None:
        releases = [
            PlayStoreRelease(version_codes=["10"], name="2.0.0"),
            PlayStoreRelease(version_codes=["11"], name="hotfix"),
            PlayStoreRelease(version_codes=["12"]),
        ]
        assert process_releases(releases) == (12, 2)

    def test_lower_codes_do_not_change_major(self) -> None:
        releases = [
            PlayStoreRelease(version_codes=["50"], name="5.0.0"),
            PlayStoreRelease(version_codes=["20"], name="9.0.0"),
        ]
        assert process_releases(releases) == (50, 5)

    def test_empty(self) -> None:
        assert process_releases([]) == (0, 0)

    def test_integer_codes_are_accepted(self) -> None:
        release = PlayStoreRelease.model_validate({"versionCodes": [3, 4], "name": "1.0"})
        assert release.version_codes == ["3", "4"]
        assert process_releases([release]) == (4, 1)


class TestHighestVersionCode:
    def test_none_when_nothing_published(self) -> None:
        assert highest_version_code([make_track("beta")]) is None
        assert highest_version_code([]) is None

    def test_max_across_tracks(self) -> None:
        tracks = [
            make_track("production", (["100"], "1.0.0")),
            make_track("beta", (["120"], "1.2.0")),
        ]
        info = highest_version_code(tracks)
        assert info is not None
        assert (info.version_code, info.major_version) == (120, 1)

    def test_tie_keeps_larger_major(self) -> None:
        tracks = [
            make_track("production", (["200"], "1.9.0")),
            make_track("internal", (["200"], "2.0.0")),
            make_track("alpha", (["200"], "1.0.0")),
        ]
        info = highest_version_code(tracks)
        assert info is not None
        assert (info.version_code, info.major_version) == (200, 2)


class TestNextVersionCode:
    @pytest.mark.asyncio
    async def test_same_major_increments_by_one(self, android_gateway: MagicMock) -> None:
        android_gateway.query_all_tracks.return_value = [_published_track()]

        assert await next_version_code(_options(), android_gateway) == 106

    @pytest.mark.asyncio
    async def test_newer_major_uses_increment(self, android_gateway: MagicMock) -> None:
        android_gateway.query_all_tracks.return_value = [_published_track()]

        assert await next_version_code(_options(current_major_version=2), android_gateway) == 115
        assert (
            await next_version_code(
                _options(current_major_version=2, major_version_increment=100),
                android_gateway,
            )
            == 205
        )

    @pytest.mark.asyncio
    async def test_older_major_increments_by_one(self, android_gateway: MagicMock) -> None:
        android_gateway.query_all_tracks.return_value = [_published_track()]

        assert await next_version_code(_options(current_major_version=0), android_gateway) == 106

    @pytest.mark.asyncio
    async def test_unset_increment_falls_back_to_default(
        self, android_gateway: MagicMock
    ) -> None:
        android_gateway.query_all_tracks.return_value = [_published_track()]
        options = _options(current_major_version=2, major_version_increment=None)

        assert await next_version_code(options, android_gateway) == 115

    @pytest.mark.asyncio
    async def test_first_release(self, android_gateway: MagicMock) -> None:
        assert await next_version_code(_options(), android_gateway) == 1

    @pytest.mark.asyncio
    async def test_invalid_codes_ignored(self, android_gateway: MagicMock) -> None:
        android_gateway.query_all_tracks.return_value = [
            make_track("production", (["abc", "100"], "1.0.0"))
        ]

        assert await next_version_code(_options(), android_gateway) == 101

    @pytest.mark.asyncio
    async def test_named_track_with_releases_is_used_alone(
        self, android_gateway: MagicMock
    ) -> None:
        android_gateway.query_track.return_value = make_track("beta", (["50"], "1.0.0"))
        android_gateway.query_all_tracks.return_value = [_published_track()]

        assert await next_version_code(_options(track="beta"), android_gateway) == 51
        android_gateway.query_track.assert_awaited_once_with(
            PACKAGE, {"type": "service_account"}, "beta"
        )
        android_gateway.query_all_tracks.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_empty_named_track_falls_back_to_all(
        self, android_gateway: MagicMock
    ) -> None:
        android_gateway.query_track.return_value = make_track("beta")
        android_gateway.query_all_tracks.return_value = [_published_track()]

        assert await next_version_code(_options(track="beta"), android_gateway) == 106
        android_gateway.query_all_tracks.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_missing_named_track_falls_back_to_all(
        self, android_gateway: MagicMock
    ) -> None:
        android_gateway.query_all_tracks.return_value = [_published_track()]

        assert await next_version_code(_options(track="nope"), android_gateway) == 106

    @pytest.mark.asyncio
    async def test_named_track_without_codes_falls_back_to_all(
        self, android_gateway: MagicMock
    ) -> None:
        """Releases with no usable codes must not reset the counter to 1."""
        android_gateway.query_track.return_value = make_track(
            "beta", ([], "2.0.0"), (["draft"], "2.0.1")
        )
        android_gateway.query_all_tracks.return_value = [
            make_track("production", (["500"], "1.4.0"))
        ]

        assert await next_version_code(_options(track="beta"), android_gateway) == 501
        android_gateway.query_all_tracks.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_base64_service_account_key(
        self, android_gateway: MagicMock, service_account_b64: str
    ) -> None:
        await next_version_code(
            _options(service_account_key=service_account_b64), android_gateway
        )

        android_gateway.query_all_tracks.assert_awaited_once_with(PACKAGE, SERVICE_ACCOUNT)

    @pytest.mark.asyncio
    async def test_disabled_makes_no_queries(self, android_gateway: MagicMock) -> None:
        assert await next_version_code(_options(enabled=False), android_gateway) == 0
        android_gateway.query_track.assert_not_called()
        android_gateway.query_all_tracks.assert_not_called()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("missing", ["package_name", "service_account_key"])
    async def test_missing_options(self, android_gateway: MagicMock, missing: str) -> None:
        with pytest.raises(MissingOptionsError, match="packageName and serviceAccountKey"):
            await next_version_code(_options(**{missing: None}), android_gateway)
        android_gateway.query_all_tracks.assert_not_called()

    @pytest.mark.asyncio
    async def test_query_failure_is_wrapped(self, android_gateway: MagicMock) -> None:
        android_gateway.query_all_tracks.side_effect = RuntimeError("invalid_grant")

        with pytest.raises(PlatformQueryError) as exc_info:
            await next_version_code(_options(), android_gateway)

        assert exc_info.value.platform == "android"
        assert str(exc_info.value) == f"{ERROR_PREFIX}: invalid_grant"
        assert isinstance(exc_info.value.__cause__, RuntimeError)

    @pytest.mark.asyncio
    async def test_undecodable_key_is_wrapped(self, android_gateway: MagicMock) -> None:
        with pytest.raises(PlatformQueryError, match=ERROR_PREFIX):
            await next_version_code(
                _options(service_account_key="not a key!"), android_gateway
            )
        android_gateway.query_all_tracks.assert_not_called()


class _PlayApi:
    """In-memory Play Developer API for MockTransport."""

    def __init__(self, tracks: dict[str, dict], delete_status: int = 204):
        self.tracks = tracks
        self.delete_status = delete_status
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if request.method == "POST" and path == EDITS_PATH:
            return httpx.Response(200, json={"id": "edit-1"})
        if request.method == "DELETE":
            return httpx.Response(self.delete_status)
        if path == f"{EDITS_PATH}/edit-1/tracks":
            return httpx.Response(200, json={"tracks": list(self.tracks.values())})
        name = path.rsplit("/", 1)[-1]
        if name in self.tracks:
            return httpx.Response(200, json=self.tracks[name])
        if name == "broken":
            return httpx.Response(500, json={"error": "backend"})
        return httpx.Response(404, json={"error": "not found"})

    def methods(self) -> list[str]:
        return [request.method for request in self.requests]


def _gateway(api: _PlayApi) -> GooglePlayGateway:
    client = httpx.AsyncClient(transport=httpx.MockTransport(api))
    return GooglePlayGateway(client=client)


@pytest.fixture
def auth_headers():
    with patch.object(
        GooglePlayGateway,
        "_auth_headers",
        AsyncMock(return_value={"Authorization": "Bearer test"}),
    ) as mock:
        yield mock


PRODUCTION = {
    "track": "production",
    "releases": [{"versionCodes": ["100", "101"], "name": "1.0.0"}],
}


class TestGooglePlayGateway:
    """Tests for GooglePlayGateway against a mocked Play Developer API."""

    def test_default_base_url(self) -> None:
        assert GooglePlayGateway().base_url == ANDROID_PUBLISHER_URL

    @pytest.mark.asyncio
    async def test_query_track(self, auth_headers: AsyncMock) -> None:
        api = _PlayApi({"production": PRODUCTION})

        track = await _gateway(api).query_track(PACKAGE, SERVICE_ACCOUNT, "production")

        assert track is not None
        assert track.track == "production"
        assert track.releases[0].version_codes == ["100", "101"]
        assert api.methods() == ["POST", "GET", "DELETE"]
        assert api.requests[-1].url.path == f"{EDITS_PATH}/edit-1"
        assert api.requests[1].headers["Authorization"] == "Bearer test"
        auth_headers.assert_awaited_once_with(SERVICE_ACCOUNT)

    @pytest.mark.asyncio
    async def test_missing_track_is_none_and_edit_deleted(
        self, auth_headers: AsyncMock
    ) -> None:
        api = _PlayApi({})

        assert await _gateway(api).query_track(PACKAGE, SERVICE_ACCOUNT, "beta") is None
        assert api.methods() == ["POST", "GET", "DELETE"]

    @pytest.mark.asyncio
    async def test_read_failure_still_deletes_edit(self, auth_headers: AsyncMock) -> None:
        api = _PlayApi({})

        with pytest.raises(httpx.HTTPStatusError):
            await _gateway(api).query_track(PACKAGE, SERVICE_ACCOUNT, "broken")
        assert api.methods() == ["POST", "GET", "DELETE"]

    @pytest.mark.asyncio
    async def test_delete_failure_is_logged(
        self, auth_headers: AsyncMock, caplog: pytest.LogCaptureFixture
    ) -> None:
        api = _PlayApi({"production": PRODUCTION}, delete_status=500)

        with caplog.at_level(logging.WARNING, logger="version_generator"):
            tracks = await _gateway(api).query_all_tracks(PACKAGE, SERVICE_ACCOUNT)

        assert [track.track for track in tracks] == ["production"]
        assert "Error deleting edit edit-1" in caplog.text

    @pytest.mark.asyncio
    async def test_delete_failure_does_not_mask_read_error(
        self, auth_headers: AsyncMock
    ) -> None:
        api = _PlayApi({}, delete_status=500)

        with pytest.raises(httpx.HTTPStatusError) as exc_info:
            await _gateway(api).query_track(PACKAGE, SERVICE_ACCOUNT, "broken")
        assert exc_info.value.response.status_code == 500
        assert exc_info.value.request.method == "GET"

    @pytest.mark.asyncio
    async def test_query_all_tracks_without_tracks(self, auth_headers: AsyncMock) -> None:
        api = _PlayApi({})

        assert await _gateway(api).query_all_tracks(PACKAGE, SERVICE_ACCOUNT) == []
        assert api.methods() == ["POST", "GET", "DELETE"]

    @pytest.mark.asyncio
    async def test_edit_without_id(self, auth_headers: AsyncMock) -> None:
        client = httpx.AsyncClient(
            transport=httpx.MockTransport(lambda request: httpx.Response(200, json={}))
        )

        with pytest.raises(ValueError, match="Failed to create edit"):
            await GooglePlayGateway(client=client).query_all_tracks(PACKAGE, SERVICE_ACCOUNT)

    @pytest.mark.asyncio
    async def test_track_name_is_escaped(self, auth_headers: AsyncMock) -> None:
        api = _PlayApi({})

        assert await _gateway(api).query_track(PACKAGE, SERVICE_ACCOUNT, "qa/internal?x") is None

        track_request = api.requests[1]
        assert track_request.url.raw_path == (
            f"{EDITS_PATH}/edit-1/tracks/qa%2Finternal%3Fx".encode()
        )
        assert track_request.url.query == b""

    @pytest.mark.asyncio
    @patch("version_generator.android.service_account.Credentials.from_service_account_info")
    async def test_auth_headers_from_service_account(self, mock_from_info: MagicMock) -> None:
        creds = MagicMock()

        def refresh(request: google.auth.transport.requests.Request) -> None:
            creds.token = "ya29.access-token"

        creds.refresh.side_effect = refresh
        mock_from_info.return_value = creds

        headers = await GooglePlayGateway()._auth_headers(SERVICE_ACCOUNT)

        mock_from_info.assert_called_once_with(
            SERVICE_ACCOUNT, scopes=[ANDROID_PUBLISHER_SCOPE]
        )
        creds.refresh.assert_called_once()
        assert isinstance(
            creds.refresh.call_args.args[0], google.auth.transport.requests.Request
        )
        assert headers == {"Authorization": "Bearer ya29.access-token"}
