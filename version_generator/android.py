"""Android version codes from Google Play.

Google Play rejects an upload whose versionCode is not higher than every
code already on the app's tracks, so the next code is derived from the
highest published one:

- no published code → 1
- same (or older) major version → highest + 1
- newer major version → highest + major_version_increment, leaving room
  between major lines

Reading tracks requires a transient "edit" on the Play Developer API. The
edit is always deleted again, even when the read fails.
"""

from __future__ import annotations

import asyncio
import re
from collections.abc import AsyncIterator, Iterable
from contextlib import asynccontextmanager
from typing import Any, Protocol
from urllib.parse import quote

import google.auth.transport.requests
import httpx
from google.oauth2 import service_account

from .credentials import parse_value
from .errors import MissingOptionsError, PlatformQueryError
from .log import logger, step
from .models import (
    DEFAULT_MAJOR_VERSION_INCREMENT,
    AndroidVersionOptions,
    PlayStoreRelease,
    PlayStoreVersionInfo,
    Track,
)
from .transport import client_scope

ANDROID_PUBLISHER_SCOPE = "https://www.googleapis.com/auth/androidpublisher"
ANDROID_PUBLISHER_URL = "https://androidpublisher.googleapis.com/androidpublisher/v3"
ERROR_PREFIX = "Error getting Android versionCode from Google Play API"

_MAJOR_FROM_NAME_RE = re.compile(r"^(\d+)\.")


class AndroidGateway(Protocol):
    """Read access to an app's Google Play tracks."""

    async def query_track(
        self, package_name: str, credentials: Any, track: str
    ) -> Track | None: ...

    async def query_all_tracks(
        self, package_name: str, credentials: Any
    ) -> list[Track]: ...


class GooglePlayGateway:
    """AndroidGateway backed by the Google Play Developer API (v3)."""

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        base_url: str = ANDROID_PUBLISHER_URL,
    ):
        self.client = client
        self.base_url = base_url.rstrip("/")

    async def _auth_headers(self, credentials: Any) -> dict[str, str]:
        """Exchange service account credentials for a bearer header."""
        creds = service_account.Credentials.from_service_account_info(
            credentials, scopes=[ANDROID_PUBLISHER_SCOPE]
        )
        # google-auth refreshes synchronously
        await asyncio.to_thread(creds.refresh, google.auth.transport.requests.Request())
        return {"Authorization": f"Bearer {creds.token}"}

    @asynccontextmanager
    async def edit_session(
        self, client: httpx.AsyncClient, package_name: str, headers: dict[str, str]
    ) -> AsyncIterator[str]:
        """Create an edit, yield its id, and always delete it afterwards.

        A failed delete is logged and never replaces the outcome of the body.
        """
        edits_url = f"{self.base_url}/applications/{package_name}/edits"
        resp = await client.post(edits_url, headers=headers)
        resp.raise_for_status()
        edit_id = resp.json().get("id")
        if not edit_id:
            raise ValueError("Failed to create edit")

        try:
            yield edit_id
        finally:
            try:
                deleted = await client.delete(f"{edits_url}/{edit_id}", headers=headers)
                deleted.raise_for_status()
            except Exception as exc:
                logger.warning("Error deleting edit %s: %s", edit_id, exc)

    async def query_track(
        self, package_name: str, credentials: Any, track: str
    ) -> Track | None:
        """Fetch one track, or None if the app has no such track."""
        headers = await self._auth_headers(credentials)
        async with client_scope(self.client) as client:
            async with self.edit_session(client, package_name, headers) as edit_id:
                resp = await client.get(
                    f"{self.base_url}/applications/{package_name}"
                    f"/edits/{edit_id}/tracks/{quote(track, safe='')}",
                    headers=headers,
                )
                if resp.status_code == httpx.codes.NOT_FOUND:
                    logger.info("  track %s does not exist", track)
                    return None
                resp.raise_for_status()
                return Track.model_validate(resp.json())

    async def query_all_tracks(self, package_name: str, credentials: Any) -> list[Track]:
        headers = await self._auth_headers(credentials)
        async with client_scope(self.client) as client:
            async with self.edit_session(client, package_name, headers) as edit_id:
                resp = await client.get(
                    f"{self.base_url}/applications/{package_name}/edits/{edit_id}/tracks",
                    headers=headers,
                )
                resp.raise_for_status()
                tracks = resp.json().get("tracks") or []
                return [Track.model_validate(track) for track in tracks]


def _parse_version_code(value: str) -> int | None:
    try:
        return int(value)
    except ValueError:
        return None


def process_releases(
    releases: Iterable[PlayStoreRelease],
    highest_version_code: int = 0,
    major_version: int = 0,
) -> tuple[int, int]:
    """Find the highest version code among releases.

    The major version is read from the name (``"2.1.0"`` → 2) of the release
    holding the new maximum; if that name carries no major version, the
    previously recorded one is kept. Unparsable codes are skipped.

    Returns:
        (highest_version_code, major_version)
    """
    for release in releases:
        for code_str in release.version_codes:
            version_code = _parse_version_code(code_str)
            if version_code is None or version_code <= highest_version_code:
                continue
            highest_version_code = version_code
            match = _MAJOR_FROM_NAME_RE.match(release.name or "")
            if match:
                major_version = int(match.group(1))
    return highest_version_code, major_version


def highest_version_code(tracks: Iterable[Track]) -> PlayStoreVersionInfo | None:
    """Combine per-track maxima into the overall highest version code.

    When two tracks share the same maximum, the larger major version wins.

    Returns:
        The highest code and its major version, or None if no track holds a
        parsable version code.
    """
    best_code, best_major = 0, 0
    for track in tracks:
        code, major = process_releases(track.releases)
        if code > best_code:
            best_code, best_major = code, major
        elif code == best_code and code > 0:
            best_major = max(best_major, major)

    if best_code == 0:
        return None
    return PlayStoreVersionInfo(version_code=best_code, major_version=best_major)


async def get_play_store_version_info(
    package_name: str,
    service_account_key: str,
    track: str | None,
    gateway: AndroidGateway,
) -> PlayStoreVersionInfo | None:
    """Query Google Play for the highest published version code.

    A named track holding a parsable version code is used on its own;
    otherwise every track of the app is considered.
    """
    credentials = parse_value(service_account_key)

    if track:
        logger.info("  querying track %s of %s", track, package_name)
        selected = await gateway.query_track(package_name, credentials, track)
        if selected is not None:
            found = highest_version_code([selected])
            if found is not None:
                return found
        logger.info("  track %s has no version codes; checking all tracks", track)

    logger.info("  querying all tracks of %s", package_name)
    return highest_version_code(await gateway.query_all_tracks(package_name, credentials))


async def next_version_code(
    options: AndroidVersionOptions, gateway: AndroidGateway | None = None
) -> int:
    """Compute the next Android versionCode.

    Returns:
        0 when options.enabled is false (nothing is queried), 1 when nothing
        has been published yet, otherwise the next code above the highest
        published one.

    Raises:
        MissingOptionsError: If package_name or service_account_key is missing.
        PlatformQueryError: If Google Play cannot be queried.
    """
    if not options.enabled:
        return 0

    if not options.package_name or not options.service_account_key:
        raise MissingOptionsError(
            "Missing required Android options: packageName and serviceAccountKey"
        )

    step("Querying Google Play for the highest version code")
    gateway = gateway or GooglePlayGateway()
    try:
        current = await get_play_store_version_info(
            options.package_name,
            options.service_account_key,
            options.track,
            gateway,
        )
    except Exception as exc:
        raise PlatformQueryError("android", f"{ERROR_PREFIX}: {exc}") from exc

    if current is None:
        logger.info("  no published version code; starting at 1")
        return 1

    if options.current_major_version > current.major_version:
        increment = options.major_version_increment or DEFAULT_MAJOR_VERSION_INCREMENT
        version_code = current.version_code + increment
    else:
        version_code = current.version_code + 1

    logger.info(
        "  highest %d (major %d) → next %d",
        current.version_code,
        current.major_version,
        version_code,
    )
    return version_code
