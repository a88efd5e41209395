"""iOS build numbers from App Store Connect.

App Store Connect requires each upload for a given release version
(CFBundleShortVersionString) to carry a higher build number. The next build
number is one above the highest build already uploaded for the same release
version, or 1 for a new release version.

The version stamped into the IPA can also carry the commit it was built
from: ``"<build number>.<encoded commit hash>"``.
"""

from __future__ import annotations

import re
import time
from typing import Any, Protocol

import httpx
import jwt

from .credentials import decode_base64_text, is_encoded_json
from .errors import MissingOptionsError, PlatformQueryError
from .log import logger, step
from .models import AppStoreBuild, IosBuildInfo, IosVersionOptions
from .transport import USER_AGENT, client_scope

APP_STORE_CONNECT_URL = "https://api.appstoreconnect.apple.com/v1"
TOKEN_AUDIENCE = "appstoreconnect-v1"
TOKEN_LIFETIME_SECONDS = 20 * 60
BUILDS_PAGE_LIMIT = 200
MAX_SIGNED_INT32 = 2147483647
ERROR_PREFIX = "Failed to get iOS build number"

_LEADING_INT_RE = re.compile(r"^\s*(\d+)")


class IosGateway(Protocol):
    """Signed read access to App Store Connect builds."""

    def sign_token(self, key_id: str, issuer_id: str, private_key: str) -> str: ...

    async def query_builds(self, bundle_id: str, version: str, token: str) -> Any: ...


class AppStoreConnectGateway:
    """IosGateway backed by the App Store Connect API."""

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        base_url: str = APP_STORE_CONNECT_URL,
    ):
        self.client = client
        self.base_url = base_url.rstrip("/")

    def sign_token(self, key_id: str, issuer_id: str, private_key: str) -> str:
        """Sign an ES256 JWT valid for 20 minutes."""
        now = int(time.time())
        payload = {
            "iss": issuer_id,
            "exp": now + TOKEN_LIFETIME_SECONDS,
            "aud": TOKEN_AUDIENCE,
        }
        return jwt.encode(
            payload,
            private_key,
            algorithm="ES256",
            headers={"kid": key_id, "typ": "JWT"},
        )

    async def query_builds(self, bundle_id: str, version: str, token: str) -> dict[str, Any]:
        """Return ``{"data": [...]}`` with every build of ``version``.

        The bundle id is first resolved to the app's id; builds are then
        filtered by app id and version, following pagination links.

        Raises:
            LookupError: If no app has the bundle id.
            httpx.HTTPError: On transport failures or non-2xx responses.
        """
        headers = {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
            "User-Agent": USER_AGENT,
        }
        async with client_scope(self.client) as client:
            resp = await client.get(
                f"{self.base_url}/apps",
                params={"filter[bundleId]": bundle_id},
                headers=headers,
            )
            resp.raise_for_status()
            apps = resp.json().get("data") or []
            if not apps:
                raise LookupError(f"No app found with bundle ID: {bundle_id}")
            app_id = apps[0]["id"]

            builds: list[Any] = []
            url: str | None = f"{self.base_url}/builds"
            params: dict[str, Any] | None = {
                "filter[app]": app_id,
                "filter[version]": version,
                "limit": BUILDS_PAGE_LIMIT,
            }
            while url:
                resp = await client.get(url, params=params, headers=headers)
                resp.raise_for_status()
                page = resp.json()
                builds.extend(page.get("data") or [])
                # next links already carry the query string
                url = (page.get("links") or {}).get("next")
                params = None
            return {"data": builds}


def _parse_build_number(value: str | None) -> int | None:
    # Builds stamped by compose_build_version read "<n>.<hash>"; only the
    # leading integer is the counter.
    match = _LEADING_INT_RE.match(value or "")
    return int(match.group(1)) if match else None


def process_builds(builds: Any, app_release_version: str) -> int | None:
    """Highest build number among builds of ``app_release_version``.

    Args:
        builds: Raw ``{"data": [...]}`` response of build records.
        app_release_version: Only builds with exactly this version count.

    Returns:
        The highest build number, or None if no matching build has one.
    """
    data = builds.get("data") if isinstance(builds, dict) else None
    if not isinstance(data, list):
        return None

    highest = 0
    for raw in data:
        build = AppStoreBuild.model_validate(raw)
        if build.attributes.version != app_release_version:
            continue
        build_number = _parse_build_number(build.attributes.build_number)
        if build_number is not None and build_number > highest:
            highest = build_number
    return highest or None


def encode_commit_hash(commit_hash: str) -> int:
    """Encode the first 8 hex characters of a commit hash as an integer.

    The result fits a signed 32-bit integer.

    Examples:
        "00000001deadbeef" → 1
        "abcdef12" → 734916371
    """
    return int(commit_hash[:8], 16) % MAX_SIGNED_INT32


def compose_build_version(build_number: int, commit_hash: str | None = None) -> IosBuildInfo:
    """Build the IosBuildInfo, appending the encoded hash when given."""
    if not commit_hash:
        return IosBuildInfo(build_number=build_number, build_version=str(build_number))
    encoded = encode_commit_hash(commit_hash)
    return IosBuildInfo(
        build_number=build_number,
        encoded_commit_hash=encoded,
        build_version=f"{build_number}.{encoded}",
    )


async def get_app_store_version_info(
    bundle_id: str,
    app_release_version: str,
    api_key_id: str,
    api_issuer_id: str,
    api_private_key: str,
    gateway: IosGateway,
) -> int | None:
    """Highest uploaded build number for a release version, or None."""
    # A private key is PEM text, not JSON
    if is_encoded_json(api_private_key, expect_json=False):
        private_key = decode_base64_text(api_private_key)
    else:
        private_key = api_private_key

    token = gateway.sign_token(api_key_id, api_issuer_id, private_key)
    logger.info("  querying builds of %s %s", bundle_id, app_release_version)
    builds = await gateway.query_builds(bundle_id, app_release_version, token)
    return process_builds(builds, app_release_version)


async def next_build_info(
    options: IosVersionOptions, gateway: IosGateway | None = None
) -> IosBuildInfo:
    """Compute the next iOS build number for options.app_release_version.

    Returns:
        Build 0 (version "0") when options.enabled is false, without any
        query. Otherwise the next build number and its build version.

    Raises:
        MissingOptionsError: If any API credential, the bundle id or the
            release version is missing.
        PlatformQueryError: If App Store Connect cannot be queried.
    """
    if not options.enabled:
        return IosBuildInfo(build_number=0, build_version="0")

    if not (
        options.api_key_id
        and options.api_issuer_id
        and options.api_private_key
        and options.bundle_id
        and options.app_release_version
    ):
        raise MissingOptionsError(
            "iOS build number generation requires apiKeyId, apiIssuerId, "
            "apiPrivateKey, bundleId, and appReleaseVersion"
        )

    step("Querying App Store Connect for the highest build number")
    gateway = gateway or AppStoreConnectGateway()
    try:
        highest = await get_app_store_version_info(
            options.bundle_id,
            options.app_release_version,
            options.api_key_id,
            options.api_issuer_id,
            options.api_private_key,
            gateway,
        )
        build_number = 1 if highest is None else highest + 1
        info = compose_build_version(build_number, options.commit_hash)
    except Exception as exc:
        raise PlatformQueryError("ios", f"{ERROR_PREFIX}: {exc}") from exc

    logger.info("  next build %d (%s)", info.build_number, info.build_version)
    return info
