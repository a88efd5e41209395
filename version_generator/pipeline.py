"""Version pipeline: repository → base version → platform counters → result.

This module composes the pieces:
1. Assemble the base version from the newest v<major>.<minor> tag
2. If requested, compute the next Android versionCode
3. If requested, compute the next iOS build number
4. Optionally write the result as JSON

A platform that was requested but yields no usable counter fails the whole
run; it is never silently left out of the result.
"""

from __future__ import annotations

from pathlib import Path

from .android import AndroidGateway, next_version_code
from .base_version import assemble_base_version
from .config import CiEnvironment
from .errors import InvalidCounterError
from .ios import IosGateway, next_build_info
from .log import logger
from .models import AndroidVersionOptions, IosVersionOptions, VersionInfo
from .repository import RepositorySource, open_repository


async def generate_version(
    repo_dir: str | Path | None = None,
    android: AndroidVersionOptions | None = None,
    ios: IosVersionOptions | None = None,
    *,
    source: RepositorySource | None = None,
    android_gateway: AndroidGateway | None = None,
    ios_gateway: IosGateway | None = None,
    env: CiEnvironment | None = None,
) -> VersionInfo:
    """Generate the version for the repository at ``repo_dir``.

    Args:
        repo_dir: Checkout to query; defaults to the working directory.
        android: Android options. The current major version is always
                 taken from the tag.
        ios: iOS options. The release version and commit hash are always
             taken from the base version.
        source: Repository source; chosen from the environment if omitted.
        android_gateway: Google Play gateway override.
        ios_gateway: App Store Connect gateway override.
        env: CI environment; read from os.environ if omitted.

    Raises:
        InvalidCounterError: If an enabled platform returned a counter <= 0.
        VersionGeneratorError: Any failure of the underlying components.
    """
    if source is None:
        source = open_repository(repo_dir, env)

    base = await assemble_base_version(source)
    fields = base.model_dump()

    if android is not None and android.enabled:
        android = android.model_copy(update={"current_major_version": int(base.major)})
        version_code = await next_version_code(android, android_gateway)
        if version_code <= 0:
            raise InvalidCounterError(
                "Android version code generation failed: returned invalid version code"
            )
        fields["android_version_code"] = version_code

    if ios is not None and ios.enabled:
        ios = ios.model_copy(
            update={
                "app_release_version": base.app_release_version,
                "commit_hash": base.commit_hash,
            }
        )
        build_info = await next_build_info(ios, ios_gateway)
        if build_info.build_number <= 0:
            raise InvalidCounterError(
                "iOS build number generation failed: returned invalid build number"
            )
        fields["ios_build_number"] = build_info.build_number
        fields["ios_build_number_string"] = build_info.build_version

    info = VersionInfo(**fields)
    logger.info("Generated version %s", info.version)
    return info


def write_version_file(info: VersionInfo, path: str | Path) -> Path:
    """Write the version document as JSON, creating parent directories."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(info.to_json())
    return path


async def generate_and_write_version(
    repo_dir: str | Path,
    output_file: str | Path | None = None,
    android: AndroidVersionOptions | None = None,
    ios: IosVersionOptions | None = None,
    **collaborators,
) -> VersionInfo:
    """Generate the version and, if ``output_file`` is set, write it.

    A relative ``output_file`` is resolved against ``repo_dir``.
    """
    info = await generate_version(repo_dir, android, ios, **collaborators)
    if output_file:
        written = write_version_file(info, Path(repo_dir) / output_file)
        logger.info("Wrote %s", written)
    return info
