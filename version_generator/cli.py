"""CLI entry point for version-generator."""

from __future__ import annotations

import asyncio
from pathlib import Path

import click

from version_generator.config import load_tool_config
from version_generator.errors import VersionGeneratorError
from version_generator.log import configure_logging
from version_generator.models import (
    DEFAULT_MAJOR_VERSION_INCREMENT,
    AndroidVersionOptions,
    IosVersionOptions,
    VersionInfo,
)
from version_generator.pipeline import generate_and_write_version

FORMATS = ("string", "json")


def _write_output(output_path: Path, info: VersionInfo) -> None:
    """Append every version field as a ``name=value`` step output."""
    with open(output_path, "a") as fh:
        for name, value in info.to_dict().items():
            fh.write(f"{name}={value}\n")


@click.command(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(package_name="version-generator")
@click.option(
    "-d",
    "--dir",
    "directory",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Directory to use for git commands and the output file path. "
    "(default: current directory)",
)
@click.option(
    "--output-file",
    default=None,
    help="Write the version JSON here (relative to --dir if not absolute).",
)
@click.option(
    "-f",
    "--format",
    "output_format",
    type=click.Choice(FORMATS, case_sensitive=False),
    default=None,
    help="Output format when no output file is given. (default: string)",
)
@click.option("--android", is_flag=True, help="Enable Android version code generation.")
@click.option("--android-package", default=None, help="Android package name.")
@click.option(
    "--android-service-account-key",
    envvar="ANDROID_SERVICE_ACCOUNT_KEY",
    default=None,
    help="Google Play service account key JSON, raw or base64-encoded.",
)
@click.option("--android-track", default=None, help="Track to check for version codes.")
@click.option(
    "--android-major-increment",
    type=int,
    default=None,
    help="Increment applied to the version code on a major version change. "
    f"(default: {DEFAULT_MAJOR_VERSION_INCREMENT})",
)
@click.option("--ios", is_flag=True, help="Enable iOS build number generation.")
@click.option("--ios-bundle-id", default=None, help="iOS bundle ID.")
@click.option("--ios-api-key-id", default=None, help="App Store Connect API key ID.")
@click.option(
    "--ios-api-issuer-id", default=None, help="App Store Connect API issuer ID."
)
@click.option(
    "--ios-api-private-key",
    envvar="APP_STORE_CONNECT_PRIVATE_KEY",
    default=None,
    help="App Store Connect API private key, raw or base64-encoded.",
)
@click.option(
    "--github-output",
    envvar="GITHUB_OUTPUT",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Append the version fields as GitHub step outputs to this file.",
)
@click.option("-v", "--verbose", is_flag=True, help="Log debug details to stderr.")
def cli(
    directory: Path | None,
    output_file: str | None,
    output_format: str | None,
    android: bool,
    android_package: str | None,
    android_service_account_key: str | None,
    android_track: str | None,
    android_major_increment: int | None,
    ios: bool,
    ios_bundle_id: str | None,
    ios_api_key_id: str | None,
    ios_api_issuer_id: str | None,
    ios_api_private_key: str | None,
    github_output: Path | None,
    verbose: bool,
) -> None:
    """Generate a version from git tags, commit count, branch and hash."""
    configure_logging(verbose)
    root = (directory or Path.cwd()).resolve()

    try:
        config = load_tool_config(root)

        output_format = (output_format or config.format or "string").lower()
        if output_format not in FORMATS:
            raise click.ClickException('Format must be either "string" or "json"')
        output_file = output_file or config.output_file

        android_options = None
        if android:
            android_options = AndroidVersionOptions(
                enabled=True,
                package_name=android_package or config.android_package,
                service_account_key=android_service_account_key,
                track=android_track or config.android_track,
                major_version_increment=(
                    android_major_increment
                    or config.android_major_increment
                    or DEFAULT_MAJOR_VERSION_INCREMENT
                ),
            )

        ios_options = None
        if ios:
            ios_options = IosVersionOptions(
                enabled=True,
                bundle_id=ios_bundle_id or config.ios_bundle_id,
                api_key_id=ios_api_key_id,
                api_issuer_id=ios_api_issuer_id,
                api_private_key=ios_api_private_key,
            )

        info = asyncio.run(
            generate_and_write_version(root, output_file, android_options, ios_options)
        )
    except VersionGeneratorError as exc:
        raise click.ClickException(str(exc)) from exc

    if github_output:
        _write_output(github_output, info)

    if output_file:
        click.echo(f"Successfully generated version: {info.version}")
    elif output_format == "json":
        click.echo(info.to_json())
    else:
        click.echo(info.version)


def main() -> None:
    """Console script entry point."""
    cli()


if __name__ == "__main__":
    main()
