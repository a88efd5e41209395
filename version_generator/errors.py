"""Error types raised while generating versions.

Every failure surfaces as a subclass of VersionGeneratorError so the CLI can
report it uniformly. Lower-level exceptions are chained as ``__cause__``.
"""

from __future__ import annotations


class VersionGeneratorError(Exception):
    """Base class for all version generation failures."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class MissingOptionsError(VersionGeneratorError):
    """Required platform options were not supplied."""


class ConfigError(VersionGeneratorError):
    """Configuration could not be read or has the wrong shape."""


class MissingConfigError(ConfigError):
    """The environment lacks a value needed to answer a query."""


class RepositoryError(VersionGeneratorError):
    """A repository query (git or hosting API) failed."""


class NoTagsError(RepositoryError):
    """No ``v<major>.<minor>`` tag is reachable from HEAD."""


class TagFormatError(RepositoryError):
    """A tag does not have the ``v<major>.<minor>`` shape."""


class CommitCountError(RepositoryError):
    """The number of commits since a tag could not be determined."""


class DecodeError(VersionGeneratorError):
    """A credential is neither JSON nor base64-encoded JSON."""


class PlatformQueryError(VersionGeneratorError):
    """A mobile platform backend failed to answer.

    Attributes:
        platform: ``"android"`` or ``"ios"``.
    """

    def __init__(self, platform: str, message: str):
        self.platform = platform
        super().__init__(message)


class InvalidCounterError(VersionGeneratorError):
    """A requested platform counter resolved to a non-positive value."""
