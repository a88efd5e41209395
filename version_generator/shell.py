"""Git subprocess wrapper."""

from __future__ import annotations

import subprocess
from pathlib import Path


def git(*args: str, cwd: str | Path | None = None) -> str:
    """Run a git command and return stdout.

    Args:
        *args: Arguments to pass to git (e.g., "rev-parse", "HEAD").
        cwd: Directory to run in; defaults to the process working directory.

    Returns:
        Stripped stdout from the git command.

    Raises:
        subprocess.CalledProcessError: If git exits non-zero.
        FileNotFoundError: If git is not installed.
    """
    result = subprocess.run(
        ["git", *args], cwd=cwd, capture_output=True, text=True, check=True
    )
    return result.stdout.strip()
