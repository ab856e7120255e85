"""Factory for creating the appropriate Sampler for the current OS."""

import sys

from timetrack.platform.base import Sampler


def create_sampler() -> Sampler:
    """Detect the current OS and return the matching Sampler.

    Uses lazy imports so platform-specific modules are only loaded on
    the OS where they are actually needed.

    Raises:
        OSError: If the current platform is not supported.
    """
    if sys.platform == "darwin":
        from timetrack.platform.macos import MacOSSampler
        return MacOSSampler()

    raise OSError(
        f"Unsupported platform: {sys.platform!r}. "
        "TimeTrack supports macOS (darwin)."
    )
