"""Version information for gworkspace-accounts."""

from pathlib import Path


def _get_version() -> str:
    """Get version from VERSION file or fallback to hardcoded."""
    # Package-level VERSION file wins over the project root one
    for candidate in (
        Path(__file__).parent / "VERSION",
        Path(__file__).parent.parent.parent / "VERSION",
    ):
        if candidate.exists():
            return candidate.read_text().strip()

    return "0.1.0"


__version__ = _get_version()
