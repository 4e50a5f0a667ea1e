"""Application version lookup."""

from importlib import metadata
from pathlib import Path

# backend/minrisk/core/version.py -> repository root
_VERSION_FILE = Path(__file__).resolve().parents[3] / "VERSION"


def get_version() -> str:
    if _VERSION_FILE.is_file():
        return _VERSION_FILE.read_text().strip()
    try:
        return metadata.version("minrisk")
    except metadata.PackageNotFoundError:
        return "0.0.0"


__version__ = get_version()
