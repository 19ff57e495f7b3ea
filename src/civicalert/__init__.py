"""civicalert: municipal issue reporting with role-scoped notifications."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("civicalert")
except PackageNotFoundError:
    __version__ = "0.0.0-dev"

from civicalert.core import CivicDB, Issue

__all__ = ["CivicDB", "Issue", "__version__"]
