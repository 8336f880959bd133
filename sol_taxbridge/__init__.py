"""Top level package for the sol_taxbridge project."""
from importlib import metadata


def get_version() -> str:
    """Return the installed package version.

    Falls back to ``0.0.0`` when running from a checkout that has not been
    installed, which keeps ``--version`` usable during development.
    """

    try:
        return metadata.version("sol-taxbridge")
    except metadata.PackageNotFoundError:  # pragma: no cover - during tests
        return "0.0.0"


__all__ = ["get_version"]
