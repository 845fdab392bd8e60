"""Top-level package for autobridge token bridging automation."""

from importlib import metadata


def __getattr__(name: str) -> str:
    """Expose the package version via ``autobridge.__version__``."""
    if name == "__version__":
        try:
            return metadata.version("autobridge")
        except metadata.PackageNotFoundError:
            return "0.0.0"
    raise AttributeError(name)


__all__ = ["__version__"]
