"""Build Debian binary packages from a staged install root."""

__version__ = "0.3.0"
