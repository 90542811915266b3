"""Core package for the Sessionbridge chat relay."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("sessionbridge")
except PackageNotFoundError:
    __version__ = "0.0.0"
