"""Loupe integration for release pipelines: application versions and issues."""

__version__ = "0.1.0"
