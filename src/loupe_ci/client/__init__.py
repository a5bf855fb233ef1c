"""Loupe REST API client."""

from loupe_ci.client.rest_client import (
    DEFAULT_BASE_URL,
    IssueRecord,
    LoupeApiError,
    LoupeApiOptions,
    LoupeAuthError,
    LoupeClientError,
    LoupeNotFoundError,
    LoupeRestClient,
    LoupeValidationError,
    VersionOptions,
)

__all__ = [
    "DEFAULT_BASE_URL",
    "IssueRecord",
    "LoupeApiError",
    "LoupeApiOptions",
    "LoupeAuthError",
    "LoupeClientError",
    "LoupeNotFoundError",
    "LoupeRestClient",
    "LoupeValidationError",
    "VersionOptions",
]
