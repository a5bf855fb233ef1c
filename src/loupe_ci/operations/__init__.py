"""Release pipeline operations backed by the Loupe client."""

from loupe_ci.operations.ensure_version import EnsureApplicationVersionOperation, EnsureVersionResult
from loupe_ci.operations.issue_source import LoupeIssue, LoupeIssueSource

__all__ = [
    "EnsureApplicationVersionOperation",
    "EnsureVersionResult",
    "LoupeIssue",
    "LoupeIssueSource",
]
