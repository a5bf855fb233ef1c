"""Loupe issue source: issues attached to one or more application versions."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime

from pydantic import Field

from loupe_ci.client.rest_client import DEFAULT_BASE_URL, IssueRecord, LoupeRestClient, LoupeValidationError
from loupe_ci.operations.base import RELEASE_NUMBER_VARIABLE, LoupeConnection, expand_variables

logger = logging.getLogger(__name__)


@dataclass
class LoupeIssue:
    """An issue as presented to the release pipeline."""

    id: str
    title: str
    status: str | None
    submitter: str | None
    submitted_date: datetime | None
    url: str
    is_closed: bool
    version: str = ""

    @classmethod
    def from_record(cls, base_url: str, record: IssueRecord) -> LoupeIssue:
        issue = record.issue
        return cls(
            id=issue.id,
            title=issue.caption.title,
            status=issue.status,
            submitter=issue.added_by.title if issue.added_by else None,
            submitted_date=issue.added_on,
            url=f"{base_url.rstrip('/')}/{issue.caption.url.lstrip('/')}",
            is_closed=record.closed,
            version=record.version_title,
        )


class LoupeIssueSource(LoupeConnection):
    """Enumerates Loupe issues for a product, application and version.

    The version may contain ``*`` wildcards, in which case the issues of
    every matching application version are returned.
    """

    product: str = Field(description="Loupe product name")
    application: str = Field(description="Loupe application name")
    version: str = Field(default=RELEASE_NUMBER_VARIABLE, description="Application version; may contain wildcards")

    def expand(self, variables: Mapping[str, str]) -> LoupeIssueSource:
        """Return a copy with ``$Name`` variables substituted in the version."""
        return self.model_copy(update={"version": expand_variables(self.version, variables)})

    def describe(self) -> str:
        return f"Get Issues from {self.product} {self.application} in Loupe Server."

    async def enumerate_issues(self, client: LoupeRestClient | None = None) -> list[LoupeIssue]:
        """Fetch the issues of every matching version."""
        if not self.version or self.version.startswith("$"):
            raise LoupeValidationError(f"Application version '{self.version}' is not resolved.")

        logger.debug("Enumerating Loupe issue source...")

        credentials = self.resolve_credentials()
        if client is None:
            client = self.create_client()

        async with client:
            records = await client.get_issues(credentials.tenant or None, self.version, self.product, self.application)

        base_url = credentials.base_url or DEFAULT_BASE_URL
        return [LoupeIssue.from_record(base_url, record) for record in records]
