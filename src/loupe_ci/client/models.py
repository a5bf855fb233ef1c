"""Data models for the Loupe REST API.

These models mirror the JSON documents returned by Loupe. Field names are
snake_case in Python and camelCase on the wire. Unknown fields are kept so
that a record fetched from the server can be modified and sent back intact.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class LoupeModel(BaseModel):
    """Base model for Loupe JSON documents."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
    )

    def to_wire(self) -> dict:
        """Serialize to a JSON-compatible dict using Loupe field names."""
        return self.model_dump(mode="json", by_alias=True)


# =============================================================================
# Authentication
# =============================================================================


class AuthenticationToken(BaseModel):
    """Session token returned by ``auth/token``."""

    model_config = ConfigDict(populate_by_name=True)

    token: str = Field(alias="access_token")
    expires_in: int = Field(default=0, alias="expires_in")


# =============================================================================
# Shared references
# =============================================================================


class EmailAddress(LoupeModel):
    address: str | None = None
    hash: str | None = None


class PersonReference(LoupeModel):
    """A user reference (issue submitter, updater or assignee)."""

    id: str | None = None
    title: str | None = None
    url: str | None = None
    email: EmailAddress | None = None


class VersionListItem(LoupeModel):
    """An entry of a server-defined enumeration (promotion level, release type)."""

    id: str | None = None
    caption: str = ""


# =============================================================================
# Application versions
# =============================================================================


class ApplicationVersion(LoupeModel):
    """A full application version record."""

    id: str
    version: str | None = None
    caption: str | None = None
    description: str | None = None
    display_version: str | None = None
    promotion_level: str | None = None
    release_date: datetime | None = None
    release_notes_url: str | None = None
    release_type: str | None = None


class VersionLists(LoupeModel):
    promotion_levels: list[VersionListItem] = Field(default_factory=list)
    release_types: list[VersionListItem] = Field(default_factory=list)


class GetApplicationVersionResponse(LoupeModel):
    """Response of ``ApplicationVersion/GetNew`` and ``ApplicationVersion/Get/{id}``."""

    version: ApplicationVersion
    lists: VersionLists = Field(default_factory=VersionLists)


class VersionTitle(LoupeModel):
    title: str = ""
    url: str | None = None


class ApplicationVersionSummary(LoupeModel):
    """A row of ``ApplicationVersion/Versions``."""

    id: str
    caption: str = ""
    version: VersionTitle = Field(default_factory=VersionTitle)


class ApplicationVersionsResponse(LoupeModel):
    data: list[ApplicationVersionSummary] = Field(default_factory=list)
    total: int = 0
    page: int = 0
    page_size: int = 0


# =============================================================================
# Issues
# =============================================================================


class IssueCaption(LoupeModel):
    title: str = ""
    url: str = ""
    status: str | None = None
    is_suppressed: bool = False
    id: str | None = None


class Issue(LoupeModel):
    """An issue as returned by the issue listing endpoints."""

    id: str
    caption: IssueCaption = Field(default_factory=IssueCaption)
    status: str | None = None
    added_by: PersonReference | None = None
    added_on: datetime | None = None
    updated_by: PersonReference | None = None
    updated_on: datetime | None = None
    last_occurred_on: datetime | None = None
    assigned_to: PersonReference | None = None
    endpoints: int = 0
    sessions: int = 0
    occurrences: int = 0
    users: int = 0
    fixed_in_version: Any = None
    product_name: str | None = None
    application_name: str | None = None


class IssuesForApplicationsResponse(LoupeModel):
    data: list[Issue] = Field(default_factory=list)
    total: int = 0
    page: int = 0
    page_size: int = 0


# =============================================================================
# Tenants and applications
# =============================================================================


class Tenant(LoupeModel):
    tenant_name: str = ""


class TenantsForUserResponse(LoupeModel):
    tenants: list[Tenant] = Field(default_factory=list)


class Application(LoupeModel):
    product_name: str = ""
    application_name: str = ""


class ApplicationsResponse(LoupeModel):
    data: list[Application] = Field(default_factory=list)
