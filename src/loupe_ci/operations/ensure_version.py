"""Ensure a Loupe application version exists with the given properties."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import date, datetime
from typing import Literal

from pydantic import Field

from loupe_ci.client.rest_client import (
    LoupeApiError,
    LoupeRestClient,
    LoupeValidationError,
    VersionOptions,
)
from loupe_ci.operations.base import (
    RELEASE_NAME_VARIABLE,
    RELEASE_NUMBER_VARIABLE,
    LoupeConnection,
    expand_variables,
)

logger = logging.getLogger(__name__)


@dataclass
class EnsureVersionResult:
    """Outcome of an ensure-version run."""

    success: bool
    action: Literal["created", "updated", "failed"]
    message: str


def parse_release_date(value: str | None) -> datetime | date | None:
    """Parse an ISO date or date-time; empty means "not set".

    Raises:
        LoupeValidationError: If the value is not a valid date.
    """
    if value is None or not value.strip():
        return None
    text = value.strip()
    try:
        if len(text) == 10:
            return date.fromisoformat(text)
        return datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError as e:
        raise LoupeValidationError(f"Invalid release date '{value}'. Use YYYY-MM-DD.") from e


def _is_unresolved(value: str | None) -> bool:
    return value is not None and value.startswith("$")


class EnsureApplicationVersionOperation(LoupeConnection):
    """Ensures an application version exists and has the specified properties.

    Creates the version when it is missing, otherwise updates it. Only the
    properties that are set are written; everything else keeps its current
    value in Loupe.
    """

    product: str = Field(description="Loupe product name")
    application: str = Field(description="Loupe application name")
    version: str = Field(default=RELEASE_NUMBER_VARIABLE, description="Application version")
    caption: str | None = Field(
        default=RELEASE_NAME_VARIABLE,
        description="When different from the version, renders as: Caption (1.2.3.4)",
    )
    description: str | None = None
    promotion_level: str | None = None
    release_notes_url: str | None = None
    release_date: str | None = None
    release_type: str | None = None

    def expand(self, variables: Mapping[str, str]) -> EnsureApplicationVersionOperation:
        """Return a copy with ``$Name`` variables substituted in version and caption."""
        return self.model_copy(
            update={
                "version": expand_variables(self.version, variables),
                "caption": expand_variables(self.caption, variables),
            }
        )

    def version_options(self) -> VersionOptions:
        return VersionOptions(
            description=self.description,
            # An unresolved caption variable leaves the caption alone
            caption=None if _is_unresolved(self.caption) else self.caption,
            display_version=self.version,
            promotion_level_caption=self.promotion_level,
            release_date=parse_release_date(self.release_date),
            release_notes_url=self.release_notes_url,
            release_type_caption=self.release_type,
        )

    def describe(self) -> str:
        return f"Ensure version {self.version} exists for product {self.product}; application {self.application}"

    async def execute(self, client: LoupeRestClient | None = None) -> EnsureVersionResult:
        """Create or update the version.

        API failures are logged and reported in the result; invalid
        arguments raise LoupeValidationError.
        """
        if not self.version or _is_unresolved(self.version):
            raise LoupeValidationError(f"Application version '{self.version}' is not resolved.")

        logger.info(
            f"Ensuring Loupe application version '{self.version}' exists for product '{self.product}', "
            f"application '{self.application}'..."
        )

        options = self.version_options()
        logger.debug(f"Options: {options}")

        tenant = self.resolved_tenant()
        if client is None:
            client = self.create_client()

        async with client:
            try:
                existing = await client.find_version(tenant, self.version, self.product, self.application)
                if existing is None:
                    logger.info("Version does not exist, creating...")
                    await client.create_version(tenant, self.product, self.application, self.version, options)
                    logger.info("Version created.")
                    return EnsureVersionResult(True, "created", f"Version '{self.version}' created.")

                logger.info("Version already exists, updating...")
                await client.update_version(tenant, self.product, self.application, self.version, options)
                logger.info("Version updated.")
                return EnsureVersionResult(True, "updated", f"Version '{self.version}' updated.")
            except LoupeApiError as e:
                logger.error(e.full_message)
                return EnsureVersionResult(False, "failed", e.full_message)
