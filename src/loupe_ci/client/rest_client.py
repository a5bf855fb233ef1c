"""Loupe REST API client using httpx.

This module provides an async HTTP client for the Loupe REST API including
session authentication, application version management and issue listing.
Every public operation authenticates with basic credentials first and then
issues its requests sequentially with the returned session token.
"""

from __future__ import annotations

import base64
import logging
import re
import uuid
from dataclasses import dataclass
from datetime import date, datetime, time, timezone
from typing import Any, TypeVar
from urllib.parse import quote

import httpx
from pydantic import BaseModel, SecretStr, ValidationError

from loupe_ci import __version__
from loupe_ci.client.models import (
    ApplicationsResponse,
    ApplicationVersionsResponse,
    AuthenticationToken,
    GetApplicationVersionResponse,
    Issue,
    IssuesForApplicationsResponse,
    LoupeModel,
    TenantsForUserResponse,
    VersionListItem,
)

logger = logging.getLogger(__name__)

# Loupe API constants
DEFAULT_BASE_URL = "https://us.onloupe.com"
DEFAULT_TIMEOUT = 30.0
DEFAULT_PAGE = 1
DEFAULT_PAGE_SIZE = 500
EMPTY_GUID = "00000000-0000-0000-0000-000000000000"
USER_AGENT = f"loupe-ci/{__version__}"

OPEN_ISSUES_ENDPOINT = "Issues/OpenForApplication"
CLOSED_ISSUES_ENDPOINT = "Issues/ClosedForApplication"

ModelT = TypeVar("ModelT", bound=BaseModel)


class LoupeClientError(Exception):
    """Base exception for Loupe client errors."""


class LoupeValidationError(LoupeClientError):
    """Caller-supplied arguments are invalid."""


class LoupeNotFoundError(LoupeClientError):
    """An expected resource does not exist."""


class LoupeApiError(LoupeClientError):
    """The Loupe API returned a non-success status code."""

    def __init__(self, status_code: int, message: str, url: str | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.message = message
        self.url = url

    @property
    def full_message(self) -> str:
        return f"The server returned an error ({self.status_code}): {self.message}"


class LoupeAuthError(LoupeApiError):
    """Authentication with Loupe failed."""


@dataclass
class LoupeApiOptions:
    """Per-request options: tenant scope, filter headers and query string."""

    tenant: str | None = None

    # Headers
    product: str | None = None
    application: str | None = None

    # Query string
    include_query_string: bool = False
    take: int = 0
    skip: int = 0
    page: int = DEFAULT_PAGE
    page_size: int = DEFAULT_PAGE_SIZE
    sort_key: str | None = None
    sort_direction: str | None = None
    release_type_id: str | None = None
    application_version_id: str | None = None

    def query_string(self) -> str:
        """Render the query string, or an empty string when not requested."""
        if not self.include_query_string:
            return ""

        params: dict[str, str | int] = {
            "take": self.take,
            "skip": self.skip,
            "page": self.page,
            "pageSize": self.page_size,
        }
        if self.sort_key is not None:
            params["sortKey"] = self.sort_key
        if self.sort_direction is not None:
            params["sortDirection"] = self.sort_direction
        if self.release_type_id is not None:
            params["releaseTypeId"] = self.release_type_id
        if self.application_version_id is not None:
            params["applicationVersionId"] = self.application_version_id

        return f"?{httpx.QueryParams(params)}"


@dataclass
class VersionOptions:
    """Optional overrides applied to an application version record.

    A field left as None keeps the value already on the record.
    """

    caption: str | None = None
    description: str | None = None
    display_version: str | None = None
    promotion_level_caption: str | None = None
    release_date: datetime | date | None = None
    release_notes_url: str | None = None
    release_type_caption: str | None = None

    def __str__(self) -> str:
        return "\n".join(
            [
                f"Description: {self.description or ''}",
                f"PromotionLevelCaption: {self.promotion_level_caption or ''}",
                f"ReleaseNotesUrl: {self.release_notes_url or ''}",
                f"Caption: {self.caption or ''}",
                f"DisplayVersion: {self.display_version or ''}",
                f"ReleaseDate: {self.release_date or ''}",
                f"ReleaseTypeCaption: {self.release_type_caption or ''}",
            ]
        )


@dataclass
class IssueRecord:
    """An issue together with the version it was found on."""

    issue: Issue
    closed: bool
    version_title: str = ""


_CANNED_MESSAGES = {
    401: "Verify that the credentials used to connect are correct.",
    403: "Verify that the credentials used to connect have permission to access related resources.",
    404: "Verify that the URL in the operation or credentials is correct (resolved to '{url}').",
}


def translate_error(
    response: httpx.Response,
    url: str,
    error_type: type[LoupeApiError] = LoupeApiError,
) -> LoupeApiError:
    """Build a classified error from a failed response.

    The message is the vendor's JSON ``message`` field if present, then the
    raw response text, then a canned hint for 401/403/404. Any other failure
    with no explanation re-raises the original httpx.HTTPStatusError.
    """
    message: str | None = None
    try:
        data = response.json()
    except ValueError:
        data = None
    if isinstance(data, dict) and data.get("message"):
        message = str(data["message"])

    if not message:
        message = response.text.strip() or None

    if not message and response.status_code in _CANNED_MESSAGES:
        message = _CANNED_MESSAGES[response.status_code].format(url=url)

    if not message:
        response.raise_for_status()
        message = response.reason_phrase

    return error_type(response.status_code, message, url)


def wildcard_pattern(specifier: str) -> re.Pattern[str]:
    """Translate a version specifier with ``*`` wildcards into a regex."""
    return re.compile(re.escape(specifier).replace(r"\*", ".*"), re.IGNORECASE)


def find_list_item(items: list[VersionListItem], caption: str, kind: str) -> VersionListItem:
    """Find an enumeration entry by caption (case-insensitive)."""
    wanted = caption.casefold()
    for item in items:
        if item.caption.casefold() == wanted:
            return item

    available = sorted(item.caption for item in items)
    raise LoupeValidationError(f"Unknown {kind} '{caption}'. Available values: {available}")


def apply_version_fields(options: VersionOptions, version_data: GetApplicationVersionResponse) -> None:
    """Copy the set fields of ``options`` onto ``version_data.version``.

    Promotion level and release type captions are resolved to their ids
    using the enumeration lists sent with the record.
    """
    version = version_data.version

    if options.caption is not None:
        version.caption = options.caption
    if options.description is not None:
        version.description = options.description
    if options.display_version is not None:
        version.display_version = options.display_version
    if options.promotion_level_caption is not None:
        level = find_list_item(version_data.lists.promotion_levels, options.promotion_level_caption, "promotion level")
        version.promotion_level = level.id
    if options.release_date is not None:
        version.release_date = _utc_midnight(options.release_date)
    if options.release_notes_url is not None:
        version.release_notes_url = options.release_notes_url
    if options.release_type_caption is not None:
        release_type = find_list_item(version_data.lists.release_types, options.release_type_caption, "release type")
        version.release_type = release_type.id


def _utc_midnight(value: datetime | date) -> datetime:
    if isinstance(value, datetime):
        value = value.astimezone(timezone.utc).date()
    return datetime.combine(value, time.min)


def _compact_id(value: str) -> str:
    """Format a GUID without dashes, as the issue endpoints expect."""
    try:
        return uuid.UUID(value).hex
    except ValueError:
        return value.replace("-", "")


class LoupeRestClient:
    """Async Loupe REST API client.

    Authenticates with basic credentials to obtain a session token for each
    logical operation. Tokens are not cached and requests are never retried.
    """

    def __init__(
        self,
        user_name: str,
        password: str | SecretStr,
        base_url: str | None = None,
        timeout: float | httpx.Timeout = DEFAULT_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the Loupe client.

        Args:
            user_name: Loupe user name.
            password: Password for the user. Never logged.
            base_url: Loupe server URL. Defaults to hosted Loupe.
            timeout: Request timeout in seconds.
            transport: Optional httpx transport (used by tests).

        Raises:
            LoupeValidationError: If the user name or password is missing.
        """
        if not user_name:
            raise LoupeValidationError("A Loupe user name is required.")
        if password is None:
            raise LoupeValidationError("A Loupe password is required.")

        self.base_url = (base_url or DEFAULT_BASE_URL).rstrip("/")
        self.user_name = user_name
        self._password = password if isinstance(password, SecretStr) else SecretStr(password)
        self.timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> LoupeRestClient:
        """Enter async context manager."""
        self._client = httpx.AsyncClient(
            headers={"User-Agent": USER_AGENT, "Content-Type": "application/json"},
            timeout=self.timeout,
            transport=self._transport,
            follow_redirects=True,
        )
        return self

    async def __aexit__(self, exc_type: object, exc_val: object, exc_tb: object) -> None:
        """Exit async context manager."""
        if self._client:
            await self._client.aclose()
            self._client = None

    @property
    def client(self) -> httpx.AsyncClient:
        """Get the HTTP client, ensuring it's initialized."""
        if self._client is None:
            raise RuntimeError("LoupeRestClient must be used as async context manager")
        return self._client

    # =========================================================================
    # Request plumbing
    # =========================================================================

    def build_url(self, relative_url: str, options: LoupeApiOptions) -> str:
        """Compose the absolute API URL for a relative endpoint path."""
        if options.tenant and options.tenant.strip():
            api_base_url = f"{self.base_url}/Customers/{quote(options.tenant, safe='')}/api/"
        else:
            api_base_url = f"{self.base_url}/api/"

        return api_base_url + relative_url + options.query_string()

    async def authenticate(self) -> AuthenticationToken:
        """Exchange basic credentials for a session token.

        Raises:
            LoupeAuthError: If the server rejects the request.
        """
        url = self.build_url("auth/token", LoupeApiOptions())
        credentials = f"{self.user_name}:{self._password.get_secret_value()}"
        encoded = base64.b64encode(credentials.encode("utf-8")).decode("ascii")

        logger.debug(f"Invoking Loupe REST API GET request to URL: {url}")
        response = await self.client.request("GET", url, headers={"Authorization": f"Basic {encoded}"})
        if not response.is_success:
            raise translate_error(response, url, LoupeAuthError)

        return AuthenticationToken.model_validate(response.json())

    async def invoke(
        self,
        token: AuthenticationToken,
        method: str,
        relative_url: str,
        options: LoupeApiOptions,
        data: Any = None,
        response_model: type[ModelT] | None = None,
    ) -> Any:
        """Invoke an API endpoint with a session token.

        Args:
            token: Session token from authenticate().
            method: HTTP method (GET, POST, PUT).
            relative_url: Endpoint path relative to the API root.
            options: Tenant, filter headers and query string options.
            data: Optional JSON body; Loupe models are sent with Loupe field names.
            response_model: Model to validate the response into. Raw JSON if None.

        Returns:
            The validated model, the decoded JSON, or None for an empty body.

        Raises:
            LoupeApiError: If the server returns a non-success status.
        """
        url = self.build_url(relative_url, options)
        headers = {"Authorization": f"Session {token.token}"}

        if options.product is not None:
            headers["loupe-product"] = options.product
            logger.debug(f"Filtering by product: {options.product}")
        if options.application is not None:
            headers["loupe-application"] = options.application
            logger.debug(f"Filtering by application: {options.application}")

        if isinstance(data, LoupeModel):
            data = data.to_wire()

        logger.debug(f"Invoking Loupe REST API {method} request to URL: {url}")
        response = await self.client.request(method, url, headers=headers, json=data)
        if not response.is_success:
            raise translate_error(response, url)

        if not response.content:
            return None
        if response_model is None:
            return response.json()
        return response_model.model_validate(response.json())

    # =========================================================================
    # Tenants and applications
    # =========================================================================

    async def get_tenants(self) -> TenantsForUserResponse:
        """List the tenants the user has access to."""
        token = await self.authenticate()
        return await self.invoke(token, "GET", "Tenant/ForUser", LoupeApiOptions(), response_model=TenantsForUserResponse)

    async def get_applications(self, tenant: str | None) -> ApplicationsResponse:
        """List all products and applications of a tenant."""
        token = await self.authenticate()
        return await self.invoke(
            token,
            "GET",
            "Application/AllProductsAndApplications",
            LoupeApiOptions(tenant=tenant),
            response_model=ApplicationsResponse,
        )

    # =========================================================================
    # Application versions
    # =========================================================================

    async def get_versions(
        self,
        tenant: str | None,
        product: str | None = None,
        application: str | None = None,
        token: AuthenticationToken | None = None,
    ) -> ApplicationVersionsResponse:
        """List application versions, optionally filtered by product and application."""
        if token is None:
            token = await self.authenticate()

        return await self.invoke(
            token,
            "GET",
            "ApplicationVersion/Versions",
            self._version_list_options(tenant, product, application),
            response_model=ApplicationVersionsResponse,
        )

    async def find_version(
        self,
        tenant: str | None,
        version: str,
        product: str | None,
        application: str | None,
        token: AuthenticationToken | None = None,
    ) -> GetApplicationVersionResponse | None:
        """Find an application version by title (case-insensitive).

        Returns:
            The full version record, or None if no version has that title.
        """
        if token is None:
            token = await self.authenticate()

        options = self._version_list_options(tenant, product, application)
        versions = await self.invoke(
            token,
            "GET",
            "ApplicationVersion/Versions",
            options,
            response_model=ApplicationVersionsResponse,
        )

        logger.debug(f"Searching for version {version}...")

        wanted = version.casefold()
        match = next((v for v in versions.data if v.version.title.casefold() == wanted), None)
        if match is None:
            return None

        return await self.invoke(
            token,
            "GET",
            f"ApplicationVersion/Get/{match.id}",
            options,
            response_model=GetApplicationVersionResponse,
        )

    async def create_version(
        self,
        tenant: str | None,
        product: str | None,
        application: str | None,
        version: str,
        options: VersionOptions | None,
    ) -> None:
        """Create an application version from the server's template record.

        Raises:
            LoupeValidationError: If no release type caption is given.
        """
        if options is None or not options.release_type_caption:
            raise LoupeValidationError("A release type caption is required when creating an application version.")

        token = await self.authenticate()
        api_options = LoupeApiOptions(tenant=tenant, product=product, application=application)

        version_data = await self.invoke(
            token,
            "GET",
            "ApplicationVersion/GetNew",
            api_options,
            response_model=GetApplicationVersionResponse,
        )

        apply_version_fields(options, version_data)
        version_data.version.version = version

        await self.invoke(
            token,
            "POST",
            f"ApplicationVersion/Post/{version_data.version.id}",
            api_options,
            data=version_data.version,
        )
        logger.info(f"Created application version '{version}'")

    async def update_version(
        self,
        tenant: str | None,
        product: str | None,
        application: str | None,
        version: str,
        options: VersionOptions | None,
    ) -> None:
        """Update an existing application version.

        Raises:
            LoupeNotFoundError: If the version does not exist.
        """
        if options is None:
            options = VersionOptions()

        token = await self.authenticate()

        version_data = await self.find_version(tenant, version, product, application, token)
        if version_data is None:
            raise LoupeNotFoundError(f"version '{version}' not found in Loupe.")

        apply_version_fields(options, version_data)

        await self.invoke(
            token,
            "PUT",
            f"ApplicationVersion/Put/{version_data.version.id}",
            LoupeApiOptions(tenant=tenant, product=product, application=application),
            data=version_data.version,
        )
        logger.info(f"Updated application version '{version}'")

    async def get_release_types(self, tenant: str | None, product: str | None, application: str | None) -> list[str]:
        """Get the release type captions available for new versions."""
        version_data = await self._get_new_version(tenant, product, application)
        return sorted(t.caption for t in version_data.lists.release_types)

    async def get_promotion_levels(self, tenant: str | None, product: str | None, application: str | None) -> list[str]:
        """Get the promotion level captions available for new versions."""
        version_data = await self._get_new_version(tenant, product, application)
        return sorted(p.caption for p in version_data.lists.promotion_levels)

    async def _get_new_version(
        self,
        tenant: str | None,
        product: str | None,
        application: str | None,
    ) -> GetApplicationVersionResponse:
        token = await self.authenticate()
        return await self.invoke(
            token,
            "GET",
            "ApplicationVersion/GetNew",
            LoupeApiOptions(tenant=tenant, product=product, application=application),
            response_model=GetApplicationVersionResponse,
        )

    @staticmethod
    def _version_list_options(tenant: str | None, product: str | None, application: str | None) -> LoupeApiOptions:
        return LoupeApiOptions(
            tenant=tenant,
            product=product,
            application=application,
            include_query_string=True,
            release_type_id=EMPTY_GUID,
        )

    # =========================================================================
    # Issues
    # =========================================================================

    async def get_issues(
        self,
        tenant: str | None,
        version_specifier: str,
        product: str | None = None,
        application: str | None = None,
    ) -> list[IssueRecord]:
        """Get the issues of one version, or of every version matching a wildcard.

        Args:
            tenant: Tenant name, or None for single-tenant installs.
            version_specifier: Exact version title, or a pattern with ``*`` wildcards.
            product: Optional product filter.
            application: Optional application filter.

        Returns:
            Issues of all matching versions. Versions whose issues cannot be
            retrieved contribute no issues.
        """
        if not version_specifier:
            raise LoupeValidationError("A version specifier is required.")

        token = await self.authenticate()

        matching_versions: list[tuple[str, str]] = []
        if "*" in version_specifier:
            logger.info(f"Matching wildcard version '{version_specifier}'...")
            pattern = wildcard_pattern(version_specifier)

            versions = await self.get_versions(tenant, product, application, token)
            logger.debug(f"Found {len(versions.data)} possible versions...")

            for v in versions.data:
                if pattern.fullmatch(v.version.title) or pattern.fullmatch(v.caption):
                    matching_versions.append((v.version.title, v.id))
        else:
            logger.info(f"Matching specific version '{version_specifier}'...")

            match = await self.find_version(tenant, version_specifier, product, application, token)
            if match is not None:
                matching_versions.append((match.version.version or version_specifier, match.version.id))
            else:
                logger.debug("Version not found.")

        logger.debug(f"Found {len(matching_versions)} matching version(s).")

        records: list[IssueRecord] = []
        for title, version_id in matching_versions:
            version_records = await self._get_issues_for_version(tenant, title, version_id, token)
            logger.debug(f"Version '{title}' has {len(version_records)} issues.")
            records.extend(version_records)

        return records

    async def _get_issues_for_version(
        self,
        tenant: str | None,
        title: str,
        version_id: str,
        token: AuthenticationToken,
    ) -> list[IssueRecord]:
        open_issues = await self._list_issues(OPEN_ISSUES_ENDPOINT, tenant, version_id, token)
        closed_issues = await self._list_issues(CLOSED_ISSUES_ENDPOINT, tenant, version_id, token)

        closed_ids = {issue.id for issue in closed_issues}
        records = [IssueRecord(issue, False, title) for issue in open_issues if issue.id not in closed_ids]
        records.extend(IssueRecord(issue, True, title) for issue in closed_issues)
        return records

    async def _list_issues(
        self,
        endpoint: str,
        tenant: str | None,
        version_id: str,
        token: AuthenticationToken,
    ) -> list[Issue]:
        options = LoupeApiOptions(
            tenant=tenant,
            include_query_string=True,
            application_version_id=_compact_id(version_id),
        )
        try:
            response = await self.invoke(token, "GET", endpoint, options, response_model=IssuesForApplicationsResponse)
        except LoupeApiError as e:
            if e.status_code == 404:
                # No issues for this version
                return []
            logger.warning(f"Could not retrieve issues for version ID='{version_id}': {e.full_message}")
            return []
        except (httpx.HTTPError, ValidationError) as e:
            logger.warning(f"Could not retrieve issues for version ID='{version_id}': {e}")
            return []

        if response is None:
            return []
        return response.data
