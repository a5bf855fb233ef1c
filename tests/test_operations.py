"""Tests for the ensure-version and issue-source operations."""

from __future__ import annotations

import json
from datetime import date, datetime, timezone

import httpx
import pytest
from conftest import BASE_URL, NEW_VERSION, VERSION_100, FakeLoupe, issue_json, version_record, version_row
from pydantic import SecretStr

from loupe_ci.client.rest_client import LoupeValidationError
from loupe_ci.config import LoupeCredentials
from loupe_ci.operations import EnsureApplicationVersionOperation, LoupeIssue, LoupeIssueSource
from loupe_ci.operations.ensure_version import parse_release_date

VERSIONS_PATH = "/Customers/Acme/api/ApplicationVersion/Versions"
CREDENTIALS = LoupeCredentials(base_url=BASE_URL, tenant="Acme", user_name="builder", password=SecretStr("s3cret"))


def versions_route(*rows: dict) -> httpx.Response:
    return httpx.Response(200, json={"data": list(rows)})


# =============================================================================
# Ensure version
# =============================================================================


class TestParseReleaseDate:
    """Tests for release date parsing."""

    @pytest.mark.parametrize("value", [None, "", "   "])
    def test_empty_is_unset(self, value: str | None) -> None:
        assert parse_release_date(value) is None

    def test_plain_date(self) -> None:
        assert parse_release_date("2024-05-06") == date(2024, 5, 6)

    def test_date_time_with_zulu(self) -> None:
        assert parse_release_date("2024-05-06T10:00:00Z") == datetime(2024, 5, 6, 10, tzinfo=timezone.utc)

    def test_invalid_raises(self) -> None:
        with pytest.raises(LoupeValidationError, match="Invalid release date"):
            parse_release_date("next tuesday")


class TestEnsureApplicationVersionOperation:
    """Tests for EnsureApplicationVersionOperation."""

    def _operation(self, **kwargs: object) -> EnsureApplicationVersionOperation:
        params: dict[str, object] = {"credentials": CREDENTIALS, "product": "P", "application": "A", "version": "1.2.3"}
        params.update(kwargs)
        return EnsureApplicationVersionOperation(**params)

    def test_expand_variables(self) -> None:
        operation = EnsureApplicationVersionOperation(credentials=CREDENTIALS, product="P", application="A")

        expanded = operation.expand({"ReleaseNumber": "4.5.6", "ReleaseName": "Autumn"})

        assert expanded.version == "4.5.6"
        assert expanded.caption == "Autumn"

    def test_unresolved_caption_is_not_written(self) -> None:
        operation = self._operation(caption="$ReleaseName")
        assert operation.version_options().caption is None

    def test_version_options(self) -> None:
        operation = self._operation(release_type="Major", promotion_level="Release", release_date="2024-01-02", caption=None)

        options = operation.version_options()

        assert options.display_version == "1.2.3"
        assert options.release_type_caption == "Major"
        assert options.promotion_level_caption == "Release"
        assert options.release_date == date(2024, 1, 2)
        assert options.description is None

    def test_connection_overrides_win(self) -> None:
        operation = self._operation(tenant="Globex", base_url="https://other")

        resolved = operation.resolve_credentials()

        assert resolved.tenant == "Globex"
        assert resolved.base_url == "https://other"
        assert resolved.user_name == "builder"

    def test_describe(self) -> None:
        assert self._operation().describe() == "Ensure version 1.2.3 exists for product P; application A"

    @pytest.mark.asyncio
    async def test_unresolved_version_raises(self) -> None:
        operation = EnsureApplicationVersionOperation(credentials=CREDENTIALS, product="P", application="A")
        with pytest.raises(LoupeValidationError, match="not resolved"):
            await operation.execute(FakeLoupe().client())

    @pytest.mark.asyncio
    async def test_creates_missing_version(self) -> None:
        fake = FakeLoupe(
            {
                ("GET", VERSIONS_PATH): versions_route(version_row(VERSION_100, "1.0.0")),
                ("GET", "/Customers/Acme/api/ApplicationVersion/GetNew"): httpx.Response(
                    200, json=version_record(NEW_VERSION, "", releaseType=None)
                ),
                ("POST", f"/Customers/Acme/api/ApplicationVersion/Post/{NEW_VERSION}"): httpx.Response(200),
            }
        )

        result = await self._operation(release_type="Patch", caption="Hotfix").execute(fake.client())

        assert result.success is True
        assert result.action == "created"
        body = json.loads(fake.requests[-1].content)
        assert body["version"] == "1.2.3"
        assert body["caption"] == "Hotfix"
        assert body["releaseType"] == "rt-patch"

    @pytest.mark.asyncio
    async def test_updates_existing_version(self) -> None:
        fake = FakeLoupe(
            {
                ("GET", VERSIONS_PATH): versions_route(version_row(VERSION_100, "1.2.3")),
                ("GET", f"/Customers/Acme/api/ApplicationVersion/Get/{VERSION_100}"): httpx.Response(
                    200, json=version_record(VERSION_100, "1.2.3")
                ),
                ("PUT", f"/Customers/Acme/api/ApplicationVersion/Put/{VERSION_100}"): httpx.Response(200),
            }
        )

        result = await self._operation(description="Shipped").execute(fake.client())

        assert result.success is True
        assert result.action == "updated"
        body = json.loads(fake.requests[-1].content)
        assert body["description"] == "Shipped"
        assert body["releaseType"] == "rt-minor"

    @pytest.mark.asyncio
    async def test_api_error_reported_as_failure(self) -> None:
        fake = FakeLoupe({("GET", VERSIONS_PATH): httpx.Response(500, json={"message": "database offline"})})

        result = await self._operation().execute(fake.client())

        assert result.success is False
        assert result.action == "failed"
        assert result.message == "The server returned an error (500): database offline"

    @pytest.mark.asyncio
    async def test_create_without_release_type_raises(self) -> None:
        fake = FakeLoupe({("GET", VERSIONS_PATH): versions_route()})

        with pytest.raises(LoupeValidationError, match="release type caption is required"):
            await self._operation().execute(fake.client())


# =============================================================================
# Issue source
# =============================================================================


class TestLoupeIssueSource:
    """Tests for LoupeIssueSource."""

    def test_expand_variables(self) -> None:
        source = LoupeIssueSource(credentials=CREDENTIALS, product="P", application="A")
        assert source.expand({"ReleaseNumber": "1.0.*"}).version == "1.0.*"

    def test_describe(self) -> None:
        source = LoupeIssueSource(credentials=CREDENTIALS, product="P", application="A", version="1.0.0")
        assert source.describe() == "Get Issues from P A in Loupe Server."

    @pytest.mark.asyncio
    async def test_enumerate_issues(self) -> None:
        fake = FakeLoupe(
            {
                ("GET", VERSIONS_PATH): versions_route(version_row(VERSION_100, "1.0.0")),
                ("GET", "/Customers/Acme/api/Issues/OpenForApplication"): httpx.Response(
                    200, json={"data": [issue_json("i1", "Crash on start")]}
                ),
                ("GET", "/Customers/Acme/api/Issues/ClosedForApplication"): httpx.Response(
                    200, json={"data": [issue_json("i2", "Slow login", status="Resolved")]}
                ),
            }
        )
        source = LoupeIssueSource(credentials=CREDENTIALS, product="P", application="A", version="1.0.*")

        issues = await source.enumerate_issues(fake.client())

        assert issues == [
            LoupeIssue(
                id="i1",
                title="Crash on start",
                status="New",
                submitter="Jane Tester",
                submitted_date=datetime(2024, 3, 1, 10, 0),
                url=f"{BASE_URL}/Issues/i1",
                is_closed=False,
                version="1.0.0",
            ),
            LoupeIssue(
                id="i2",
                title="Slow login",
                status="Resolved",
                submitter="Jane Tester",
                submitted_date=datetime(2024, 3, 1, 10, 0),
                url=f"{BASE_URL}/Issues/i2",
                is_closed=True,
                version="1.0.0",
            ),
        ]

    @pytest.mark.asyncio
    async def test_unresolved_version_raises(self) -> None:
        source = LoupeIssueSource(credentials=CREDENTIALS, product="P", application="A")
        with pytest.raises(LoupeValidationError):
            await source.enumerate_issues(FakeLoupe().client())
