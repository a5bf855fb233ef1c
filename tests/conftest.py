"""Shared fixtures: an in-memory Loupe server behind httpx.MockTransport."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any, Union

import httpx
import pytest

from loupe_ci.client.rest_client import LoupeRestClient

BASE_URL = "https://loupe.example.com"

VERSION_100 = "11111111-1111-1111-1111-111111111111"
VERSION_101 = "22222222-2222-2222-2222-222222222222"
VERSION_200 = "33333333-3333-3333-3333-333333333333"
NEW_VERSION = "44444444-4444-4444-4444-444444444444"

LISTS = {
    "promotionLevels": [
        {"id": "pl-dev", "caption": "Development"},
        {"id": "pl-rel", "caption": "Release"},
    ],
    "releaseTypes": [
        {"id": "rt-major", "caption": "Major"},
        {"id": "rt-minor", "caption": "Minor"},
        {"id": "rt-patch", "caption": "Patch"},
    ],
}

Route = Union[httpx.Response, Callable[[httpx.Request], httpx.Response]]


class FakeLoupe:
    """Routes requests by (method, path); unknown routes return an empty 404."""

    def __init__(self, routes: dict[tuple[str, str], Route] | None = None) -> None:
        self.routes: dict[tuple[str, str], Route] = {
            ("GET", "/api/auth/token"): httpx.Response(200, json={"access_token": "session-token", "expires_in": 3600}),
        }
        if routes:
            self.routes.update(routes)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        route = self.routes.get((request.method, request.url.path))
        if route is None:
            return httpx.Response(404)
        if callable(route):
            return route(request)
        # Fresh copy per request so one canned response can be served repeatedly
        return httpx.Response(route.status_code, headers=route.headers, content=route.content)

    def client(self, base_url: str = BASE_URL) -> LoupeRestClient:
        return LoupeRestClient("builder", "s3cret", base_url=base_url, transport=httpx.MockTransport(self))

    def paths(self) -> list[str]:
        return [r.url.path for r in self.requests]

    def requests_to(self, path: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path == path]


def version_row(version_id: str, title: str, caption: str | None = None) -> dict[str, Any]:
    return {"id": version_id, "caption": caption or title, "version": {"title": title}}


def version_record(version_id: str, title: str, **fields: Any) -> dict[str, Any]:
    record = {
        "id": version_id,
        "version": title,
        "caption": title,
        "description": "existing description",
        "displayVersion": title,
        "promotionLevel": "pl-dev",
        "releaseDate": None,
        "releaseNotesUrl": None,
        "releaseType": "rt-minor",
        "serverOnlyField": "keep-me",
    }
    record.update(fields)
    return {"version": record, "lists": LISTS}


def issue_json(issue_id: str, title: str, status: str = "New") -> dict[str, Any]:
    return {
        "id": issue_id,
        "caption": {"title": title, "url": f"Issues/{issue_id}", "status": status},
        "status": status,
        "addedBy": {"title": "Jane Tester", "email": {"address": "jane@example.com", "hash": "abc"}},
        "addedOn": "2024-03-01T10:00:00",
        "occurrences": 3,
    }


@pytest.fixture
def fake_loupe() -> FakeLoupe:
    """A Loupe server with only the auth endpoint configured."""
    return FakeLoupe()
