"""Shared pieces of the Loupe pipeline operations."""

from __future__ import annotations

from collections.abc import Mapping
from string import Template

from pydantic import BaseModel, Field, SecretStr

from loupe_ci.client.rest_client import DEFAULT_TIMEOUT, LoupeRestClient
from loupe_ci.config import LoupeCredentials

RELEASE_NUMBER_VARIABLE = "$ReleaseNumber"
RELEASE_NAME_VARIABLE = "$ReleaseName"


def expand_variables(value: str | None, variables: Mapping[str, str]) -> str | None:
    """Replace ``$Name`` pipeline variables; unknown variables are left as-is."""
    if value is None:
        return None
    return Template(value).safe_substitute(variables)


class LoupeConnection(BaseModel):
    """Credentials plus per-operation connection overrides.

    Any override that is set wins over the matching credential field.
    """

    credentials: LoupeCredentials = Field(default_factory=LoupeCredentials)
    base_url: str | None = Field(default=None, description="API base URL (default from credentials)")
    tenant: str | None = Field(default=None, description="Tenant name (default from credentials)")
    user_name: str | None = Field(default=None, description="User name (default from credentials)")
    password: SecretStr | None = Field(default=None, description="Password (default from credentials)")

    def resolve_credentials(self) -> LoupeCredentials:
        return self.credentials.with_overrides(
            base_url=self.base_url,
            tenant=self.tenant,
            user_name=self.user_name,
            password=self.password,
        )

    def resolved_tenant(self) -> str | None:
        return self.resolve_credentials().tenant or None

    def create_client(self, timeout: float = DEFAULT_TIMEOUT) -> LoupeRestClient:
        return self.resolve_credentials().create_client(timeout=timeout)
