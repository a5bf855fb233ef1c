"""Configuration management for loupe-ci."""

from __future__ import annotations

import os
from pathlib import Path

import yaml
from pydantic import BaseModel, Field, SecretStr

from loupe_ci.client.rest_client import DEFAULT_BASE_URL, DEFAULT_TIMEOUT, LoupeRestClient

DEFAULT_CONFIG_PATH = Path(".loupe/config.yaml")
DEFAULT_CREDENTIALS_NAME = "default"


class ConfigError(Exception):
    """Configuration is missing or invalid."""


class LoupeCredentials(BaseModel):
    """Connection settings for a Loupe server.

    Hosted Loupe always needs a tenant (customer name). Self-hosted
    installations are usually single tenant, in which case the tenant is
    left empty.
    """

    base_url: str | None = Field(default=None, description=f"API base URL (default: {DEFAULT_BASE_URL})")
    tenant: str | None = Field(default=None, description="Tenant name; empty for single tenant installs")
    user_name: str | None = Field(default=None, description="Loupe user name")
    password: SecretStr | None = Field(default=None, description="Loupe password")

    def describe(self) -> str:
        """One-line description of these credentials (never includes the password)."""
        description = self.user_name or "(no user)"
        if self.tenant:
            description += f" ({self.tenant})"
        return description

    def with_overrides(
        self,
        base_url: str | None = None,
        tenant: str | None = None,
        user_name: str | None = None,
        password: str | SecretStr | None = None,
    ) -> LoupeCredentials:
        """Return a copy where every non-empty argument replaces the stored value."""
        update: dict[str, object] = {}
        if base_url:
            update["base_url"] = base_url
        if tenant:
            update["tenant"] = tenant
        if user_name:
            update["user_name"] = user_name
        if password:
            update["password"] = password if isinstance(password, SecretStr) else SecretStr(password)
        return self.model_copy(update=update)

    def with_environment(self) -> LoupeCredentials:
        """Fill unset values from LOUPE_* environment variables."""
        return LoupeCredentials(
            base_url=self.base_url or os.getenv("LOUPE_BASE_URL"),
            tenant=self.tenant or os.getenv("LOUPE_TENANT"),
            user_name=self.user_name or os.getenv("LOUPE_USER_NAME"),
            password=self.password or _secret_from_env("LOUPE_PASSWORD"),
        )

    def create_client(self, timeout: float = DEFAULT_TIMEOUT) -> LoupeRestClient:
        """Create a client for these credentials.

        Raises:
            ConfigError: If the user name or password is missing.
        """
        if not self.user_name:
            raise ConfigError("No Loupe user name configured. Set LOUPE_USER_NAME or add user_name to the credentials.")
        if self.password is None:
            raise ConfigError("No Loupe password configured. Set LOUPE_PASSWORD or add password to the credentials.")
        return LoupeRestClient(self.user_name, self.password, base_url=self.base_url, timeout=timeout)


def _secret_from_env(name: str) -> SecretStr | None:
    value = os.getenv(name)
    return SecretStr(value) if value else None


class Config(BaseModel):
    """loupe-ci configuration.

    Credentials are stored by name, so one file can describe several Loupe
    servers or accounts:

        credentials:
          default:
            tenant: Acme
            user_name: builder
    """

    timeout: float = Field(default=DEFAULT_TIMEOUT, description="HTTP request timeout in seconds")
    credentials: dict[str, LoupeCredentials] = Field(default_factory=dict)

    @classmethod
    def load(cls, config_path: Path | None = None) -> Config:
        """Load configuration from file or use defaults."""
        if config_path is None:
            config_path = DEFAULT_CONFIG_PATH

        if config_path.exists():
            with config_path.open() as f:
                data = yaml.safe_load(f) or {}
            return cls.model_validate(data)

        return cls()

    def save(self, config_path: Path) -> None:
        """Save configuration to file (passwords are not written)."""
        config_path.parent.mkdir(parents=True, exist_ok=True)
        data = self.model_dump(mode="json", exclude={"credentials"})
        data["credentials"] = {
            name: credentials.model_dump(mode="json", exclude={"password"}) for name, credentials in self.credentials.items()
        }
        with config_path.open("w") as f:
            yaml.dump(data, f, default_flow_style=False)

    def get_credentials(self, name: str | None = None) -> LoupeCredentials:
        """Resolve named credentials, filling gaps from the environment.

        Raises:
            ConfigError: If a name is given that is not configured.
        """
        if name:
            if name not in self.credentials:
                raise ConfigError(f"Credentials '{name}' not found. Available: {sorted(self.credentials)}")
            credentials = self.credentials[name]
        else:
            credentials = self.credentials.get(DEFAULT_CREDENTIALS_NAME, LoupeCredentials())

        return credentials.with_environment()
