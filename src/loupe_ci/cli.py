"""CLI interface for loupe-ci."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Coroutine
from pathlib import Path
from typing import Annotated, Any, TypeVar

import httpx
import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from loupe_ci import __version__
from loupe_ci import suggestions
from loupe_ci.client.rest_client import LoupeClientError, LoupeRestClient
from loupe_ci.config import Config, ConfigError, LoupeCredentials
from loupe_ci.operations import EnsureApplicationVersionOperation, LoupeIssueSource

T = TypeVar("T")

app = typer.Typer(
    name="loupe-ci",
    help="Manage Loupe application versions and issues from release pipelines.",
    no_args_is_help=True,
)
console = Console()
err_console = Console(stderr=True)

ConfigOption = Annotated[
    Path | None,
    typer.Option("--config", "-c", help="Path to config file (default: .loupe/config.yaml)"),
]
CredentialsOption = Annotated[
    str | None,
    typer.Option("--credentials", help="Named credentials from the config file"),
]
BaseUrlOption = Annotated[str | None, typer.Option("--base-url", help="Loupe API base URL")]
TenantOption = Annotated[str | None, typer.Option("--tenant", "-t", help="Tenant name (empty for single tenant)")]
UserOption = Annotated[str | None, typer.Option("--user", "-u", help="Loupe user name")]
PasswordOption = Annotated[
    str | None,
    typer.Option("--password", envvar="LOUPE_PASSWORD", help="Loupe password", show_envvar=True),
]
VerboseOption = Annotated[bool, typer.Option("--verbose", "-v", help="Show debug logging")]
ProductOption = Annotated[str, typer.Option("--product", "-p", help="Loupe product name")]
ApplicationOption = Annotated[str, typer.Option("--application", "-a", help="Loupe application name")]


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=err_console, show_path=False)],
        force=True,
    )
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)


def _load(
    config_path: Path | None,
    credentials_name: str | None,
    base_url: str | None,
    tenant: str | None,
    user: str | None,
    password: str | None,
) -> tuple[Config, LoupeCredentials]:
    config = Config.load(config_path)
    try:
        credentials = config.get_credentials(credentials_name)
    except ConfigError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1) from e

    credentials = credentials.with_overrides(base_url=base_url, tenant=tenant, user_name=user, password=password)
    return config, credentials


def _create_client(credentials: LoupeCredentials, config: Config) -> LoupeRestClient:
    try:
        return credentials.create_client(timeout=config.timeout)
    except ConfigError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1) from e


def _run(coro: Coroutine[Any, Any, T]) -> T:
    """Run a coroutine, turning client errors into a red message and exit code 1."""
    try:
        return asyncio.run(coro)
    except (ConfigError, LoupeClientError) as e:
        message = getattr(e, "full_message", str(e))
        console.print(f"[red]Error: {message}[/red]")
        raise typer.Exit(1) from e
    except httpx.HTTPError as e:
        console.print(f"[red]Error communicating with Loupe: {e}[/red]")
        raise typer.Exit(1) from e


def _print_names(names: list[str], kind: str) -> None:
    if not names:
        console.print(f"[yellow]No {kind} found.[/yellow]")
        return
    for name in names:
        console.print(name)


@app.command("ensure-version")
def ensure_version(
    product: ProductOption,
    application: ApplicationOption,
    version: Annotated[str, typer.Option("--version", help="Application version, e.g. 1.2.3")],
    caption: Annotated[str | None, typer.Option("--caption", help="Version caption")] = None,
    description: Annotated[str | None, typer.Option("--description", help="Version description")] = None,
    promotion_level: Annotated[str | None, typer.Option("--promotion-level", help="Promotion level caption")] = None,
    release_notes_url: Annotated[str | None, typer.Option("--release-notes-url", help="Release notes URL")] = None,
    release_date: Annotated[str | None, typer.Option("--release-date", help="Release date (YYYY-MM-DD)")] = None,
    release_type: Annotated[
        str | None,
        typer.Option("--release-type", help="Release type caption (required when the version is created)"),
    ] = None,
    config_path: ConfigOption = None,
    credentials_name: CredentialsOption = None,
    base_url: BaseUrlOption = None,
    tenant: TenantOption = None,
    user: UserOption = None,
    password: PasswordOption = None,
    verbose: VerboseOption = False,
) -> None:
    """Ensure an application version exists and has the given properties."""
    _configure_logging(verbose)
    config, credentials = _load(config_path, credentials_name, base_url, tenant, user, password)

    operation = EnsureApplicationVersionOperation(
        credentials=credentials,
        product=product,
        application=application,
        version=version,
        caption=caption,
        description=description,
        promotion_level=promotion_level,
        release_notes_url=release_notes_url,
        release_date=release_date,
        release_type=release_type,
    )
    console.print(f"[bold]{operation.describe()}[/bold] [dim]({credentials.describe()})[/dim]")

    result = _run(operation.execute(_create_client(operation.resolve_credentials(), config)))
    if not result.success:
        console.print(f"[red]{result.message}[/red]")
        raise typer.Exit(1)
    console.print(f"[green]{result.message}[/green]")


@app.command()
def issues(
    product: ProductOption,
    application: ApplicationOption,
    version: Annotated[str, typer.Option("--version", help="Application version; may contain * wildcards")],
    output_json: Annotated[bool, typer.Option("--json", help="Output issues as JSON")] = False,
    config_path: ConfigOption = None,
    credentials_name: CredentialsOption = None,
    base_url: BaseUrlOption = None,
    tenant: TenantOption = None,
    user: UserOption = None,
    password: PasswordOption = None,
    verbose: VerboseOption = False,
) -> None:
    """List the issues of an application version (or of all matching versions)."""
    _configure_logging(verbose)
    config, credentials = _load(config_path, credentials_name, base_url, tenant, user, password)

    source = LoupeIssueSource(credentials=credentials, product=product, application=application, version=version)
    found = _run(source.enumerate_issues(_create_client(source.resolve_credentials(), config)))

    if output_json:
        data = [
            {
                "id": i.id,
                "title": i.title,
                "status": i.status,
                "submitter": i.submitter,
                "submitted_date": i.submitted_date.isoformat() if i.submitted_date else None,
                "url": i.url,
                "closed": i.is_closed,
                "version": i.version,
            }
            for i in found
        ]
        console.print_json(json.dumps(data))
        return

    if not found:
        console.print("[yellow]No issues found.[/yellow]")
        return

    table = Table(show_header=True, header_style="bold", box=None, padding=(0, 2))
    table.add_column("Version", style="cyan")
    table.add_column("Title")
    table.add_column("Status")
    table.add_column("Submitter")
    table.add_column("URL", style="dim")

    for issue in found:
        status_style = "dim" if issue.is_closed else "yellow"
        status = issue.status or ("closed" if issue.is_closed else "open")
        table.add_row(
            issue.version,
            issue.title[:59] + "..." if len(issue.title) > 60 else issue.title,
            f"[{status_style}]{status}[/{status_style}]",
            issue.submitter or "-",
            issue.url,
        )

    console.print(table)
    console.print(f"[dim]{len(found)} issue(s)[/dim]")


@app.command()
def tenants(
    config_path: ConfigOption = None,
    credentials_name: CredentialsOption = None,
    base_url: BaseUrlOption = None,
    user: UserOption = None,
    password: PasswordOption = None,
    verbose: VerboseOption = False,
) -> None:
    """List the tenants available to the user."""
    _configure_logging(verbose)
    config, credentials = _load(config_path, credentials_name, base_url, None, user, password)
    names = _run(suggestions.get_tenant_names(_create_client(credentials, config)))
    _print_names(names, "tenants")


@app.command()
def products(
    config_path: ConfigOption = None,
    credentials_name: CredentialsOption = None,
    base_url: BaseUrlOption = None,
    tenant: TenantOption = None,
    user: UserOption = None,
    password: PasswordOption = None,
    verbose: VerboseOption = False,
) -> None:
    """List product names."""
    _configure_logging(verbose)
    config, credentials = _load(config_path, credentials_name, base_url, tenant, user, password)
    client = _create_client(credentials, config)
    _print_names(_run(suggestions.get_product_names(client, credentials.tenant)), "products")


@app.command()
def applications(
    product: Annotated[str | None, typer.Option("--product", "-p", help="Only applications of this product")] = None,
    config_path: ConfigOption = None,
    credentials_name: CredentialsOption = None,
    base_url: BaseUrlOption = None,
    tenant: TenantOption = None,
    user: UserOption = None,
    password: PasswordOption = None,
    verbose: VerboseOption = False,
) -> None:
    """List application names."""
    _configure_logging(verbose)
    config, credentials = _load(config_path, credentials_name, base_url, tenant, user, password)
    client = _create_client(credentials, config)
    _print_names(_run(suggestions.get_application_names(client, credentials.tenant, product)), "applications")


@app.command("release-types")
def release_types(
    product: ProductOption,
    application: ApplicationOption,
    config_path: ConfigOption = None,
    credentials_name: CredentialsOption = None,
    base_url: BaseUrlOption = None,
    tenant: TenantOption = None,
    user: UserOption = None,
    password: PasswordOption = None,
    verbose: VerboseOption = False,
) -> None:
    """List release type captions for new versions."""
    _configure_logging(verbose)
    config, credentials = _load(config_path, credentials_name, base_url, tenant, user, password)
    client = _create_client(credentials, config)
    names = _run(suggestions.get_release_type_names(client, credentials.tenant, product, application))
    _print_names(names, "release types")


@app.command("promotion-levels")
def promotion_levels(
    product: ProductOption,
    application: ApplicationOption,
    config_path: ConfigOption = None,
    credentials_name: CredentialsOption = None,
    base_url: BaseUrlOption = None,
    tenant: TenantOption = None,
    user: UserOption = None,
    password: PasswordOption = None,
    verbose: VerboseOption = False,
) -> None:
    """List promotion level captions for new versions."""
    _configure_logging(verbose)
    config, credentials = _load(config_path, credentials_name, base_url, tenant, user, password)
    client = _create_client(credentials, config)
    names = _run(suggestions.get_promotion_level_names(client, credentials.tenant, product, application))
    _print_names(names, "promotion levels")


@app.command()
def version() -> None:
    """Show the loupe-ci version."""
    console.print(f"loupe-ci {__version__}")


if __name__ == "__main__":
    app()
