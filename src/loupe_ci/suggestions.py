"""Name lookups for interactive value suggestions.

Each helper takes a client that is not yet opened, queries Loupe and
flattens the result to a sorted list of strings.
"""

from __future__ import annotations

from loupe_ci.client.rest_client import LoupeRestClient


async def get_tenant_names(client: LoupeRestClient) -> list[str]:
    async with client:
        tenants = await client.get_tenants()
    return sorted(t.tenant_name for t in tenants.tenants)


async def get_product_names(client: LoupeRestClient, tenant: str | None) -> list[str]:
    async with client:
        applications = await client.get_applications(tenant or None)
    return sorted({a.product_name for a in applications.data})


async def get_application_names(
    client: LoupeRestClient,
    tenant: str | None,
    product: str | None = None,
) -> list[str]:
    """Application names, limited to one product (case-insensitive) when given."""
    async with client:
        applications = await client.get_applications(tenant or None)

    wanted = product.casefold() if product else None
    return sorted(
        {a.application_name for a in applications.data if wanted is None or a.product_name.casefold() == wanted}
    )


async def get_release_type_names(
    client: LoupeRestClient,
    tenant: str | None,
    product: str | None,
    application: str | None,
) -> list[str]:
    """Release type captions; empty until tenant, product and application are known."""
    if not tenant or not product or not application:
        return []
    async with client:
        return await client.get_release_types(tenant, product, application)


async def get_promotion_level_names(
    client: LoupeRestClient,
    tenant: str | None,
    product: str | None,
    application: str | None,
) -> list[str]:
    """Promotion level captions; empty until tenant, product and application are known."""
    if not tenant or not product or not application:
        return []
    async with client:
        return await client.get_promotion_levels(tenant, product, application)
