"""FastAPI dependencies for tenancy and services."""

from typing import Annotated

from fastapi import Depends, Request

from app.core.config import get_settings
from app.services.tables.service import TableQueryService, get_table_query_service


def get_tenant(request: Request) -> str | None:
    """
    Dependency returning the raw tenant header value.

    The header name is configurable, so it is read from the request rather
    than declared as a fixed `Header` parameter. Validation happens in the
    service, right before the value becomes a schema name.
    """
    return request.headers.get(get_settings().tenant_header)


# Type aliases for convenience
TenantDep = Annotated[str | None, Depends(get_tenant)]
TableQueryServiceDep = Annotated[TableQueryService, Depends(get_table_query_service)]
