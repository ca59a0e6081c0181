"""Table API routes."""

import logging
from typing import Any

from fastapi import APIRouter, HTTPException, Request, status

from packages.core.errors import CompileError, MetadataLookupError

from app.core.dependencies import TableQueryServiceDep, TenantDep
from app.services.tables.execution import QueryExecutionError

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/{table}")
def query_table(
    table: str,
    request: Request,
    tenant: TenantDep,
    service: TableQueryServiceDep,
) -> list[dict[str, Any]]:
    """
    Read rows of a table, with embeds, filters, ordering and paging.

    Declared sync so FastAPI runs it in the threadpool: metadata lookups
    and execution block on the request's connection.

    Args:
        table: Root table name.
        request: Incoming request; its query string is compiled as-is.
        tenant: Tenant header value.
        service: Table query service.

    Returns:
        JSON array of row objects.

    Raises:
        HTTPException 400: Missing tenant or a request that cannot be compiled.
        HTTPException 503: Schema metadata unavailable.
        HTTPException 500: The database rejected the statement.
    """
    if tenant is None or not tenant.strip():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Missing tenant header",
        )

    try:
        result = service.query(table, request.query_params.multi_items(), tenant)
    except MetadataLookupError as e:
        logger.error(f"Metadata lookup failed for '{table}': {e}")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(e),
        ) from e
    except CompileError as e:
        logger.warning(f"Rejected request for '{table}': {e}")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e),
        ) from e
    except QueryExecutionError as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=str(e),
        ) from e

    return result.rows
