"""
Dynamic table endpoints.

Thin layer: translates the request shapes into TableExecutor calls and the
results into {"success": true, ...} bodies.
"""

from typing import Any

from fastapi import APIRouter, Body, Depends, Query, Request, status
from fastapi.responses import Response

from shared.config.constants import MUTATION_ROLES
from shared.security.auth import Principal, RequireRole, reader_principal
from shared.utils.schemas import DeleteRequest, SearchCriteria, UpdateRequest

from registro_api.core.state import AppState, audit_context_for, get_app_state, get_executor
from registro_api.services.crud import TableExecutor
from registro_api.services.export import export_csv

router = APIRouter(prefix="/api/tables", tags=["tables"])

require_editor = RequireRole(*sorted(MUTATION_ROLES))


@router.get("")
def list_tables(
    executor: TableExecutor = Depends(get_executor),
    principal: Principal | None = Depends(reader_principal),
) -> dict[str, Any]:
    """Dynamic tables known to the catalog."""
    names = executor.table_names()
    return {"success": True, "data": names, "total": len(names)}


@router.get("/{table_name}/schema")
def get_table_schema(
    table_name: str,
    executor: TableExecutor = Depends(get_executor),
    principal: Principal | None = Depends(reader_principal),
) -> dict[str, Any]:
    return {"success": True, "data": executor.describe(table_name)}


@router.get("/{table_name}/fields")
def get_table_fields(
    table_name: str,
    executor: TableExecutor = Depends(get_executor),
    principal: Principal | None = Depends(reader_principal),
) -> dict[str, Any]:
    return {"success": True, "data": executor.fields(table_name)}


@router.get("/{table_name}/read")
def read_records(
    table_name: str,
    enrich: bool = True,
    executor: TableExecutor = Depends(get_executor),
    principal: Principal | None = Depends(reader_principal),
) -> dict[str, Any]:
    """All records ordered by primary key."""
    result = executor.read(table_name, enrich=enrich)
    return {
        "success": True,
        "data": result.rows,
        "total": result.total,
        "primaryKey": result.primary_key,
        "tableName": result.table_name,
    }


@router.get("/{table_name}/search")
def search_records(
    table_name: str,
    search_field: str | None = Query(default=None, alias="searchField"),
    search_text: str | None = Query(default=None, alias="searchText"),
    date_from: str | None = Query(default=None, alias="dateFrom"),
    date_to: str | None = Query(default=None, alias="dateTo"),
    enrich: bool = True,
    executor: TableExecutor = Depends(get_executor),
    principal: Principal | None = Depends(reader_principal),
) -> dict[str, Any]:
    """
    Records matching one condition.

    - searchField + searchText: type-aware match on the field (searchText
      is trimmed and limited to 200 characters; longer text is a 400)
    - searchField + dateFrom/dateTo: inclusive date range on the field
    """
    result = executor.search(
        table_name,
        search_field,
        text=search_text,
        date_from=date_from,
        date_to=date_to,
        enrich=enrich,
    )
    return {
        "success": True,
        "data": result.rows,
        "total": result.total,
        "searchText": search_text or None,
        "searchField": search_field or None,
        "dateFrom": date_from or None,
        "dateTo": date_to or None,
        "mode": result.condition.mode.value if result.condition else None,
        "primaryKey": result.primary_key,
    }


@router.post("/{table_name}/create", status_code=status.HTTP_201_CREATED)
def create_record(
    table_name: str,
    request: Request,
    payload: dict[str, Any] = Body(...),
    executor: TableExecutor = Depends(get_executor),
    principal: Principal = Depends(require_editor),
) -> dict[str, Any]:
    result = executor.create(table_name, payload, audit_context_for(request, principal))
    return {
        "success": True,
        "message": "Registro creado exitosamente",
        "primaryKey": result.primary_key_value,
        "data": result.record,
    }


@router.put("/{table_name}/update")
def update_record(
    table_name: str,
    body: UpdateRequest,
    request: Request,
    executor: TableExecutor = Depends(get_executor),
    principal: Principal = Depends(require_editor),
) -> dict[str, Any]:
    criteria = body.search_criteria or SearchCriteria()
    result = executor.update(
        table_name,
        criteria.field,
        criteria.value,
        body.update_data,
        audit_context_for(request, principal),
    )
    return {
        "success": True,
        "message": "Registro actualizado correctamente",
        "primaryKey": result.primary_key_value,
        "data": result.record,
    }


@router.delete("/{table_name}/delete")
def delete_record(
    table_name: str,
    body: DeleteRequest,
    request: Request,
    executor: TableExecutor = Depends(get_executor),
    principal: Principal = Depends(require_editor),
) -> dict[str, Any]:
    criteria = body.search_criteria or SearchCriteria()
    result = executor.delete(
        table_name,
        criteria.field,
        criteria.value,
        audit_context_for(request, principal),
    )
    return {
        "success": True,
        "message": "Registro eliminado exitosamente",
        "primaryKey": result.primary_key_value,
        "deletedRecord": result.record,
    }


@router.get("/{table_name}/export")
def export_records(
    table_name: str,
    enrich: bool = True,
    executor: TableExecutor = Depends(get_executor),
    state: AppState = Depends(get_app_state),
    principal: Principal | None = Depends(reader_principal),
) -> Response:
    """Every record as semicolon-delimited CSV."""
    result = executor.read(table_name, enrich=enrich)
    content = export_csv(
        executor.schema(table_name),
        result.rows,
        leading=state.settings.export_leading_column,
    )
    return Response(
        content=content.encode("utf-8"),
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{table_name}.csv"'},
    )
