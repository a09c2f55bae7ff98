"""Kitchen sales endpoints.

Handles sales imports (JSON rows or raw CSV text), location mappings and the
franchise code backfill.
"""

import json
from typing import Any, Dict, List

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field

from api.dependencies import get_repository, get_sales_importer
from core.errors import ValidationError
from kitchen_sales.csv_parser import parse_sales_csv
from kitchen_sales.importer import SalesImporter
from models.canonical import KitchenMapping
from models.refs import ImportResult
from reconciliation.repository import SheetRepository


router = APIRouter()


class MappingRequest(BaseModel):
    """Request to add a Kitchen_Mapping row."""
    location: str = Field(..., description="Location exactly as it appears in sales exports")
    franchise_code: str = ""
    franchise_name: str = ""
    active: bool = True
    notes: str = ""


class RefreshResponse(BaseModel):
    updated: int


async def _read_rows(request: Request) -> List[Any]:
    body = await request.body()
    content_type = request.headers.get("content-type", "")
    if "text/csv" in content_type or "text/plain" in content_type:
        return parse_sales_csv(body.decode("utf-8-sig"))

    try:
        payload = json.loads(body or b"null")
    except ValueError:
        raise ValidationError("Request body must be a JSON array of rows or CSV text", field="body")
    if isinstance(payload, dict):
        if isinstance(payload.get("csv"), str):
            return parse_sales_csv(payload["csv"])
        payload = payload.get("rows")
    if not isinstance(payload, list) or not all(isinstance(r, dict) for r in payload):
        raise ValidationError("Request body must be a JSON array of rows or CSV text", field="body")
    return payload


@router.post("/import", response_model=ImportResult)
async def import_sales(
    request: Request,
    importer: SalesImporter = Depends(get_sales_importer),
) -> ImportResult:
    """Import sales rows. Re-posting the same rows imports nothing new."""
    rows = await _read_rows(request)
    return await importer.import_sales_rows(rows)


@router.get("/mappings", response_model=List[KitchenMapping])
async def list_mappings(repo: SheetRepository = Depends(get_repository)) -> List[KitchenMapping]:
    return await repo.list_kitchen_mappings()


@router.post("/mappings")
async def add_mapping(
    request: MappingRequest,
    importer: SalesImporter = Depends(get_sales_importer),
) -> Dict[str, Any]:
    return await importer.add_kitchen_mapping(
        request.location,
        franchise_code=request.franchise_code,
        franchise_name=request.franchise_name,
        active=request.active,
        notes=request.notes,
    )


@router.post("/refresh-franchise-codes", response_model=RefreshResponse)
async def refresh_franchise_codes(
    importer: SalesImporter = Depends(get_sales_importer),
) -> RefreshResponse:
    """Backfill franchise codes on existing sales rows from the current mappings."""
    return RefreshResponse(updated=await importer.refresh_franchise_codes())
