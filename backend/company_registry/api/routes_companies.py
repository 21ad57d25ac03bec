from typing import Any
import logging

from fastapi import APIRouter, Depends, Query, Request

from ..schemas.company import (
    CompanyCreatedOut,
    CompanyOut,
    CompanyRemovedOut,
    CompanyUpdateOut,
)
from ..services.registry import CompanyRegistry
from .guards import get_registry, require_admin_json, require_json, verify_admin_token

router = APIRouter(tags=["companies"])

logger = logging.getLogger(__name__)


async def _read_json(request: Request) -> Any:
    """Parsed JSON body, or None when the body is not valid JSON."""
    try:
        return await request.json()
    except ValueError:
        return None


@router.get("/companies", response_model=list[CompanyOut])
async def list_companies(
    page: str | None = None,
    max_entries: str | None = Query(default=None, alias="max"),
    registry: CompanyRegistry = Depends(get_registry),
):
    """
    Registered companies sorted by title, served from the search index.

    - ``page`` is the offset of the first entry, ``max`` the page size.
    - Malformed values fall back to the defaults instead of failing.
    """
    return await registry.list(page=page, max_entries=max_entries)


# Declared before /companies/{company_id} so "search" is never taken for an id
@router.post(
    "/companies/search",
    response_model=list[CompanyOut],
    dependencies=[Depends(require_json)],
)
async def search_companies(
    request: Request,
    registry: CompanyRegistry = Depends(get_registry),
):
    payload = await _read_json(request)
    return await registry.search(payload)


@router.get("/companies/{company_id}", response_model=CompanyOut)
async def get_company(
    company_id: str,
    registry: CompanyRegistry = Depends(get_registry),
):
    return await registry.fetch_one(company_id)


@router.post(
    "/companies",
    response_model=CompanyCreatedOut,
    status_code=201,
    dependencies=[Depends(require_admin_json)],
)
async def register_company(
    request: Request,
    registry: CompanyRegistry = Depends(get_registry),
):
    payload = await _read_json(request)
    created = await registry.register(payload)
    logger.info(
        "Register request completed",
        extra={"company_id": created.id, "operation": "register", "step": "response"},
    )
    return created


@router.post(
    "/companies/{company_id}",
    response_model=CompanyUpdateOut,
    dependencies=[Depends(require_admin_json)],
)
async def update_company(
    company_id: str,
    request: Request,
    registry: CompanyRegistry = Depends(get_registry),
):
    payload = await _read_json(request)
    return await registry.update(company_id, payload)


@router.delete(
    "/companies/{company_id}",
    response_model=CompanyRemovedOut,
    dependencies=[Depends(verify_admin_token)],
)
async def remove_company(
    company_id: str,
    registry: CompanyRegistry = Depends(get_registry),
):
    return await registry.remove(company_id)
