from fastapi import APIRouter, Depends

from ..schemas.company import IndexDivergenceOut
from ..services.registry import CompanyRegistry
from .guards import get_registry, verify_admin_token

router = APIRouter(tags=["admin"])


@router.get(
    "/admin/index-divergences",
    response_model=list[IndexDivergenceOut],
    dependencies=[Depends(verify_admin_token)],
)
async def list_index_divergences(
    limit: str | None = None,
    offset: str | None = None,
    registry: CompanyRegistry = Depends(get_registry),
):
    """
    Protected listing of index writes that failed after a primary commit.

    Newest first. These are the companies a re-index has to repair.
    """
    return await registry.list_divergences(limit=limit, offset=offset)
