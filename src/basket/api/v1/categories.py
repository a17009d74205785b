"""Category taxonomy and cleanup endpoints."""

from typing import Annotated, Literal

from fastapi import APIRouter, Depends, Query

from basket.api.deps import get_grouping_service
from basket.grouping.categories import CATEGORY_LABELS
from basket.schemas.grouping import CategoryCleanupResponse, CategoryResponse
from basket.services.grouping import GroupingService

router = APIRouter(prefix="/categories", tags=["categories"])


@router.get("", response_model=list[CategoryResponse], summary="List categories")
async def list_categories() -> list[CategoryResponse]:
    return [CategoryResponse(key=key, label=label) for key, label in CATEGORY_LABELS.items()]


@router.post(
    "/cleanup",
    response_model=CategoryCleanupResponse,
    summary="Scan or repair invalid categories",
    description="""
    `scan` counts the account's personal mappings whose category is outside
    the taxonomy and returns a few examples. `fix` also rewrites them:
    comma lists keep their first valid entry, legacy English names are
    translated, anything else becomes `other`.
    """,
)
async def cleanup_categories(
    action: Annotated[Literal["scan", "fix"], Query(description="scan or fix")] = "scan",
    service: GroupingService = Depends(get_grouping_service),
) -> CategoryCleanupResponse:
    result = await service.cleanup_categories(action)
    return CategoryCleanupResponse.model_validate(result)
