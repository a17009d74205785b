"""Product views: ungrouped worklist and spending breakdown."""

from fastapi import APIRouter, Depends

from basket.api.deps import get_grouping_service
from basket.config import settings
from basket.schemas.grouping import (
    CategoryBreakdownResult,
    CategorySpendResponse,
    MoneyMeta,
    UngroupedListResult,
    UngroupedProductResponse,
)
from basket.services.grouping import GroupingService

router = APIRouter(prefix="/products", tags=["products"])


@router.get(
    "/ungrouped",
    response_model=UngroupedListResult,
    summary="List ungrouped products",
    description="""
    Products never mapped (`origin=unmapped`) followed by products explicitly
    removed from a group (`origin=detached`).
    """,
)
async def list_ungrouped(
    service: GroupingService = Depends(get_grouping_service),
) -> UngroupedListResult:
    products = await service.list_ungrouped()
    return UngroupedListResult(
        products=[UngroupedProductResponse.model_validate(p) for p in products],
        total=len(products),
    )


@router.get(
    "/breakdown",
    response_model=CategoryBreakdownResult,
    summary="Spending per category and product",
    description="""
    Purchase lines folded by normalized product name. A mapped product uses
    its group name and category.
    """,
)
async def category_breakdown(
    service: GroupingService = Depends(get_grouping_service),
) -> CategoryBreakdownResult:
    categories = await service.category_breakdown()
    return CategoryBreakdownResult(
        categories=[CategorySpendResponse.model_validate(c) for c in categories],
        money=MoneyMeta(currency=settings.currency, minor_unit=settings.currency_minor_unit),
    )
