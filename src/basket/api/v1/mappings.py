"""Effective mapping rule endpoints."""

from uuid import UUID

from fastapi import APIRouter, Depends, status

from basket.api.deps import get_grouping_service
from basket.schemas.grouping import (
    BulkDeleteRequest,
    BulkResultResponse,
    MappingListResult,
    MappingResponse,
)
from basket.services.grouping import GroupingService

router = APIRouter(prefix="/mappings", tags=["mappings"])


@router.get(
    "",
    response_model=MappingListResult,
    summary="List effective mappings",
    description="""
    Every mapping rule visible to the account after precedence merging.

    Personal rules shadow Global rules with the same original name. Global
    rules carry the account's category override when one is active.
    """,
)
async def list_mappings(
    service: GroupingService = Depends(get_grouping_service),
) -> MappingListResult:
    rules = await service.list_mappings()
    return MappingListResult(
        mappings=[MappingResponse.model_validate(rule) for rule in rules],
        total=len(rules),
    )


@router.delete(
    "/{mapping_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Forget a personal mapping",
    responses={
        403: {"description": "Global mappings cannot be deleted"},
        404: {"description": "Mapping not found"},
    },
)
async def forget_mapping(
    mapping_id: UUID,
    service: GroupingService = Depends(get_grouping_service),
) -> None:
    await service.forget_mapping(mapping_id)


@router.post(
    "/bulk-delete",
    response_model=BulkResultResponse,
    summary="Forget several personal mappings",
)
async def bulk_forget(
    payload: BulkDeleteRequest,
    service: GroupingService = Depends(get_grouping_service),
) -> BulkResultResponse:
    result = await service.bulk_forget(payload.ids)
    return BulkResultResponse.model_validate(result)
