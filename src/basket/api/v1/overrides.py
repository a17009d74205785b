"""Per-account category overrides of Global mappings."""

from uuid import UUID

from fastapi import APIRouter, Depends, status

from basket.api.deps import get_grouping_service
from basket.schemas.grouping import OverrideRequest, OverrideResponse
from basket.services.grouping import GroupingService

router = APIRouter(prefix="/overrides", tags=["overrides"])


@router.put(
    "/{global_mapping_id}",
    response_model=OverrideResponse,
    summary="Override the category of a Global mapping",
    description="""
    The override applies to the authenticated account only. The shared
    mapping is not changed.
    """,
    responses={
        400: {"description": "Invalid category"},
        404: {"description": "Global mapping not found"},
    },
)
async def set_override(
    global_mapping_id: UUID,
    payload: OverrideRequest,
    service: GroupingService = Depends(get_grouping_service),
) -> OverrideResponse:
    row = await service.set_override(global_mapping_id, payload.category)
    return OverrideResponse.model_validate(row)


@router.delete(
    "/{override_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Revert a category override",
    responses={404: {"description": "Override not found"}},
)
async def revert_override(
    override_id: UUID,
    service: GroupingService = Depends(get_grouping_service),
) -> None:
    await service.revert_override(override_id)
