"""Product group endpoints."""

from fastapi import APIRouter, Depends

from basket.api.deps import get_grouping_service
from basket.config import settings
from basket.schemas.grouping import (
    AssignRequest,
    BulkResultResponse,
    CreateGroupRequest,
    GroupListResult,
    GroupResponse,
    MergeGroupsRequest,
    MoneyMeta,
    MutationResultResponse,
    RemoveRequest,
    RenameGroupRequest,
    StandardizeCategoryRequest,
)
from basket.services.grouping import GroupingService

router = APIRouter(prefix="/groups", tags=["groups"])


@router.get(
    "",
    response_model=GroupListResult,
    summary="List product groups",
    description="""
    Groups derived from the account's effective mappings, with purchase
    count, total spend (minor units) and category signals per group.
    """,
)
async def list_groups(
    service: GroupingService = Depends(get_grouping_service),
) -> GroupListResult:
    groups = await service.list_groups()
    return GroupListResult(
        groups=[GroupResponse.model_validate(group) for group in groups],
        total=len(groups),
        money=MoneyMeta(currency=settings.currency, minor_unit=settings.currency_minor_unit),
    )


@router.post("", response_model=BulkResultResponse, summary="Create a group from products")
async def create_group(
    payload: CreateGroupRequest,
    service: GroupingService = Depends(get_grouping_service),
) -> BulkResultResponse:
    result = await service.create_group(payload.name, payload.products, payload.category)
    return BulkResultResponse.model_validate(result)


@router.post(
    "/rename",
    response_model=MutationResultResponse,
    summary="Rename a group",
    description="""
    Renames the personal and global halves of a group independently.

    The global half requires the `global:write` scope. When it is denied the
    personal half is still renamed and the response reports a partial result.
    """,
)
async def rename_group(
    payload: RenameGroupRequest,
    service: GroupingService = Depends(get_grouping_service),
) -> MutationResultResponse:
    result = await service.rename_group(payload.old_name, payload.new_name)
    return MutationResultResponse.model_validate(result)


@router.post(
    "/merge",
    response_model=MutationResultResponse,
    summary="Merge groups",
    responses={400: {"description": "A source group contains Global mappings"}},
)
async def merge_groups(
    payload: MergeGroupsRequest,
    service: GroupingService = Depends(get_grouping_service),
) -> MutationResultResponse:
    result = await service.merge_groups(payload.source_names, payload.target_name)
    return MutationResultResponse.model_validate(result)


@router.post(
    "/standardize-category",
    response_model=MutationResultResponse,
    summary="Set one category on every group member",
)
async def standardize_category(
    payload: StandardizeCategoryRequest,
    service: GroupingService = Depends(get_grouping_service),
) -> MutationResultResponse:
    result = await service.standardize_category(
        payload.group_name, payload.category, local_only=payload.local_only
    )
    return MutationResultResponse.model_validate(result)


@router.post("/assign", response_model=MutationResultResponse, summary="Assign a product to a group")
async def assign_to_group(
    payload: AssignRequest,
    service: GroupingService = Depends(get_grouping_service),
) -> MutationResultResponse:
    result = await service.assign_to_group(
        payload.original_name, payload.group_name, payload.category
    )
    return MutationResultResponse.model_validate(result)


@router.post(
    "/remove",
    response_model=MutationResultResponse,
    summary="Remove a product from its group",
    description="""
    Detaches the product for this account only. Global mappings are never
    changed; they are shadowed by a detached personal mapping instead.
    """,
)
async def remove_from_group(
    payload: RemoveRequest,
    service: GroupingService = Depends(get_grouping_service),
) -> MutationResultResponse:
    result = await service.remove_from_group(payload.original_name)
    return MutationResultResponse.model_validate(result)
