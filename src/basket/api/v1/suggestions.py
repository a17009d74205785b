"""Merge suggestion endpoints."""

from uuid import UUID

from fastapi import APIRouter, Depends, status

from basket.api.deps import get_grouping_service
from basket.grouping.suggestions import canonical_key
from basket.schemas.grouping import (
    AcceptSuggestionRequest,
    ApplySuggestionsRequest,
    BulkResultResponse,
    IgnoredSuggestionListResult,
    IgnoredSuggestionResponse,
    RejectSuggestionRequest,
    RejectSuggestionResult,
    SuggestionListResult,
    SuggestionResponse,
)
from basket.services.grouping import GroupingService, SuggestionRequest

router = APIRouter(prefix="/suggestions", tags=["suggestions"])


@router.get(
    "",
    response_model=SuggestionListResult,
    summary="Generate merge suggestions",
    description="""
    Clusters the account's unmapped products by name similarity.

    Rejected member sets are never returned. When a newer request for the
    same account starts before this one finishes, this response is empty
    with `stale=true`.
    """,
)
async def list_suggestions(
    service: GroupingService = Depends(get_grouping_service),
) -> SuggestionListResult:
    run = await service.generate_suggestions()
    if run is None:
        return SuggestionListResult(suggestions=[], stale=True)
    return SuggestionListResult(
        suggestions=[SuggestionResponse.model_validate(s) for s in run.suggestions],
        considered=run.considered,
    )


@router.post("/accept", response_model=BulkResultResponse, summary="Accept a suggestion")
async def accept_suggestion(
    payload: AcceptSuggestionRequest,
    service: GroupingService = Depends(get_grouping_service),
) -> BulkResultResponse:
    result = await service.accept_suggestion(
        payload.members, payload.group_name, payload.category
    )
    return BulkResultResponse.model_validate(result)


@router.post("/apply", response_model=BulkResultResponse, summary="Accept several suggestions")
async def apply_suggestions(
    payload: ApplySuggestionsRequest,
    service: GroupingService = Depends(get_grouping_service),
) -> BulkResultResponse:
    result = await service.apply_suggestions(
        SuggestionRequest(members=s.members, group_name=s.group_name, category=s.category)
        for s in payload.suggestions
    )
    return BulkResultResponse.model_validate(result)


@router.post("/reject", response_model=RejectSuggestionResult, summary="Reject a suggestion")
async def reject_suggestion(
    payload: RejectSuggestionRequest,
    service: GroupingService = Depends(get_grouping_service),
) -> RejectSuggestionResult:
    _, created = await service.reject_suggestion(payload.members)
    return RejectSuggestionResult(products=list(canonical_key(payload.members)), created=created)


@router.get(
    "/ignored",
    response_model=IgnoredSuggestionListResult,
    summary="List rejected suggestions",
)
async def list_ignored(
    service: GroupingService = Depends(get_grouping_service),
) -> IgnoredSuggestionListResult:
    rows = await service.list_ignored()
    return IgnoredSuggestionListResult(
        ignored=[IgnoredSuggestionResponse.model_validate(row) for row in rows],
        total=len(rows),
    )


@router.delete(
    "/ignored/{ignored_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Un-ignore a suggestion",
    responses={404: {"description": "Ignored suggestion not found"}},
)
async def remove_ignored(
    ignored_id: UUID,
    service: GroupingService = Depends(get_grouping_service),
) -> None:
    await service.remove_ignored(ignored_id)
