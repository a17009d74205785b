"""Pydantic schemas for product grouping API requests and responses."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from basket.grouping.resolver import GroupKind, MappingScope, UngroupedOrigin


class MoneyMeta(BaseModel):
    """Metadata describing how monetary amounts are represented."""

    currency: str = Field(description="ISO currency code (e.g., SEK)")
    minor_unit: int = Field(description="Number of decimal places for the currency")


# ---------------------------------------------------------------------------
# Mappings
# ---------------------------------------------------------------------------


class MappingResponse(BaseModel):
    """One effective mapping rule as seen by the account."""

    id: UUID
    scope: MappingScope
    original_name: str
    mapped_name: str = Field(description="Group name; empty when detached")
    category: str | None = Field(None, description="Effective category")
    stored_category: str | None = Field(None, description="Category stored on the rule itself")
    auto_generated: bool = False
    override_active: bool = False
    override_id: UUID | None = None
    usage_count: int = Field(0, description="Accounts using a Global rule; 0 for personal rules")

    model_config = ConfigDict(from_attributes=True)


class MappingListResult(BaseModel):
    mappings: list[MappingResponse]
    total: int


class BulkDeleteRequest(BaseModel):
    ids: list[UUID] = Field(min_length=1, description="Personal mapping ids to delete")


# ---------------------------------------------------------------------------
# Groups
# ---------------------------------------------------------------------------


class GroupResponse(BaseModel):
    """A derived product group with purchase statistics."""

    name: str
    kind: GroupKind
    member_count: int
    members: list[MappingResponse]
    purchase_count: int
    total_spending: int = Field(description="Total spend in minor units")
    categories: list[str] = Field(description="Distinct categories seen in purchase history")
    common_category: str | None = Field(
        None, description="History category, when all purchases agree"
    )
    saved_category: str | None = None
    has_category_drift: bool = Field(
        description="Saved category differs from the common history category"
    )
    has_mixed_categories: bool

    model_config = ConfigDict(from_attributes=True)


class GroupListResult(BaseModel):
    groups: list[GroupResponse]
    total: int
    money: MoneyMeta


class CreateGroupRequest(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    products: list[str] = Field(min_length=1)
    category: str | None = None


class RenameGroupRequest(BaseModel):
    old_name: str = Field(min_length=1)
    new_name: str = Field(min_length=1, max_length=255)


class MergeGroupsRequest(BaseModel):
    source_names: list[str] = Field(min_length=1)
    target_name: str = Field(min_length=1, max_length=255)


class StandardizeCategoryRequest(BaseModel):
    group_name: str = Field(min_length=1)
    category: str
    local_only: bool = Field(
        False, description="Write Global members as account overrides instead of shared rows"
    )


class AssignRequest(BaseModel):
    original_name: str = Field(min_length=1, max_length=255)
    group_name: str = Field(min_length=1, max_length=255)
    category: str | None = None


class RemoveRequest(BaseModel):
    original_name: str = Field(min_length=1)


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


class ScopeOutcomeResponse(BaseModel):
    scope: MappingScope
    succeeded: bool
    affected: int
    error_code: str | None = None
    message: str | None = None
    retryable: bool = False

    model_config = ConfigDict(from_attributes=True)


class MutationResultResponse(BaseModel):
    """Per-scope outcome of a group mutation. ``partial`` means some scopes failed."""

    operation: str
    succeeded: bool
    partial: bool
    affected: int
    scopes: list[ScopeOutcomeResponse]

    model_config = ConfigDict(from_attributes=True)


class FailedItemResponse(BaseModel):
    name: str
    error_code: str
    message: str
    retryable: bool = False

    model_config = ConfigDict(from_attributes=True)


class BulkResultResponse(BaseModel):
    operation: str
    succeeded: int
    failed: int
    already_existing: int
    failed_items: list[FailedItemResponse]

    model_config = ConfigDict(from_attributes=True)


# ---------------------------------------------------------------------------
# Ungrouped products
# ---------------------------------------------------------------------------


class UngroupedProductResponse(BaseModel):
    original_name: str
    origin: UngroupedOrigin
    scope: MappingScope | None = None
    rule_id: UUID | None = None
    category: str | None = None

    model_config = ConfigDict(from_attributes=True)


class UngroupedListResult(BaseModel):
    products: list[UngroupedProductResponse]
    total: int


class ProductSpendResponse(BaseModel):
    key: str = Field(description="Normalized product key")
    display_name: str
    total: int = Field(description="Spend in minor units")
    quantity: float
    purchase_count: int
    original_names: list[str] = Field(description="Receipt spellings folded into this row")

    model_config = ConfigDict(from_attributes=True)


class CategorySpendResponse(BaseModel):
    category: str
    total: int
    products: list[ProductSpendResponse]

    model_config = ConfigDict(from_attributes=True)


class CategoryBreakdownResult(BaseModel):
    categories: list[CategorySpendResponse]
    money: MoneyMeta


# ---------------------------------------------------------------------------
# Suggestions
# ---------------------------------------------------------------------------


class SuggestionResponse(BaseModel):
    members: list[str]
    target_name: str
    confidence: float

    model_config = ConfigDict(from_attributes=True)


class SuggestionListResult(BaseModel):
    suggestions: list[SuggestionResponse]
    stale: bool = Field(
        False, description="A newer run for this account superseded this request"
    )
    considered: int = Field(0, description="Unmapped products considered in this run")


class AcceptSuggestionRequest(BaseModel):
    members: list[str] = Field(min_length=2)
    group_name: str = Field(min_length=1, max_length=255)
    category: str | None = None


class ApplySuggestionsRequest(BaseModel):
    suggestions: list[AcceptSuggestionRequest] = Field(min_length=1)


class RejectSuggestionRequest(BaseModel):
    members: list[str] = Field(min_length=2)


class IgnoredSuggestionResponse(BaseModel):
    id: UUID
    products: list[str]
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class RejectSuggestionResult(BaseModel):
    products: list[str]
    created: bool = Field(description="False when this member set was already ignored")


class IgnoredSuggestionListResult(BaseModel):
    ignored: list[IgnoredSuggestionResponse]
    total: int


# ---------------------------------------------------------------------------
# Overrides and categories
# ---------------------------------------------------------------------------


class OverrideRequest(BaseModel):
    category: str


class OverrideResponse(BaseModel):
    id: UUID
    global_mapping_id: UUID
    override_category: str
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class CategoryResponse(BaseModel):
    key: str
    label: str


class CategoryCleanupResponse(BaseModel):
    action: str
    invalid_count: int
    examples: list[str]
    fixed: int = 0
    failed: int = 0

    model_config = ConfigDict(from_attributes=True)
