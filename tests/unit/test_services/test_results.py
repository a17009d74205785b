"""Tests for grouping service result types and input helpers."""

import pytest

from basket.core.exceptions import PermissionDeniedError, TransientError, ValidationError
from basket.grouping.resolver import MappingScope
from basket.services.grouping import (
    BulkResult,
    MutationResult,
    ScopeOutcome,
    _failed_outcome,
    _require_name,
    _validate_category,
)


class TestMutationResult:
    def test_all_scopes_succeeded(self):
        result = MutationResult(
            operation="rename_group",
            scopes=[
                ScopeOutcome(MappingScope.PERSONAL, True, 2),
                ScopeOutcome(MappingScope.GLOBAL, True, 3),
            ],
        )

        assert result.succeeded is True
        assert result.partial is False
        assert result.affected == 5

    def test_partial(self):
        result = MutationResult(
            operation="rename_group",
            scopes=[
                ScopeOutcome(MappingScope.PERSONAL, True, 2),
                _failed_outcome(MappingScope.GLOBAL, PermissionDeniedError("PERM_001")),
            ],
        )

        assert result.succeeded is False
        assert result.partial is True
        assert result.affected == 2

    def test_total_failure_is_not_partial(self):
        result = MutationResult(
            operation="merge_groups",
            scopes=[_failed_outcome(MappingScope.PERSONAL, TransientError("DB_001"))],
        )

        assert result.succeeded is False
        assert result.partial is False
        assert result.scopes[0].retryable is True


class TestBulkResult:
    def test_record_failure_uses_catalog(self):
        result = BulkResult(operation="bulk_forget")

        result.record_failure("abc", TransientError("DB_001"))

        assert result.failed == 1
        item = result.failed_items[0]
        assert item.name == "abc"
        assert item.error_code == "DB_001"
        assert item.retryable is True
        assert item.message

    def test_absorb(self):
        total = BulkResult(operation="apply_suggestions")
        part = BulkResult(operation="accept_suggestion", succeeded=2, already_existing=1)
        part.record_failure("x", ValidationError("GRP_001"))

        total.absorb(part)
        total.absorb(part)

        assert total.succeeded == 4
        assert total.already_existing == 2
        assert total.failed == 2
        assert len(total.failed_items) == 2


class TestInputHelpers:
    def test_require_name_strips(self):
        assert _require_name("  Mjölk ") == "Mjölk"

    @pytest.mark.parametrize("name", ["", "   ", None])
    def test_require_name_rejects_blank(self, name):
        with pytest.raises(ValidationError) as exc_info:
            _require_name(name)
        assert exc_info.value.error_code == "GRP_001"

    def test_validate_category(self):
        assert _validate_category(" Mejeri ") == "mejeri"
        assert _validate_category("") is None
        assert _validate_category(None) is None

    def test_validate_category_rejects_unknown(self):
        with pytest.raises(ValidationError) as exc_info:
            _validate_category("dairy")
        assert exc_info.value.error_code == "GRP_002"
