"""Database models."""
from basket.models.category_override import GlobalCategoryOverride
from basket.models.ignored_suggestion import IgnoredSuggestion
from basket.models.mapping import GlobalMapping, PersonalMapping
from basket.models.receipt import Receipt, ReceiptItem

__all__ = [
    "PersonalMapping",
    "GlobalMapping",
    "GlobalCategoryOverride",
    "IgnoredSuggestion",
    "Receipt",
    "ReceiptItem",
]
