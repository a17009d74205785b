"""Error codes and user-friendly messages.

This module defines the error catalog for product grouping.
Each error has:
- error_code: Unique identifier
- message: Technical description (for logs)
- user_message: User-friendly explanation
- suggestion: Actionable guidance for the user
- retry_allowed: Whether the error is retryable
"""

ERROR_CATALOG: dict[str, dict] = {
    "GRP_001": {
        "code": "GRP_001",
        "message": "Group name is empty",
        "user_message": "A product group needs a name.",
        "suggestion": "Enter a name for the group and try again.",
        "retry_allowed": False,
    },
    "GRP_002": {
        "code": "GRP_002",
        "message": "Invalid category",
        "user_message": "That category isn't supported.",
        "suggestion": "Please choose a category from the allowed list.",
        "retry_allowed": False,
    },
    "GRP_003": {
        "code": "GRP_003",
        "message": "Category choice required: members have conflicting categories",
        "user_message": "These products have been bought under different categories.",
        "suggestion": "Choose which category the group should use.",
        "retry_allowed": False,
    },
    "GRP_004": {
        "code": "GRP_004",
        "message": "Merge rejected: source group contains Global mappings",
        "user_message": "Shared (global) product groups can't be merged.",
        "suggestion": "Only personal groups can be merged. Rename the group instead.",
        "retry_allowed": False,
    },
    "GRP_005": {
        "code": "GRP_005",
        "message": "Source group has no personal products to move",
        "user_message": "There is nothing to move from this group.",
        "suggestion": "Pick a different source group.",
        "retry_allowed": False,
    },
    "GRP_006": {
        "code": "GRP_006",
        "message": "Product is not in a group",
        "user_message": "This product isn't part of any group.",
        "suggestion": "Refresh the list and try again.",
        "retry_allowed": False,
    },
    "GRP_007": {
        "code": "GRP_007",
        "message": "A suggestion needs at least two products",
        "user_message": "Pick at least two products to group together.",
        "suggestion": "Select more products and try again.",
        "retry_allowed": False,
    },
    "GRP_008": {
        "code": "GRP_008",
        "message": "Group not found",
        "user_message": "We couldn't find this product group.",
        "suggestion": "Refresh the list and try again.",
        "retry_allowed": False,
    },
    "MAP_001": {
        "code": "MAP_001",
        "message": "Mapping not found",
        "user_message": "We couldn't find this product mapping.",
        "suggestion": "Refresh the list and try again.",
        "retry_allowed": False,
    },
    "MAP_002": {
        "code": "MAP_002",
        "message": "Mapping already exists",
        "user_message": "This product is already mapped.",
        "suggestion": "Refresh the list to see the current grouping.",
        "retry_allowed": False,
    },
    "MAP_003": {
        "code": "MAP_003",
        "message": "Global mappings cannot be deleted by an account",
        "user_message": "Shared mappings can't be removed.",
        "suggestion": "Remove the product from its group instead.",
        "retry_allowed": False,
    },
    "OVR_001": {
        "code": "OVR_001",
        "message": "Category override not found",
        "user_message": "We couldn't find this category override.",
        "suggestion": "Refresh the list and try again.",
        "retry_allowed": False,
    },
    "IGN_001": {
        "code": "IGN_001",
        "message": "Ignored suggestion not found",
        "user_message": "We couldn't find this ignored suggestion.",
        "suggestion": "Refresh the list and try again.",
        "retry_allowed": False,
    },
    "PERM_001": {
        "code": "PERM_001",
        "message": "Global mapping update denied by access policy",
        "user_message": "You don't have permission to change shared product groups.",
        "suggestion": "Your personal mappings were still updated where possible.",
        "retry_allowed": False,
    },
    "DB_001": {
        "code": "DB_001",
        "message": "Mapping store unavailable",
        "user_message": "We couldn't reach the database.",
        "suggestion": "Please try again in a few moments.",
        "retry_allowed": True,
    },
    "DB_002": {
        "code": "DB_002",
        "message": "Resource already exists",
        "user_message": "This record already exists",
        "suggestion": "Please check if the record was already created",
        "retry_allowed": False,
    },
    "CAT_001": {
        "code": "CAT_001",
        "message": "Unknown cleanup action",
        "user_message": "That cleanup action isn't supported.",
        "suggestion": "Use 'scan' to inspect or 'fix' to repair categories.",
        "retry_allowed": False,
    },
}


def get_error(error_code: str) -> dict:
    """Get error definition by code.

    Args:
        error_code: Error code from the catalog

    Returns:
        Dict with error details (a generic entry for unknown codes)
    """
    if error_code not in ERROR_CATALOG:
        return {
            "code": "UNKNOWN",
            "message": f"Unknown error code: {error_code}",
            "user_message": "An unexpected error occurred.",
            "suggestion": "Please try again. Contact support if the problem persists.",
            "retry_allowed": True,
        }
    return ERROR_CATALOG[error_code]


def get_user_message(error_code: str) -> str:
    """Get user-friendly message for an error code."""
    return get_error(error_code)["user_message"]


def is_retryable(error_code: str) -> bool:
    """Check if an error is retryable."""
    return get_error(error_code)["retry_allowed"]
