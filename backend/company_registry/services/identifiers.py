from __future__ import annotations

from typing import Any

from ..core.errors import InvalidIdentifier

MIN_ID_LENGTH = 12


def validate_identifier(value: Any) -> str:
    """
    Reject malformed company ids before they reach the primary store.

    Without this check the store's own key parsing fails with a less specific,
    store-internal error.
    """
    if not isinstance(value, str):
        raise InvalidIdentifier("Company ID must be a string")
    if len(value) < MIN_ID_LENGTH:
        raise InvalidIdentifier(
            f"Company ID must be at least {MIN_ID_LENGTH} characters"
        )
    return value
