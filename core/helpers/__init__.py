"""Shared helper utilities for consistency across the feeds.

`core.helpers.rest_validation` depends on `core.models` and is imported
directly by its callers.
"""

from .validation import finite_float, is_finite_number, positive_float

__all__ = [
    "finite_float",
    "is_finite_number",
    "positive_float",
]
