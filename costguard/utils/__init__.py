"""Utility modules."""

from costguard.utils.datetime_utils import ensure_utc, utcnow
from costguard.utils.pagination import (
    PaginationParams,
    get_pagination,
    paginate_select,
)

__all__ = [
    # Datetime
    "ensure_utc",
    "utcnow",
    # Pagination
    "PaginationParams",
    "get_pagination",
    "paginate_select",
]
