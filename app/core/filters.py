"""
Pagination and sort parameters for listing queries.

The sort value is client-supplied; it is only ever turned into a column name
after being matched against the deployment's fixed safelist.
"""

import math

from pydantic import BaseModel

from app.core.errors import ValidationFailure
from app.utils.validator import Validator


MAX_PAGE = 10_000_000
MAX_PAGE_SIZE = 100


class UnsafeSortParameter(ValueError):
    """Raised when a sort value outside the safelist reaches query building."""

    def __init__(self, sort: str):
        super().__init__(f"unsafe sort parameter: {sort!r}")
        self.sort = sort


class Filters(BaseModel):
    """
    Page and sort selection for a listing.

    Attributes:
        page: 1-based page number
        page_size: Number of records per page
        sort: Column name, optionally prefixed with "-" for descending order
        sort_safelist: Permitted sort values, fixed per deployment
    """

    page: int = 1
    page_size: int = 20
    sort: str = "id"
    sort_safelist: tuple[str, ...] = ()

    def sort_column(self) -> str:
        """
        Resolve the sort value to a bare column name.

        Raises:
            UnsafeSortParameter: If the sort value is not in the safelist
        """
        if self.sort not in self.sort_safelist:
            raise UnsafeSortParameter(self.sort)
        return self.sort.removeprefix("-")

    def sort_descending(self) -> bool:
        return self.sort.startswith("-")

    def limit(self) -> int:
        return self.page_size

    def offset(self) -> int:
        return (self.page - 1) * self.page_size


class Metadata(BaseModel):
    """Pagination metadata for a listing response; all zero when empty."""

    current_page: int = 0
    page_size: int = 0
    first_page: int = 0
    last_page: int = 0
    total_records: int = 0


def validate_filters(v: Validator, filters: Filters) -> None:
    """Record every rule the filters violate in the given validator."""
    v.check(filters.page > 0, "page", "must be greater than zero")
    v.check(filters.page <= MAX_PAGE, "page", "must be a maximum of 10 million")
    v.check(filters.page_size > 0, "page_size", "must be greater than zero")
    v.check(filters.page_size <= MAX_PAGE_SIZE, "page_size", f"must be a maximum of {MAX_PAGE_SIZE}")
    v.check(Validator.permitted_value(filters.sort, filters.sort_safelist), "sort", "invalid sort value")


def require_valid_filters(filters: Filters) -> None:
    """
    Validate filters and raise if any rule is broken.

    Raises:
        ValidationFailure: Carrying one message per offending field
    """
    v = Validator()
    validate_filters(v, filters)
    if not v.valid():
        raise ValidationFailure(v.errors)


def calculate_metadata(total_records: int, page: int, page_size: int) -> Metadata:
    """Build page metadata for a listing that matched ``total_records`` rows."""
    if total_records == 0:
        return Metadata()
    return Metadata(
        current_page=page,
        page_size=page_size,
        first_page=1,
        last_page=math.ceil(total_records / page_size),
        total_records=total_records,
    )
