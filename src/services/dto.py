"""Data Transfer Objects for service layer.

Pagination for order listings, the package snapshot an order copies at
purchase time and the escrow split computed from it.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Generic, TypeVar, List, Optional

T = TypeVar("T")

MAX_PER_PAGE = 100


@dataclass
class PaginationParams:
    """Page request for list_orders_for_user().

    Pass None instead to get every order in one result.

    Attributes:
        page: 1-indexed page number
        per_page: Orders per page, 1 to MAX_PER_PAGE

    Raises:
        ValueError: If either value is out of range
    """

    page: int = 1
    per_page: int = 20

    def __post_init__(self) -> None:
        if self.page < 1:
            raise ValueError("page must be >= 1")
        if not 1 <= self.per_page <= MAX_PER_PAGE:
            raise ValueError(f"per_page must be between 1 and {MAX_PER_PAGE}")

    def offset(self) -> int:
        """Rows to skip before this page.

        Example:
            >>> PaginationParams(page=3, per_page=25).offset()
            50
        """
        return (self.page - 1) * self.per_page


@dataclass
class PaginatedResult(Generic[T]):
    """One page of items plus the total across all pages."""

    items: List[T]
    total: int
    page: int
    per_page: int

    @property
    def pages(self) -> int:
        """Page count; an empty result still has one (empty) page."""
        return max(1, -(-self.total // self.per_page))

    @property
    def has_next(self) -> bool:
        return self.page < self.pages

    @property
    def has_prev(self) -> bool:
        return self.page > 1


@dataclass(frozen=True)
class PackageSnapshot:
    """Package values frozen into an order at purchase time.

    Attributes:
        package_id: Source package row
        gig_id: Gig the package belongs to
        tier: Package tier value ("basic", "standard", "premium")
        price: Package price
        delivery_days: Days until the delivery deadline
        revisions: Revision allowance, None for unlimited
    """

    package_id: int
    gig_id: int
    tier: str
    price: Decimal
    delivery_days: int
    revisions: Optional[int]


@dataclass(frozen=True)
class EscrowSplit:
    """Division of an order total into platform fee and seller earnings."""

    total_amount: Decimal
    platform_fee: Decimal
    seller_earnings: Decimal
