"""Canonical data model shared by every pipeline stage.

All models are frozen pydantic models: a RawItem or Product is created
once by the stage that owns it and never mutated afterwards, so the
same instance can be handed across concurrent region pipelines without
synchronization.

Absence is modelled as ``None`` everywhere (a missing price is
``price=None``), never as a sentinel amount.
"""

from decimal import ROUND_HALF_UP, Decimal
from functools import total_ordering
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from pricelens.exceptions import CurrencyMismatchError
from pricelens.regions import PageKind, Region, minor_unit_exponent

RAW_FIELDS: tuple[str, ...] = (
    "asin",
    "title",
    "link",
    "image",
    "price",
    "original_price",
    "rating",
    "review_count",
    "availability",
    "prime",
    "sponsored",
    "choice",
    "brand",
)


@total_ordering
class Money(BaseModel):
    """An amount in minor currency units (cents, öre, yen).

    Ordering is defined only between amounts of the same currency;
    comparing across currencies raises CurrencyMismatchError instead of
    silently comparing unrelated integers.

    Attributes:
        amount: Non-negative integer amount in minor units.
        currency: ISO 4217 currency code.
    """

    model_config = ConfigDict(frozen=True)

    amount: int = Field(..., ge=0, description="Amount in minor units")
    currency: str = Field(..., min_length=3, max_length=3, description="ISO currency code")

    @field_validator("currency", mode="before")
    @classmethod
    def upper_currency(cls, value: Any) -> Any:
        return value.upper() if isinstance(value, str) else value

    @classmethod
    def from_decimal(cls, value: Decimal | str | int, currency: str) -> "Money":
        """Build Money from a major-unit value, e.g. ``Decimal("12.99")``.

        Digits beyond the currency's minor unit are rounded half-up.
        """
        exponent = minor_unit_exponent(currency.upper())
        minor = Decimal(value).scaleb(exponent).quantize(Decimal(1), rounding=ROUND_HALF_UP)
        return cls(amount=int(minor), currency=currency)

    @property
    def exponent(self) -> int:
        return minor_unit_exponent(self.currency)

    def to_decimal(self) -> Decimal:
        """Major-unit value, e.g. 1299 EUR cents -> Decimal('12.99')."""
        return Decimal(self.amount).scaleb(-self.exponent)

    def _check_currency(self, other: "Money", operation: str) -> None:
        if self.currency != other.currency:
            raise CurrencyMismatchError(self.currency, other.currency, operation)

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, Money):
            return NotImplemented
        self._check_currency(other, "compare")
        return self.amount < other.amount

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Money):
            return NotImplemented
        return self.amount == other.amount and self.currency == other.currency

    def __hash__(self) -> int:
        return hash((self.amount, self.currency))

    def __str__(self) -> str:
        return f"{self.to_decimal():.{self.exponent}f} {self.currency}"


class RawItem(BaseModel):
    """Uninterpreted field strings extracted from one container node.

    Attributes:
        position: 0-based rank of the container in document order,
            assigned before any filtering.
        fields: Field name to raw text/attribute value, ``None`` if absent.
    """

    model_config = ConfigDict(frozen=True)

    position: int = Field(..., ge=0)
    fields: dict[str, str | None] = Field(default_factory=dict)

    def get(self, name: str) -> str | None:
        return self.fields.get(name)

    def with_field(self, name: str, value: str | None) -> "RawItem":
        """Copy of this item with one field replaced."""
        return RawItem(position=self.position, fields={**self.fields, name: value})


class Product(BaseModel):
    """Canonical, locale-independent product record.

    Attributes:
        asin: Catalog identifier (required).
        title: Product title (required, whitespace-normalized).
        region: Storefront the record was observed on.
        position: Rank on the source page (0-based).
        url: Absolute product URL.
        image_url: Main image URL, if any.
        price: Current price (low end of a range), absent when unavailable
            or not shown.
        price_max: High end when the listing shows a price range.
        price_hidden: The storefront only shows the price in the cart.
        original_price: List/strike-through price, if shown.
        rating: Star rating in [0, 5].
        review_count: Number of ratings.
        in_stock: Availability flag.
        is_prime: Prime-eligible badge.
        is_sponsored: Sponsored placement.
        is_choice: Best-seller / choice badge.
        brand: Brand or manufacturer text.
    """

    model_config = ConfigDict(frozen=True)

    asin: str = Field(..., min_length=1)
    title: str = Field(..., min_length=1)
    region: Region
    position: int = Field(default=0, ge=0)
    url: str
    image_url: str | None = None
    price: Money | None = None
    price_max: Money | None = None
    price_hidden: bool = False
    original_price: Money | None = None
    rating: float | None = Field(default=None, ge=0.0, le=5.0)
    review_count: int | None = Field(default=None, ge=0)
    in_stock: bool = False
    is_prime: bool = False
    is_sponsored: bool = False
    is_choice: bool = False
    brand: str | None = None

    @model_validator(mode="after")
    def validate_currency(self) -> "Product":
        """Prices must be in the storefront's own currency."""
        for money in (self.price, self.price_max, self.original_price):
            if money is not None and money.currency != self.region.currency:
                raise ValueError(
                    f"{money.currency} price on a {self.region.currency} storefront"
                )
        return self

    @property
    def discount_percent(self) -> int | None:
        """Discount against the list price, rounded and capped at 99."""
        if self.price is None or self.original_price is None:
            return None
        if self.original_price.amount <= self.price.amount:
            return None
        saved = self.original_price.amount - self.price.amount
        percent = (Decimal(saved) * 100 / Decimal(self.original_price.amount)).quantize(
            Decimal("1")
        )
        return min(int(percent), 99)


class SearchPage(BaseModel):
    """Products of one search-results page plus page-level metadata.

    Attributes:
        region: Storefront of the page.
        page_kind: Always a search-results page for listings.
        products: Normalized (and optionally filtered) products, in rank order.
        total_results: Result count announced by the page, if parseable.
        has_next_page: Whether a next-page link is present.
        extracted: Number of container nodes found.
        skipped: Containers dropped by the normalizer.
        filtered_out: Products rejected by the filter chain.
    """

    model_config = ConfigDict(frozen=True)

    region: Region
    page_kind: PageKind = PageKind.SEARCH_RESULTS
    products: list[Product] = Field(default_factory=list)
    total_results: int | None = None
    has_next_page: bool = False
    extracted: int = 0
    skipped: int = 0
    filtered_out: int = 0

    @property
    def count(self) -> int:
        return len(self.products)

    @property
    def is_empty(self) -> bool:
        return not self.products
