"""Composable inclusion/exclusion predicates over Product records.

A FilterChain is the AND of its predicates and short-circuits on the
first rejection. Because every predicate is a pure function of the
product, the result never depends on predicate order.

Criteria are validated when the chain is built: a rating bound outside
[0, 5], a negative price, an inverted price range or a blank keyword
raises FilterConfigurationError before any record is evaluated, rather
than producing a chain that silently rejects everything.
"""

from abc import ABC, abstractmethod
from collections.abc import Iterable
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from pricelens.exceptions import FilterConfigurationError
from pricelens.logger import get_logger
from pricelens.models import Product

log = get_logger(__name__)


class FilterCriteria(BaseModel):
    """User-supplied filter settings.

    Attributes:
        min_price: Lower price bound in major units (inclusive).
        max_price: Upper price bound in major units (inclusive).
        min_rating: Minimum star rating in [0, 5].
        prime_only: Keep only Prime-eligible products.
        exclude_sponsored: Drop sponsored placements.
        required_keywords: Every keyword must appear in the title.
        excluded_keywords: No keyword may appear in the title.
    """

    model_config = ConfigDict(frozen=True)

    min_price: Decimal | None = None
    max_price: Decimal | None = None
    min_rating: float | None = None
    prime_only: bool = False
    exclude_sponsored: bool = False
    required_keywords: tuple[str, ...] = Field(default_factory=tuple)
    excluded_keywords: tuple[str, ...] = Field(default_factory=tuple)

    @field_validator("min_price", "max_price")
    @classmethod
    def non_negative_price(cls, value: Decimal | None) -> Decimal | None:
        if value is not None and value < 0:
            raise ValueError(f"price bound must be non-negative, got {value}")
        return value

    @field_validator("min_rating")
    @classmethod
    def rating_in_range(cls, value: float | None) -> float | None:
        if value is not None and not 0.0 <= value <= 5.0:
            raise ValueError(f"rating bound must be within [0, 5], got {value}")
        return value

    @field_validator("required_keywords", "excluded_keywords", mode="before")
    @classmethod
    def clean_keywords(cls, value: Any) -> Any:
        """Lowercase and deduplicate keywords; blank entries are rejected."""
        if value is None:
            return ()
        if isinstance(value, str):
            value = [value]
        keywords = []
        for keyword in value:
            if not isinstance(keyword, str) or not keyword.strip():
                raise ValueError(f"keywords must be non-blank strings, got {keyword!r}")
            keywords.append(keyword.strip().lower())
        return tuple(dict.fromkeys(keywords))

    @model_validator(mode="after")
    def validate_price_range(self) -> "FilterCriteria":
        if (
            self.min_price is not None
            and self.max_price is not None
            and self.max_price < self.min_price
        ):
            raise ValueError(
                f"max_price ({self.max_price}) is lower than min_price ({self.min_price})"
            )
        return self

    @classmethod
    def create(cls, **criteria: Any) -> "FilterCriteria":
        """Validate criteria, raising the filter error type on failure.

        Raises:
            FilterConfigurationError: If any criterion is invalid.
        """
        try:
            return cls(**criteria)
        except ValidationError as exc:
            reasons = "; ".join(error["msg"] for error in exc.errors())
            raise FilterConfigurationError(reasons, criteria) from exc


class FilterPredicate(ABC):
    """A pure ``Product -> bool`` test with a human-readable description."""

    @abstractmethod
    def matches(self, product: Product) -> bool:
        """Whether the product passes this predicate."""

    @property
    @abstractmethod
    def description(self) -> str:
        """Short description for reports and logs."""

    def __call__(self, product: Product) -> bool:
        return self.matches(product)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.description!r})"


class PriceFilter(FilterPredicate):
    """Inclusive price range in major units. Products without a price pass."""

    def __init__(self, min_price: Decimal | None = None, max_price: Decimal | None = None) -> None:
        self.min_price = min_price
        self.max_price = max_price

    def matches(self, product: Product) -> bool:
        if product.price is None:
            return True
        value = product.price.to_decimal()
        if self.min_price is not None and value < self.min_price:
            return False
        if self.max_price is not None and value > self.max_price:
            return False
        return True

    @property
    def description(self) -> str:
        if self.min_price is not None and self.max_price is not None:
            return f"Price: {self.min_price} - {self.max_price}"
        if self.min_price is not None:
            return f"Price: >= {self.min_price}"
        if self.max_price is not None:
            return f"Price: <= {self.max_price}"
        return "Price: any"


class RatingFilter(FilterPredicate):
    """Minimum star rating. Unrated products pass."""

    def __init__(self, min_rating: float) -> None:
        self.min_rating = min_rating

    def matches(self, product: Product) -> bool:
        if product.rating is None:
            return True
        return product.rating >= self.min_rating

    @property
    def description(self) -> str:
        return f"Rating: >= {self.min_rating:.1f} stars"


class PrimeFilter(FilterPredicate):
    def matches(self, product: Product) -> bool:
        return product.is_prime

    @property
    def description(self) -> str:
        return "Prime only"


class SponsoredFilter(FilterPredicate):
    def matches(self, product: Product) -> bool:
        return not product.is_sponsored

    @property
    def description(self) -> str:
        return "Exclude sponsored"


class KeywordFilter(FilterPredicate):
    """Case-insensitive substring match on the title.

    All required keywords must appear (AND); any excluded keyword rejects.
    """

    def __init__(
        self,
        required: Iterable[str] = (),
        excluded: Iterable[str] = (),
    ) -> None:
        self.required = tuple(keyword.lower() for keyword in required)
        self.excluded = tuple(keyword.lower() for keyword in excluded)

    def matches(self, product: Product) -> bool:
        title = product.title.lower()
        if not all(keyword in title for keyword in self.required):
            return False
        return not any(keyword in title for keyword in self.excluded)

    @property
    def description(self) -> str:
        parts = []
        if self.required:
            parts.append(f"Must contain: {', '.join(self.required)}")
        if self.excluded:
            parts.append(f"Must not contain: {', '.join(self.excluded)}")
        return "; ".join(parts) or "Keywords: any"


class FilterChain:
    """AND-combination of predicates.

    Example:
        chain = build_filter_chain(FilterCriteria.create(min_rating=4.0))
        kept = chain.apply(products)
    """

    def __init__(self, predicates: Iterable[FilterPredicate] = ()) -> None:
        self._predicates: tuple[FilterPredicate, ...] = tuple(predicates)

    @property
    def predicates(self) -> tuple[FilterPredicate, ...]:
        return self._predicates

    def evaluate(self, product: Product) -> bool:
        """True iff every predicate accepts the product."""
        return all(predicate(product) for predicate in self._predicates)

    def apply(self, products: Iterable[Product]) -> list[Product]:
        """Products accepted by the chain, in their original order."""
        return [product for product in products if self.evaluate(product)]

    def descriptions(self) -> list[str]:
        return [predicate.description for predicate in self._predicates]

    def __len__(self) -> int:
        return len(self._predicates)


def build_filter_chain(criteria: FilterCriteria | None = None) -> FilterChain:
    """Build a chain holding one predicate per active criterion.

    Args:
        criteria: Validated criteria; None builds an empty chain that
            accepts everything.

    Returns:
        The FilterChain.
    """
    if criteria is None:
        return FilterChain()

    predicates: list[FilterPredicate] = []
    if criteria.min_price is not None or criteria.max_price is not None:
        predicates.append(PriceFilter(criteria.min_price, criteria.max_price))
    if criteria.min_rating is not None:
        predicates.append(RatingFilter(criteria.min_rating))
    if criteria.prime_only:
        predicates.append(PrimeFilter())
    if criteria.exclude_sponsored:
        predicates.append(SponsoredFilter())
    if criteria.required_keywords or criteria.excluded_keywords:
        predicates.append(KeywordFilter(criteria.required_keywords, criteria.excluded_keywords))

    chain = FilterChain(predicates)
    log.debug("Filter chain built", filters=chain.descriptions())
    return chain
