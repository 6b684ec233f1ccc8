"""Cross-region price comparison for a single catalog item.

The engine receives one optional Product per region and answers three
questions: where is the item cheapest, how much more does every other
region charge, and which regions exceed the markup threshold.

Amounts are only ever compared within one currency. When the regions
price in different currencies, the caller supplies exchange rates to a
basis currency and every amount is converted before any comparison; a
missing rate is a contract violation and raises CurrencyMismatchError
instead of comparing unrelated integers.
"""

from collections.abc import Mapping
from decimal import ROUND_HALF_UP, Decimal

from pydantic import BaseModel, ConfigDict, Field

from pricelens.exceptions import ConfigValidationError, CurrencyMismatchError
from pricelens.logger import get_logger
from pricelens.models import Money, Product
from pricelens.regions import Region

log = get_logger(__name__)

DEFAULT_MARKUP_THRESHOLD = Decimal("20")
DEFAULT_PERCENT_PRECISION = 2


class RegionDelta(BaseModel):
    """Price of one non-best region relative to the best region.

    Attributes:
        region: Storefront.
        price: Price in the storefront's own currency.
        basis_amount: Price converted to the basis currency (minor units).
        delta_amount: Difference to the best price in basis minor units.
        delta_percent: Difference as a percentage of the best price,
            rounded half-up; None when the best price is zero.
        is_high_markup: Whether the rounded percentage exceeds the threshold.
    """

    model_config = ConfigDict(frozen=True)

    region: Region
    price: Money
    basis_amount: int = Field(..., ge=0)
    delta_amount: int = Field(..., ge=0)
    delta_percent: Decimal | None
    is_high_markup: bool


class PriceComparison(BaseModel):
    """Outcome of comparing one ASIN across regions.

    An incomparable result (no region had a price) has no best region and
    no entries; it is a normal outcome for region-exclusive items.
    """

    model_config = ConfigDict(frozen=True)

    asin: str
    best_region: Region | None = None
    best_price: Money | None = None
    basis_currency: str | None = None
    best_basis_amount: int | None = None
    entries: list[RegionDelta] = Field(default_factory=list)
    excluded_regions: list[Region] = Field(default_factory=list)
    max_savings: Money | None = None
    max_savings_percent: Decimal | None = None
    markup_threshold_percent: Decimal = DEFAULT_MARKUP_THRESHOLD

    @property
    def is_comparable(self) -> bool:
        return self.best_region is not None

    @property
    def high_markup_regions(self) -> list[Region]:
        return [entry.region for entry in self.entries if entry.is_high_markup]

    @property
    def region_count(self) -> int:
        """Regions that took part (best region plus entries)."""
        return len(self.entries) + (1 if self.is_comparable else 0)


class ComparisonEngine:
    """Computes PriceComparison results.

    Attributes:
        markup_threshold_percent: Entries whose rounded delta percent is
            strictly greater than this are flagged as high markup.
        percent_precision: Decimal places kept by delta percentages.
        exchange_rates: Major-unit conversion rate per currency into the
            basis currency (``{"GBP": Decimal("1.17")}`` with an EUR basis).
        basis_currency: Currency used when regions price in different
            currencies.

    Example:
        engine = ComparisonEngine(markup_threshold_percent=Decimal("15"))
        result = engine.compare("B08N5WRWNW", {Region.DE: de, Region.FR: fr})
    """

    def __init__(
        self,
        markup_threshold_percent: Decimal | int | str = DEFAULT_MARKUP_THRESHOLD,
        percent_precision: int = DEFAULT_PERCENT_PRECISION,
        exchange_rates: Mapping[str, Decimal] | None = None,
        basis_currency: str | None = None,
    ) -> None:
        if percent_precision < 0:
            raise ConfigValidationError("percent_precision", percent_precision, "must be >= 0")
        if Decimal(markup_threshold_percent) < 0:
            raise ConfigValidationError("markup_threshold_percent", markup_threshold_percent, "must be >= 0")
        self.markup_threshold_percent = Decimal(markup_threshold_percent)
        self.percent_precision = percent_precision
        self.exchange_rates = {
            currency.upper(): Decimal(rate) for currency, rate in (exchange_rates or {}).items()
        }
        self.basis_currency = basis_currency.upper() if basis_currency else None
        self._quantum = Decimal(1).scaleb(-percent_precision)

    def _percent(self, part: int, whole: int) -> Decimal | None:
        if whole == 0:
            return None
        value = Decimal(part) * 100 / Decimal(whole)
        return value.quantize(self._quantum, rounding=ROUND_HALF_UP)

    def _resolve_basis(self, prices: dict[Region, Money]) -> str:
        currencies = {money.currency for money in prices.values()}
        if len(currencies) == 1:
            return currencies.pop()
        if self.basis_currency is None:
            left, right = sorted(currencies)[:2]
            raise CurrencyMismatchError(left, right, operation="compare")
        return self.basis_currency

    def _to_basis(self, money: Money, basis: str) -> int:
        """Convert to basis minor units, rounding half-up."""
        if money.currency == basis:
            return money.amount
        rate = self.exchange_rates.get(money.currency)
        if rate is None:
            raise CurrencyMismatchError(money.currency, basis, operation="convert")
        return Money.from_decimal(money.to_decimal() * rate, basis).amount

    def compare(self, asin: str, products: Mapping[Region, Product | None]) -> PriceComparison:
        """Compare one ASIN across regions.

        Args:
            asin: Catalog identifier all products refer to.
            products: Region to Product; None marks a region where the
                item was not found.

        Returns:
            The PriceComparison; ``is_comparable`` is False when no region
            had a price.

        Raises:
            CurrencyMismatchError: If currencies differ and no rate is
                available to convert one of them.
        """
        prices: dict[Region, Money] = {}
        excluded: list[Region] = []
        for region in sorted(products, key=lambda r: r.order):
            product = products[region]
            if product is None or product.price is None:
                excluded.append(region)
            else:
                prices[region] = product.price

        if not prices:
            log.info("Comparison incomparable: no region has a price", asin=asin, regions=len(products))
            return PriceComparison(
                asin=asin,
                excluded_regions=excluded,
                markup_threshold_percent=self.markup_threshold_percent,
            )

        basis = self._resolve_basis(prices)
        converted = {region: self._to_basis(money, basis) for region, money in prices.items()}

        best_region = min(converted, key=lambda r: (converted[r], r.order))
        best_amount = converted[best_region]

        entries = []
        for region, amount in converted.items():
            if region == best_region:
                continue
            delta = amount - best_amount
            percent = self._percent(delta, best_amount)
            entries.append(
                RegionDelta(
                    region=region,
                    price=prices[region],
                    basis_amount=amount,
                    delta_amount=delta,
                    delta_percent=percent,
                    is_high_markup=percent is not None and percent > self.markup_threshold_percent,
                )
            )
        entries.sort(key=lambda e: (e.delta_amount, e.region.order))

        highest = max(converted.values())
        savings = highest - best_amount

        comparison = PriceComparison(
            asin=asin,
            best_region=best_region,
            best_price=prices[best_region],
            basis_currency=basis,
            best_basis_amount=best_amount,
            entries=entries,
            excluded_regions=excluded,
            max_savings=Money(amount=savings, currency=basis),
            max_savings_percent=self._percent(savings, highest),
            markup_threshold_percent=self.markup_threshold_percent,
        )
        log.info(
            "Comparison computed",
            asin=asin,
            best_region=str(best_region),
            regions=comparison.region_count,
            excluded=len(excluded),
            high_markup=[str(r) for r in comparison.high_markup_regions],
        )
        return comparison
