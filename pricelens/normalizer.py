"""Locale-aware normalization of raw field strings into Product records.

Every parser here takes the Region whose conventions apply and returns
``None`` for text it cannot interpret. A malformed price or rating on
one card is expected markup noise, so it degrades that field to absent
instead of aborting the page.

Numeric text is never interpreted heuristically: ``1.234,56`` and
``1,234.56`` are symmetric, so the decimal separator always comes from
the Region table and never from the position of the last separator.
"""

import re
import unicodedata
from decimal import Decimal, InvalidOperation
from urllib.parse import urljoin

from pydantic import ValidationError

from pricelens.exceptions import CurrencyMismatchError
from pricelens.logger import get_logger
from pricelens.models import Money, Product, RawItem
from pricelens.regions import KNOWN_CURRENCY_SYMBOLS, NBSP, BadgeKind, Region

log = get_logger(__name__)

ASIN_PATTERN = re.compile(r"^[A-Za-z0-9]{10}$")

_RANGE_DASHES = re.compile(r"[-–—]")
_NUMERIC_RESIDUE = re.compile(r"[0-9.,]+")
_RATING_NUMBER = re.compile(r"[0-9]+(?:[.,][0-9]+)?")
_ABBREVIATED_COUNT = re.compile(
    r"([0-9]+(?:[.,][0-9]+)?)\s*(mio|mln|mil|tsd|mi|k|m|万)\.?(?![a-z])", re.IGNORECASE
)
_APOSTROPHES = re.compile(r"['’`´]")
_NON_ALNUM = re.compile(r"[\W_]+")
_NUMBER_GROUP = re.compile(r"[0-9](?:[0-9.,\s]*[0-9])?")
_BRAND_PREFIXES = re.compile(r"^(?:brand|marke|marque|marca)\s*:\s*|^visit the\s+", re.IGNORECASE)
_BRAND_SUFFIX = re.compile(r"\s+store$", re.IGNORECASE)

# "mil" is the Spanish and Portuguese thousand, "mi" the Portuguese million
_COUNT_MULTIPLIERS = {
    "k": 1_000,
    "tsd": 1_000,
    "mil": 1_000,
    "万": 10_000,
    "m": 1_000_000,
    "mi": 1_000_000,
    "mio": 1_000_000,
    "mln": 1_000_000,
}


def clean_text(value: str | None) -> str | None:
    """Collapse whitespace runs; empty text becomes None."""
    if value is None:
        return None
    cleaned = " ".join(value.split())
    return cleaned or None


def clean_asin(value: str | None) -> str | None:
    """Uppercased catalog id, or None unless exactly 10 alphanumerics."""
    if value is None:
        return None
    value = value.strip()
    if not ASIN_PATTERN.match(value):
        return None
    return value.upper()


def parse_money(text: str | None, region: Region) -> Money | None:
    """Parse a localized price string into Money.

    The algorithm:
        1. Normalize compatibility characters and drop all whitespace,
           including NBSP, narrow NBSP and thin space.
        2. Keep only the low end of a range ("A - B"); see
           parse_price_ceiling for the high end.
        3. Detect and remove currency symbols, longest first. The Region
           decides the currency; a symbol it cannot print makes the
           price absent.
        4. Split on the Region's decimal separator; the other of '.'/','
           is grouping and is removed.
        5. Scale the fraction to the currency's minor-unit exponent.

    Args:
        text: Raw price text, e.g. "1.234,56 €" or "$1,234.56".
        region: Storefront whose conventions apply.

    Returns:
        Money in the region's currency, or None when the text holds no
        usable amount.

    Example:
        >>> parse_money("1.234,56 €", Region.DE).amount
        123456
        >>> parse_money("1,234.56", Region.US).amount
        123456
    """
    if text is None:
        return None

    locale = region.locale
    compact = "".join(unicodedata.normalize("NFKC", text).split())
    compact = _RANGE_DASHES.split(compact, maxsplit=1)[0]

    detected = []
    for symbol in KNOWN_CURRENCY_SYMBOLS:
        if symbol in compact:
            detected.append(symbol)
            compact = compact.replace(symbol, "")

    if not any(ch.isdigit() for ch in compact):
        return None

    accepted = {unicodedata.normalize("NFKC", s) for s in locale.currency_symbols}
    implausible = [symbol for symbol in detected if symbol not in accepted]
    if implausible:
        log.warning(
            "Currency symbol does not match storefront",
            region=str(region),
            currency=locale.currency,
            symbols=implausible,
            text=text,
        )
        return None

    if not _NUMERIC_RESIDUE.fullmatch(compact):
        log.debug("Price text has non-numeric residue", region=str(region), text=text)
        return None

    parts = compact.split(locale.decimal_separator)
    if len(parts) > 2:
        log.debug("Repeated decimal separator in price", region=str(region), text=text)
        return None

    whole = parts[0].replace(locale.grouping_character, "")
    fraction = parts[1] if len(parts) == 2 else ""
    if not whole.isdigit() and whole:
        return None
    if fraction and not fraction.isdigit():
        return None

    exponent = locale.minor_unit_exponent
    if len(fraction) > exponent:
        if fraction[exponent:].strip("0"):
            log.debug("Price has more fraction digits than the currency", region=str(region), text=text)
            return None
        fraction = fraction[:exponent]
    fraction = fraction.ljust(exponent, "0")

    amount = int(whole or "0") * 10**exponent + int(fraction or "0")
    return Money(amount=amount, currency=locale.currency)


def parse_price_ceiling(text: str | None, region: Region) -> Money | None:
    """Upper bound of a price range such as "$12.99 - $24.99".

    parse_money keeps the low end; this returns the high end, or None
    when the text is a single price or the bounds do not form a range.
    """
    if text is None:
        return None
    compact = "".join(unicodedata.normalize("NFKC", text).split())
    parts = _RANGE_DASHES.split(compact, maxsplit=1)
    if len(parts) < 2:
        return None
    low = parse_money(parts[0], region)
    high = parse_money(parts[1], region)
    if low is None or high is None or high <= low:
        return None
    return high


def format_money(money: Money, region: Region) -> str:
    """Render Money the way the storefront prints it.

    Inverse of parse_money: ``parse_money(format_money(m, r), r) == m``.

    Raises:
        CurrencyMismatchError: If the money is not in the region's currency.
    """
    locale = region.locale
    if money.currency != locale.currency:
        raise CurrencyMismatchError(money.currency, locale.currency, operation="format")

    exponent = locale.minor_unit_exponent
    units, fraction = divmod(money.amount, 10**exponent)
    number = f"{units:,}".replace(",", locale.thousands_separator)
    if exponent:
        number = f"{number}{locale.decimal_separator}{fraction:0{exponent}d}"

    symbol = locale.currency_symbols[0]
    if locale.symbol_after:
        return f"{number}{NBSP}{symbol}"
    return f"{symbol}{number}"


def parse_rating(text: str | None, region: Region) -> float | None:
    """Star rating from text like "4,5 von 5 Sternen" or "5つ星のうち4.3".

    Returns:
        The rating, or None when no number is present or it lies
        outside [0, 5].
    """
    if text is None:
        return None

    numbers = _RATING_NUMBER.findall(unicodedata.normalize("NFKC", text))
    if not numbers:
        return None

    raw = numbers[-1] if region.locale.rating_value_position == "last" else numbers[0]
    value = float(raw.replace(",", "."))
    if not 0.0 <= value <= 5.0:
        return None
    return value


def parse_review_count(text: str | None) -> int | None:
    """Review count from "1,234", "(1.234)" or abbreviated "1.2K" / "1,5 Mio."."""
    if text is None:
        return None

    text = unicodedata.normalize("NFKC", text)
    match = _ABBREVIATED_COUNT.search(text)
    if match:
        try:
            value = Decimal(match.group(1).replace(",", "."))
        except InvalidOperation:
            return None
        return int(value * _COUNT_MULTIPLIERS[match.group(2).lower()])

    digits = "".join(ch for ch in text if "0" <= ch <= "9")
    return int(digits) if digits else None


def fold_text(text: str) -> str:
    """Case-, diacritic- and punctuation-insensitive form for badge matching."""
    decomposed = unicodedata.normalize("NFKD", text)
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    folded = _APOSTROPHES.sub("", stripped.casefold())
    return " ".join(_NON_ALNUM.sub(" ", folded).split())


def match_badge(text: str | None, region: Region, kind: BadgeKind) -> bool:
    """Whether text contains one of the region's variants for a badge."""
    if not text:
        return False
    folded = fold_text(text)
    for variant in region.locale.badge_variants(kind):
        needle = fold_text(variant)
        if needle and needle in folded:
            return True
    return False


def parse_in_stock(availability: str | None, region: Region, has_price: bool) -> bool:
    """Availability flag.

    Out-of-stock variants are checked first, since several languages
    spell "unavailable" as a prefix of "available" ("no disponible").
    Without an availability node, a shown price means in stock.
    """
    if availability is None:
        return has_price
    if match_badge(availability, region, "out_of_stock"):
        return False
    return match_badge(availability, region, "in_stock")


def clean_brand(text: str | None) -> str | None:
    """Brand name without "Brand:" / "Visit the ... Store" decoration."""
    text = clean_text(text)
    if text is None:
        return None
    text = _BRAND_SUFFIX.sub("", _BRAND_PREFIXES.sub("", text)).strip()
    return text or None


def product_url(link: str | None, region: Region, asin: str) -> str:
    """Absolute product URL; a missing link falls back to the /dp/ path."""
    base = region.base_url
    link = clean_text(link)
    if link is None:
        return f"{base}/dp/{asin}"
    return urljoin(f"{base}/", link)


def normalize(raw: RawItem, region: Region) -> Product | None:
    """Turn one RawItem into a Product under the region's conventions.

    Args:
        raw: Extracted field strings.
        region: Storefront the item was extracted from.

    Returns:
        The Product, or None when a required field (ASIN, title) is
        missing or invalid. Skips are logged, never raised.
    """
    asin = clean_asin(raw.get("asin"))
    if asin is None:
        log.warning(
            "Record skipped: missing or invalid ASIN",
            region=str(region),
            position=raw.position,
            asin=raw.get("asin"),
        )
        return None

    title = clean_text(raw.get("title"))
    if title is None:
        log.warning("Record skipped: missing title", region=str(region), position=raw.position, asin=asin)
        return None

    price_text = raw.get("price")
    price = parse_money(price_text, region)
    image_url = clean_text(raw.get("image"))

    try:
        return Product(
            asin=asin,
            title=title,
            region=region,
            position=raw.position,
            url=product_url(raw.get("link"), region, asin),
            image_url=urljoin(f"{region.base_url}/", image_url) if image_url else None,
            price=price,
            price_max=parse_price_ceiling(price_text, region),
            price_hidden=price is None and match_badge(price_text, region, "hidden_price"),
            original_price=parse_money(raw.get("original_price"), region),
            rating=parse_rating(raw.get("rating"), region),
            review_count=parse_review_count(raw.get("review_count")),
            in_stock=parse_in_stock(raw.get("availability"), region, price is not None),
            is_prime=match_badge(raw.get("prime"), region, "prime"),
            is_sponsored=match_badge(raw.get("sponsored"), region, "sponsored"),
            is_choice=match_badge(raw.get("choice"), region, "choice"),
            brand=clean_brand(raw.get("brand")),
        )
    except ValidationError as exc:
        log.warning(
            "Record skipped: invalid product",
            region=str(region),
            position=raw.position,
            asin=asin,
            errors=exc.error_count(),
            details=str(exc),
        )
        return None


def parse_total_results(text: str | None) -> int | None:
    """Announced result count from "1-48 of over 10,000 results".

    The count is the last number in the text, whatever the language.
    """
    if text is None:
        return None
    groups = _NUMBER_GROUP.findall(unicodedata.normalize("NFKC", text))
    if not groups:
        return None
    digits = "".join(ch for ch in groups[-1] if ch.isdigit())
    return int(digits) if digits else None
