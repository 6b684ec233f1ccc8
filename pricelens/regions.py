"""Regional storefront table and locale conventions.

Every storefront-specific convention lives here as data: domain,
currency, decimal/grouping separators, minor-unit exponent, accepted
currency symbols and localized badge texts. The table is built once at
import time and never mutated; parsing code always looks the convention
up by Region instead of guessing it from the text being parsed.
"""

from enum import Enum
from types import MappingProxyType
from typing import Literal

from pydantic import BaseModel, ConfigDict

BadgeKind = Literal["prime", "sponsored", "choice", "in_stock", "out_of_stock", "hidden_price"]


class PageKind(str, Enum):
    """Structural category of a fetched document."""

    SEARCH_RESULTS = "search"
    PRODUCT_DETAIL = "product"


class Region(str, Enum):
    """Supported storefronts.

    Declaration order is significant: it is the deterministic tie-break
    order used when two regions offer the same price.
    """

    US = "us"
    UK = "uk"
    DE = "de"
    FR = "fr"
    ES = "es"
    IT = "it"
    CA = "ca"
    AU = "au"
    JP = "jp"
    IN = "in"
    BR = "br"
    MX = "mx"
    NL = "nl"
    SE = "se"
    PL = "pl"

    @classmethod
    def parse(cls, value: str) -> "Region":
        """Resolve a region code or alias, case-insensitively.

        Raises:
            ValueError: If the value names no supported region.
        """
        key = value.strip().lower()
        region = _ALIASES.get(key)
        if region is None:
            valid = ", ".join(r.value for r in cls)
            raise ValueError(f"Unknown region '{value}'. Valid regions: {valid}")
        return region

    @property
    def locale(self) -> "RegionLocale":
        return LOCALES[self]

    @property
    def order(self) -> int:
        return _ORDER[self]

    @property
    def domain(self) -> str:
        return self.locale.domain

    @property
    def base_url(self) -> str:
        return f"https://www.{self.locale.domain}"

    @property
    def currency(self) -> str:
        return self.locale.currency

    def __str__(self) -> str:
        return self.value


class RegionLocale(BaseModel):
    """Locale conventions of one storefront.

    Attributes:
        domain: Storefront domain without scheme or www prefix.
        currency: ISO 4217 code of the storefront's currency.
        decimal_separator: Character separating the fractional part.
        thousands_separator: Grouping character used when rendering amounts.
        minor_unit_exponent: Number of fractional digits of the currency.
        language: BCP 47 display-language tag.
        currency_symbols: Symbols/codes that may denote this currency on the page.
        badges: Localized badge texts, per badge kind.
        rating_value_position: Which number in a rating text holds the value.
        symbol_after: Whether prices print the symbol after the amount.
    """

    domain: str
    currency: str
    decimal_separator: Literal[".", ","]
    thousands_separator: str
    minor_unit_exponent: int = 2
    language: str
    currency_symbols: tuple[str, ...]
    badges: dict[str, tuple[str, ...]]
    rating_value_position: Literal["first", "last"] = "first"
    symbol_after: bool = False

    model_config = ConfigDict(frozen=True)

    @property
    def grouping_character(self) -> str:
        """The one of '.'/',' that is not the decimal separator."""
        return "," if self.decimal_separator == "." else "."

    def badge_variants(self, kind: BadgeKind) -> tuple[str, ...]:
        """Accepted texts for a badge, English variants included."""
        local = self.badges.get(kind, ())
        return tuple(dict.fromkeys((*local, *_ENGLISH_BADGES[kind])))


_ENGLISH_BADGES: dict[str, tuple[str, ...]] = {
    "prime": ("prime",),
    "sponsored": ("sponsored",),
    "choice": ("amazon's choice", "amazon choice", "best seller", "bestseller"),
    "in_stock": ("in stock", "available"),
    "out_of_stock": ("out of stock", "currently unavailable", "unavailable", "not available"),
    "hidden_price": ("see price in cart", "add to cart to see", "to see our price", "see price"),
}


def _badges(**kinds: tuple[str, ...]) -> dict[str, tuple[str, ...]]:
    return dict(kinds)


_GERMAN = _badges(
    sponsored=("gesponsert",),
    choice=("amazons tipp",),
    in_stock=("auf lager", "vorrätig"),
    out_of_stock=("nicht auf lager", "nicht verfügbar"),
    hidden_price=("preis im einkaufswagen",),
)
_FRENCH = _badges(
    sponsored=("sponsorisé",),
    choice=("choix d'amazon", "meilleure vente", "des ventes"),
    in_stock=("en stock",),
    out_of_stock=("indisponible", "rupture de stock"),
    hidden_price=("voir le prix dans le panier",),
)
_SPANISH = _badges(
    sponsored=("patrocinado",),
    choice=("elección de amazon", "opción amazon", "más vendido"),
    in_stock=("en stock", "disponible"),
    out_of_stock=("no disponible", "agotado", "sin stock"),
)
_ITALIAN = _badges(
    sponsored=("sponsorizzato",),
    choice=("scelta amazon", "più venduto"),
    in_stock=("disponibilità immediata", "disponibile"),
    out_of_stock=("non disponibile",),
)
_JAPANESE = _badges(
    sponsored=("スポンサー",),
    choice=("amazonおすすめ", "amazon おすすめ", "ベストセラー"),
    in_stock=("在庫あり",),
    out_of_stock=("在庫切れ", "お取り扱いできません"),
)
_PORTUGUESE = _badges(
    sponsored=("patrocinado",),
    choice=("escolha da amazon", "mais vendido"),
    in_stock=("em estoque",),
    out_of_stock=("não disponível", "indisponível", "esgotado"),
)
_DUTCH = _badges(
    sponsored=("gesponsord",),
    choice=("amazon's keuze", "amazons keuze"),
    in_stock=("op voorraad",),
    out_of_stock=("niet op voorraad", "niet beschikbaar", "niet verkrijgbaar"),
)
_SWEDISH = _badges(
    sponsored=("sponsrad",),
    choice=("amazons val", "bästsäljare"),
    in_stock=("i lager",),
    out_of_stock=("ej i lager", "inte i lager", "slut i lager", "inte tillgänglig"),
)
_POLISH = _badges(
    sponsored=("sponsorowane",),
    choice=("wybór amazon",),
    in_stock=("w magazynie", "dostępny"),
    out_of_stock=("niedostępny", "brak w magazynie"),
)
_ENGLISH = _badges()

NARROW_NBSP = "\u202f"
NBSP = "\u00a0"

LOCALES: MappingProxyType = MappingProxyType(
    {
        Region.US: RegionLocale(
            domain="amazon.com", currency="USD", decimal_separator=".",
            thousands_separator=",", language="en-US",
            currency_symbols=("$", "US$", "USD"), badges=_ENGLISH,
        ),
        Region.UK: RegionLocale(
            domain="amazon.co.uk", currency="GBP", decimal_separator=".",
            thousands_separator=",", language="en-GB",
            currency_symbols=("£", "GBP"), badges=_ENGLISH,
        ),
        Region.DE: RegionLocale(
            domain="amazon.de", currency="EUR", decimal_separator=",",
            thousands_separator=".", language="de-DE",
            currency_symbols=("€", "EUR"), badges=_GERMAN, symbol_after=True,
        ),
        Region.FR: RegionLocale(
            domain="amazon.fr", currency="EUR", decimal_separator=",",
            thousands_separator=NARROW_NBSP, language="fr-FR",
            currency_symbols=("€", "EUR"), badges=_FRENCH, symbol_after=True,
        ),
        Region.ES: RegionLocale(
            domain="amazon.es", currency="EUR", decimal_separator=",",
            thousands_separator=".", language="es-ES",
            currency_symbols=("€", "EUR"), badges=_SPANISH, symbol_after=True,
        ),
        Region.IT: RegionLocale(
            domain="amazon.it", currency="EUR", decimal_separator=",",
            thousands_separator=".", language="it-IT",
            currency_symbols=("€", "EUR"), badges=_ITALIAN, symbol_after=True,
        ),
        Region.CA: RegionLocale(
            domain="amazon.ca", currency="CAD", decimal_separator=".",
            thousands_separator=",", language="en-CA",
            currency_symbols=("$", "CA$", "CDN$", "C$", "CAD"), badges=_ENGLISH,
        ),
        Region.AU: RegionLocale(
            domain="amazon.com.au", currency="AUD", decimal_separator=".",
            thousands_separator=",", language="en-AU",
            currency_symbols=("$", "A$", "AU$", "AUD"), badges=_ENGLISH,
        ),
        Region.JP: RegionLocale(
            domain="amazon.co.jp", currency="JPY", decimal_separator=".",
            thousands_separator=",", minor_unit_exponent=0, language="ja-JP",
            currency_symbols=("¥", "￥", "円", "JPY"), badges=_JAPANESE,
            rating_value_position="last",
        ),
        Region.IN: RegionLocale(
            domain="amazon.in", currency="INR", decimal_separator=".",
            thousands_separator=",", language="en-IN",
            currency_symbols=("₹", "Rs.", "Rs", "INR"), badges=_ENGLISH,
        ),
        Region.BR: RegionLocale(
            domain="amazon.com.br", currency="BRL", decimal_separator=",",
            thousands_separator=".", language="pt-BR",
            currency_symbols=("R$", "BRL"), badges=_PORTUGUESE,
        ),
        Region.MX: RegionLocale(
            domain="amazon.com.mx", currency="MXN", decimal_separator=".",
            thousands_separator=",", language="es-MX",
            currency_symbols=("$", "MX$", "MXN"), badges=_SPANISH,
        ),
        Region.NL: RegionLocale(
            domain="amazon.nl", currency="EUR", decimal_separator=",",
            thousands_separator=".", language="nl-NL",
            currency_symbols=("€", "EUR"), badges=_DUTCH, symbol_after=True,
        ),
        Region.SE: RegionLocale(
            domain="amazon.se", currency="SEK", decimal_separator=",",
            thousands_separator=NBSP, language="sv-SE",
            currency_symbols=("kr", "SEK"), badges=_SWEDISH, symbol_after=True,
        ),
        Region.PL: RegionLocale(
            domain="amazon.pl", currency="PLN", decimal_separator=",",
            thousands_separator=NBSP, language="pl-PL",
            currency_symbols=("zł", "PLN"), badges=_POLISH, symbol_after=True,
        ),
    }
)

# Minor-unit exponent per currency, derived from the storefront table.
CURRENCY_EXPONENTS: MappingProxyType = MappingProxyType(
    {loc.currency: loc.minor_unit_exponent for loc in LOCALES.values()}
)

# Every symbol any storefront may print, longest first so "R$" wins over "$".
KNOWN_CURRENCY_SYMBOLS: tuple[str, ...] = tuple(
    sorted(
        {symbol for loc in LOCALES.values() for symbol in loc.currency_symbols},
        key=lambda s: (-len(s), s),
    )
)

_ORDER = MappingProxyType({region: index for index, region in enumerate(Region)})

_ALIASES: dict[str, Region] = {
    **{region.value: region for region in Region},
    "usa": Region.US,
    "united states": Region.US,
    "gb": Region.UK,
    "united kingdom": Region.UK,
    "germany": Region.DE,
    "france": Region.FR,
    "spain": Region.ES,
    "italy": Region.IT,
    "canada": Region.CA,
    "australia": Region.AU,
    "japan": Region.JP,
    "india": Region.IN,
    "brazil": Region.BR,
    "mexico": Region.MX,
    "netherlands": Region.NL,
    "sweden": Region.SE,
    "poland": Region.PL,
}


def minor_unit_exponent(currency: str) -> int:
    """Fractional digits of a currency; 2 for currencies outside the table."""
    return CURRENCY_EXPONENTS.get(currency, 2)
