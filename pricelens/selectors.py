"""Declarative CSS selector rules per (page kind, region).

Rules are pure data: a CSS path relative to the item container (or the
container itself), an optional attribute to read instead of text
content, and an optional fallback rule tried only when the primary rule
matches nothing. Markup changes are handled by editing this table (or
an overrides file) without touching extraction code.

Update process: when a storefront changes its markup, capture an HTML
sample, adjust the rule here or in the overrides file, and add a test
fixture reproducing the new variant.
"""

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import soupsieve
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from pricelens.exceptions import SelectorConfigError
from pricelens.logger import get_logger
from pricelens.regions import PageKind, Region

log = get_logger(__name__)


def _compile(css: str) -> None:
    try:
        soupsieve.compile(css)
    except soupsieve.SelectorSyntaxError as exc:
        raise ValueError(f"invalid CSS selector {css!r}: {exc}") from exc


class FieldRule(BaseModel):
    """How to reach one raw value from a container node.

    Attributes:
        css: Selector relative to the container; ``None`` targets the
            container node itself.
        attribute: Attribute to read; ``None`` reads the text content.
        fallback: Rule tried only when this one yields no value.
    """

    model_config = ConfigDict(frozen=True)

    css: str | None = None
    attribute: str | None = None
    fallback: "FieldRule | None" = None

    @field_validator("css")
    @classmethod
    def compile_css(cls, value: str | None) -> str | None:
        """Reject uncompilable selectors when the rule is built."""
        if value is not None:
            _compile(value)
        return value

    def chain(self) -> list["FieldRule"]:
        """This rule followed by its fallbacks, in trial order."""
        rules: list[FieldRule] = []
        rule: FieldRule | None = self
        while rule is not None:
            rules.append(rule)
            rule = rule.fallback
        return rules


FieldRule.model_rebuild()


class SelectorSet(BaseModel):
    """Complete rule set for one page kind (and optionally one region).

    Attributes:
        page_kind: Page kind the rules apply to.
        container: Rule selecting the repeated item containers; ``None``
            means the rule set is empty and extraction yields zero items.
        fields: Ordered field name to rule mapping.
        page_fields: Rules resolved once against the whole document.
        blocked_markers: Selectors identifying CAPTCHA or error pages.
    """

    model_config = ConfigDict(frozen=True)

    page_kind: PageKind
    container: FieldRule | None = None
    fields: dict[str, FieldRule] = Field(default_factory=dict)
    page_fields: dict[str, FieldRule] = Field(default_factory=dict)
    blocked_markers: tuple[str, ...] = ()

    @field_validator("blocked_markers")
    @classmethod
    def compile_markers(cls, value: tuple[str, ...]) -> tuple[str, ...]:
        for css in value:
            _compile(css)
        return value

    @property
    def is_empty(self) -> bool:
        return self.container is None

    def merged(self, override: dict[str, Any]) -> "SelectorSet":
        """Copy with an override's container/fields replacing these rules."""
        data = self.model_dump()
        for key in ("fields", "page_fields"):
            data[key].update(override.get(key, {}))
        if "container" in override:
            data["container"] = override["container"]
        if "blocked_markers" in override:
            data["blocked_markers"] = override["blocked_markers"]
        return SelectorSet.model_validate(data)


def _rule(css: str | None, attribute: str | None = None, *fallbacks: FieldRule) -> FieldRule:
    """Build a rule whose fallbacks are tried in the given order."""
    fallback = None
    for candidate in reversed(fallbacks):
        fallback = candidate.model_copy(update={"fallback": fallback})
    return FieldRule(css=css, attribute=attribute, fallback=fallback)


_BLOCKED_MARKERS = (
    "form[action*='validateCaptcha']",
    "img[src*='captcha']",
    "a[href='/ref=cs_503_link']",
    "img[alt*='dogs of amazon' i]",
)

SEARCH_RULES = SelectorSet(
    page_kind=PageKind.SEARCH_RESULTS,
    container=_rule(
        "div[data-component-type='s-search-result']",
        None,
        FieldRule(css="div.s-result-item[data-asin]"),
    ),
    fields={
        "asin": _rule(None, "data-asin"),
        "title": _rule(
            "h2 a span",
            None,
            FieldRule(css="h2 span.a-text-normal"),
            FieldRule(css=".a-size-medium.a-text-normal, .a-size-base-plus.a-text-normal"),
        ),
        "link": _rule(
            "h2 a",
            "href",
            FieldRule(css="a.a-link-normal.s-underline-text", attribute="href"),
        ),
        "image": _rule("img.s-image", "src", FieldRule(css=".s-product-image-container img", attribute="src")),
        "price": _rule(
            ".a-price:not([data-a-strike]) .a-offscreen",
            None,
            FieldRule(css=".a-price .a-offscreen"),
        ),
        "original_price": _rule(
            ".a-price[data-a-strike] .a-offscreen",
            None,
            FieldRule(css=".a-text-price .a-offscreen"),
        ),
        "rating": _rule(
            "i.a-icon-star-small span.a-icon-alt",
            None,
            FieldRule(css="span.a-icon-alt"),
        ),
        "review_count": _rule(
            "span.a-size-base.s-underline-text",
            None,
            FieldRule(css="a[href*='customerReviews'] span"),
        ),
        "prime": _rule(
            "i.a-icon-prime",
            "aria-label",
            FieldRule(css="i.a-icon-prime", attribute="class"),
            FieldRule(css="[data-component-type='s-prime-badge']", attribute="class"),
        ),
        "sponsored": _rule(
            ".puis-label-popover-default",
            None,
            FieldRule(css=".s-label-popover-default"),
            FieldRule(css=".puis-sponsored-label-text"),
        ),
        "choice": _rule(
            "[data-component-type='s-merchandised-badge'] .a-badge-text",
            None,
            FieldRule(css=".a-badge-text"),
        ),
        "brand": _rule(
            "h5.s-line-clamp-1 span",
            None,
            FieldRule(css=".a-size-base-plus.a-color-base"),
        ),
    },
    page_fields={
        "total_results": _rule(
            "[data-component-type='s-result-info-bar'] h1 span",
            None,
            FieldRule(css=".s-breadcrumb .a-section span"),
        ),
        "next_page": _rule("a.s-pagination-next", "href"),
    },
    blocked_markers=_BLOCKED_MARKERS,
)

PRODUCT_RULES = SelectorSet(
    page_kind=PageKind.PRODUCT_DETAIL,
    container=FieldRule(css="html"),
    fields={
        "asin": _rule(
            "input[name='ASIN']",
            "value",
            FieldRule(css="#averageCustomerReviews[data-asin]", attribute="data-asin"),
            FieldRule(css="div[data-asin]", attribute="data-asin"),
        ),
        "title": _rule("#productTitle", None, FieldRule(css="#title span")),
        "link": _rule("link[rel='canonical']", "href"),
        "image": _rule(
            "#landingImage",
            "src",
            FieldRule(css="#landingImage", attribute="data-old-hires"),
            FieldRule(css="#imgTagWrapperId img", attribute="src"),
        ),
        "price": _rule(
            "#corePrice_feature_div .a-price:not([data-a-strike]) .a-offscreen",
            None,
            FieldRule(css="#priceblock_dealprice"),
            FieldRule(css="#priceblock_ourprice"),
            FieldRule(css="#apex_desktop .a-price .a-offscreen"),
        ),
        "original_price": _rule(
            "#corePrice_feature_div .a-text-price .a-offscreen",
            None,
            FieldRule(css=".basisPrice .a-offscreen"),
        ),
        "rating": _rule(
            "#acrPopover span.a-icon-alt",
            None,
            FieldRule(css="#acrPopover", attribute="title"),
            FieldRule(css=".a-icon-star span.a-icon-alt"),
        ),
        "review_count": _rule("#acrCustomerReviewText", None, FieldRule(css="#acrCustomerReviewLink span")),
        "availability": _rule("#availability span", None, FieldRule(css="#outOfStock span")),
        "prime": _rule(
            "#prime-badge",
            "aria-label",
            FieldRule(css="i.a-icon-prime", attribute="aria-label"),
            FieldRule(css="i.a-icon-prime", attribute="class"),
        ),
        "choice": _rule(
            "#acBadge_feature_div .a-badge-text",
            None,
            FieldRule(css=".ac-badge-wrapper"),
        ),
        "brand": _rule("#bylineInfo", None, FieldRule(css=".po-brand .po-break-word")),
    },
    blocked_markers=_BLOCKED_MARKERS,
)


@dataclass(frozen=True)
class SelectorTable:
    """Rule sets keyed by page kind, with optional per-region overrides."""

    defaults: dict[PageKind, SelectorSet]
    regional: dict[tuple[PageKind, Region], SelectorSet] = field(default_factory=dict)

    def get(self, page_kind: PageKind, region: Region) -> SelectorSet:
        """Rules for ``(page_kind, region)``.

        Falls back to the page kind's default rules; a page kind with no
        rules at all yields an empty SelectorSet (zero items).
        """
        selector_set = self.regional.get((page_kind, region)) or self.defaults.get(page_kind)
        if selector_set is None:
            log.warning("No selector rules configured", page_kind=page_kind.value, region=str(region))
            return SelectorSet(page_kind=page_kind)
        return selector_set


DEFAULT_TABLE = SelectorTable(
    defaults={PageKind.SEARCH_RESULTS: SEARCH_RULES, PageKind.PRODUCT_DETAIL: PRODUCT_RULES}
)


def get_selector_set(
    page_kind: PageKind,
    region: Region,
    table: SelectorTable | None = None,
) -> SelectorSet:
    """Look up the rule set for a page, using the built-in table by default."""
    return (table or DEFAULT_TABLE).get(page_kind, region)


def load_selector_table(path: Path | None) -> SelectorTable:
    """Merge a JSON overrides file over the built-in rules.

    The file holds a list of entries::

        [{"page_kind": "search", "region": "de",
          "fields": {"title": {"css": "h2 span"}}}]

    An entry without ``region`` replaces the page kind's default rules.
    Calling this again re-reads the file, which is how rule updates are
    picked up at runtime.

    Args:
        path: Overrides file, or None for the built-in table.

    Returns:
        A new SelectorTable.

    Raises:
        SelectorConfigError: If the file cannot be read or holds invalid rules.
    """
    if path is None:
        return DEFAULT_TABLE

    try:
        entries = json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise SelectorConfigError(str(path), str(exc)) from exc

    if not isinstance(entries, list):
        raise SelectorConfigError(str(path), "top-level JSON value must be a list")

    defaults = dict(DEFAULT_TABLE.defaults)
    regional: dict[tuple[PageKind, Region], SelectorSet] = {}

    try:
        for entry in entries:
            page_kind = PageKind(entry["page_kind"])
            base = defaults.get(page_kind) or SelectorSet(page_kind=page_kind)
            merged = base.merged(entry)
            if entry.get("region"):
                regional[(page_kind, Region.parse(entry["region"]))] = merged
            else:
                defaults[page_kind] = merged
    except (KeyError, TypeError, ValueError, ValidationError) as exc:
        raise SelectorConfigError(str(path), str(exc)) from exc

    log.info("Selector overrides loaded", path=str(path), entries=len(entries))
    return SelectorTable(defaults=defaults, regional=regional)
