"""Shared fixtures for the PriceLens tests.

Storefront pages are built in memory by the *_html_factory fixtures, so no
test touches the network. Anything that reads settings should request
mock_config, which points every directory at tmp_path and resets the
cached GlobalConfig before and after the test.
"""

import html
from collections.abc import Callable, Iterator
from pathlib import Path
from typing import Any

import pytest
from loguru import logger

from config.settings import GlobalConfig
from pricelens.models import Money, Product
from pricelens.regions import Region


@pytest.fixture
def mock_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Iterator[GlobalConfig]:
    """GlobalConfig built from a test environment under tmp_path.

    Tests that need other values set the variable with monkeypatch and
    call ``get_config.cache_clear()`` before reloading.
    """
    from config.settings import get_config

    get_config.cache_clear()

    log_dir = tmp_path / "logs"
    output_dir = tmp_path / "output"
    input_dir = tmp_path / "pages"
    log_dir.mkdir()
    output_dir.mkdir()
    input_dir.mkdir()

    env = {
        "APP_NAME": "PriceLens-Test",
        "ENVIRONMENT": "test",
        "DEBUG": "false",
        "LOG_LEVEL": "DEBUG",
        "LOG_DIR": str(log_dir),
        "LOG_ROTATION": "1 day",
        "LOG_RETENTION": "1 day",
        "DEFAULT_REGION": "us",
        "INPUT_DIR": str(input_dir),
        "OUTPUT_DIR": str(output_dir),
        "MAX_RESULTS": "50",
        "MAX_CONCURRENT_REGIONS": "3",
        "MARKUP_THRESHOLD_PERCENT": "20",
        "PERCENT_PRECISION": "2",
        "SKIP_RATIO_WARNING_THRESHOLD": "0.30",
    }

    for key, value in env.items():
        monkeypatch.setenv(key, value)

    config = get_config()

    yield config

    get_config.cache_clear()


@pytest.fixture
def captured_logs() -> Iterator[list[dict[str, Any]]]:
    """Collect loguru records emitted during a test."""
    records: list[dict[str, Any]] = []
    handler_id = logger.add(lambda message: records.append(message.record), level="DEBUG")
    yield records
    logger.remove(handler_id)


def _esc(value: str) -> str:
    return html.escape(value, quote=True)


def _search_card(index: int, overrides: dict[str, Any]) -> str:
    """One search-result card; a None override omits the node."""
    values: dict[str, Any] = {
        "asin": f"B0TEST{index:04d}",
        "title": f"Wireless Headphones Model {index + 1}",
        "link": f"/dp/B0TEST{index:04d}/ref=sr_1_{index + 1}",
        "image": f"https://m.media-amazon.com/images/I/img{index}.jpg",
        "price": f"${10 + index}.99",
        "original_price": None,
        "rating": "4.5 out of 5 stars",
        "reviews": "1,234",
        "prime": True,
        "sponsored": None,
        "choice": None,
        "brand": None,
    }
    values.update(overrides)

    parts = []
    if values["title"] is not None:
        link = values["link"]
        href = f' href="{_esc(link)}"' if link is not None else ""
        parts.append(f'<h2><a class="a-link-normal"{href}><span>{_esc(values["title"])}</span></a></h2>')
    if values["image"] is not None:
        alt = _esc(values["title"] or "")
        parts.append(f'<img class="s-image" src="{_esc(values["image"])}" alt="{alt}">')
    if values["price"] is not None:
        parts.append(f'<span class="a-price"><span class="a-offscreen">{_esc(values["price"])}</span></span>')
    if values["original_price"] is not None:
        parts.append(
            '<span class="a-price a-text-price" data-a-strike="true">'
            f'<span class="a-offscreen">{_esc(values["original_price"])}</span></span>'
        )
    if values["rating"] is not None:
        parts.append(
            '<i class="a-icon a-icon-star-small">'
            f'<span class="a-icon-alt">{_esc(values["rating"])}</span></i>'
        )
    if values["reviews"] is not None:
        parts.append(f'<span class="a-size-base s-underline-text">{_esc(values["reviews"])}</span>')
    if values["prime"]:
        parts.append('<i class="a-icon a-icon-prime" aria-label="Amazon Prime"></i>')
    if values["sponsored"] is not None:
        parts.append(f'<span class="puis-label-popover-default">{_esc(values["sponsored"])}</span>')
    if values["choice"] is not None:
        parts.append(
            '<div data-component-type="s-merchandised-badge">'
            f'<span class="a-badge-text">{_esc(values["choice"])}</span></div>'
        )
    if values["brand"] is not None:
        parts.append(f'<h5 class="s-line-clamp-1"><span>{_esc(values["brand"])}</span></h5>')

    asin_attr = f' data-asin="{_esc(values["asin"])}"' if values["asin"] is not None else ""
    return (
        f'<div data-component-type="s-search-result"{asin_attr}>'
        + "".join(parts)
        + "</div>"
    )


@pytest.fixture
def search_html_factory() -> Callable[..., str]:
    """Factory fixture for generating marketplace search-results pages.

    Supports injection of malformed or missing fields per card for
    boundary testing.

    Example:
        def test_extraction(search_html_factory):
            html = search_html_factory(count=3, overrides={0: {"price": None}})
            # First card has no price node
    """

    def _search_page(
        count: int = 5,
        overrides: dict[int, dict[str, Any]] | None = None,
        total_results: str | None = "1-48 of over 10,000 results for",
        next_page: bool = True,
        extra_body: str = "",
    ) -> str:
        overrides = overrides or {}
        cards = "".join(_search_card(i, overrides.get(i, {})) for i in range(count))
        info_bar = (
            '<div data-component-type="s-result-info-bar"><h1>'
            f"<span>{_esc(total_results)}</span></h1></div>"
            if total_results is not None
            else ""
        )
        pagination = (
            '<a class="s-pagination-next" href="/s?k=headphones&amp;page=2">Next</a>' if next_page else ""
        )
        return f"""<!DOCTYPE html>
        <html>
        <head><title>Search results</title></head>
        <body>
            {info_bar}
            <div class="s-main-slot">{cards}</div>
            {pagination}
            {extra_body}
        </body>
        </html>
        """

    return _search_page


@pytest.fixture
def detail_html_factory() -> Callable[..., str]:
    """Factory fixture for generating product-detail pages.

    Every keyword maps to one page element; passing None omits it.
    """

    def _detail_page(
        asin: str | None = "B08N5WRWNW",
        title: str | None = "Noise Cancelling Headphones",
        price: str | None = "89,99 €",
        original_price: str | None = None,
        rating: str | None = "4,5 von 5 Sternen",
        reviews: str | None = "1.234 Sternebewertungen",
        availability: str | None = "Auf Lager",
        prime: bool = True,
        brand: str | None = "Marke: Sony",
        canonical: str | None = None,
    ) -> str:
        head = f'<link rel="canonical" href="{_esc(canonical)}">' if canonical else ""
        body = []
        if asin is not None:
            body.append(f'<input type="hidden" name="ASIN" value="{_esc(asin)}">')
        if title is not None:
            body.append(f'<span id="productTitle">  {_esc(title)}  </span>')
        prices = []
        if price is not None:
            prices.append(f'<span class="a-price"><span class="a-offscreen">{_esc(price)}</span></span>')
        if original_price is not None:
            prices.append(
                '<span class="a-price a-text-price" data-a-strike="true">'
                f'<span class="a-offscreen">{_esc(original_price)}</span></span>'
            )
        body.append(f'<div id="corePrice_feature_div">{"".join(prices)}</div>')
        if rating is not None:
            body.append(f'<span id="acrPopover"><span class="a-icon-alt">{_esc(rating)}</span></span>')
        if reviews is not None:
            body.append(f'<span id="acrCustomerReviewText">{_esc(reviews)}</span>')
        if availability is not None:
            body.append(f'<div id="availability"><span>{_esc(availability)}</span></div>')
        if prime:
            body.append('<i class="a-icon a-icon-prime" aria-label="Amazon Prime"></i>')
        if brand is not None:
            body.append(f'<a id="bylineInfo">{_esc(brand)}</a>')
        return f"<!DOCTYPE html><html><head>{head}</head><body>{''.join(body)}</body></html>"

    return _detail_page


@pytest.fixture
def captcha_html() -> str:
    """A bot-check page as served instead of real content."""
    return (
        "<html><body><h4>Enter the characters you see below</h4>"
        '<form method="get" action="/errors/validateCaptcha">'
        '<img src="https://images-na.ssl-images-amazon.com/captcha/abc/Captcha_xyz.jpg">'
        "</form></body></html>"
    )


@pytest.fixture
def product_factory() -> Callable[..., Product]:
    """Factory fixture for canonical Product records."""

    def _make(
        region: Region = Region.DE,
        amount: int | None = 8999,
        asin: str = "B08N5WRWNW",
        title: str = "Wireless Bluetooth Headphones",
        **fields: Any,
    ) -> Product:
        price = Money(amount=amount, currency=region.currency) if amount is not None else None
        return Product(
            asin=asin,
            title=title,
            region=region,
            url=f"{region.base_url}/dp/{asin}",
            price=price,
            **fields,
        )

    return _make
