"""Tests for structural extraction.

Validates the extractor including:
- Container selection and per-field fallback chains
- Attribute versus text extraction
- Restartable iteration
- Blocked-page detection

Testing Philosophy:
    Test the extractor against realistic but controlled HTML fixtures.
    Use the factory pattern to inject boundary conditions without duplication.
    The extractor never interprets values, so assertions compare raw strings.
"""

from typing import Callable

import pytest

from pricelens.extractor import (
    DocumentModel,
    extract,
    extract_page_fields,
    is_blocked,
    resolve_field,
    select_containers,
)
from pricelens.regions import PageKind
from pricelens.selectors import PRODUCT_RULES, SEARCH_RULES, FieldRule, SelectorSet


class TestSearchExtraction:
    """Test suite for search-results pages."""

    def test_one_item_per_container_in_document_order(
        self, search_html_factory: Callable[..., str]
    ) -> None:
        document = DocumentModel(search_html_factory(count=4))

        items = list(extract(document, SEARCH_RULES))

        assert [item.position for item in items] == [0, 1, 2, 3]
        assert [item.get("asin") for item in items] == [f"B0TEST{i:04d}" for i in range(4)]

    def test_raw_fields_are_uninterpreted(self, search_html_factory: Callable[..., str]) -> None:
        html = search_html_factory(
            count=1,
            overrides={0: {"price": "$1,234.56", "sponsored": "Sponsored", "choice": "Amazon's Choice"}},
        )

        (item,) = extract(DocumentModel(html), SEARCH_RULES)

        assert item.get("title") == "Wireless Headphones Model 1"
        assert item.get("link") == "/dp/B0TEST0000/ref=sr_1_1"
        assert item.get("price") == "$1,234.56"
        assert item.get("rating") == "4.5 out of 5 stars"
        assert item.get("review_count") == "1,234"
        assert item.get("prime") == "Amazon Prime"
        assert item.get("sponsored") == "Sponsored"
        assert item.get("choice") == "Amazon's Choice"
        assert item.get("original_price") is None

    def test_strike_through_price_kept_apart(self, search_html_factory: Callable[..., str]) -> None:
        html = search_html_factory(count=1, overrides={0: {"price": "$79.99", "original_price": "$99.99"}})

        (item,) = extract(DocumentModel(html), SEARCH_RULES)

        assert item.get("price") == "$79.99"
        assert item.get("original_price") == "$99.99"

    def test_missing_nodes_yield_none(self, search_html_factory: Callable[..., str]) -> None:
        html = search_html_factory(count=1, overrides={0: {"price": None, "rating": None, "prime": False}})

        (item,) = extract(DocumentModel(html), SEARCH_RULES)

        assert item.get("price") is None
        assert item.get("rating") is None
        assert item.get("prime") is None

    def test_whitespace_only_text_is_absent(self, search_html_factory: Callable[..., str]) -> None:
        html = search_html_factory(count=1, overrides={0: {"title": "   \n\t "}})

        (item,) = extract(DocumentModel(html), SEARCH_RULES)

        assert item.get("title") is None

    def test_iteration_is_restartable(self, search_html_factory: Callable[..., str]) -> None:
        items = extract(DocumentModel(search_html_factory(count=3)), SEARCH_RULES)

        assert list(items) == list(items)

    def test_no_containers_yields_nothing(self) -> None:
        document = DocumentModel("<html><body><p>Nothing here</p></body></html>")

        assert list(extract(document, SEARCH_RULES)) == []

    def test_empty_selector_set_yields_nothing(self, search_html_factory: Callable[..., str]) -> None:
        document = DocumentModel(search_html_factory(count=3))

        assert list(extract(document, SelectorSet(page_kind=PageKind.SEARCH_RESULTS))) == []

    def test_page_fields(self, search_html_factory: Callable[..., str]) -> None:
        document = DocumentModel(search_html_factory(count=1))

        fields = extract_page_fields(document, SEARCH_RULES)

        assert fields["total_results"] == "1-48 of over 10,000 results for"
        assert fields["next_page"] == "/s?k=headphones&page=2"

    def test_last_page_has_no_next_link(self, search_html_factory: Callable[..., str]) -> None:
        document = DocumentModel(search_html_factory(count=1, next_page=False, total_results=None))

        fields = extract_page_fields(document, SEARCH_RULES)

        assert fields == {"total_results": None, "next_page": None}


class TestFallbackChains:
    """Test suite for resolve_field and select_containers."""

    def test_fallback_used_when_primary_misses(self) -> None:
        document = DocumentModel('<div class="card"><span class="alt">Backup</span></div>')
        rule = FieldRule(css=".primary", fallback=FieldRule(css=".alt"))

        assert resolve_field(document.root, rule) == "Backup"

    def test_primary_wins_when_both_match(self) -> None:
        document = DocumentModel('<div><b class="primary">Main</b><i class="alt">Backup</i></div>')
        rule = FieldRule(css=".primary", fallback=FieldRule(css=".alt"))

        assert resolve_field(document.root, rule) == "Main"

    def test_empty_primary_falls_through(self) -> None:
        document = DocumentModel('<div><b class="primary"> </b><i class="alt">Backup</i></div>')
        rule = FieldRule(css=".primary", fallback=FieldRule(css=".alt"))

        assert resolve_field(document.root, rule) == "Backup"

    def test_list_attribute_joined(self) -> None:
        document = DocumentModel('<i class="a-icon a-icon-prime"></i>')

        assert resolve_field(document.root, FieldRule(css="i", attribute="class")) == "a-icon a-icon-prime"

    def test_exhausted_chain_is_none(self) -> None:
        document = DocumentModel("<div></div>")

        assert resolve_field(document.root, FieldRule(css=".x", fallback=FieldRule(css=".y"))) is None

    def test_container_fallback(self) -> None:
        html = (
            '<div class="s-result-item" data-asin="B000000001"></div>'
            '<div class="s-result-item" data-asin="B000000002"></div>'
        )
        containers = select_containers(DocumentModel(html).root, SEARCH_RULES.container)

        assert [node["data-asin"] for node in containers] == ["B000000001", "B000000002"]


class TestProductExtraction:
    """Test suite for product-detail pages."""

    def test_single_item_from_document(self, detail_html_factory: Callable[..., str]) -> None:
        html = detail_html_factory(canonical="https://www.amazon.de/dp/B08N5WRWNW")

        (item,) = extract(DocumentModel(html), PRODUCT_RULES)

        assert item.position == 0
        assert item.get("asin") == "B08N5WRWNW"
        assert item.get("title") == "Noise Cancelling Headphones"
        assert item.get("link") == "https://www.amazon.de/dp/B08N5WRWNW"
        assert item.get("price") == "89,99 €"
        assert item.get("rating") == "4,5 von 5 Sternen"
        assert item.get("availability") == "Auf Lager"
        assert item.get("brand") == "Marke: Sony"

    def test_strike_through_not_taken_as_price(self, detail_html_factory: Callable[..., str]) -> None:
        html = detail_html_factory(price="79,99 €", original_price="99,99 €")

        (item,) = extract(DocumentModel(html), PRODUCT_RULES)

        assert item.get("price") == "79,99 €"
        assert item.get("original_price") == "99,99 €"


class TestBlockedDetection:
    """Test suite for is_blocked."""

    def test_captcha_page_detected(self, captcha_html: str) -> None:
        marker = is_blocked(DocumentModel(captcha_html), SEARCH_RULES)

        assert marker == "form[action*='validateCaptcha']"

    @pytest.mark.parametrize(
        "html",
        [
            '<a href="/ref=cs_503_link">Go back</a>',
            '<img alt="Sorry! Something went wrong - dogs of Amazon" src="/x.jpg">',
        ],
    )
    def test_service_error_pages_detected(self, html: str) -> None:
        assert is_blocked(DocumentModel(html), PRODUCT_RULES) is not None

    def test_regular_page_not_blocked(self, search_html_factory: Callable[..., str]) -> None:
        assert is_blocked(DocumentModel(search_html_factory(count=2)), SEARCH_RULES) is None

    def test_product_image_mentioning_dogs_not_blocked(self, search_html_factory: Callable[..., str]) -> None:
        html = search_html_factory(count=1, overrides={0: {"title": "Dog bed for large dogs", "price": "$19.99"}})

        assert 'alt="Dog bed for large dogs"' in html
        assert is_blocked(DocumentModel(html), SEARCH_RULES) is None
