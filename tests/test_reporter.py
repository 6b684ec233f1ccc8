"""Tests for report generation.

Validates ReportGenerator including:
- Text renderings (table, CSV, JSON, Markdown)
- Comparison summaries
- Excel workbook and Plotly dashboard files

Testing Philosophy:
    Renderings are checked for content, not exact layout. File reports
    are written into the tmp output directory of mock_config and read
    back with the same libraries that produced them.
"""

import json
from decimal import Decimal
from typing import Callable

import pandas as pd
import pytest

from config.settings import GlobalConfig
from pricelens.comparison import ComparisonEngine, PriceComparison
from pricelens.exceptions import ReportGenerationError
from pricelens.models import Money, Product
from pricelens.regions import Region
from pricelens.reporter import CSV_COLUMNS, ReportGenerator


@pytest.fixture
def reporter(mock_config: GlobalConfig) -> ReportGenerator:
    return ReportGenerator(mock_config)


@pytest.fixture
def products(product_factory: Callable[..., Product]) -> list[Product]:
    return [
        product_factory(Region.DE, 8999, asin="B000000001", title="Headphones, black", rating=4.5, is_prime=True),
        product_factory(Region.DE, None, asin="B000000002", title="Headphones | white", rating=None),
        product_factory(Region.US, 1299, asin="B000000003", title="USB Cable", rating=3.8, review_count=12),
    ]


@pytest.fixture
def comparison(product_factory: Callable[..., Product]) -> PriceComparison:
    return ComparisonEngine().compare(
        "B08N5WRWNW",
        {
            Region.DE: product_factory(Region.DE, 8999),
            Region.FR: product_factory(Region.FR, 9999),
            Region.IT: product_factory(Region.IT, 11999),
            Region.ES: None,
        },
    )


class TestTextRenderings:
    """Test suite for render_products."""

    def test_csv(self, reporter: ReportGenerator, products: list[Product]) -> None:
        lines = reporter.render_products(products, "csv").splitlines()

        assert lines[0] == ",".join(CSV_COLUMNS)
        assert lines[1].startswith('B000000001,"Headphones, black",89.99,,,EUR,4.5')
        assert lines[2].startswith("B000000002,Headphones | white,,,,EUR,")

    def test_empty_csv_is_header_only(self, reporter: ReportGenerator) -> None:
        assert reporter.render_products([], "csv") == ",".join(CSV_COLUMNS)

    def test_json(self, reporter: ReportGenerator, products: list[Product]) -> None:
        payload = json.loads(reporter.render_products(products, "json"))

        assert payload[0]["asin"] == "B000000001"
        assert payload[0]["price"] == {"amount": 8999, "currency": "EUR"}
        assert payload[1]["price"] is None
        assert payload[2]["region"] == "us"

    def test_table(self, reporter: ReportGenerator, products: list[Product]) -> None:
        text = reporter.render_products(products, "table")

        assert "89,99 €" in text
        assert "$12.99" in text
        assert "N/A" in text
        assert text.endswith("3 products found")

    def test_markdown_escapes_pipes(self, reporter: ReportGenerator, products: list[Product]) -> None:
        text = reporter.render_products(products, "markdown")

        assert text.startswith("| ASIN | Price |")
        assert "Headphones \\| white" in text
        assert "*3 products found*" in text

    def test_price_range_and_hidden_price(
        self, reporter: ReportGenerator, product_factory: Callable[..., Product]
    ) -> None:
        ranged = product_factory(
            Region.US, 1299, asin="B000000004", price_max=Money(amount=2499, currency="USD")
        )
        hidden = product_factory(Region.US, None, asin="B000000005", price_hidden=True)

        text = reporter.render_products([ranged, hidden], "table")
        csv_row = reporter.render_products([ranged], "csv").splitlines()[1]

        assert "$12.99 - $24.99" in text
        assert "in cart" in text
        assert csv_row.startswith("B000000004,Wireless Bluetooth Headphones,12.99,24.99,")

    def test_empty_table(self, reporter: ReportGenerator) -> None:
        assert reporter.render_products([], "table") == "No products found."

    def test_unknown_format(self, reporter: ReportGenerator, products: list[Product]) -> None:
        with pytest.raises(ReportGenerationError):
            reporter.render_products(products, "yaml")


class TestComparisonRendering:
    """Test suite for render_comparison."""

    def test_summary_lines(self, reporter: ReportGenerator, comparison: PriceComparison) -> None:
        text = reporter.render_comparison(comparison)

        assert text.splitlines()[0] == "ASIN: B08N5WRWNW"
        assert "Best:  de 89.99 EUR" in text
        assert "fr: 99.99 EUR (+10.00 EUR, +11.11%)" in text
        assert "it: 119.99 EUR (+30.00 EUR, +33.34%)  HIGH MARKUP" in text
        assert "Max savings: 30.00 EUR (25.00%)" in text
        assert text.endswith("Excluded: es")

    def test_incomparable(self, reporter: ReportGenerator) -> None:
        comparison = ComparisonEngine().compare("B08N5WRWNW", {Region.DE: None})

        text = reporter.render_comparison(comparison)

        assert "Not comparable: no region has a price." in text

    def test_json(self, reporter: ReportGenerator, comparison: PriceComparison) -> None:
        payload = json.loads(reporter.render_comparison(comparison, "json"))

        assert payload["best_region"] == "de"
        assert payload["is_comparable"] is True
        assert payload["entries"][1]["is_high_markup"] is True
        assert Decimal(payload["entries"][0]["delta_percent"]) == Decimal("11.11")


class TestFileReports:
    """Test suite for Excel, dashboard and text files."""

    def test_excel_workbook(
        self,
        reporter: ReportGenerator,
        mock_config: GlobalConfig,
        products: list[Product],
        comparison: PriceComparison,
    ) -> None:
        path = reporter.generate_excel(products, filename="report", comparisons=[comparison])

        assert path == mock_config.output_dir / "report.xlsx"
        sheets = pd.read_excel(path, sheet_name=None)
        assert list(sheets) == ["Products", "Summary", "Price Analysis", "Rating Distribution", "Comparisons"]
        assert len(sheets["Products"]) == 3
        assert set(sheets["Price Analysis"]["currency"]) == {"EUR", "USD"}
        assert sheets["Summary"]["Total Items"].iloc[0] == 3
        assert len(sheets["Comparisons"]) == 3

    def test_excel_without_comparisons(self, reporter: ReportGenerator, products: list[Product]) -> None:
        path = reporter.generate_excel(products, filename="plain")

        assert "Comparisons" not in pd.read_excel(path, sheet_name=None)

    def test_dashboard(self, reporter: ReportGenerator, comparison: PriceComparison) -> None:
        path = reporter.generate_comparison_dashboard(comparison, filename="dash")

        assert path.name == "dash.html"
        content = path.read_text(encoding="utf-8")
        assert "PriceLens Comparison: B08N5WRWNW" in content

    def test_dashboard_requires_comparable_result(self, reporter: ReportGenerator) -> None:
        comparison = ComparisonEngine().compare("B08N5WRWNW", {Region.DE: None})

        with pytest.raises(ReportGenerationError):
            reporter.generate_comparison_dashboard(comparison)

    def test_write_text(self, reporter: ReportGenerator, mock_config: GlobalConfig) -> None:
        path = reporter.write_text("hello", "out.txt")

        assert path.parent == mock_config.output_dir
        assert path.read_text(encoding="utf-8") == "hello\n"
