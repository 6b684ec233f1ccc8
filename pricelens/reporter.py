"""Output side of the pipeline.

Products render as table, CSV, JSON or Markdown text; comparisons as a
text summary or JSON. Batches are also saved as an openpyxl workbook
through pandas, and each comparable ASIN as a Plotly dashboard.

Records arriving here are canonical (integer minor units, tagged with
their region), so rendering never re-parses text. Localized price
strings are produced with format_money, the inverse of the parser.

Dashboards embed plotly.js, so the HTML file opens offline on its own.
"""

import json
from collections.abc import Iterable, Sequence
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Literal

import pandas as pd
import plotly.graph_objects as go
from plotly.subplots import make_subplots

from config.settings import GlobalConfig, get_config
from pricelens.comparison import PriceComparison
from pricelens.exceptions import ReportGenerationError
from pricelens.logger import get_logger
from pricelens.models import Money, Product
from pricelens.normalizer import format_money

log = get_logger(__name__)

OutputFormat = Literal["table", "csv", "json", "markdown"]

CSV_COLUMNS = [
    "asin",
    "title",
    "price",
    "price_max",
    "original_price",
    "currency",
    "rating",
    "reviews",
    "prime",
    "sponsored",
    "amazon_choice",
    "in_stock",
    "brand",
    "url",
]

_TITLE_WIDTH = 50


def _truncate(text: str, width: int = _TITLE_WIDTH) -> str:
    return text if len(text) <= width else text[: width - 3] + "..."


def _display_price(product: Product) -> str:
    if product.price is None:
        return "in cart" if product.price_hidden else "N/A"
    low = format_money(product.price, product.region)
    if product.price_max is None:
        return low
    return f"{low} - {format_money(product.price_max, product.region)}"


class ReportGenerator:
    """Turns products and comparisons into text, workbooks and dashboards.

    Text renderings are returned as strings; file reports land in
    ``config.output_dir`` and default to names stamped with the moment
    the generator was created, so one batch shares one suffix.

    Example:
        reporter = ReportGenerator(config)
        print(reporter.render_products(page.products, "table"))
        excel_path = reporter.generate_excel(page.products)
        html_path = reporter.generate_comparison_dashboard(comparison)
    """

    def __init__(self, config: GlobalConfig | None = None) -> None:
        self.config = config or get_config()
        self._timestamp = datetime.now(UTC).strftime("%Y%m%d_%H%M%S")

    def _ensure_output_dir(self) -> Path:
        output_dir = self.config.output_dir
        try:
            output_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise ReportGenerationError(
                report_type="output",
                reason=f"directory unusable: {exc}",
                output_path=str(output_dir),
            ) from exc
        return output_dir

    # Text renderings

    def _products_to_dataframe(self, products: Sequence[Product]) -> pd.DataFrame:
        """Flat, CSV-shaped DataFrame with prices in major units."""
        records = [
            {
                "asin": p.asin,
                "title": p.title,
                "price": p.price.to_decimal() if p.price else None,
                "price_max": p.price_max.to_decimal() if p.price_max else None,
                "original_price": p.original_price.to_decimal() if p.original_price else None,
                "currency": p.price.currency if p.price else p.region.currency,
                "rating": p.rating,
                "reviews": p.review_count,
                "prime": p.is_prime,
                "sponsored": p.is_sponsored,
                "amazon_choice": p.is_choice,
                "in_stock": p.in_stock,
                "brand": p.brand,
                "url": p.url,
            }
            for p in products
        ]
        return pd.DataFrame(records, columns=CSV_COLUMNS)

    def render_products(self, products: Sequence[Product], fmt: OutputFormat = "table") -> str:
        """Render products in one of the text formats.

        Args:
            products: Normalized products, rendered in the given order.
            fmt: ``table``, ``csv``, ``json`` or ``markdown``.

        Returns:
            The rendered text.

        Raises:
            ReportGenerationError: If the format is unknown.
        """
        if fmt == "json":
            return json.dumps([p.model_dump(mode="json") for p in products], indent=2, ensure_ascii=False)
        if fmt == "csv":
            return self._products_to_dataframe(products).to_csv(index=False, lineterminator="\n").rstrip("\n")
        if fmt not in ("table", "markdown"):
            raise ReportGenerationError(report_type="text", reason=f"Unknown output format '{fmt}'")
        if not products:
            return "No products found."
        if fmt == "markdown":
            return self._render_markdown(products)
        return self._render_table(products)

    def _render_table(self, products: Sequence[Product]) -> str:
        frame = pd.DataFrame(
            [
                {
                    "#": p.position + 1,
                    "ASIN": p.asin,
                    "Price": _display_price(p),
                    "Rating": f"{p.rating:.1f}" if p.rating is not None else "-",
                    "Reviews": p.review_count if p.review_count is not None else "-",
                    "Prime": "yes" if p.is_prime else "",
                    "Title": _truncate(p.title),
                }
                for p in products
            ]
        )
        return f"{frame.to_string(index=False)}\n\n{len(products)} products found"

    def _render_markdown(self, products: Sequence[Product]) -> str:
        lines = ["| ASIN | Price | Rating | Prime | Title |", "|------|-------|--------|-------|-------|"]
        for p in products:
            rating = f"{p.rating:.1f}" if p.rating is not None else "-"
            prime = "✓" if p.is_prime else ""
            title = _truncate(p.title).replace("|", "\\|")
            lines.append(
                f"| {p.asin} | {_display_price(p)} | {rating} | {prime} | [{title}]({p.url}) |"
            )
        lines.append("")
        lines.append(f"*{len(products)} products found*")
        return "\n".join(lines)

    def render_comparison(self, comparison: PriceComparison, fmt: OutputFormat = "table") -> str:
        """Render a cross-region comparison as text or JSON."""
        if fmt == "json":
            payload = comparison.model_dump(mode="json")
            payload["is_comparable"] = comparison.is_comparable
            return json.dumps(payload, indent=2, ensure_ascii=False)

        lines = [f"ASIN: {comparison.asin}"]
        if not comparison.is_comparable:
            lines.append("Not comparable: no region has a price.")
        else:
            best = comparison.best_price
            lines.append(f"Best:  {comparison.best_region} {best}")
            for entry in comparison.entries:
                percent = f"+{entry.delta_percent}%" if entry.delta_percent is not None else "n/a"
                basis = Money(amount=entry.delta_amount, currency=comparison.basis_currency)
                flag = "  HIGH MARKUP" if entry.is_high_markup else ""
                lines.append(f"  {entry.region}: {entry.price} (+{basis}, {percent}){flag}")
            if comparison.max_savings is not None and comparison.max_savings.amount > 0:
                lines.append(
                    f"Max savings: {comparison.max_savings} ({comparison.max_savings_percent}%)"
                )
        if comparison.excluded_regions:
            lines.append("Excluded: " + ", ".join(str(r) for r in comparison.excluded_regions))
        return "\n".join(lines)

    # File reports

    def generate_excel(
        self,
        products: Sequence[Product],
        filename: str | None = None,
        comparisons: Iterable[PriceComparison] = (),
    ) -> Path:
        """Write products, and optionally comparisons, to one workbook.

        Sheets, in order: Products, Summary, Price Analysis (per currency),
        Rating Distribution (per rounded star count) and, only when
        ``comparisons`` is non-empty, Comparisons with one row per region.

        Args:
            products: Normalized products.
            filename: File stem; a timestamped default is used if omitted.
            comparisons: Cross-region comparisons to include.

        Returns:
            Path of the .xlsx file.

        Raises:
            ReportGenerationError: If the workbook cannot be built or saved.
        """
        output_dir = self._ensure_output_dir()
        filename = filename or f"pricelens_export_{self._timestamp}"
        output_path = output_dir / f"{filename}.xlsx"

        log.debug("Writing workbook", output_path=str(output_path))

        try:
            df = self._products_to_dataframe(products)
            df["region"] = [str(p.region) for p in products]
            df["price"] = pd.to_numeric(df["price"], errors="coerce")
            df["price_max"] = pd.to_numeric(df["price_max"], errors="coerce")
            df["original_price"] = pd.to_numeric(df["original_price"], errors="coerce")

            with pd.ExcelWriter(output_path, engine="openpyxl") as writer:
                df.to_excel(writer, sheet_name="Products", index=False)

                summary_df = pd.DataFrame([self._generate_summary_stats(df)])
                summary_df.to_excel(writer, sheet_name="Summary", index=False)

                self._generate_price_analysis(df).to_excel(writer, sheet_name="Price Analysis", index=False)

                rated = df.dropna(subset=["rating"])
                rating_dist = rated.groupby(rated["rating"].round()).size().reset_index(name="count")
                rating_dist.to_excel(writer, sheet_name="Rating Distribution", index=False)

                comparison_df = self._comparisons_to_dataframe(comparisons)
                if not comparison_df.empty:
                    comparison_df.to_excel(writer, sheet_name="Comparisons", index=False)

            log.info(
                "Workbook saved",
                output_path=str(output_path),
                total_items=len(products),
            )
            return output_path

        except Exception as exc:
            raise ReportGenerationError(
                report_type="Excel",
                reason=str(exc),
                output_path=str(output_path),
            ) from exc

    def _generate_summary_stats(self, df: pd.DataFrame) -> dict[str, Any]:
        return {
            "Generated (UTC)": datetime.now(UTC).isoformat(),
            "Total Items": len(df),
            "Regions": ", ".join(sorted(df["region"].unique())) if len(df) > 0 else "",
            "In Stock Count": int(df["in_stock"].sum()) if len(df) > 0 else 0,
            "Prime Count": int(df["prime"].sum()) if len(df) > 0 else 0,
            "Sponsored Count": int(df["sponsored"].sum()) if len(df) > 0 else 0,
            "Average Rating": f"{df['rating'].mean():.1f}" if df["rating"].notna().any() else "N/A",
        }

    def _generate_price_analysis(self, df: pd.DataFrame) -> pd.DataFrame:
        """Price statistics per currency; amounts are never mixed across currencies."""
        priced = df.dropna(subset=["price"])
        if priced.empty:
            return pd.DataFrame([{"message": "No data available"}])
        stats = priced.groupby("currency")["price"].agg(["count", "min", "max", "mean", "median"])
        return stats.round(2).reset_index()

    def _comparisons_to_dataframe(self, comparisons: Iterable[PriceComparison]) -> pd.DataFrame:
        rows = []
        for comparison in comparisons:
            if not comparison.is_comparable:
                continue
            rows.append(
                {
                    "asin": comparison.asin,
                    "region": str(comparison.best_region),
                    "price": float(comparison.best_price.to_decimal()),
                    "currency": comparison.best_price.currency,
                    "delta_percent": 0.0,
                    "high_markup": False,
                    "best": True,
                }
            )
            for entry in comparison.entries:
                rows.append(
                    {
                        "asin": comparison.asin,
                        "region": str(entry.region),
                        "price": float(entry.price.to_decimal()),
                        "currency": entry.price.currency,
                        "delta_percent": float(entry.delta_percent) if entry.delta_percent is not None else None,
                        "high_markup": entry.is_high_markup,
                        "best": False,
                    }
                )
        return pd.DataFrame(rows)

    def generate_comparison_dashboard(
        self,
        comparison: PriceComparison,
        filename: str | None = None,
    ) -> Path:
        """Two bar charts for one ASIN: price per region in the basis
        currency, and markup over the best price with the threshold drawn
        as a dashed line. The best region is green, flagged regions red.

        Returns:
            Path of the standalone .html file.

        Raises:
            ReportGenerationError: If the comparison is incomparable or
                rendering fails.
        """
        output_dir = self._ensure_output_dir()
        filename = filename or f"pricelens_compare_{comparison.asin}_{self._timestamp}"
        output_path = output_dir / f"{filename}.html"

        log.debug("Writing dashboard", output_path=str(output_path), asin=comparison.asin)

        if not comparison.is_comparable:
            raise ReportGenerationError(
                report_type="Dashboard",
                reason="no region has a price",
                output_path=str(output_path),
            )

        try:
            basis = comparison.basis_currency
            best_value = Money(amount=comparison.best_basis_amount, currency=basis).to_decimal()

            regions = [str(comparison.best_region)] + [str(e.region) for e in comparison.entries]
            values = [float(best_value)] + [
                float(Money(amount=e.basis_amount, currency=basis).to_decimal()) for e in comparison.entries
            ]
            percents = [0.0] + [float(e.delta_percent or 0) for e in comparison.entries]
            colors = ["#27ae60"] + ["#e74c3c" if e.is_high_markup else "#3498db" for e in comparison.entries]

            fig = make_subplots(
                rows=1,
                cols=2,
                subplot_titles=(f"Price per Region ({basis})", "Markup vs Best (%)"),
                horizontal_spacing=0.12,
            )

            fig.add_trace(
                go.Bar(
                    x=regions,
                    y=values,
                    name="Price",
                    marker_color=colors,
                    text=[f"{v:.2f}" for v in values],
                    textposition="auto",
                    hovertemplate=f"%{{x}}: %{{y:.2f}} {basis}<extra></extra>",
                ),
                row=1,
                col=1,
            )

            fig.add_trace(
                go.Bar(
                    x=regions,
                    y=percents,
                    name="Markup",
                    marker_color=colors,
                    text=[f"+{p:.2f}%" for p in percents],
                    textposition="auto",
                    hovertemplate="%{x}: +%{y:.2f}%<extra></extra>",
                ),
                row=1,
                col=2,
            )

            fig.add_hline(
                y=float(comparison.markup_threshold_percent),
                line_dash="dash",
                line_color="#e67e22",
                annotation_text=f"threshold {comparison.markup_threshold_percent}%",
                row=1,
                col=2,
            )

            fig.update_layout(
                title={
                    "text": (
                        f"<b>PriceLens Comparison: {comparison.asin}</b><br>"
                        f"<sup>Best: {comparison.best_region} {comparison.best_price} | "
                        f"Regions: {comparison.region_count} | "
                        f"{datetime.now(UTC):%Y-%m-%d %H:%M} UTC</sup>"
                    ),
                    "x": 0.5,
                    "xanchor": "center",
                },
                showlegend=False,
                height=500,
                template="plotly_white",
                font={"family": "Arial, sans-serif"},
            )
            fig.update_xaxes(title_text="Region", row=1, col=1)
            fig.update_xaxes(title_text="Region", row=1, col=2)

            fig.write_html(
                str(output_path),
                include_plotlyjs=True,
                full_html=True,
            )

            log.info(
                "Dashboard saved",
                output_path=str(output_path),
                asin=comparison.asin,
            )
            return output_path

        except Exception as exc:
            raise ReportGenerationError(
                report_type="Dashboard",
                reason=str(exc),
                output_path=str(output_path),
            ) from exc

    def write_text(self, content: str, filename: str) -> Path:
        """Write a text rendering into the output directory.

        Raises:
            ReportGenerationError: If the file cannot be written.
        """
        output_path = self._ensure_output_dir() / filename
        try:
            output_path.write_text(content + "\n", encoding="utf-8")
        except OSError as exc:
            raise ReportGenerationError(
                report_type="text",
                reason=str(exc),
                output_path=str(output_path),
            ) from exc
        log.info("Text report written", output_path=str(output_path))
        return output_path
