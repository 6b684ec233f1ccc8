"""PriceLens settings, read from the environment and an optional .env file.

Variable names are the upper-cased field names (``MAX_CONCURRENT_REGIONS``,
``MIN_PRICE``). Out-of-range values fail at load time with a pydantic
ValidationError; list fields take JSON arrays.
"""

from decimal import Decimal
from functools import lru_cache
from pathlib import Path
from typing import TYPE_CHECKING, Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from pricelens.regions import Region

if TYPE_CHECKING:
    from pricelens.filters import FilterCriteria


class GlobalConfig(BaseSettings):
    """Every tunable of a PriceLens run.

    Defaults suit a local checkout: pages are read from ./pages and reports
    written to ./output.

    Attributes:
        app_name: Application identifier for logging.
        environment: Deployment environment.
        debug: Forces DEBUG on the console and enables loguru diagnose.
        log_level: Lowest level written to either handler.
        log_dir: Where the JSON-lines log files go.
        log_rotation: Loguru rotation value, e.g. "1 week" or "50 MB".
        log_retention: Loguru retention value for rotated files.
        default_region: Storefront assumed when a page carries no region tag.
        input_dir: Directory of saved HTML pages processed by main.py.
        output_dir: Where CSV, text, Excel and HTML reports are written.
        max_results: Maximum products kept per search page after filtering.
        max_concurrent_regions: Semaphore limit for multi-region gathering.
        markup_threshold_percent: Delta above best price flagged as high markup.
        percent_precision: Decimal places kept for delta percentages.
        skip_ratio_warning_threshold: Skipped/total ratio that triggers a
            layout-shift warning.
        selector_overrides_path: Optional JSON file merged over the
            built-in selector rules.
        min_price: Lower price bound in major currency units.
        max_price: Upper price bound in major currency units.
        min_rating: Minimum star rating.
        prime_only: Keep only Prime-eligible products.
        exclude_sponsored: Drop sponsored placements.
        required_keywords: Keywords that must all appear in the title.
        excluded_keywords: Keywords that must not appear in the title.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Identity
    app_name: str = Field(default="PriceLens", description="Application identifier")
    environment: Literal["development", "test", "staging", "production"] = Field(
        default="development", description="Runtime environment name"
    )
    debug: bool = Field(default=False, description="Verbose console and tracebacks")

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Lowest level logged"
    )
    log_dir: Path = Field(default=Path("logs"), description="JSON log directory")
    log_rotation: str = Field(default="1 week", description="Loguru rotation value")
    log_retention: str = Field(default="1 month", description="Loguru retention value")

    # Input / Output
    default_region: Region = Field(default=Region.US, description="Fallback storefront")
    input_dir: Path = Field(default=Path("pages"), description="Saved HTML page directory")
    output_dir: Path = Field(default=Path("output"), description="Report directory")
    max_results: int = Field(default=20, ge=1, le=500, description="Products kept per page")

    # Concurrency
    max_concurrent_regions: int = Field(
        default=5, ge=1, le=15, description="Regions processed concurrently"
    )

    # Comparison Policy
    markup_threshold_percent: Decimal = Field(
        default=Decimal("20"), ge=0, le=1000, description="High markup threshold (percent)"
    )
    percent_precision: int = Field(
        default=2, ge=0, le=6, description="Decimal places for delta percentages"
    )

    # Extraction Quality
    skip_ratio_warning_threshold: float = Field(
        default=0.30, ge=0.0, le=1.0, description="Skip ratio warning threshold (0.30 = 30%)"
    )
    selector_overrides_path: Path | None = Field(
        default=None, description="JSON selector overrides file"
    )

    # Filter Criteria (validated again, eagerly, when the chain is built)
    min_price: Decimal | None = Field(default=None, description="Minimum price")
    max_price: Decimal | None = Field(default=None, description="Maximum price")
    min_rating: float | None = Field(default=None, description="Minimum star rating")
    prime_only: bool = Field(default=False, description="Prime-eligible only")
    exclude_sponsored: bool = Field(default=False, description="Drop sponsored results")
    required_keywords: list[str] = Field(default_factory=list, description="All must match")
    excluded_keywords: list[str] = Field(default_factory=list, description="None may match")

    @field_validator("log_dir", "output_dir", "input_dir", mode="before")
    @classmethod
    def coerce_path(cls, value: str | Path) -> Path:
        return Path(value) if isinstance(value, str) else value

    @field_validator("default_region", mode="before")
    @classmethod
    def parse_region(cls, value: str | Region) -> Region:
        """Accept region codes and aliases such as 'gb' or 'germany'."""
        return Region.parse(value) if isinstance(value, str) else value

    def filter_criteria(self) -> "FilterCriteria":
        """Collect the configured filter bounds into a FilterCriteria.

        Raises:
            FilterConfigurationError: If the bounds are inconsistent.
        """
        from pricelens.filters import FilterCriteria

        return FilterCriteria.create(
            min_price=self.min_price,
            max_price=self.max_price,
            min_rating=self.min_rating,
            prime_only=self.prime_only,
            exclude_sponsored=self.exclude_sponsored,
            required_keywords=self.required_keywords,
            excluded_keywords=self.excluded_keywords,
        )


@lru_cache(maxsize=1)
def get_config() -> GlobalConfig:
    """Process-wide settings, loaded on first call.

    Tests call ``get_config.cache_clear()`` after changing the environment.
    """
    return GlobalConfig()
