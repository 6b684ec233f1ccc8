"""Tests for logging bootstrap.

Testing Philosophy:
    Logging is startup-critical: an unwritable log directory must stop
    the application before any page is processed, and the JSON file must
    carry the page keys needed to trace a skipped record.
"""

import gzip
import json
import sys
from collections.abc import Iterator
from pathlib import Path

import pytest
from loguru import logger
from pytest_mock import MockerFixture

from config.settings import GlobalConfig
from pricelens.exceptions import LoggingInitializationError
from pricelens.logger import bind_page, configure_logging, get_logger
from pricelens.regions import PageKind, Region


@pytest.fixture
def restore_logger() -> Iterator[None]:
    yield
    logger.remove()
    logger.configure(extra={})
    logger.add(sys.stderr)


def _read_lines(log_dir: Path) -> list[dict]:
    lines = []
    for path in sorted(log_dir.iterdir()):
        if path.name.endswith(".gz"):
            with gzip.open(path, "rt", encoding="utf-8") as handle:
                text = handle.read()
        elif ".jsonl" in path.name:
            text = path.read_text(encoding="utf-8")
        else:
            continue
        lines.extend(json.loads(line) for line in text.splitlines() if line.strip())
    return lines


class TestConfigureLogging:
    """Test suite for configure_logging."""

    def test_json_lines_carry_page_keys(self, mock_config: GlobalConfig, restore_logger: None) -> None:
        configure_logging(mock_config)
        page_log = bind_page(get_logger("tests.logging"), Region.DE, PageKind.SEARCH_RESULTS)

        page_log.warning("Record skipped: missing title", position=4)
        logger.remove()

        records = _read_lines(mock_config.log_dir)
        (skip,) = [r for r in records if r["msg"] == "Record skipped: missing title"]
        assert skip["level"] == "WARNING"
        assert skip["region"] == "de"
        assert skip["page_kind"] == "search"
        assert skip["logger"] == "tests.logging"
        assert skip["context"] == {"position": 4}

    def test_unbound_records_have_no_region(self, mock_config: GlobalConfig, restore_logger: None) -> None:
        configure_logging(mock_config)
        logger.remove()

        (init,) = [r for r in _read_lines(mock_config.log_dir) if r["msg"] == "Logging initialized"]
        assert "region" not in init
        assert init["context"]["environment"] == "test"

    def test_unwritable_directory_fails_fast(
        self, mock_config: GlobalConfig, mocker: MockerFixture, restore_logger: None
    ) -> None:
        mocker.patch("pricelens.logger.tempfile.NamedTemporaryFile", side_effect=PermissionError("read-only"))

        with pytest.raises(LoggingInitializationError) as exc_info:
            configure_logging(mock_config)

        assert exc_info.value.context["log_dir"] == str(mock_config.log_dir)
        assert "Permission denied" in exc_info.value.message
