from __future__ import annotations

import json
import logging

import pytest

from debug_scaffold import JsonFormatter, sanitize_log_extra


@pytest.mark.unit
def test_bookmark_fields_clashing_with_log_record_are_renamed() -> None:
    extra = {
        "event": "bookmark_added",
        "name": "Reading list",
        "message": "folder created",
        "created": "2026-01-01T00:00:00",
        "module": "browser_data",
        "url": "https://example.com/",
    }
    assert sanitize_log_extra(extra) == {  # nosec B101
        "event": "bookmark_added",
        "entity_name": "Reading list",
        "event_message": "folder created",
        "extra_created": "2026-01-01T00:00:00",
        "extra_module": "browser_data",
        "url": "https://example.com/",
    }


@pytest.mark.unit
def test_sanitized_extra_survives_logging(caplog) -> None:
    logger = logging.getLogger("browser_data")
    with caplog.at_level(logging.INFO, logger="browser_data"):
        logger.info("device_created", extra=sanitize_log_extra({"name": "Laptop", "tab_id": 3}))
    record = caplog.records[-1]
    payload = json.loads(JsonFormatter().format(record))
    assert payload["entity_name"] == "Laptop"  # nosec B101
    assert payload["tab_id"] == 3  # nosec B101


@pytest.mark.unit
def test_sanitize_log_extra_none() -> None:
    assert sanitize_log_extra(None) is None  # nosec B101
