from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING

import pytest

from fuse_context.logging import LOGGER_NAME, logger, setup_logging

if TYPE_CHECKING:
    from pathlib import Path


@pytest.mark.unit
def test_log_file_redirects_package_events(tmp_path: Path) -> None:
    log_file = tmp_path / "run.log"
    try:
        setup_logging(log_file)
        logger.warning("part_rotated", part=2)
        for handler in logging.getLogger(LOGGER_NAME).handlers:
            handler.flush()

        event = json.loads(log_file.read_text(encoding="utf-8").splitlines()[-1])
    finally:
        setup_logging()

    assert event["event"] == "part_rotated"
    assert event["part"] == 2
    assert event["level"] == "warning"
    assert len(logging.getLogger(LOGGER_NAME).handlers) == 1
