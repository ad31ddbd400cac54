# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_auth

import os
from collections.abc import Generator
from pathlib import Path
from unittest.mock import patch

import pytest
from pydantic import SecretStr

from coreason_auth.utils.logger import anonymize, configure_logging, logger


@pytest.fixture
def clean_logger() -> Generator[None, None, None]:
    """Ensure logger is reset before and after tests."""
    logger.remove()
    yield
    logger.remove()
    configure_logging()


def test_anonymize_is_stable_and_salted() -> None:
    first = anonymize("a@example.com", SecretStr("salt-1"))
    assert first == anonymize("a@example.com", SecretStr("salt-1"))
    assert first != anonymize("a@example.com", SecretStr("salt-2"))
    assert len(first) == 16
    assert "example" not in first


@pytest.mark.usefixtures("clean_logger")
def test_reconfiguration_toggling(capsys: pytest.CaptureFixture[str]) -> None:
    with patch.dict(os.environ, {"COREASON_LOG_JSON": "false"}):
        configure_logging()
        logger.info("Text Log")
        captured = capsys.readouterr()
        assert "Text Log" in captured.err

    with patch.dict(os.environ, {"COREASON_LOG_JSON": "true"}):
        configure_logging()
        logger.info("JSON Log")
        captured = capsys.readouterr()
        assert '"text":' in captured.out
        assert "JSON Log" in captured.out


@pytest.mark.usefixtures("clean_logger")
def test_invalid_level_falls_back(capsys: pytest.CaptureFixture[str]) -> None:
    with patch.dict(os.environ, {"COREASON_LOG_LEVEL": "CHATTY", "COREASON_LOG_JSON": "false"}):
        configure_logging()
        logger.debug("hidden")
        logger.info("shown")
    captured = capsys.readouterr()
    assert "shown" in captured.err
    assert "hidden" not in captured.err


@pytest.mark.usefixtures("clean_logger")
def test_file_sink(tmp_path: Path) -> None:
    log_file = tmp_path / "logs" / "auth.log"
    with patch.dict(os.environ, {"COREASON_LOG_FILE": str(log_file)}):
        configure_logging()
        logger.info("to file")
        logger.complete()
        logger.remove()
    assert "to file" in log_file.read_text(encoding="utf-8")
