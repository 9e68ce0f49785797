"""Tests for logging utilities."""

from __future__ import annotations

import json
import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

import pytest

from gatekeep import logging_utils


@pytest.fixture(autouse=True)
def _reset_logger():
    logger = logging.getLogger("gatekeep")
    yield logger
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.setLevel(logging.NOTSET)
    logger.propagate = True


def test_setup_logging_creates_text_and_json_logs(tmp_path: Path, _reset_logger: logging.Logger):
    log_path = logging_utils.setup_logging(tmp_path, level="INFO")

    assert log_path == tmp_path / ".gatekeep" / "logs" / "setup.log"
    file_handlers = [h for h in _reset_logger.handlers if isinstance(h, RotatingFileHandler)]
    assert {Path(h.baseFilename).name for h in file_handlers} == {"setup.log", "setup.jsonl"}

    logging.getLogger("gatekeep.flow").info("step ran", extra={"step": "S2"})
    for handler in file_handlers:
        handler.flush()

    record = json.loads((tmp_path / ".gatekeep" / "logs" / "setup.jsonl").read_text().splitlines()[-1])
    assert record["message"] == "step ran"
    assert record["step"] == "S2"
    assert record["logger"] == "gatekeep.flow"


def test_setup_logging_is_idempotent(tmp_path: Path, _reset_logger: logging.Logger):
    logging_utils.setup_logging(tmp_path, level="INFO")
    handler_count = len(_reset_logger.handlers)

    logging_utils.setup_logging(tmp_path, level="INFO")

    assert len(_reset_logger.handlers) == handler_count


def test_structured_handler_is_optional(tmp_path: Path, _reset_logger: logging.Logger):
    logging_utils.setup_logging(tmp_path, level="INFO", structured=False)

    names = {
        Path(h.baseFilename).name
        for h in _reset_logger.handlers
        if isinstance(h, RotatingFileHandler)
    }
    assert names == {"setup.log"}


def test_setup_logging_falls_back_when_permission_denied(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    root = tmp_path / "ws"
    primary_parent = root / ".gatekeep" / "logs"
    original_mkdir = Path.mkdir

    def fake_mkdir(self, *args, **kwargs):
        if str(self).startswith(str(primary_parent)):
            raise PermissionError
        return original_mkdir(self, *args, **kwargs)

    monkeypatch.setattr(Path, "mkdir", fake_mkdir)
    fallback_root = tmp_path / "fallback"
    monkeypatch.setattr(logging_utils, "FALLBACK_ROOT", fallback_root)

    log_path = logging_utils.setup_logging(root, level="INFO")

    assert log_path == fallback_root / ".gatekeep" / "logs" / "setup.log"
    assert log_path.exists()
