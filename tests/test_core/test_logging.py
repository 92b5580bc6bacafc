"""Tests for the shared logging setup."""

import logging

import pytest

from mscfusion.core.logging import setup_logging


@pytest.fixture(autouse=True)
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    for handler in root.handlers[:]:
        if handler not in handlers:
            root.removeHandler(handler)
            handler.close()
    for handler in handlers:
        if handler not in root.handlers:
            root.addHandler(handler)
    root.setLevel(level)


def test_log_file_receives_records(tmp_path):
    log_file = tmp_path / "logs" / "run.log"
    setup_logging("DEBUG", log_file)
    logging.getLogger("mscfusion.test").debug("fused 3 frames")
    for handler in logging.getLogger().handlers:
        handler.flush()

    text = log_file.read_text(encoding="utf-8")
    assert "| DEBUG    | mscfusion.test | fused 3 frames" in text
    assert logging.getLogger("trimesh").level == logging.WARNING


def test_reconfigure_changes_level():
    setup_logging("WARNING")
    assert logging.getLogger().level == logging.WARNING
    setup_logging("INFO")
    assert logging.getLogger().level == logging.INFO
