"""logger.py 日志配置测试"""

from __future__ import annotations

import json
import logging
import sys
from io import StringIO

import pytest

from nimbusbuild.utils.logger import (
    JSONFormatter,
    StepFilter,
    bind_step,
    reset_logging,
    setup_logging,
)


@pytest.fixture(autouse=True)
def _clean_root_logger():
    yield
    reset_logging()


def _record(msg: str = "hello") -> logging.LogRecord:
    return logging.LogRecord("nimbusbuild.test", logging.INFO, __file__, 10, msg, None, None)


class TestStepBinding:
    """步骤名绑定测试"""

    def test_default_step_placeholder(self):
        rec = _record()
        StepFilter().filter(rec)
        assert rec.step == "-"

    def test_bound_step_visible_and_restored(self):
        with bind_step("launch_instance"):
            rec = _record()
            StepFilter().filter(rec)
            assert rec.step == "launch_instance"
        rec = _record()
        StepFilter().filter(rec)
        assert rec.step == "-"


class TestJSONFormatter:
    """JSON 日志格式测试"""

    def test_fields(self):
        rec = _record("镜像已保存")
        with bind_step("capture_image"):
            StepFilter().filter(rec)
        entry = json.loads(JSONFormatter().format(rec))
        assert entry["level"] == "INFO"
        assert entry["logger"] == "nimbusbuild.test"
        assert entry["step"] == "capture_image"
        assert entry["message"] == "镜像已保存"
        assert "exception" not in entry

    def test_exception_included(self):
        try:
            raise RuntimeError("boom")
        except RuntimeError:
            rec = logging.LogRecord(
                "x", logging.ERROR, __file__, 1, "failed", None, sys.exc_info(),
            )
        entry = json.loads(JSONFormatter().format(rec))
        assert "RuntimeError: boom" in entry["exception"]


class TestSetupLogging:
    """日志初始化测试"""

    def test_single_handler_after_repeated_setup(self):
        setup_logging("DEBUG")
        setup_logging("INFO", json_output=True)
        root = logging.getLogger()
        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0].formatter, JSONFormatter)
        assert root.level == logging.INFO

    def test_unknown_level_falls_back_to_info(self):
        setup_logging("chatty")
        assert logging.getLogger().level == logging.INFO

    def test_text_output_carries_step(self):
        buf = StringIO()
        setup_logging("INFO", stream=buf)
        with bind_step("connect_remote"):
            logging.getLogger("nimbusbuild.test").info("等待 SSH")
        line = buf.getvalue().strip()
        assert "[connect_remote]" in line
        assert line.endswith("nimbusbuild.test: 等待 SSH")

    def test_json_output_one_object_per_line(self):
        buf = StringIO()
        setup_logging("DEBUG", json_output=True, stream=buf)
        log = logging.getLogger("nimbusbuild.test")
        log.debug("a")
        log.warning("b")
        entries = [json.loads(line) for line in buf.getvalue().splitlines()]
        assert [e["message"] for e in entries] == ["a", "b"]
        assert entries[0]["step"] == "-"
