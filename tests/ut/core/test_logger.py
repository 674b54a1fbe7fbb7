"""日志配置单元测试"""

from __future__ import annotations

import json
import logging

from sealbuild.utils.logger import (
    JSONFormatter,
    StageFilter,
    current_stage,
    reset_logging,
    setup_logging,
    stage_context,
)


def _record(**extra) -> logging.LogRecord:
    record = logging.LogRecord(
        "sealbuild.services.pipeline.runner", logging.ERROR, __file__, 10,
        "阶段失败: %s", ("vendor 存储哈希与声明不符",), None,
    )
    for k, v in extra.items():
        setattr(record, k, v)
    return record


class TestStageContext:
    def test_nesting_restores(self) -> None:
        assert current_stage() == ""
        with stage_context("vendor"):
            with stage_context("build"):
                assert current_stage() == "build"
            assert current_stage() == "vendor"
        assert current_stage() == ""

    def test_filter_uses_context(self) -> None:
        record = _record()
        with stage_context("vendor"):
            StageFilter().filter(record)
        assert record.stage == "vendor"
        assert record.stage_tag == "[vendor] "

    def test_explicit_extra_wins(self) -> None:
        record = _record(stage="build")
        with stage_context("vendor"):
            StageFilter().filter(record)
        assert record.stage == "build"

    def test_no_stage(self) -> None:
        record = _record()
        StageFilter().filter(record)
        assert record.stage_tag == ""


class TestJSONFormatter:
    def test_fields(self) -> None:
        entry = json.loads(JSONFormatter().format(_record()))
        assert entry["level"] == "ERROR"
        assert entry["message"] == "阶段失败: vendor 存储哈希与声明不符"
        assert "stage" not in entry

    def test_stage_and_code(self) -> None:
        entry = json.loads(JSONFormatter().format(_record(stage="vendor", code="VENDOR_HASH_MISMATCH")))
        assert entry["stage"] == "vendor"
        assert entry["code"] == "VENDOR_HASH_MISMATCH"


class TestSetupLogging:
    def test_replaces_handlers(self) -> None:
        try:
            setup_logging("DEBUG", json_output=True)
            setup_logging("WARNING")
            root = logging.getLogger()
            assert root.level == logging.WARNING
            assert len(root.handlers) == 1
            assert not isinstance(root.handlers[0].formatter, JSONFormatter)
            assert any(isinstance(f, StageFilter) for f in root.handlers[0].filters)
        finally:
            reset_logging()
