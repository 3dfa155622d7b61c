"""Tests for chunkexport logging utilities."""

import json
import logging
import sys

from chunkexport.lib.logging import ExportLogger, JSONFormatter, setup_logging


def make_record(msg="Test message", args=(), **fields):
    record = logging.LogRecord(
        name="chunkexport.lib.reader",
        level=logging.INFO,
        pathname="/test/file.py",
        lineno=42,
        msg=msg,
        args=args,
        exc_info=None,
    )
    for key, value in fields.items():
        setattr(record, key, value)
    return record


class TestJSONFormatter:
    """Tests for JSONFormatter class."""

    def test_basic_format(self):
        data = json.loads(JSONFormatter().format(make_record("Delivered %d bytes", (128,))))

        assert data["level"] == "INFO"
        assert data["logger"] == "chunkexport.lib.reader"
        assert data["message"] == "Delivered 128 bytes"
        assert data["timestamp"].endswith("Z")
        assert "extra" not in data

    def test_export_context_is_top_level(self):
        record = make_record(table="wp_posts", column="post_content", offset=129, metric_unit="bytes")
        data = json.loads(JSONFormatter().format(record))

        assert data["table"] == "wp_posts"
        assert data["column"] == "post_content"
        assert data["offset"] == 129
        assert data["extra"] == {"metric_unit": "bytes"}


class TestExportLogger:
    """Tests for ExportLogger context handling."""

    def test_context_is_scoped(self, caplog):
        logger = ExportLogger("chunkexport.test")

        with caplog.at_level(logging.INFO, logger="chunkexport.test"):
            with logger.context(table="wp_posts", column="post_content"):
                logger.info("Starting export", offset=1)
            logger.info("Done")

        inside, after = caplog.records[-2:]
        assert (inside.table, inside.column, inside.offset) == ("wp_posts", "post_content", 1)
        assert not hasattr(after, "table")
        assert logger.fields == {}

    def test_nested_context_restores_outer(self):
        logger = ExportLogger("chunkexport.nested")
        with logger.context(table="t"):
            with logger.context(column="c"):
                assert logger.fields == {"table": "t", "column": "c"}
            assert logger.fields == {"table": "t"}

    def test_metric_carries_context(self, caplog):
        logger = ExportLogger("chunkexport.metrics")
        with caplog.at_level(logging.INFO, logger="chunkexport.metrics"):
            with logger.context(table="posts"):
                logger.metric("bytes_exported", 300, unit="bytes")

        record = caplog.records[-1]
        assert record.getMessage() == "METRIC bytes_exported=300"
        assert record.metric_unit == "bytes"
        assert record.table == "posts"


class TestSetupLogging:
    """Tests for setup_logging."""

    def test_verbose_json_with_file(self, tmp_path):
        log_file = tmp_path / "export.log"
        root = logging.getLogger()
        saved = root.handlers[:], root.level
        try:
            setup_logging(verbose=True, json_format=True, log_file=str(log_file))

            assert root.level == logging.DEBUG
            assert len(root.handlers) == 2
            assert root.handlers[0].stream is sys.stderr
            assert all(isinstance(h.formatter, JSONFormatter) for h in root.handlers)
        finally:
            for handler in root.handlers[:]:
                handler.close()
                root.removeHandler(handler)
            for handler in saved[0]:
                root.addHandler(handler)
            root.setLevel(saved[1])
