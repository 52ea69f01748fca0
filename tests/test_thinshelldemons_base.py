#!/usr/bin/env python
"""
Tests for the shared logging base class.
"""

import logging

from thinshelldemons.thinshelldemons_base import ClassNameFilter, ThinShellDemonsBase


class ExampleProcessor(ThinShellDemonsBase):
    def __init__(self, log_level=logging.INFO):
        super().__init__(class_name="ExampleProcessor", log_level=log_level)


class TestThinShellDemonsBase:
    """Test suite for ThinShellDemonsBase logging."""

    def test_shared_logger(self):
        first = ExampleProcessor()
        second = ThinShellDemonsBase(log_level="DEBUG")

        assert first.logger is second.logger
        assert first.logger.name == "ThinShellDemons"
        assert first.class_name == "ExampleProcessor"
        assert second.class_name == "ThinShellDemonsBase"
        assert second.log_level == logging.DEBUG

    def test_class_filter(self):
        ExampleProcessor()
        try:
            ThinShellDemonsBase.set_log_classes(["ExampleProcessor", "Other"])
            assert ThinShellDemonsBase.get_log_classes() == ["ExampleProcessor", "Other"]
        finally:
            ThinShellDemonsBase.set_log_all_classes()
        assert ThinShellDemonsBase.get_log_classes() == []

    def test_filter_records(self):
        log_filter = ClassNameFilter()
        record = logging.LogRecord("ThinShellDemons", logging.INFO, "", 0, "msg", None, None)
        record.class_name = "ThinShellDemonsMetric"

        assert log_filter.filter(record)
        log_filter.enabled = True
        log_filter.allowed_classes = {"RegisterModelsThinShellDemons"}
        assert not log_filter.filter(record)
        log_filter.allowed_classes.add("ThinShellDemonsMetric")
        assert log_filter.filter(record)

    def test_set_log_level(self):
        processor = ExampleProcessor()
        original_level = processor.logger.level
        try:
            ThinShellDemonsBase.set_log_level("ERROR")
            assert processor.logger.level == logging.ERROR
            assert all(h.level == logging.ERROR for h in processor.logger.handlers)
        finally:
            ThinShellDemonsBase.set_log_level(original_level)
