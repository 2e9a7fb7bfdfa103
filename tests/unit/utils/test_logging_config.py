"""Tests for logging configuration, correlation ids and the Rich handler."""

from __future__ import annotations

import io
import json
import logging
import sys

import pytest
from rich.console import Console

from dhtcrawl.models import LogLevel, ObservabilityConfig
from dhtcrawl.utils.exceptions import DHTCrawlError
from dhtcrawl.utils.logging_config import (
    CorrelationFilter,
    LoggingContext,
    StructuredFormatter,
    correlation_id,
    get_correlation_id,
    get_logger,
    log_exception,
    set_correlation_id,
    setup_logging,
)
from dhtcrawl.utils.rich_logging import (
    CorrelationRichHandler,
    FileFormatter,
    create_rich_handler,
    strip_rich_markup,
)

pytestmark = [pytest.mark.unit]


def make_record(msg: str = "hello %s", args=("world",), **extra) -> logging.LogRecord:
    record = logging.LogRecord(
        name="dhtcrawl.test",
        level=logging.INFO,
        pathname=__file__,
        lineno=10,
        msg=msg,
        args=args,
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


@pytest.fixture
def reset_correlation():
    token = correlation_id.set(None)
    yield
    correlation_id.reset(token)


class TestGetLogger:
    """Tests for logger naming."""

    def test_prefixes_package_name(self):
        assert get_logger("discovery").name == "dhtcrawl.discovery"

    def test_keeps_package_names(self):
        assert get_logger("dhtcrawl.discovery.crawler").name == "dhtcrawl.discovery.crawler"
        assert get_logger("dhtcrawl").name == "dhtcrawl"


class TestCorrelationId:
    """Tests for correlation id handling."""

    def test_set_and_get(self, reset_correlation):
        assert set_correlation_id("abc") == "abc"
        assert get_correlation_id() == "abc"

    def test_generated_when_omitted(self, reset_correlation):
        corr_id = set_correlation_id()

        assert corr_id
        assert get_correlation_id() == corr_id

    def test_filter_adds_id(self, reset_correlation):
        record = make_record()

        assert CorrelationFilter().filter(record)
        assert record.correlation_id == "no-correlation-id"

        set_correlation_id("job-1")
        CorrelationFilter().filter(record)
        assert record.correlation_id == "job-1"

    def test_logging_context_restores_previous_id(self, reset_correlation):
        set_correlation_id("outer")

        with LoggingContext("crawl", corr_id="inner"):
            assert get_correlation_id() == "inner"

        assert get_correlation_id() == "outer"

    def test_logging_context_propagates_errors(self, reset_correlation):
        with pytest.raises(RuntimeError), LoggingContext("crawl"):
            assert get_correlation_id() is not None
            raise RuntimeError("boom")

        assert get_correlation_id() is None


class TestFormatters:
    """Tests for the JSON and file formatters."""

    def test_structured_formatter(self):
        record = make_record(correlation_id="job-1", info_hash="aa" * 20)

        entry = json.loads(StructuredFormatter().format(record))

        assert entry["message"] == "hello world"
        assert entry["level"] == "INFO"
        assert entry["logger"] == "dhtcrawl.test"
        assert entry["correlation_id"] == "job-1"
        assert entry["info_hash"] == "aa" * 20
        assert "msg" not in entry

    def test_structured_formatter_includes_exception(self):
        try:
            raise ValueError("bad value")
        except ValueError:
            record = make_record(exc_info=sys.exc_info())

        entry = json.loads(StructuredFormatter().format(record))

        assert "ValueError: bad value" in entry["exception"]

    def test_strip_rich_markup(self):
        assert strip_rich_markup("[bold red]Error[/bold red] here") == "Error here"

    def test_file_formatter_strips_markup(self):
        record = make_record(msg="[green]ok[/green] %s", args=("done",))

        assert FileFormatter("%(message)s").format(record) == "ok done"


class TestRichHandler:
    """Tests for the Rich console handler."""

    def _handler(self, buffer: io.StringIO, **kwargs) -> CorrelationRichHandler:
        console = Console(file=buffer, width=200, force_terminal=False, color_system=None)
        return create_rich_handler(console=console, **kwargs)

    def test_prefixes_correlation_id(self, reset_correlation):
        buffer = io.StringIO()
        handler = self._handler(buffer)
        set_correlation_id("8ca378dbc8f6")

        handler.emit(make_record())

        assert "[8ca378dbc8f6] hello world" in buffer.getvalue()

    def test_record_is_left_untouched(self, reset_correlation):
        buffer = io.StringIO()
        handler = self._handler(buffer)
        set_correlation_id("8ca378dbc8f6")
        record = make_record()

        handler.emit(record)

        assert record.msg == "hello %s"
        assert record.args == ("world",)
        assert FileFormatter("%(message)s").format(record) == "hello world"

    def test_no_prefix_without_id(self, reset_correlation):
        buffer = io.StringIO()
        handler = self._handler(buffer)

        handler.emit(make_record())

        output = buffer.getvalue()
        assert "hello world" in output
        assert "no-correlation-id" not in output

    def test_prefix_can_be_disabled(self, reset_correlation):
        buffer = io.StringIO()
        handler = self._handler(buffer, show_correlation_id=False)
        set_correlation_id("job-1")

        handler.emit(make_record())

        assert "[job-1]" not in buffer.getvalue()


class TestSetupLogging:
    """Tests for setup_logging."""

    def test_installs_single_console_handler(self):
        config = ObservabilityConfig()

        setup_logging(config)
        setup_logging(config)

        handlers = logging.getLogger("dhtcrawl").handlers
        assert sum(isinstance(h, CorrelationRichHandler) for h in handlers) == 1

    def test_log_level(self):
        setup_logging(ObservabilityConfig(log_level=LogLevel.DEBUG))

        assert logging.getLogger("dhtcrawl").level == logging.DEBUG

    def test_plain_log_file(self, tmp_path):
        log_file = tmp_path / "logs" / "dhtcrawl.log"
        setup_logging(ObservabilityConfig(log_file=str(log_file)))

        get_logger("discovery").info("Crawling %s...", "aa" * 20)
        for handler in logging.getLogger("dhtcrawl").handlers:
            handler.flush()

        content = log_file.read_text(encoding="utf-8")
        assert f"Crawling {'aa' * 20}..." in content
        assert "dhtcrawl.discovery" in content

    def test_structured_log_file(self, tmp_path, reset_correlation):
        log_file = tmp_path / "dhtcrawl.jsonl"
        setup_logging(ObservabilityConfig(log_file=str(log_file), structured_logging=True))

        get_logger("discovery").warning("Found %d peers", 3)
        for handler in logging.getLogger("dhtcrawl").handlers:
            handler.flush()

        entry = json.loads(log_file.read_text(encoding="utf-8").splitlines()[0])
        assert entry["message"] == "Found 3 peers"
        assert entry["level"] == "WARNING"
        assert entry["correlation_id"] == "no-correlation-id"


class TestLogException:
    """Tests for log_exception."""

    def test_project_error_details(self, caplog):
        logger = logging.getLogger("test.log_exception")
        error = DHTCrawlError("Crawl failed", {"info_hash": "aa" * 20})

        with caplog.at_level(logging.ERROR, logger="test.log_exception"):
            try:
                raise error
            except DHTCrawlError as e:
                log_exception(logger, e, "crawl")

        record = caplog.records[-1]
        assert record.getMessage() == "crawl: Crawl failed"
        assert record.details == {"info_hash": "aa" * 20}

    def test_other_errors(self, caplog):
        logger = logging.getLogger("test.log_exception")

        with caplog.at_level(logging.ERROR, logger="test.log_exception"):
            try:
                raise OSError("no route")
            except OSError as e:
                log_exception(logger, e, "send")

        assert caplog.records[-1].getMessage() == "send: no route"
