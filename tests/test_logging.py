"""Tests for the records microplane logs while parsing, reading and writing."""

import io
import logging

import pytest
from synthetic_files import ics_header, write_ics_pair

from microplane import IcsFormat, ObfFormat, open_image
from microplane.logging import (
    LIBRARY_LOGGER_NAME,
    configure_logging,
    get_logger,
    reset_logging,
)


@pytest.fixture(autouse=True)
def restore_logging():
    yield
    reset_logging()


@pytest.fixture
def debug_records(caplog):
    caplog.set_level(logging.DEBUG, logger=LIBRARY_LOGGER_NAME)
    return caplog


def messages(caplog, level=None, logger=None):
    return [
        record.getMessage()
        for record in caplog.records
        if (level is None or record.levelno == level)
        and (logger is None or record.name == logger)
    ]


class TestParseRecords:
    def test_companion_resolution(self, debug_records, ics_pair):
        IcsFormat().create_parser().parse_path(ics_pair)
        assert f"Finding companion file for {ics_pair}" in messages(
            debug_records, logging.DEBUG, "microplane.plugins.formats.ics"
        )

    def test_stack_discovery(self, debug_records, obf_file):
        ObfFormat().create_parser().parse_path(obf_file)
        logged = messages(debug_records, logging.DEBUG, "microplane.plugins.formats.obf")
        assert "Found 2 stacks" in logged
        assert any(message.startswith("Stack 'confocal' at ") for message in logged)
        assert any(message.startswith("Stack 'sted' at ") for message in logged)

    def test_ignored_gzip_tag_warns(self, caplog, tmp_path, ics_planes):
        path = write_ics_pair(tmp_path, ics_header(compression="gzip"), ics_planes.tobytes())
        with caplog.at_level(logging.WARNING, logger=LIBRARY_LOGGER_NAME):
            IcsFormat().create_parser().parse_path(path)
        assert messages(caplog, logging.WARNING) == [
            "Payload tagged gzip has raw size; ignoring the compression tag"
        ]

    def test_unparseable_date_warns(self, caplog, tmp_path):
        path = tmp_path / "dated.ics"
        path.write_text(ics_header(extra=["history\tdate\tsometime soon"]), encoding="latin-1")
        with caplog.at_level(logging.WARNING, logger=LIBRARY_LOGGER_NAME):
            IcsFormat().create_parser().parse_path(path)
        assert "Unparseable acquisition date 'sometime soon'; using the default" in messages(
            caplog, logging.WARNING
        )


class TestReadRecords:
    def test_inflate_restart(self, debug_records, obf_file):
        """Going back to an earlier plane logs a second decoder start."""
        reader = ObfFormat().create_reader()
        reader.set_source(obf_file)
        reader.read_region(0, 2)
        reader.read_region(0, 3)
        reader.read_region(0, 0)
        reader.close()
        restarts = messages(debug_records, logging.DEBUG)
        assert restarts.count("Restarting inflate of stack 0") == 2

    def test_open_and_close(self, caplog, obf_file):
        with caplog.at_level(logging.INFO, logger=LIBRARY_LOGGER_NAME):
            with open_image(obf_file):
                pass
        assert messages(caplog, logging.INFO, "microplane.pipeline") == [
            f"Opened {obf_file} as OBF with 2 image(s)",
            f"Closed {obf_file}",
        ]


class TestConfigureLogging:
    def test_prints_parse_trace(self, obf_file):
        stream = io.StringIO()
        configure_logging("debug", stream=stream)
        ObfFormat().create_parser().parse_path(obf_file)
        assert "DEBUG microplane.plugins.formats.obf: Found 2 stacks" in stream.getvalue()

    def test_level_filters_parse_trace(self, obf_file):
        stream = io.StringIO()
        configure_logging(logging.WARNING, stream=stream)
        ObfFormat().create_parser().parse_path(obf_file)
        assert stream.getvalue() == ""

    def test_second_call_replaces_own_handler_only(self):
        logger = get_logger()
        own = logging.NullHandler()
        logger.addHandler(own)
        try:
            first = configure_logging()
            second = configure_logging("WARNING")
            assert first not in logger.handlers
            assert second in logger.handlers
            assert own in logger.handlers
            assert logger.level == logging.WARNING
        finally:
            logger.removeHandler(own)

    def test_reset(self):
        handler = configure_logging("DEBUG")
        reset_logging()
        logger = get_logger()
        assert handler not in logger.handlers
        assert logger.level == logging.NOTSET
        assert any(isinstance(h, logging.NullHandler) for h in logger.handlers)

    def test_unknown_level(self):
        with pytest.raises(ValueError, match="LOUD"):
            configure_logging("loud")


class TestGetLogger:
    def test_module_loggers_kept(self):
        assert get_logger().name == "microplane"
        assert get_logger("microplane.plugins.formats.ics").name == (
            "microplane.plugins.formats.ics"
        )

    def test_plugin_loggers_nest_under_library(self):
        assert get_logger("acme_formats.raw").name == "microplane.acme_formats.raw"
        assert get_logger("microplane_extras").name == "microplane.microplane_extras"
