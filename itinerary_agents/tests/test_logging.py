"""
Tests for structured logging helpers.
"""

import json
import logging

from itinerary_agents.shared.logging import (
    StructuredFormatter,
    log_state_transition,
    setup_logging,
)


class _ListHandler(logging.Handler):
    def __init__(self):
        super().__init__()
        self.records = []

    def emit(self, record):
        self.records.append(record)


class TestStructuredLogging:
    def test_formatter_outputs_json(self):
        record = logging.LogRecord("itinerary_agents.test", logging.INFO, "", 0, "hello %s", ("world",), None)
        record.extra = {"stage": "compiler"}

        entry = json.loads(StructuredFormatter().format(record))

        assert entry["message"] == "hello world"
        assert entry["level"] == "INFO"
        assert entry["logger"] == "itinerary_agents.test"
        assert entry["extra"] == {"stage": "compiler"}

    def test_setup_logging_writes_file(self, tmp_path):
        log_file = tmp_path / "run.log"
        logger = setup_logging(logging.DEBUG, log_file=str(log_file), logger_name="itinerary_agents.test_setup")

        logger.info("stage finished")
        for handler in logger.handlers:
            handler.flush()

        entry = json.loads(log_file.read_text().splitlines()[-1])
        assert entry["message"] == "stage finished"
        for handler in logger.handlers:
            handler.close()
        logger.handlers = []

    def test_state_transition_logged_at_debug(self):
        logger = logging.getLogger("itinerary_agents.test_transition")
        logger.setLevel(logging.DEBUG)
        handler = _ListHandler()
        logger.addHandler(handler)
        try:
            log_state_transition(
                "StageSucceeded",
                {"session_id": "s", "state": "compiling", "progress_percentage": 75},
                extra={"from_state": "strategizing"},
                logger=logger,
            )
        finally:
            logger.removeHandler(handler)

        assert len(handler.records) == 1
        record = handler.records[0]
        assert record.levelno == logging.DEBUG
        assert record.extra["event"] == "StageSucceeded"
        assert record.extra["state_summary"]["progress_percentage"] == 75
        assert record.extra["extra"] == {"from_state": "strategizing"}

    def test_state_transition_skipped_above_debug(self):
        logger = logging.getLogger("itinerary_agents.test_quiet")
        logger.setLevel(logging.INFO)
        handler = _ListHandler()
        logger.addHandler(handler)
        try:
            log_state_transition("Start", {"session_id": "s"}, logger=logger)
        finally:
            logger.removeHandler(handler)
        assert handler.records == []
