import json
import logging

import structlog

from monkfish.logging_config import drop_none_values, setup_logging


def test_drop_none_values():
    event = {"event": "koi_request_ok", "command": None, "attempt": 1}

    assert drop_none_values(None, "info", event) == {"event": "koi_request_ok", "attempt": 1}


def test_json_logs_include_bound_context(capsys):
    setup_logging("INFO", json_logs=True)
    try:
        with structlog.contextvars.bound_contextvars(trace_id="t-1", command=None):
            logging.getLogger("monkfish.services.token_directory").info("Token directory refreshed")

        line = capsys.readouterr().out.strip().splitlines()[-1]
        record = json.loads(line)
        assert record["event"] == "Token directory refreshed"
        assert record["trace_id"] == "t-1"
        assert record["level"] == "info"
        assert "command" not in record
    finally:
        structlog.reset_defaults()
        logging.getLogger().handlers.clear()


def test_quiets_http_client_loggers():
    setup_logging("DEBUG", json_logs=False)
    try:
        assert logging.getLogger().level == logging.DEBUG
        assert logging.getLogger("httpx").level == logging.WARNING
    finally:
        structlog.reset_defaults()
        logging.getLogger().handlers.clear()
