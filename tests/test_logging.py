import json
import logging
import logging.config

import pytest
from pythonjsonlogger.json import JsonFormatter

from app.core.logging import build_logging_config


@pytest.mark.filterwarnings("error::DeprecationWarning")
def test_json_output_uses_json_formatter() -> None:
    logging.config.dictConfig(build_logging_config("info", json_output=True))
    try:
        (handler,) = logging.getLogger("app").handlers
        assert isinstance(handler.formatter, JsonFormatter)

        record = logging.LogRecord(
            "app.api.v1.fees.service", logging.INFO, __file__, 1, "Recorded payment %s", ("TXN1",), None
        )
        line = json.loads(handler.formatter.format(record))
        assert line["message"] == "Recorded payment TXN1"
        assert line["levelname"] == "INFO"
        assert line["name"] == "app.api.v1.fees.service"
    finally:
        logging.config.dictConfig(build_logging_config("info", json_output=False))


def test_plain_output_by_default() -> None:
    config = build_logging_config("debug", json_output=False)
    assert config["handlers"]["console"]["formatter"] == "standard"
    assert config["loggers"]["app"]["level"] == "DEBUG"
