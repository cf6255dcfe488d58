from __future__ import annotations

import logging

from sessiongen.log import reset_logging, setup_logging


def test_setup_logging_is_idempotent(tmp_path) -> None:
    log_file = tmp_path / "logs" / "sessiongen.log"
    logger = setup_logging("debug", str(log_file))

    assert logger.name == "sessiongen"
    assert logger.level == logging.DEBUG
    assert logger.propagate is False
    assert len(logger.handlers) == 2
    assert setup_logging("ERROR") is logger
    assert logger.level == logging.DEBUG

    logging.getLogger("sessiongen.coordinator").info("state idle -> connecting")
    for h in logger.handlers:
        h.flush()
    assert "[INFO] sessiongen.coordinator: state idle -> connecting" in log_file.read_text()

    reset_logging()
    assert logger.handlers == []
    assert logger.propagate is True
