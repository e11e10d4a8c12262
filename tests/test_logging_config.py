import logging

import pytest

from corb_admin.logging_config import configure_logging


@pytest.fixture()
def restore_root_logging():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)
    logging.getLogger("uvicorn.access").setLevel(logging.NOTSET)


def test_log_file_receives_records_with_thread_name(tmp_path, restore_root_logging):
    log_file = tmp_path / "logs" / "corb-admin.log"

    logger = configure_logging(logger_name="corb_admin.test", log_file=str(log_file))
    logger.info("run submitted")
    for handler in logging.getLogger().handlers:
        handler.flush()

    text = log_file.read_text(encoding="utf-8")
    assert "| INFO | MainThread | corb_admin.test | run submitted" in text


def test_access_log_quiet_unless_verbose(restore_root_logging):
    configure_logging()
    assert logging.getLogger("uvicorn.access").level == logging.WARNING

    configure_logging(verbose=True)
    assert logging.getLogger().level == logging.DEBUG
    assert logging.getLogger("uvicorn.access").level == logging.INFO
