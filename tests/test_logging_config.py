import logging
import logging.handlers
import os

from config import settings
from config.logging_config import get_logger, setup_logging


def test_module_loggers_are_rooted_under_chime():
    assert get_logger("src.reminder.service").name == "chime.reminder.service"
    assert get_logger("chime.cli").name == "chime.cli"
    assert get_logger("chime").name == "chime"
    assert get_logger("helpers").name == "chime.helpers"


def test_setup_is_idempotent():
    first = setup_logging()
    handlers = list(first.handlers)

    assert setup_logging() is first
    assert first.handlers == handlers


def test_file_handler_writes_to_configured_log():
    get_logger("src.main")
    files = [
        h for h in logging.getLogger("chime").handlers
        if isinstance(h, logging.handlers.RotatingFileHandler)
    ]

    assert [h.baseFilename for h in files] == [os.path.abspath(settings.LOG_FILE)]
    assert logging.getLogger("apscheduler").level == logging.WARNING
