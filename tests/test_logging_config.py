import logging

from backend.logging_config import LOGGING_CONFIG, configure_logging


def test_every_package_has_a_logger():
    assert set(LOGGING_CONFIG["loggers"]) >= {"backend", "drivers", "location", "orders", "routing", "tracking"}


def test_configure_logging_applies_level_without_touching_defaults():
    configure_logging("DEBUG", verbose=True)

    assert logging.getLogger("tracking").level == logging.DEBUG
    assert logging.getLogger("location.source").getEffectiveLevel() == logging.DEBUG
    assert LOGGING_CONFIG["loggers"]["tracking"]["level"] == "INFO"
    assert LOGGING_CONFIG["handlers"]["console"]["formatter"] == "simple"

    configure_logging("INFO")
