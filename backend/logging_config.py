import logging.config

LOGGING_CONFIG = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "verbose": {"format": "%(asctime)s %(levelname)s %(name)s:%(lineno)d  %(message)s"},
        "simple": {"format": "%(levelname)s [%(name)s] %(message)s"},
    },
    "handlers": {
        "console": {
            "level": "DEBUG",
            "class": "logging.StreamHandler",
            "formatter": "simple",
            "stream": "ext://sys.stdout",
        },
    },
    "loggers": {
        # one logger per top-level package
        "location": {"handlers": ["console"], "level": "INFO", "propagate": False},
        "orders": {"handlers": ["console"], "level": "INFO", "propagate": False},
        "tracking": {"handlers": ["console"], "level": "INFO", "propagate": False},
        "drivers": {"handlers": ["console"], "level": "INFO", "propagate": False},
        "routing": {"handlers": ["console"], "level": "INFO", "propagate": False},
        "backend": {"handlers": ["console"], "level": "INFO", "propagate": False},
    },
}


def configure_logging(level: str = "INFO", verbose: bool = False) -> None:
    """Apply LOGGING_CONFIG with the given level for all package loggers."""
    config = {**LOGGING_CONFIG, "handlers": {k: dict(v) for k, v in LOGGING_CONFIG["handlers"].items()}}
    if verbose:
        config["handlers"]["console"]["formatter"] = "verbose"
    config["loggers"] = {name: {**logger, "level": level} for name, logger in LOGGING_CONFIG["loggers"].items()}
    logging.config.dictConfig(config)
