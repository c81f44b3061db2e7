from __future__ import annotations

import logging.config

from backend.app.core import config

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def configure_logging(level: str | None = None) -> None:
    """
    Logging console pour l'arbre `backend.*`.
    Appelé une fois au démarrage de l'app (et par le seed).
    """
    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "default": {"format": LOG_FORMAT},
            },
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "formatter": "default",
                },
            },
            "loggers": {
                "backend": {
                    "handlers": ["console"],
                    "level": level or config.LOG_LEVEL,
                    "propagate": False,
                },
            },
        }
    )
