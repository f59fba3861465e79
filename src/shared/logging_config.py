"""Process-wide logging setup for the adaptation engine."""

import logging

from src.shared.config import Settings, get_settings


def setup_logging(settings: Settings | None = None) -> None:
    """Configure root logging from ``Settings.log_level``.

    Production gets one JSON object per line; other environments get a
    human-readable format. Does nothing to handlers that are already
    installed, so an embedding application keeps its own configuration.
    """
    settings = settings or get_settings()
    log_level = getattr(logging, settings.log_level.upper(), logging.INFO)

    if settings.environment == "production":
        log_format = (
            '{"timestamp": "%(asctime)s", "level": "%(levelname)s", '
            '"logger": "%(name)s", "message": "%(message)s"}'
        )
    else:
        log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    logging.basicConfig(
        level=log_level,
        format=log_format,
        datefmt="%Y-%m-%dT%H:%M:%S%z",
    )
    logging.getLogger("src").setLevel(log_level)

    # SQL echo only while developing
    logging.getLogger("sqlalchemy.engine").setLevel(
        logging.INFO if settings.environment == "development" else logging.WARNING
    )
