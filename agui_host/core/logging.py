import logging

_NOISY_LOGGERS = ("httpx", "httpcore", "openai")


def configure_logging(log_level: str) -> None:
    """Configure process-wide logging; HTTP client libraries stay at WARNING or above."""

    level = getattr(logging, log_level.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))
