"""Logging setup for the captcha service."""

import logging

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
LOGGER_NAME = "mall_captcha"

SHORT_ID_LENGTH = 8


def short_id(token: str) -> str:
    """
    Shorten a challenge or ticket id for log output.

    Ids are bearer capabilities until consumed, so only a prefix long enough
    to correlate log lines is ever written.

    Example:
        >>> short_id("3f2a9c7d0b1e4f5a6c7d8e9f0a1b2c3d")
        '3f2a9c7d...'
    """
    if len(token) <= SHORT_ID_LENGTH:
        return token
    return token[:SHORT_ID_LENGTH] + "..."


def short_key(key: str) -> str:
    """Store key with its trailing id shortened."""
    prefix, sep, token = key.rpartition(":")
    return prefix + sep + short_id(token)


def setup_logging(level: str = "INFO", propagate: bool = True) -> logging.Logger:
    """
    Configure the package logger.

    Safe to call more than once: the stream handler is only attached the
    first time, later calls just update the level.

    Args:
        level: Level name such as "DEBUG" or "INFO"; unknown names fall back
            to INFO
        propagate: Whether records also reach the root logger's handlers.
            Turn off when the root logger prints too, to avoid duplicates.

    Returns:
        The ``mall_captcha`` logger
    """
    resolved = getattr(logging, level.upper(), logging.INFO)
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(resolved)

    # Avoid duplicate console handlers
    if not any(isinstance(h, logging.StreamHandler) for h in logger.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)

    for handler in logger.handlers:
        handler.setLevel(resolved)
    logger.propagate = propagate
    return logger
