"""Settings for the captcha service."""

from typing import Optional

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

ENV_PREFIX = "MALL_CAPTCHA_"


class CaptchaSettings(BaseSettings):
    """
    Captcha service settings.

    Every field can be set from an upper-cased ``MALL_CAPTCHA_*`` environment
    variable, e.g. ``MALL_CAPTCHA_REDIS_URL``. Empty variables are ignored.

    TTLs are enforced by the key-value store. The ``*_expire_hint`` values
    are only shown to clients and may understate the real TTL to nudge users
    into submitting promptly; they must never exceed it.
    """

    key_prefix: str = "edu.mall"  # deployment prefix for every store key
    challenge_ttl: int = 120  # seconds a puzzle stays solvable
    ticket_ttl: int = 300  # seconds a solved captcha stays redeemable
    challenge_expire_hint: int = 110
    ticket_expire_hint: int = 280
    tolerance: int = 5  # max pixel error on each axis
    redis_url: Optional[str] = None  # None selects the in-process store
    redis_atomic_take: bool = True  # GETDEL needs Redis >= 6.2
    puzzle_url: Optional[str] = None
    puzzle_timeout: float = 5.0
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_prefix=ENV_PREFIX,
        env_ignore_empty=True,
        case_sensitive=False,
        extra="ignore",
        frozen=True,
    )

    @model_validator(mode="after")
    def _check_consistency(self) -> "CaptchaSettings":
        if self.challenge_ttl <= 0 or self.ticket_ttl <= 0:
            raise ValueError("challenge_ttl and ticket_ttl must be positive")
        if not 0 <= self.challenge_expire_hint <= self.challenge_ttl:
            raise ValueError("challenge_expire_hint must be within challenge_ttl")
        if not 0 <= self.ticket_expire_hint <= self.ticket_ttl:
            raise ValueError("ticket_expire_hint must be within ticket_ttl")
        if self.tolerance < 0:
            raise ValueError("tolerance must not be negative")
        if not self.key_prefix:
            raise ValueError("key_prefix must not be empty")
        return self
