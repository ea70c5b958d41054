"""mall-captcha - slide-captcha challenges and single-use tickets for the mall backend."""

__version__ = "0.1.0"

from mall_captcha.config import CaptchaSettings
from mall_captcha.engine import CaptchaEngine, matches
from mall_captcha.errors import (
    CaptchaError,
    CaptchaIncorrect,
    ChallengeExpiredOrConsumed,
    StoreUnavailable,
    TicketExpiredOrConsumed,
    UpstreamError,
)
from mall_captcha.kv import MemoryKeyValueStore, RedisKeyValueStore
from mall_captcha.puzzle import HttpPuzzleGenerator
from mall_captcha.store import ChallengeStore
from mall_captcha.types import (
    Challenge,
    IssuedChallenge,
    Point,
    PuzzleArtifact,
    RedeemedTicket,
    Ticket,
    VerifiedChallenge,
)

__all__ = [
    "CaptchaEngine",
    "CaptchaSettings",
    "ChallengeStore",
    "MemoryKeyValueStore",
    "RedisKeyValueStore",
    "HttpPuzzleGenerator",
    "matches",
    "Point",
    "PuzzleArtifact",
    "Challenge",
    "Ticket",
    "IssuedChallenge",
    "VerifiedChallenge",
    "RedeemedTicket",
    "CaptchaError",
    "UpstreamError",
    "StoreUnavailable",
    "ChallengeExpiredOrConsumed",
    "CaptchaIncorrect",
    "TicketExpiredOrConsumed",
    "__version__",
]
