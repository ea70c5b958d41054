"""Typed failures of the captcha protocol.

Every failure carries the numeric ``code`` and client-facing ``message`` of
the mall API envelope, plus the HTTP status the transport should use. The
optional ``detail`` holds the lower-level error text for logs and the
envelope's ``err_msg`` field.
"""

from typing import Optional


class CaptchaError(Exception):
    """Base class for all captcha protocol failures."""

    code: int = 500
    message: str = "Internal Server Error"
    http_status: int = 500

    def __init__(self, detail: Optional[str] = None):
        super().__init__(detail or self.message)
        self.detail = detail

    @property
    def err_msg(self) -> str:
        """Envelope ``err_msg``: message plus the raw detail, if any."""
        if not self.detail:
            return ""
        return f"{self.message},{self.detail}"


class UpstreamError(CaptchaError):
    """The puzzle generator failed. Safe to retry by issuing a new challenge."""

    code = 500
    message = "Internal Server Error"
    http_status = 502


class StoreUnavailable(CaptchaError):
    """The backing key-value store could not be reached."""

    code = 10001
    message = "Redis Error"
    http_status = 503


class ChallengeExpiredOrConsumed(CaptchaError):
    """The challenge expired or was already judged once."""

    code = 400
    message = "Slider expired, please refresh and retry"
    http_status = 400


class CaptchaIncorrect(CaptchaError):
    """The submitted point was outside the tolerance window."""

    code = 11002
    message = "Slider check failed, please retry"
    http_status = 400


class TicketExpiredOrConsumed(CaptchaError):
    """The ticket expired or was already redeemed."""

    code = 401
    message = "Captcha ticket expired, please verify again"
    http_status = 401
