"""Slide-captcha challenge/response protocol.

Lifecycle of one challenge id::

    ISSUED --verify, point within tolerance--> SOLVED --redeem ticket--> REDEEMED
      |
      +--verify with a wrong point, a repeat verify, or TTL expiry--> gone

No status field is stored. A live record in the challenge namespace means
ISSUED, a live ticket bound to it means SOLVED, and absence means the id is
finished. Every read is destructive, so a challenge is judged at most once
and a ticket is redeemed at most once.
"""

import logging
import secrets
from typing import Optional

from .config import CaptchaSettings
from .errors import (
    CaptchaError,
    CaptchaIncorrect,
    ChallengeExpiredOrConsumed,
    TicketExpiredOrConsumed,
    UpstreamError,
)
from .puzzle import PuzzleGenerator
from .log import short_id
from .store import ChallengeStore, UndecodableRecord
from .types import IssuedChallenge, Point, RedeemedTicket, VerifiedChallenge

logger = logging.getLogger(__name__)

TOKEN_BYTES = 16  # 128-bit ids, 32 hex characters


def new_token() -> str:
    """Unguessable id for a challenge or ticket."""
    return secrets.token_hex(TOKEN_BYTES)


def matches(solution: Point, submitted: Point, tolerance: int) -> bool:
    """
    Check a submitted point against the expected one.

    Both axes must be within ``tolerance`` pixels; the bound is inclusive.

    Example:
        >>> matches(Point(100, 50), Point(105, 45), 5)
        True
        >>> matches(Point(100, 50), Point(106, 50), 5)
        False
    """
    return abs(submitted.x - solution.x) <= tolerance and abs(submitted.y - solution.y) <= tolerance


class CaptchaEngine:
    """
    Issues slide puzzles, judges submissions and redeems tickets.

    The engine keeps no state of its own: everything lives in the injected
    :class:`ChallengeStore`. Failures are raised as
    :class:`~mall_captcha.errors.CaptchaError` subclasses and are never
    retried here.

    Example:
        >>> engine = CaptchaEngine(generator, ChallengeStore(MemoryKeyValueStore()))
        >>> issued = await engine.issue_challenge()
        >>> verified = await engine.verify_challenge(issued.challenge_id, Point(143, 62))
        >>> redeemed = await engine.redeem_ticket(verified.ticket_id)
        >>> redeemed.challenge_id == issued.challenge_id
        True
    """

    def __init__(
        self,
        generator: PuzzleGenerator,
        store: ChallengeStore,
        settings: Optional[CaptchaSettings] = None,
    ):
        self._generator = generator
        self._store = store
        self.settings = settings or CaptchaSettings()

    async def issue_challenge(self) -> IssuedChallenge:
        """
        Create a puzzle and remember its solution.

        The challenge only becomes verifiable once the store write succeeded;
        any earlier failure leaves nothing behind.

        Returns:
            IssuedChallenge with the new id, the puzzle and an advisory
            expiry hint

        Raises:
            UpstreamError: If the puzzle generator failed
            StoreUnavailable: If the solution could not be stored
        """
        try:
            puzzle = await self._generator.generate()
        except CaptchaError:
            raise
        except Exception as e:
            logger.error("Puzzle generation failed", exc_info=True)
            raise UpstreamError(str(e)) from e

        challenge_id = new_token()
        await self._store.put_challenge(challenge_id, puzzle.solution, self.settings.challenge_ttl)
        logger.debug("Issued challenge %s", short_id(challenge_id))

        return IssuedChallenge(
            challenge_id=challenge_id,
            puzzle=puzzle,
            expires_in=self.settings.challenge_expire_hint,
        )

    async def verify_challenge(self, challenge_id: str, submitted: Point) -> VerifiedChallenge:
        """
        Judge a submission and, on success, mint a ticket.

        The challenge is consumed before it is judged, so whatever the
        outcome the same id can never be verified again.

        Args:
            challenge_id: Id returned by :meth:`issue_challenge`
            submitted: Point the user dragged the tile to

        Returns:
            VerifiedChallenge with a single-use ticket id

        Raises:
            ChallengeExpiredOrConsumed: If the challenge expired or was
                already verified; the two cases are indistinguishable
            CaptchaIncorrect: If the point is outside the tolerance
            StoreUnavailable: If the store is unreachable
        """
        if not challenge_id:
            raise ChallengeExpiredOrConsumed()

        try:
            challenge = await self._store.take_challenge(challenge_id)
        except UndecodableRecord as e:
            raise CaptchaIncorrect(str(e)) from e

        if challenge is None:
            logger.info("Challenge %s expired or already used", short_id(challenge_id))
            raise ChallengeExpiredOrConsumed()

        if not matches(challenge.solution, submitted, self.settings.tolerance):
            logger.info("Challenge %s failed verification", short_id(challenge_id))
            raise CaptchaIncorrect()

        ticket = await self._store.put_ticket(new_token(), challenge_id, self.settings.ticket_ttl)
        logger.debug(
            "Challenge %s solved after %.1fs, issued ticket %s",
            short_id(challenge_id),
            ticket.created_at - challenge.created_at,
            short_id(ticket.id),
        )

        return VerifiedChallenge(ticket_id=ticket.id, expires_in=self.settings.ticket_expire_hint)

    async def redeem_ticket(self, ticket_id: str) -> RedeemedTicket:
        """
        Consume a ticket.

        Called by the follow-on flow (e.g. login) before it does its own
        work. What the ticket authorizes is up to that caller.

        Returns:
            RedeemedTicket naming the challenge that was solved

        Raises:
            TicketExpiredOrConsumed: If the ticket expired or was already
                redeemed
            StoreUnavailable: If the store is unreachable
        """
        if not ticket_id:
            raise TicketExpiredOrConsumed()

        ticket = await self._store.take_ticket(ticket_id)
        if ticket is None:
            logger.info("Ticket %s expired or already used", short_id(ticket_id))
            raise TicketExpiredOrConsumed()

        logger.debug(
            "Redeemed ticket %s for challenge %s",
            short_id(ticket.id),
            short_id(ticket.challenge_id),
        )
        return RedeemedTicket(challenge_id=ticket.challenge_id)

    async def ping(self) -> bool:
        """Return True if the backing store is reachable."""
        return await self._store.ping()
