"""Single-use, TTL-bounded storage for challenges and tickets."""

import json
import logging
import time
from typing import Callable, Optional

from .kv import KeyValueStore
from .log import short_id
from .types import Challenge, Point, Ticket

logger = logging.getLogger(__name__)

CHALLENGE_NAMESPACE = "challenge"
TICKET_NAMESPACE = "ticket"


class UndecodableRecord(ValueError):
    """A stored value could not be parsed back into a record."""


class ChallengeStore:
    """
    Challenge and ticket records on top of a :class:`KeyValueStore`.

    Records live under separate namespaces so a challenge and a ticket can
    never collide, even with the same id::

        <key_prefix>:captcha:challenge:<id>  ->  {"x", "y", "created_at", "ttl"}
        <key_prefix>:captcha:ticket:<id>     ->  {"challenge_id", "created_at", "ttl"}

    Every ``take_*`` is destructive: a record is returned at most once, and
    never after its TTL elapsed.

    Args:
        kv: Backing key-value store
        key_prefix: Deployment prefix shared by all keys
        clock: Wall clock used to stamp ``created_at``
    """

    def __init__(
        self,
        kv: KeyValueStore,
        key_prefix: str = "edu.mall",
        clock: Callable[[], float] = time.time,
    ):
        self._kv = kv
        self._key_prefix = key_prefix
        self._clock = clock

    def key(self, namespace: str, record_id: str) -> str:
        """Full store key for a record id."""
        return f"{self._key_prefix}:captcha:{namespace}:{record_id}"

    async def ping(self) -> bool:
        """Return True if the backing store is reachable."""
        return await self._kv.ping()

    async def put_challenge(self, challenge_id: str, solution: Point, ttl: int) -> Challenge:
        """
        Store the expected solution of a challenge.

        Returns:
            The stored record

        Raises:
            StoreUnavailable: If the backing store is unreachable
        """
        challenge = Challenge(id=challenge_id, solution=solution, created_at=self._clock(), ttl=ttl)
        payload = json.dumps(
            {
                "x": solution.x,
                "y": solution.y,
                "created_at": challenge.created_at,
                "ttl": ttl,
            }
        )
        await self._kv.set(self.key(CHALLENGE_NAMESPACE, challenge_id), payload, ttl)
        return challenge

    async def take_challenge(self, challenge_id: str) -> Optional[Challenge]:
        """
        Read and delete a challenge.

        Returns:
            The stored challenge, or None if absent, expired or already taken

        Raises:
            StoreUnavailable: If the backing store is unreachable
            UndecodableRecord: If the record existed but was corrupt; it is
                consumed all the same
        """
        raw = await self._kv.get_and_delete(self.key(CHALLENGE_NAMESPACE, challenge_id))
        if raw is None:
            return None
        try:
            data = json.loads(raw)
            return Challenge(
                id=challenge_id,
                solution=Point(x=int(data["x"]), y=int(data["y"])),
                created_at=float(data["created_at"]),
                ttl=int(data["ttl"]),
            )
        except (ValueError, TypeError, KeyError) as e:
            logger.error("Undecodable challenge record %s", short_id(challenge_id), exc_info=True)
            raise UndecodableRecord(f"challenge {short_id(challenge_id)}") from e

    async def put_ticket(self, ticket_id: str, challenge_id: str, ttl: int) -> Ticket:
        """
        Store a ticket bound to the challenge it attests.

        Returns:
            The stored record

        Raises:
            StoreUnavailable: If the backing store is unreachable
        """
        ticket = Ticket(id=ticket_id, challenge_id=challenge_id, created_at=self._clock(), ttl=ttl)
        payload = json.dumps(
            {"challenge_id": challenge_id, "created_at": ticket.created_at, "ttl": ttl}
        )
        await self._kv.set(self.key(TICKET_NAMESPACE, ticket_id), payload, ttl)
        return ticket

    async def take_ticket(self, ticket_id: str) -> Optional[Ticket]:
        """
        Read and delete a ticket.

        Returns:
            The stored ticket, or None if absent, expired, already taken or
            corrupt

        Raises:
            StoreUnavailable: If the backing store is unreachable
        """
        raw = await self._kv.get_and_delete(self.key(TICKET_NAMESPACE, ticket_id))
        if raw is None:
            return None
        try:
            data = json.loads(raw)
            challenge_id = data["challenge_id"]
            created_at = float(data["created_at"])
            ttl = int(data["ttl"])
        except (ValueError, TypeError, KeyError):
            logger.error("Undecodable ticket record %s", short_id(ticket_id), exc_info=True)
            return None
        if not isinstance(challenge_id, str) or not challenge_id:
            logger.error("Ticket record %s has no challenge id", short_id(ticket_id))
            return None
        return Ticket(id=ticket_id, challenge_id=challenge_id, created_at=created_at, ttl=ttl)
