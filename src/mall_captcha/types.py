"""Type definitions for the slide-captcha protocol."""

from dataclasses import dataclass


@dataclass(frozen=True)
class Point:
    """Integer pixel coordinates on the puzzle background."""

    x: int
    y: int


@dataclass(frozen=True)
class Challenge:
    """A pending puzzle whose expected solution is held server-side."""

    id: str  # opaque random token, also the wire "key"
    solution: Point
    created_at: float  # epoch seconds
    ttl: int  # seconds


@dataclass(frozen=True)
class Ticket:
    """Single-use proof that a challenge was solved."""

    id: str
    challenge_id: str  # the challenge this ticket attests was solved
    created_at: float
    ttl: int


@dataclass(frozen=True)
class PuzzleArtifact:
    """Puzzle produced by a generator.

    Only ``solution`` is meaningful to the engine; the rest is passed to the
    client untouched.
    """

    solution: Point
    master_image: str  # base64 background with the hole cut out
    tile_image: str  # base64 sliding tile
    tile_width: int
    tile_height: int
    tile_x: int  # initial tile position
    tile_y: int


@dataclass(frozen=True)
class IssuedChallenge:
    """Result of issuing a challenge."""

    challenge_id: str
    puzzle: PuzzleArtifact
    expires_in: int  # advisory seconds remaining shown to the client


@dataclass(frozen=True)
class VerifiedChallenge:
    """Result of a successful verification."""

    ticket_id: str
    expires_in: int


@dataclass(frozen=True)
class RedeemedTicket:
    """Result of redeeming a ticket."""

    challenge_id: str
