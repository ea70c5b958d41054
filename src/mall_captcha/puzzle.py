"""Puzzle generators.

Rendering the slide puzzle happens outside this package. A generator only
has to hand back a :class:`~mall_captcha.types.PuzzleArtifact` whose
``solution`` is the point the tile must be dragged to.
"""

import logging
from typing import Any, Optional, Protocol

import httpx

from .errors import UpstreamError
from .types import Point, PuzzleArtifact

logger = logging.getLogger(__name__)


class PuzzleGenerator(Protocol):
    async def generate(self) -> PuzzleArtifact:
        """Produce a new puzzle; raise UpstreamError on failure."""

    async def close(self) -> None:
        """Release resources."""


class HttpPuzzleGenerator:
    """
    Generator that asks an external rendering service for slide puzzles.

    The service answers ``GET <base_url>/slide`` with::

        {
            "x": 143, "y": 62,             # where the tile belongs
            "width": 62, "height": 62,     # tile size
            "tile_x": 6, "tile_y": 62,     # initial tile position
            "master_image": "<base64>",
            "tile_image": "<base64>"
        }

    Example:
        >>> async with HttpPuzzleGenerator("http://puzzle:8080") as generator:
        ...     artifact = await generator.generate()
        ...     print(artifact.tile_width)
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 5.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Initialize the generator.

        Args:
            base_url: Base URL of the rendering service
            timeout: Per-request timeout in seconds
            client: Optional pre-built client; a private one is created
                (and closed by :meth:`close`) when omitted
        """
        self.base_url = base_url.rstrip("/")
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def generate(self) -> PuzzleArtifact:
        """
        Fetch one puzzle.

        Returns:
            PuzzleArtifact with the solution point and renderable images

        Raises:
            UpstreamError: On transport errors, non-2xx responses or a body
                missing required fields
        """
        try:
            response = await self._client.get(f"{self.base_url}/slide")
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPError as e:
            logger.error("Puzzle service request failed", exc_info=True)
            raise UpstreamError(str(e)) from e
        except ValueError as e:
            # Body was not JSON
            logger.error("Puzzle service returned a non-JSON body")
            raise UpstreamError("invalid puzzle response") from e

        return self._parse(data)

    @staticmethod
    def _parse(data: Any) -> PuzzleArtifact:
        try:
            return PuzzleArtifact(
                solution=Point(x=int(data["x"]), y=int(data["y"])),
                master_image=str(data["master_image"]),
                tile_image=str(data["tile_image"]),
                tile_width=int(data["width"]),
                tile_height=int(data["height"]),
                tile_x=int(data.get("tile_x", 0)),
                tile_y=int(data.get("tile_y", 0)),
            )
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            logger.error("Puzzle service response is missing fields: %s", e)
            raise UpstreamError(f"invalid puzzle response: {e}") from e

    async def close(self) -> None:
        """Close the underlying HTTP client if this generator created it."""
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "HttpPuzzleGenerator":
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit."""
        await self.close()
