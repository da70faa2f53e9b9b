"""Publishing comparison results as comments on a code review system."""

from abc import ABC, abstractmethod

__all__ = [
    "Poster",
]


class Poster(ABC):
    """Publishes a formatted comment to an upstream system."""

    @abstractmethod
    async def post(self, body: str) -> None:
        """Post the Markdown body, raising `CommentException` on failure."""
