"""Poster for GitLab Merge Request notes."""

import logging
from urllib.parse import quote

import httpx

from ..config import GitLabCommentConfig
from ..exceptions import CommentException
from . import Poster

__all__ = [
    "GitLabPoster",
]

_LOGGER = logging.getLogger(__name__)

DEFAULT_API_PREFIX = "/api/v4"
PRIVATE_TOKEN_HEADER = "PRIVATE-TOKEN"
TIMEOUT = 15.0
_MAX_ERROR_TEXT = 4096


class GitLabPoster(Poster):
    """Posts notes to a single Merge Request."""

    def __init__(
        self,
        config: GitLabCommentConfig,
        client: httpx.AsyncClient | None = None,
        api_prefix: str = DEFAULT_API_PREFIX,
    ) -> None:
        """Initialize GitLabPoster.

        A client is created for every post when none is provided.
        """
        if not config.base_url:
            raise CommentException("gitlab: base URL is required")
        if not config.token:
            raise CommentException("gitlab: token is required")
        if not config.project_id:
            raise CommentException("gitlab: project ID is required")
        if not config.merge_request_iid:
            raise CommentException("gitlab: merge request IID is required")
        self._config = config
        self._client = client
        self._api_prefix = api_prefix

    @property
    def endpoint(self) -> str:
        """Return the notes endpoint of the Merge Request."""
        base = self._config.base_url.rstrip("/")
        prefix = "/" + self._api_prefix.strip("/")
        project = quote(self._config.project_id, safe="")
        return (
            f"{base}{prefix}/projects/{project}"
            f"/merge_requests/{self._config.merge_request_iid}/notes"
        )

    async def post(self, body: str) -> None:
        """Post the comment body as a new note."""
        if not body.strip():
            raise CommentException("gitlab: comment body is empty")
        if self._client is not None:
            await self._post(self._client, body)
            return
        async with httpx.AsyncClient(timeout=TIMEOUT) as client:
            await self._post(client, body)

    async def _post(self, client: httpx.AsyncClient, body: str) -> None:
        _LOGGER.debug("Posting comment to %s", self.endpoint)
        try:
            response = await client.post(
                self.endpoint,
                json={"body": body},
                headers={PRIVATE_TOKEN_HEADER: self._config.token},
            )
        except httpx.HTTPError as err:
            raise CommentException(f"gitlab: perform request: {err}") from err
        if not response.is_success:
            text = response.text[:_MAX_ERROR_TEXT].strip()
            raise CommentException(
                f"gitlab: unexpected status {response.status_code} "
                f"{response.reason_phrase}: {text}"
            )
