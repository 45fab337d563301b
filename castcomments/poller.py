"""Comment poller that follows a broadcaster and prints new comments."""

import asyncio
import logging
from typing import Callable, Optional

import click

from castcomments.api import Comment, ProtocolError, TwitcastingClient

logger = logging.getLogger(__name__)


def echo_comment(comment: Comment) -> None:
    """Write a comment's message to standard output."""
    click.echo(comment.message)


class CommentPoller:
    """Polls a user's live broadcast and emits new comments in chronological order."""

    def __init__(
        self,
        client: TwitcastingClient,
        user: str,
        poll_interval_sec: float = 10.0,
        emit: Optional[Callable[[Comment], None]] = None,
        fatal_protocol_errors: bool = False,
    ):
        self.client = client
        self.user = user
        self.poll_interval_sec = poll_interval_sec
        self.emit = emit or echo_comment
        self.fatal_protocol_errors = fatal_protocol_errors

        # Id of the newest comment already emitted
        self.cursor: Optional[str] = None
        self.running = False

    async def start(self):
        """Poll until stop() is called."""
        self.running = True
        logger.info(f"Starting comment poller for user {self.user}")

        while self.running:
            await self.poll_once()
            if not self.running:
                break
            await asyncio.sleep(self.poll_interval_sec)

        logger.info("Comment poller stopped")

    async def stop(self):
        """Stop polling after the current cycle."""
        logger.info("Stopping comment poller")
        self.running = False

    async def poll_once(self) -> list[Comment]:
        """
        Run a single poll cycle.

        The broadcast id is resolved every cycle since the user may have
        restarted streaming. The cursor only moves when comments come back.

        Returns:
            Comments emitted this cycle, oldest first

        Raises:
            ProtocolError: Only when fatal_protocol_errors is set
            TransportError: On network failure
        """
        logger.info("Retrieve begin")

        try:
            movie_id = await self.client.resolve_active_broadcast(self.user)
            if movie_id is None:
                logger.warning(f"User {self.user} is not live, cannot retrieve movie id")
                return []

            comments, self.cursor = await self.client.fetch_comments(movie_id, self.cursor)

        except ProtocolError as e:
            if self.fatal_protocol_errors:
                raise
            logger.error(f"Skipping poll cycle: {e}")
            return []

        if comments is None:
            logger.warning(f"Cannot retrieve comments for movie {movie_id}")
            return []

        logger.info(f"Retrieved {len(comments)} comments")
        for comment in comments:
            self.emit(comment)

        return comments
