"""Autoplay orchestration: find the next episode and queue it in the player.

Only the most recent ``setup_for_episode`` call may queue anything. Each run
captures the request counter when it starts and re-checks it after every
suspension point; a superseded run is also cancelled outright.
"""

import asyncio
import logging
from typing import Optional

from jellycue.api import REQUEST_ERRORS, JellyfinApi
from jellycue.domain import AutoplayState, EndOfFile, EpisodeBookmark, ResolvedEpisode, SeriesInfo
from jellycue.errors import PlayerError
from jellycue.interfaces import IBookmarkRepository, IPlayer
from jellycue.resolver import EpisodeResolver
from jellycue.settings import Preferences
from jellycue.utils import format_queue_title

logger = logging.getLogger(__name__)


class AutoplayOrchestrator:
    """Owns the single meaningful "resolve and queue next episode" run."""

    def __init__(self, api: JellyfinApi, resolver: EpisodeResolver, player: IPlayer,
                 preferences: Preferences, repository: Optional[IBookmarkRepository] = None):
        self.api = api
        self.resolver = resolver
        self.player = player
        self.preferences = preferences
        self.repository = repository
        self.state = AutoplayState()
        self._task: Optional[asyncio.Task] = None

    @property
    def queued(self) -> bool:
        return self.state.queued

    def setup_for_episode(self, server_base: str, episode_id: str, api_key: str) -> Optional[asyncio.Task]:
        """
        Starts resolving the episode after ``episode_id`` without blocking the
        caller. A repeated call for the episode already being processed is a
        no-op and returns None.
        """
        if self.state.last_processed_episode_id == episode_id:
            logger.debug("Episode %s already being processed, skipping duplicate setup", episode_id)
            return None

        self.state.last_processed_episode_id = episode_id
        self.state.queued = False
        self.state.request_counter += 1
        request_id = self.state.request_counter

        if self._task is not None and not self._task.done():
            self._task.cancel()

        logger.info("Setting up autoplay for episode: %s (request #%d)", episode_id, request_id)
        self._task = asyncio.get_running_loop().create_task(
            self._run(server_base, episode_id, api_key, request_id)
        )
        return self._task

    def _is_stale(self, request_id: int) -> bool:
        return request_id != self.state.request_counter

    async def _run(self, server_base: str, episode_id: str, api_key: str, request_id: int) -> None:
        try:
            series_info = await self.get_series_info(server_base, episode_id, api_key)

            if self._is_stale(request_id):
                logger.debug("Autoplay request #%d is stale (current: #%d), aborting",
                             request_id, self.state.request_counter)
                return

            if series_info is None:
                logger.info("Could not get series info, autoplay not available")
                return

            if self.state.last_processed_series_id != series_info.series_id:
                logger.debug("Series changed from %s to %s",
                             self.state.last_processed_series_id, series_info.series_id)
                self.state.last_processed_series_id = series_info.series_id

            self.store_bookmark(server_base, episode_id, series_info)

            next_episode = await self.resolver.resolve_next(
                server_base, series_info.series_id, series_info.season_id,
                series_info.episode_number, api_key,
            )

            if self._is_stale(request_id):
                logger.debug("Autoplay request #%d is stale after resolve, aborting", request_id)
                return

            if next_episode is None:
                logger.info("No next episode found, end of series")
                return

            season_number = next_episode.season_number or series_info.season_number
            await self.queue_next_episode(next_episode, series_info.series_name, season_number, request_id)
        except Exception:
            logger.exception("Error setting up autoplay for episode %s", episode_id)

    async def get_series_info(self, server_base: str, episode_id: str, api_key: str) -> Optional[SeriesInfo]:
        try:
            metadata = await self.api.fetch_item_metadata(server_base, episode_id, api_key)
        except REQUEST_ERRORS as e:
            logger.warning("Error getting series info from episode %s: %s", episode_id, e)
            return None

        if metadata.get("Type") != "Episode":
            logger.info("Item %s is not an episode, it's a %s", episode_id, metadata.get("Type"))
            return None

        series_id = metadata.get("SeriesId")
        season_id = metadata.get("SeasonId")
        if not series_id or not season_id:
            logger.info("Missing series info - SeriesId: %s, SeasonId: %s", series_id, season_id)
            return None

        try:
            season_number = int(metadata.get("ParentIndexNumber") or 1)
            episode_number = int(metadata.get("IndexNumber") or 0)
        except (TypeError, ValueError):
            season_number, episode_number = 1, 0

        info = SeriesInfo(
            series_id=series_id,
            season_id=season_id,
            series_name=metadata.get("SeriesName") or "",
            season_number=season_number,
            episode_number=episode_number,
        )
        logger.debug("Series info: %s", info)
        return info

    def store_bookmark(self, server_base: str, episode_id: str, series_info: SeriesInfo) -> None:
        if self.repository is None:
            return
        try:
            self.repository.save_bookmark(EpisodeBookmark(
                series_id=series_info.series_id,
                season_id=series_info.season_id,
                episode_id=episode_id,
                episode_number=series_info.episode_number,
                season_number=series_info.season_number,
                series_name=series_info.series_name,
                server_base=server_base,
            ))
        except (OSError, TypeError, ValueError) as e:
            logger.warning("Error storing episode bookmark: %s", e)

    async def _clean_playlist(self) -> None:
        """Drops leftover entries after the current one. Best effort."""
        try:
            count = await self.player.playlist_count()
            position = await self.player.playlist_position()
        except PlayerError as e:
            logger.debug("Could not clean playlist (non-critical): %s", e)
            return

        if count <= position + 1:
            return

        for index in range(count - 1, position, -1):
            try:
                await self.player.playlist_remove(index)
            except PlayerError as e:
                logger.debug("Could not remove playlist entry %d: %s", index, e)
        logger.debug("Cleaned %d stale playlist entries", count - position - 1)

    async def queue_next_episode(self, episode: ResolvedEpisode, series_name: str, season_number: int,
                                 request_id: Optional[int] = None) -> bool:
        """Inserts ``episode`` right after the current playlist entry."""
        title = format_queue_title(series_name, season_number, episode.index_number, episode.name)
        logger.info("Queuing next episode: %s", title)

        await self._clean_playlist()

        if request_id is not None and self._is_stale(request_id):
            logger.debug("Autoplay request #%d went stale while cleaning the playlist", request_id)
            return False

        try:
            await self.player.load_entry(episode.play_url, "insert-next", title)
        except PlayerError as e:
            logger.warning("Error queuing next episode: %s", e)
            return False

        self.state.queued = True
        self.state.queued_episode_id = episode.id
        logger.info("Queued next episode: %s", title)

        if self.preferences.flag("show_notifications"):
            try:
                await self.player.show_osd(f"Up next: {title}")
            except PlayerError as e:
                logger.debug("Could not show notification: %s", e)
        return True

    def on_file_ended(self) -> EndOfFile:
        """
        Classifies an end-of-file event. When an episode is queued the player
        is about to advance into it, so the flag is consumed and nothing else
        should happen; otherwise the caller has a real stop on its hands.
        """
        if self.state.queued:
            logger.debug("End of file with next episode queued, expecting advance")
            self.state.queued = False
            return EndOfFile.EXPECTED_ADVANCE
        return EndOfFile.REAL_STOP

    def consume_advance(self, item_id: str) -> bool:
        """True if ``item_id`` is the episode this orchestrator queued last."""
        if self.state.queued_episode_id is not None and self.state.queued_episode_id == item_id:
            self.state.queued_episode_id = None
            return True
        return False

    def reset_for_new_file(self) -> None:
        self.state.last_processed_episode_id = None
        self.state.queued = False
        self.state.queued_episode_id = None

    async def wait(self) -> None:
        """Waits for the current run, if any, to finish or be cancelled."""
        task = self._task
        if task is None:
            return
        try:
            await task
        except asyncio.CancelledError:
            if not task.cancelled():
                raise

    def close(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None
