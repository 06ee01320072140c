"""Playback session tracking.

Keeps exactly one live PlaybackSession, reports its lifecycle to the server and
samples the player once per tick. The tick loop is the primary end-of-file
detector; player events only refine what it sees.
"""

import asyncio
import logging
from typing import Awaitable, Optional, Set, Tuple

from jellycue.api import REQUEST_ERRORS, JellyfinApi
from jellycue.domain import PlaybackSession, TickState
from jellycue.errors import PlayerError
from jellycue.interfaces import IPlayer
from jellycue.settings import Preferences
from jellycue.utils import format_resume_time, ticks_to_seconds

logger = logging.getLogger(__name__)

PLAYBACK_TICK_INTERVAL = 1.0  # seconds
PROGRESS_REPORT_TICKS = 10
WATCHED_THRESHOLD = 0.95
EOF_TOLERANCE = 0.5  # seconds left that count as end of file
MIN_RESUME_SECONDS = 15.0
RESUME_DELAY = 1.0  # let the player finish opening the file before seeking


class PlaybackTracker:
    """Owns the single active playback session and its tick loop."""

    def __init__(self, api: JellyfinApi, player: IPlayer, preferences: Preferences,
                 tick_interval: float = PLAYBACK_TICK_INTERVAL, resume_delay: float = RESUME_DELAY):
        self.api = api
        self.player = player
        self.preferences = preferences
        self.tick_interval = tick_interval
        self.resume_delay = resume_delay

        self.session: Optional[PlaybackSession] = None
        self.ticks = TickState()
        self._tick_task: Optional[asyncio.Task] = None
        self._background: Set[asyncio.Task] = set()
        self._generation = 0
        # the session a stop just ended, until the next start; a late end-of-file may still mark it
        self._ended: Optional[Tuple[PlaybackSession, float]] = None

    def _sync_enabled(self) -> bool:
        return self.preferences.flag("sync_playback_progress")

    def _spawn(self, coro: Awaitable) -> asyncio.Task:
        """Runs a report in the background, keeping a reference until it is done."""
        task = asyncio.get_running_loop().create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    async def flush(self) -> None:
        """Waits until every background report has finished."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    async def _read_position(self) -> Optional[float]:
        try:
            position = await self.player.get_position()
        except PlayerError as e:
            logger.debug("Could not read position: %s", e)
            return None
        if position is not None and position > 0:
            return position
        return None

    # --- lifecycle ---

    async def start(self, server_base: str, item_id: str, api_key: str) -> Optional[PlaybackSession]:
        """
        Starts tracking ``item_id``. Any previous session is stopped first.

        Returns:
            Optional[PlaybackSession]: The new session, or None when progress
                                       sync is disabled or a newer start/stop
                                       superseded this one.
        """
        # the player already holds the new file, so its position says nothing about the old one
        await self.stop(sample_player=False)
        self._ended = None

        if not self._sync_enabled():
            logger.info("Playback progress sync disabled")
            return None

        self._generation += 1
        generation = self._generation
        logger.info("Starting playback tracking for item: %s", item_id)

        play_session_id = None
        media_source_id = None
        try:
            playback_info = await self.api.fetch_playback_info(server_base, item_id, api_key)
        except REQUEST_ERRORS as e:
            logger.warning("Could not fetch playback info for session: %s", e)
        else:
            play_session_id = playback_info.get("PlaySessionId") or None
            media_sources = playback_info.get("MediaSources") or []
            if media_sources:
                media_source_id = media_sources[0].get("Id") or None
            logger.debug("PlaySessionId: %s, MediaSourceId: %s", play_session_id, media_source_id)

        if generation != self._generation:
            logger.debug("Tracking start for %s superseded, discarding", item_id)
            return None

        session = PlaybackSession(
            server_base=server_base,
            item_id=item_id,
            api_key=api_key,
            play_session_id=play_session_id,
            media_source_id=media_source_id,
        )
        self.session = session
        self.ticks = TickState()

        self._spawn(self.api.report_playback_start(
            server_base, item_id, api_key, play_session_id, media_source_id
        ))
        self._spawn(self.resume_from_server(session))

        try:
            duration = await self.player.get_duration()
        except PlayerError as e:
            logger.debug("Could not get duration: %s", e)
        else:
            if duration:
                session.duration = duration
                logger.debug("Media duration: %ss", duration)

        if self.session is not session:
            return None

        self._start_tick(session)
        logger.info("Playback tracking started")
        return session

    async def stop(self, sample_player: bool = True) -> None:
        """
        Ends the active session with a final stop report. Safe to call when
        nothing is being tracked. State is cleared before the report goes out,
        so a failing report never leaves a session behind.

        Args:
            sample_player (bool): Read the final position from the player. Off
                                  when the player has already moved on to
                                  another file.
        """
        self._generation += 1
        session = self.session
        if session is None:
            self._ended = None
            return

        self._stop_tick()
        ticks = self.ticks
        self.session = None
        self.ticks = TickState()

        final_position = ticks.last_known_position
        if sample_player:
            position = await self._read_position()
            if position is not None:
                final_position = position
        if final_position <= 0:
            final_position = ticks.last_reported_position
        self._ended = (session, final_position)

        if self._sync_enabled():
            await self.api.report_playback_stopped(
                session.server_base, session.item_id, session.api_key, final_position,
                session.play_session_id, session.media_source_id,
            )
        logger.info("Playback session ended")

    async def close(self) -> None:
        await self.stop()
        await self.flush()

    # --- resume ---

    async def fetch_resume_position(self, server_base: str, item_id: str, api_key: str) -> Optional[float]:
        """Returns the server-side resume point in seconds, or None if there is none to use."""
        if not self._sync_enabled():
            return None

        try:
            metadata = await self.api.fetch_item_metadata(server_base, item_id, api_key)
        except REQUEST_ERRORS as e:
            logger.warning("Error fetching resume position: %s", e)
            return None

        user_data = metadata.get("UserData")
        if not user_data:
            logger.debug("No UserData found in metadata")
            return None

        if user_data.get("Played"):
            logger.debug("Item already marked as played, not resuming")
            return None

        position_ticks = user_data.get("PlaybackPositionTicks")
        if not position_ticks:
            logger.debug("No resume position available")
            return None

        position = ticks_to_seconds(position_ticks)
        logger.info("Found resume position: %.1fs (%s ticks)", position, position_ticks)
        return position

    async def resume_from_server(self, session: PlaybackSession) -> bool:
        position = await self.fetch_resume_position(session.server_base, session.item_id, session.api_key)
        if position is None or position < MIN_RESUME_SECONDS:
            logger.debug("No significant resume position, starting from beginning")
            return False

        await asyncio.sleep(self.resume_delay)
        if self.session is not session:
            return False

        try:
            await self.player.seek_to(position)
        except PlayerError as e:
            logger.warning("Error seeking to resume position: %s", e)
            return False
        logger.info("Resumed playback at %.1fs", position)

        if self.preferences.flag("show_notifications"):
            await self._notify(f"Resuming at {format_resume_time(position)}")
        return True

    # --- reporting ---

    async def _report_progress(self, session: PlaybackSession, position: float, is_paused: bool) -> bool:
        if not self._sync_enabled():
            return False
        return await self.api.report_playback_progress(
            session.server_base, session.item_id, session.api_key, position,
            session.play_session_id, session.media_source_id, is_paused,
        )

    async def _mark_watched(self, session: PlaybackSession) -> bool:
        if not self._sync_enabled():
            return False
        marked = await self.api.mark_played(session.server_base, session.item_id, session.api_key)
        if marked and self.preferences.flag("show_notifications"):
            await self._notify("Marked as watched")
        return marked

    async def _notify(self, text: str) -> None:
        try:
            await self.player.show_osd(text)
        except PlayerError as e:
            logger.debug("Could not show notification: %s", e)

    def _check_watched(self, session: PlaybackSession) -> None:
        if not session.duration or session.has_reported_watched:
            return
        ratio = self.ticks.last_known_position / session.duration
        logger.debug("Playback progress: %.1f%%", ratio * 100)
        if ratio >= WATCHED_THRESHOLD:
            logger.info("Reached %d%% threshold, marking as watched", WATCHED_THRESHOLD * 100)
            session.has_reported_watched = True
            self._spawn(self._mark_watched(session))

    # --- tick loop ---

    def _start_tick(self, session: PlaybackSession) -> None:
        self._stop_tick()
        self._tick_task = asyncio.get_running_loop().create_task(self._tick_loop(session))

    def _stop_tick(self) -> None:
        task = self._tick_task
        self._tick_task = None
        # stop() may run inside the tick task itself (end of file); that loop exits on its own
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()
        self.ticks.tick_count = 0

    async def _tick_loop(self, session: PlaybackSession) -> None:
        while self.session is session:
            await asyncio.sleep(self.tick_interval)
            if self.session is not session:
                break
            await self.tick()

    async def tick(self) -> None:
        """One sample of the player. Never raises."""
        session = self.session
        if session is None:
            return

        try:
            position = await self._read_position()
            if not session.duration:
                duration = await self.player.get_duration()
                if duration:
                    session.duration = duration

            if self.session is not session:
                return
            if position is not None:
                self.ticks.last_known_position = position

            self.ticks.tick_count += 1
            if self.ticks.tick_count >= PROGRESS_REPORT_TICKS:
                self.ticks.tick_count = 0
                position = self.ticks.last_known_position
                is_paused = bool(await self.player.is_paused())
                if self.session is not session:
                    return
                self._spawn(self._report_progress(session, position, is_paused))
                self.ticks.last_reported_position = position
                self._check_watched(session)

            if session.duration and self.ticks.last_known_position > 0:
                remaining = session.duration - self.ticks.last_known_position
                if remaining <= EOF_TOLERANCE:
                    logger.info("EOF detected via tick, stopping playback tracking")
                    await self.stop()
        except PlayerError as e:
            logger.warning("Player unavailable during tick: %s", e)
        except Exception:
            logger.exception("Error in playback tick")

    # --- player events ---

    async def on_position_changed(self) -> None:
        if self.session is None:
            return
        position = await self._read_position()
        if position is not None:
            self.ticks.last_known_position = position

    async def on_pause_changed(self) -> None:
        """Reports the new pause state right away and restarts the report cadence."""
        session = self.session
        if session is None:
            return

        try:
            position = await self._read_position()
            if position is not None:
                self.ticks.last_known_position = position
            is_paused = bool(await self.player.is_paused())
        except PlayerError as e:
            logger.warning("Error in pause change handler: %s", e)
            return

        if self.session is not session:
            return

        logger.debug("Pause state changed: is_paused=%s, position=%s", is_paused, self.ticks.last_known_position)
        self._spawn(self._report_progress(session, self.ticks.last_known_position, is_paused))
        self.ticks.last_reported_position = self.ticks.last_known_position
        self.ticks.tick_count = 0

    def on_end_of_file(self) -> None:
        """
        A natural end-of-file from the player. Marks the item watched if the
        last sampled position reaches the threshold and the ticks have not done
        so yet. The tick loop may already have stopped the session a moment
        earlier; that session is still marked. Stopping is left to the tick
        loop and the router.
        """
        if self.session is not None:
            session, position = self.session, self.ticks.last_known_position
        elif self._ended is not None:
            session, position = self._ended
        else:
            return

        if session.has_reported_watched or not session.duration:
            return
        if position / session.duration < WATCHED_THRESHOLD:
            logger.debug("End of file at %.1fs of %.1fs, not marking as watched", position, session.duration)
            return
        logger.info("End of file reached, marking as watched")
        session.has_reported_watched = True
        self._spawn(self._mark_watched(session))
