import logging
from typing import Any, Dict, Optional

from jellycue.api import REQUEST_ERRORS, JellyfinApi, is_jellyfin_url, parse_jellyfin_url
from jellycue.autoplay import AutoplayOrchestrator
from jellycue.domain import EndOfFile, ItemRef
from jellycue.errors import PlayerError
from jellycue.interfaces import IPlayer
from jellycue.settings import Preferences
from jellycue.tracking import PlaybackTracker
from jellycue.utils import format_display_title, redact_url

logger = logging.getLogger(__name__)


class EventRouter:
    """
    Wires player lifecycle events to the tracker and the autoplay
    orchestrator. One router per player window.
    """

    def __init__(self, api: JellyfinApi, player: IPlayer, tracker: PlaybackTracker,
                 autoplay: AutoplayOrchestrator, preferences: Preferences):
        self.api = api
        self.player = player
        self.tracker = tracker
        self.autoplay = autoplay
        self.preferences = preferences
        self.current: Optional[ItemRef] = None
        self.replacing = False

    def attach(self, driver) -> None:
        """Subscribes to the events an MpvDriver emits."""
        driver.on("file-loaded", lambda message: self.on_file_loaded())
        driver.on("end-file", self.on_end_file)
        driver.on("property:pause", lambda message: self.tracker.on_pause_changed())
        driver.on("playback-restart", lambda message: self.tracker.on_position_changed())
        driver.on("shutdown", lambda message: self.close())

    async def play(self, url: str, title: Optional[str] = None) -> None:
        """Replaces whatever is playing with ``url``."""
        self.replacing = True
        try:
            await self.player.load_entry(url, "replace", title)
        except PlayerError:
            self.replacing = False
            raise

    async def on_file_loaded(self, url: Optional[str] = None) -> None:
        self.replacing = False
        if url is None:
            try:
                url = await self.player.get_path()
            except PlayerError as e:
                logger.warning("Could not read the loaded path: %s", e)
                return
        logger.debug("File loaded: %s", redact_url(url or ""))

        ref = parse_jellyfin_url(url) if is_jellyfin_url(url) else None
        if ref is None:
            logger.debug("Not a Jellyfin item, tracking and autoplay off for this file")
            self.current = None
            self.autoplay.reset_for_new_file()
            await self.tracker.stop()
            return

        if not self.autoplay.consume_advance(ref.item_id):
            self.autoplay.reset_for_new_file()
        self.current = ref

        if self.preferences.flag("autoplay_next_episode"):
            self.autoplay.setup_for_episode(ref.server_base, ref.item_id, ref.api_key)

        await self.tracker.start(ref.server_base, ref.item_id, ref.api_key)

        if self.preferences.flag("set_video_title"):
            await self.set_video_title(ref)

    async def on_end_file(self, message: Dict[str, Any]) -> EndOfFile:
        reason = message.get("reason")
        logger.debug("End of file, reason: %s", reason)

        if self.replacing:
            logger.debug("File is being replaced, keeping the session for the next file-loaded")
            return EndOfFile.EXPECTED_ADVANCE

        if reason == "eof":
            self.tracker.on_end_of_file()

        outcome = self.autoplay.on_file_ended()
        if outcome is EndOfFile.REAL_STOP:
            await self.tracker.stop()
        return outcome

    async def set_video_title(self, ref: ItemRef) -> Optional[str]:
        try:
            metadata = await self.api.fetch_item_metadata(ref.server_base, ref.item_id, ref.api_key)
        except REQUEST_ERRORS as e:
            logger.warning("Error setting video title: %s", e)
            return None

        title = format_display_title(metadata)
        if not title:
            logger.debug("No title found in metadata")
            return None

        try:
            await self.player.set_title(title)
            if self.preferences.flag("show_notifications"):
                await self.player.show_osd(f"Title: {title}")
        except PlayerError as e:
            logger.warning("Could not set video title: %s", e)
            return None
        logger.info("Video title set to: %s", title)
        return title

    async def close(self) -> None:
        """Window closing or player exiting: end the session and settle reports."""
        self.autoplay.close()
        await self.tracker.close()
        self.current = None
