import logging
from pathlib import Path
from typing import Any, Dict, Optional

from jellycue.api import JellyfinApi
from jellycue.autoplay import AutoplayOrchestrator
from jellycue.drivers import create_driver
from jellycue.interfaces import IBookmarkRepository, IHttpClient, IPlayer
from jellycue.resolver import EpisodeResolver
from jellycue.router import EventRouter
from jellycue.settings import DEFAULT_SETTINGS_PATH, Preferences, ensure_device_id
from jellycue.tracking import PlaybackTracker
from jellycue.transport import HttpxTransport

logger = logging.getLogger(__name__)


def build_router(http: IHttpClient, player: IPlayer, settings: Dict[str, Any],
                 repository: Optional[IBookmarkRepository] = None,
                 settings_path: Optional[Path] = DEFAULT_SETTINGS_PATH) -> EventRouter:
    """Assembles the per-window tracker, orchestrator and router."""
    preferences = Preferences(settings)
    api = JellyfinApi(http, ensure_device_id(settings, settings_path))
    tracker = PlaybackTracker(api, player, preferences)
    autoplay = AutoplayOrchestrator(api, EpisodeResolver(api), player, preferences, repository)
    return EventRouter(api, player, tracker, autoplay, preferences)


async def run_player(url: str, settings: Dict[str, Any],
                     repository: Optional[IBookmarkRepository] = None) -> None:
    """Plays ``url`` in a new mpv window and tracks it until mpv exits."""
    transport = HttpxTransport()
    driver = create_driver(settings)
    router = build_router(transport, driver, settings, repository)
    router.attach(driver)

    try:
        await driver.launch()
        await router.play(url)
        await driver.wait_closed()
    finally:
        await router.close()
        await driver.close()
        await transport.aclose()
    logger.info("Player closed")
