import logging
from typing import Any, Dict, List, Optional

from jellycue.api import REQUEST_ERRORS, JellyfinApi, episode_download_url
from jellycue.domain import ResolvedEpisode

logger = logging.getLogger(__name__)


def _index_of(item: Dict[str, Any]) -> int:
    try:
        return int(item.get("IndexNumber") or 0)
    except (TypeError, ValueError):
        return 0


class EpisodeResolver:
    """
    Finds the episode that follows the current one, rolling over into the next
    season when the current season is exhausted.
    """

    def __init__(self, api: JellyfinApi):
        self.api = api

    async def fetch_season_episodes(self, server_base: str, series_id: str, season_id: str,
                                    api_key: str) -> List[ResolvedEpisode]:
        """
        Returns the playable episodes of a season sorted by index number.
        Episodes without media sources or flagged as not downloadable are
        dropped. Any failure yields an empty list.
        """
        try:
            data = await self.api.fetch_episodes(server_base, series_id, season_id, api_key)
        except REQUEST_ERRORS as e:
            logger.warning("Error fetching episodes for season %s: %s", season_id, e)
            return []

        items = data.get("Items")
        if not items:
            logger.debug("No episodes found for season %s", season_id)
            return []

        episodes = [
            ResolvedEpisode(
                id=item["Id"],
                name=item.get("Name", ""),
                index_number=_index_of(item),
                duration_ticks=item.get("RunTimeTicks"),
                play_url=episode_download_url(server_base, item["Id"], api_key),
            )
            for item in items
            if item.get("Id") and item.get("MediaSources") and item.get("CanDownload") is not False
        ]
        episodes.sort(key=lambda e: e.index_number)

        logger.debug("Fetched %d episodes: %s", len(episodes),
                     ", ".join(f"E{e.index_number}" for e in episodes))
        return episodes

    async def resolve_next(self, server_base: str, series_id: str, season_id: str,
                           current_index: int, api_key: str) -> Optional[ResolvedEpisode]:
        """
        Resolves the next episode after ``current_index`` in ``season_id``.

        The in-season lookup needs a single request; the season list and the
        next season's episodes are only fetched when that lookup misses.

        Returns:
            Optional[ResolvedEpisode]: The next episode, with ``season_number``
                                       set when it belongs to the next season,
                                       or None at the end of the series.
        """
        episodes = await self.fetch_season_episodes(server_base, series_id, season_id, api_key)
        wanted = int(current_index) + 1
        for episode in episodes:
            if episode.index_number == wanted:
                logger.info("Found next episode in current season: E%d - %s", episode.index_number, episode.name)
                return episode

        logger.debug("No next episode in current season, checking next season")

        try:
            seasons_data = await self.api.fetch_seasons(server_base, series_id, api_key)
        except REQUEST_ERRORS as e:
            logger.warning("Error fetching seasons for series %s: %s", series_id, e)
            return None

        seasons = [s for s in seasons_data.get("Items") or [] if s.get("Id") and s.get("IndexNumber") is not None]
        seasons.sort(key=_index_of)

        position = next((i for i, s in enumerate(seasons) if s.get("Id") == season_id), -1)
        if position == -1 or position >= len(seasons) - 1:
            logger.info("No next season available, end of series")
            return None

        next_season = seasons[position + 1]
        logger.debug("Found next season: %s (S%s)", next_season.get("Name"), next_season.get("IndexNumber"))

        next_episodes = await self.fetch_season_episodes(server_base, series_id, next_season["Id"], api_key)
        if not next_episodes:
            logger.info("Next season has no episodes")
            return None

        first = next_episodes[0]
        first.season_number = _index_of(next_season)
        logger.info("Found first episode of next season: S%dE%d - %s",
                    first.season_number, first.index_number, first.name)
        return first
