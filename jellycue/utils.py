import re
from typing import Any, Dict, Optional

TICKS_PER_SECOND = 10_000_000

_API_KEY_RE = re.compile(r"(api_key=)[^&]+")


def seconds_to_ticks(seconds: float) -> int:
    """Converts seconds to server ticks (100 ns units), rounding to the nearest tick."""
    return int(round(seconds * TICKS_PER_SECOND))


def ticks_to_seconds(ticks: int) -> float:
    return ticks / TICKS_PER_SECOND


def format_episode_code(season_number: Any, episode_number: Any) -> str:
    """Returns an "SxxEyy" label, zero-padded to two digits."""
    return f"S{int(season_number):02d}E{int(episode_number):02d}"


def format_queue_title(series_name: str, season_number: Any, episode_number: Any, episode_name: str) -> str:
    """
    Builds the display title forced on a queued episode, e.g.
    "Show Name S02E01 - Pilot". The series name is dropped when unknown.
    """
    code = format_episode_code(season_number, episode_number)
    if series_name:
        return f"{series_name} {code} - {episode_name}"
    return f"{code} - {episode_name}"


def format_display_title(metadata: Dict[str, Any]) -> Optional[str]:
    """
    Derives a window title from item metadata: episodes get the series name and
    episode code, movies get their production year.
    """
    name = metadata.get("Name")
    if not name:
        return None

    item_type = metadata.get("Type")
    if item_type == "Episode" and metadata.get("SeriesName"):
        title = metadata["SeriesName"]
        season = metadata.get("ParentIndexNumber")
        episode = metadata.get("IndexNumber")
        if season is not None and episode is not None:
            title += " " + format_episode_code(season, episode)
        return f"{title} - {name}"
    if item_type == "Movie" and metadata.get("ProductionYear"):
        return f"{name} ({metadata['ProductionYear']})"
    return name


def format_resume_time(seconds: float) -> str:
    """Formats a position as m:ss for on-screen notices."""
    minutes = int(seconds // 60)
    remaining_seconds = int(seconds % 60)
    return f"{minutes}:{remaining_seconds:02d}"


def redact_url(url: str) -> str:
    """Hides the api_key query value so URLs can be logged."""
    return _API_KEY_RE.sub(r"\1***", url)
