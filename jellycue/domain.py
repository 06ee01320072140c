from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional


@dataclass
class ItemRef:
    """Identifies one playable item on a Jellyfin server."""
    server_base: str
    item_id: str
    api_key: str


@dataclass
class HttpResponse:
    """Result of a transport call: status code plus decoded body."""
    status: int
    data: Any = None

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


@dataclass
class PlaybackSession:
    """The single live playback session owned by the tracker."""
    server_base: str
    item_id: str
    api_key: str
    play_session_id: Optional[str] = None
    media_source_id: Optional[str] = None
    start_time: datetime = field(default_factory=datetime.now)
    duration: Optional[float] = None  # seconds, filled once the player knows it
    has_reported_watched: bool = False


@dataclass
class TickState:
    """Position bookkeeping paired with the live session."""
    last_known_position: float = 0.0
    last_reported_position: float = 0.0
    tick_count: int = 0


@dataclass
class AutoplayState:
    last_processed_episode_id: Optional[str] = None
    last_processed_series_id: Optional[str] = None
    request_counter: int = 0
    queued: bool = False
    queued_episode_id: Optional[str] = None


@dataclass
class SeriesInfo:
    """Series linkage of the episode that is currently playing."""
    series_id: str
    season_id: str
    series_name: str = ""
    season_number: int = 1
    episode_number: int = 0


@dataclass
class ResolvedEpisode:
    id: str
    name: str
    index_number: int
    duration_ticks: Optional[int]
    play_url: str
    season_number: Optional[int] = None  # only set when crossing into another season


@dataclass
class EpisodeBookmark:
    """Last episode started for a series, kept for resume and diagnostics."""
    series_id: str
    season_id: str
    episode_id: str
    episode_number: int
    season_number: int = 1
    series_name: str = ""
    server_base: str = ""
    timestamp: datetime = field(default_factory=datetime.now)


class EndOfFile(Enum):
    """How an end-of-file event from the player should be treated."""
    EXPECTED_ADVANCE = "expected-advance"
    REAL_STOP = "real-stop"
