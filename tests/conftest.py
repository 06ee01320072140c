import asyncio
from dataclasses import dataclass
from typing import Any, Dict, List, Optional
from urllib.parse import parse_qs, urlsplit

import pytest

from jellycue.api import JellyfinApi
from jellycue.autoplay import AutoplayOrchestrator
from jellycue.domain import EpisodeBookmark, HttpResponse
from jellycue.errors import PlayerError
from jellycue.interfaces import IBookmarkRepository, IHttpClient, IPlayer
from jellycue.resolver import EpisodeResolver
from jellycue.router import EventRouter
from jellycue.settings import DEFAULT_SETTINGS, Preferences
from jellycue.tracking import PlaybackTracker

SERVER = "https://jf.example"
API_KEY = "KEY"


@dataclass
class Call:
    method: str
    url: str
    headers: Optional[Dict[str, str]]
    body: Any

    @property
    def path(self) -> str:
        return urlsplit(self.url).path

    @property
    def params(self) -> Dict[str, str]:
        return {k: v[0] for k, v in parse_qs(urlsplit(self.url).query).items()}


class FakeHttp(IHttpClient):
    """Routes requests by method and exact path; unknown GETs 404, unknown POSTs 204."""

    def __init__(self):
        self.routes: List[tuple] = []
        self.calls: List[Call] = []
        self.gates: Dict[str, asyncio.Event] = {}

    def add(self, method: str, path: str, data: Any = None, status: int = 200,
            params: Optional[Dict[str, str]] = None, exc: Optional[Exception] = None) -> None:
        self.routes.append((method, path, params or {}, HttpResponse(status, data), exc))

    def gate(self, path: str) -> asyncio.Event:
        """Holds every request to ``path`` until the returned event is set."""
        event = asyncio.Event()
        self.gates[path] = event
        return event

    async def _handle(self, method: str, url: str, headers, body) -> HttpResponse:
        call = Call(method, url, headers, body)
        self.calls.append(call)
        if call.path in self.gates:
            await self.gates[call.path].wait()
        for route_method, path, params, response, exc in reversed(self.routes):
            if route_method != method or path != call.path:
                continue
            if any(call.params.get(k) != v for k, v in params.items()):
                continue
            if exc is not None:
                raise exc
            return response
        return HttpResponse(404 if method == "GET" else 204, None)

    async def get(self, url, headers=None):
        return await self._handle("GET", url, headers, None)

    async def post(self, url, headers=None, body=None):
        return await self._handle("POST", url, headers, body)

    def matching(self, method: str, path: str) -> List[Call]:
        return [c for c in self.calls if c.method == method and c.path == path]

    def count(self, method: str, path: str) -> int:
        return len(self.matching(method, path))


class FakePlayer(IPlayer):
    def __init__(self):
        self.position: Optional[float] = None
        self.duration: Optional[float] = None
        self.paused = False
        self.path: Optional[str] = None
        self.playlist: List[str] = []
        self.playlist_pos = 0
        self.seeks: List[float] = []
        self.osd: List[str] = []
        self.titles: List[str] = []
        self.loads: List[tuple] = []
        self.removed: List[int] = []
        self.fail: set = set()

    def _check(self, name: str) -> None:
        if name in self.fail:
            raise PlayerError(f"{name} failed")

    async def get_position(self):
        self._check("get_position")
        return self.position

    async def get_duration(self):
        self._check("get_duration")
        return self.duration

    async def is_paused(self):
        self._check("is_paused")
        return self.paused

    async def get_path(self):
        self._check("get_path")
        return self.path

    async def seek_to(self, seconds):
        self._check("seek_to")
        self.seeks.append(seconds)

    async def load_entry(self, url, mode="replace", title=None):
        self._check("load_entry")
        self.loads.append((url, mode, title))
        if mode == "replace":
            self.playlist = [url]
            self.playlist_pos = 0
        else:
            self.playlist.insert(self.playlist_pos + 1, url)

    async def playlist_count(self):
        self._check("playlist_count")
        return len(self.playlist)

    async def playlist_position(self):
        self._check("playlist_position")
        return self.playlist_pos

    async def playlist_remove(self, index):
        self._check("playlist_remove")
        self.removed.append(index)
        del self.playlist[index]

    async def set_title(self, title):
        self._check("set_title")
        self.titles.append(title)

    async def show_osd(self, text):
        self._check("show_osd")
        self.osd.append(text)


class MemoryBookmarks(IBookmarkRepository):
    def __init__(self):
        self.bookmarks: Dict[str, EpisodeBookmark] = {}

    def load_all_bookmarks(self):
        return self.bookmarks

    def save_bookmark(self, bookmark):
        self.bookmarks[bookmark.series_id] = bookmark

    def delete_bookmark(self, series_id):
        self.bookmarks.pop(series_id, None)


def episode_item(episode_id: str, index: int, name: str = "", **extra) -> Dict[str, Any]:
    item = {
        "Id": episode_id,
        "Name": name or f"Episode {index}",
        "IndexNumber": index,
        "RunTimeTicks": 13_000_000_000,
        "MediaSources": [{"Id": episode_id}],
    }
    item.update(extra)
    return item


def episode_metadata(episode_id: str, series_id: str = "s1", season_id: str = "season1",
                     season_number: int = 1, index: int = 1, series_name: str = "Show",
                     name: str = "Pilot") -> Dict[str, Any]:
    return {
        "Id": episode_id,
        "Name": name,
        "Type": "Episode",
        "SeriesId": series_id,
        "SeasonId": season_id,
        "SeriesName": series_name,
        "ParentIndexNumber": season_number,
        "IndexNumber": index,
        "UserData": {"PlaybackPositionTicks": 0, "Played": False},
    }


def stream_url(item_id: str) -> str:
    return f"{SERVER}/Items/{item_id}/Download?api_key={API_KEY}"


@pytest.fixture
def settings():
    s = dict(DEFAULT_SETTINGS)
    s["device_id"] = "test-device"
    return s


@pytest.fixture
def preferences(settings):
    return Preferences(settings)


@pytest.fixture
def http():
    return FakeHttp()


@pytest.fixture
def player():
    return FakePlayer()


@pytest.fixture
def bookmarks():
    return MemoryBookmarks()


@pytest.fixture
def api(http):
    return JellyfinApi(http, "test-device")


@pytest.fixture
def tracker(api, player, preferences):
    # long interval: tests drive tick() by hand
    return PlaybackTracker(api, player, preferences, tick_interval=3600, resume_delay=0)


@pytest.fixture
def resolver(api):
    return EpisodeResolver(api)


@pytest.fixture
def autoplay(api, resolver, player, preferences, bookmarks):
    return AutoplayOrchestrator(api, resolver, player, preferences, bookmarks)


@pytest.fixture
def router(api, player, tracker, autoplay, preferences):
    return EventRouter(api, player, tracker, autoplay, preferences)
