from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

from jellycue.domain import EpisodeBookmark, HttpResponse


class IHttpClient(ABC):
    """Abstract Base Class for the HTTP transport used by the API client."""

    @abstractmethod
    async def get(self, url: str, headers: Optional[Dict[str, str]] = None) -> HttpResponse:
        """
        Performs a GET request.

        Args:
            url (str): Absolute URL, query string included.
            headers (Optional[Dict[str, str]]): Extra request headers.

        Returns:
            HttpResponse: Status code and body. The body is parsed JSON when the
                          server says it is JSON, otherwise the raw text.
        """
        pass

    @abstractmethod
    async def post(self, url: str, headers: Optional[Dict[str, str]] = None,
                   body: Optional[Any] = None) -> HttpResponse:
        """
        Performs a POST request with an optional JSON body.

        Args:
            url (str): Absolute URL, query string included.
            headers (Optional[Dict[str, str]]): Extra request headers.
            body (Optional[Any]): JSON-serialisable payload.

        Returns:
            HttpResponse: Status code and body.
        """
        pass


class IPlayer(ABC):
    """
    Abstract Base Class for the media player capabilities the tracker and the
    autoplay orchestrator rely on.
    """

    @abstractmethod
    async def get_position(self) -> Optional[float]:
        """Current playback position in seconds, or None if unknown."""
        pass

    @abstractmethod
    async def get_duration(self) -> Optional[float]:
        """Duration of the current file in seconds, or None if unknown."""
        pass

    @abstractmethod
    async def is_paused(self) -> bool:
        pass

    @abstractmethod
    async def get_path(self) -> Optional[str]:
        """Path or URL of the file currently loaded."""
        pass

    @abstractmethod
    async def seek_to(self, seconds: float) -> None:
        pass

    @abstractmethod
    async def load_entry(self, url: str, mode: str = "replace", title: Optional[str] = None) -> None:
        """
        Loads a URL into the player's playlist.

        Args:
            url (str): The media URL.
            mode (str): "replace" to play it now, "insert-next" to queue it
                        right after the current entry.
            title (Optional[str]): Display title forced for that entry.
        """
        pass

    @abstractmethod
    async def playlist_count(self) -> int:
        pass

    @abstractmethod
    async def playlist_position(self) -> int:
        pass

    @abstractmethod
    async def playlist_remove(self, index: int) -> None:
        pass

    @abstractmethod
    async def set_title(self, title: str) -> None:
        pass

    @abstractmethod
    async def show_osd(self, text: str) -> None:
        pass


class IBookmarkRepository(ABC):
    """Abstract Base Class for the episode bookmark store."""

    @abstractmethod
    def load_all_bookmarks(self) -> Dict[str, EpisodeBookmark]:
        """
        Loads all stored bookmarks.

        Returns:
            Dict[str, EpisodeBookmark]: Bookmarks keyed by series id.
        """
        pass

    @abstractmethod
    def save_bookmark(self, bookmark: EpisodeBookmark) -> None:
        """
        Saves a bookmark, replacing the previous one for the same series.

        Args:
            bookmark (EpisodeBookmark): The bookmark to save.
        """
        pass

    @abstractmethod
    def delete_bookmark(self, series_id: str) -> None:
        """
        Deletes the bookmark for a series.

        Args:
            series_id (str): The series whose bookmark should go.
        """
        pass
