import json
from pathlib import Path
from typing import Dict
from datetime import datetime

from jellycue.interfaces import IBookmarkRepository
from jellycue.domain import EpisodeBookmark

DEFAULT_BOOKMARKS_PATH = Path("~/.jellycue/bookmarks.json").expanduser()


class JSONEncoder(json.JSONEncoder):
    """Custom JSON encoder to handle datetime objects."""
    def default(self, obj):
        if isinstance(obj, datetime):
            return obj.isoformat()
        return super().default(obj)


class JsonBookmarkRepository(IBookmarkRepository):
    """
    Concrete implementation of IBookmarkRepository that keeps one bookmark per
    series in a local JSON file.
    """
    def __init__(self, storage_file: Path = DEFAULT_BOOKMARKS_PATH):
        self.storage_file = storage_file
        self.bookmarks: Dict[str, EpisodeBookmark] = self._load_from_file()

    def _load_from_file(self) -> Dict[str, EpisodeBookmark]:
        """Loads bookmarks from the JSON file."""
        if not self.storage_file.exists():
            return {}

        with open(self.storage_file, 'r', encoding='utf-8') as f:
            raw_data = json.load(f)

        loaded = {}
        for series_id, data in raw_data.items():
            try:
                episode_number = int(data.get('episode_number', 0))
            except (ValueError, TypeError):
                episode_number = 0

            try:
                season_number = int(data.get('season_number', 1))
            except (ValueError, TypeError):
                season_number = 1

            try:
                timestamp = datetime.fromisoformat(data['timestamp'])
            except (KeyError, ValueError, TypeError):
                timestamp = datetime.now()

            loaded[series_id] = EpisodeBookmark(
                series_id=series_id,
                season_id=data.get('season_id', ''),
                episode_id=data.get('episode_id', ''),
                episode_number=episode_number,
                season_number=season_number,
                series_name=data.get('series_name', ''),
                server_base=data.get('server_base', ''),
                timestamp=timestamp,
            )
        return loaded

    def _save_to_file(self) -> None:
        """Saves current bookmarks to the JSON file."""
        serializable_data = {
            series_id: bookmark.__dict__ for series_id, bookmark in self.bookmarks.items()
        }

        self.storage_file.parent.mkdir(parents=True, exist_ok=True)
        with open(self.storage_file, 'w', encoding='utf-8') as f:
            json.dump(serializable_data, f, indent=4, cls=JSONEncoder)

    def load_all_bookmarks(self) -> Dict[str, EpisodeBookmark]:
        return self.bookmarks

    def save_bookmark(self, bookmark: EpisodeBookmark) -> None:
        self.bookmarks[bookmark.series_id] = bookmark
        self._save_to_file()

    def delete_bookmark(self, series_id: str) -> None:
        if series_id in self.bookmarks:
            del self.bookmarks[series_id]
            self._save_to_file()
