import json
import random
import time
from pathlib import Path
from typing import Dict, Any, Optional

DEFAULT_SETTINGS_PATH = Path("~/.jellycue/settings.json").expanduser()

DEFAULT_SETTINGS: Dict[str, Any] = {
    "player_executable": "mpv",
    "sync_playback_progress": True,
    "show_notifications": True,
    "autoplay_next_episode": True,
    "set_video_title": True,
    "debug_logging": False,
    "device_id": "",
}


def load_settings(settings_path: Path = DEFAULT_SETTINGS_PATH) -> Dict[str, Any]:
    """Loads application settings from a JSON file, filling in defaults for missing keys."""
    settings = dict(DEFAULT_SETTINGS)
    if not settings_path.exists():
        return settings

    with open(settings_path, 'r', encoding='utf-8') as f:
        settings.update(json.load(f))
    return settings


def save_settings(settings: Dict[str, Any], settings_path: Path = DEFAULT_SETTINGS_PATH) -> None:
    """Saves application settings to a JSON file."""
    settings_path.parent.mkdir(parents=True, exist_ok=True)
    with open(settings_path, 'w', encoding='utf-8') as f:
        json.dump(settings, f, indent=4)


def ensure_device_id(settings: Dict[str, Any], settings_path: Optional[Path] = DEFAULT_SETTINGS_PATH) -> str:
    """
    Returns the persistent device id sent in the Authorization header,
    generating and saving one on first use. Pass settings_path=None to skip saving.
    """
    device_id = settings.get("device_id")
    if not device_id:
        device_id = f"jellycue-{int(time.time() * 1000)}-{random.randint(0, 999999)}"
        settings["device_id"] = device_id
        if settings_path is not None:
            save_settings(settings, settings_path)
    return device_id


class Preferences:
    """Read-only boolean view over the settings dict."""

    def __init__(self, settings: Dict[str, Any]):
        self.settings = settings

    def flag(self, name: str) -> bool:
        return bool(self.settings.get(name, DEFAULT_SETTINGS.get(name, False)))
