import logging
from typing import Dict, Any

from jellycue.drivers.mpv_driver import MpvDriver

logger = logging.getLogger(__name__)

# Mapping of player types to their respective driver classes
PLAYER_DRIVERS_MAP = {
    "mpv": MpvDriver,
}


def create_driver(app_settings: Dict[str, Any]) -> MpvDriver:
    """Builds the player driver named by the player_type setting, falling back to mpv."""
    player_type = app_settings.get("player_type", "mpv")
    DriverClass = PLAYER_DRIVERS_MAP.get(player_type)

    if not DriverClass:
        logger.warning("Unknown player type '%s'. Falling back to mpv.", player_type)
        DriverClass = MpvDriver

    return DriverClass(app_settings.get("player_executable", "mpv"))


__all__ = ["MpvDriver", "PLAYER_DRIVERS_MAP", "create_driver"]
