import argparse
import asyncio
import sys

from jellycue import __version__
from jellycue.errors import PlayerError
from jellycue.logs import configure_logging
from jellycue.repository import JsonBookmarkRepository
from jellycue.runner import run_player
from jellycue.settings import load_settings


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(
        prog="jellycue",
        description="Play a Jellyfin stream in mpv with progress sync and autoplay.",
    )
    parser.add_argument("url", help="Jellyfin stream URL (…/Items/<id>/Download?api_key=…)")
    parser.add_argument("--debug", action="store_true", help="enable debug logging")
    parser.add_argument("--no-autoplay", action="store_true", help="do not queue the next episode")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    args = parser.parse_args(argv)

    settings = load_settings()
    if args.debug:
        settings["debug_logging"] = True
    if args.no_autoplay:
        settings["autoplay_next_episode"] = False
    configure_logging(settings)

    try:
        asyncio.run(run_player(args.url, settings, JsonBookmarkRepository()))
    except PlayerError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        return 130
    return 0


if __name__ == "__main__":
    sys.exit(main())
