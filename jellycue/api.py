"""Jellyfin API client: metadata lookups and playback session reporting.

Every call is a plain function of (server_base, item_id, api_key); the client
itself only holds the transport and the identity sent in the Authorization
header.
"""

import json
import logging
import re
from typing import Any, Dict, Optional
from urllib.parse import quote, unquote, urlencode

import httpx

from jellycue import __version__
from jellycue.domain import HttpResponse, ItemRef
from jellycue.errors import JellyfinApiError
from jellycue.interfaces import IHttpClient
from jellycue.utils import redact_url, seconds_to_ticks

logger = logging.getLogger(__name__)

CLIENT_NAME = "jellycue"
DEVICE_NAME = "mpv"

EPISODE_FIELDS = "MediaSources,Path,LocationType,IsFolder,CanDownload"

# Failures a fetch may raise; callers treat them as "did not happen".
REQUEST_ERRORS = (JellyfinApiError, httpx.HTTPError, OSError)

_SERVER_RE = re.compile(r"^(https?)://([^/?#]+)")
_ITEM_RE = re.compile(r"/Items/([^/?#]+)")
_API_KEY_QUERY_RE = re.compile(r"(?:^|&)api_key=([^&]+)")


def is_jellyfin_url(url: Optional[str]) -> bool:
    """Cheap check for URLs that look like they were served by Jellyfin."""
    if not url:
        return False
    return (
        ("/Items/" in url and "api_key=" in url)
        or "jellyfin" in url
        or "/Audio/" in url
        or "/Videos/" in url
    )


def parse_jellyfin_url(url: Optional[str]) -> Optional[ItemRef]:
    """
    Extracts the server base, item id and api key from a Jellyfin stream URL
    such as ``https://host/Items/<id>/Download?api_key=<key>``.

    Returns None when any of the three parts is missing.
    """
    if not url:
        return None

    server_match = _SERVER_RE.match(url)
    if not server_match:
        logger.debug("Invalid URL format, no scheme/host: %s", redact_url(url))
        return None
    server_base = f"{server_match.group(1)}://{server_match.group(2)}"

    path, _, query = url[server_match.end():].partition("?")
    item_match = _ITEM_RE.search(path)
    if not item_match:
        logger.debug("No /Items/ segment in path: %s", path)
        return None

    key_match = _API_KEY_QUERY_RE.search(query)
    if not key_match:
        logger.debug("No api_key in URL: %s", redact_url(url))
        return None

    return ItemRef(
        server_base=server_base,
        item_id=item_match.group(1),
        api_key=unquote(key_match.group(1)),
    )


def episode_download_url(server_base: str, item_id: str, api_key: str) -> str:
    return f"{server_base}/Items/{item_id}/Download?api_key={quote(api_key, safe='')}"


class JellyfinApi:
    """Stateless request builders for the endpoints the tracker and autoplay use."""

    def __init__(self, http: IHttpClient, device_id: str,
                 client_name: str = CLIENT_NAME, device_name: str = DEVICE_NAME,
                 version: str = __version__):
        self.http = http
        self.device_id = device_id
        self.client_name = client_name
        self.device_name = device_name
        self.version = version

    # --- headers & urls ---

    def build_authorization_header(self, api_key: Optional[str]) -> str:
        parts = [
            f'Client="{self.client_name}"',
            f'Device="{self.device_name}"',
            f'DeviceId="{self.device_id}"',
            f'Version="{self.version}"',
        ]
        if api_key:
            parts.append(f'Token="{api_key}"')
        return "MediaBrowser " + ", ".join(parts)

    def build_headers(self, api_key: Optional[str], extra: Optional[Dict[str, str]] = None) -> Dict[str, str]:
        headers = {"Authorization": self.build_authorization_header(api_key)}
        if extra:
            headers.update(extra)
        return headers

    @staticmethod
    def _url(server_base: str, path: str, api_key: str, **params: Any) -> str:
        params["api_key"] = api_key
        return f"{server_base}{path}?{urlencode(params)}"

    # --- fetches (raise on failure) ---

    async def _get_json(self, url: str, api_key: str) -> Dict[str, Any]:
        logger.debug("GET %s", redact_url(url))
        response: HttpResponse = await self.http.get(
            url, headers=self.build_headers(api_key, {"Accept": "application/json"})
        )
        if not response.ok:
            raise JellyfinApiError(
                f"Request failed with status {response.status}", status=response.status, url=redact_url(url)
            )
        if not response.data:
            raise JellyfinApiError("No data received from Jellyfin API", status=response.status, url=redact_url(url))

        data = response.data
        if isinstance(data, (str, bytes)):
            try:
                data = json.loads(data)
            except ValueError as e:
                raise JellyfinApiError(f"Invalid JSON from Jellyfin API: {e}", status=response.status,
                                       url=redact_url(url)) from e
        if not isinstance(data, dict):
            raise JellyfinApiError("Unexpected response shape", status=response.status, url=redact_url(url))
        return data

    async def fetch_playback_info(self, server_base: str, item_id: str, api_key: str) -> Dict[str, Any]:
        return await self._get_json(self._url(server_base, f"/Items/{item_id}/PlaybackInfo", api_key), api_key)

    async def fetch_item_metadata(self, server_base: str, item_id: str, api_key: str) -> Dict[str, Any]:
        metadata = await self._get_json(self._url(server_base, f"/Items/{item_id}", api_key), api_key)
        logger.debug("Item %s: %s (%s)", item_id, metadata.get("Name"), metadata.get("Type"))
        return metadata

    async def fetch_episodes(self, server_base: str, series_id: str, season_id: str, api_key: str) -> Dict[str, Any]:
        url = self._url(server_base, f"/Shows/{series_id}/Episodes", api_key,
                        seasonId=season_id, fields=EPISODE_FIELDS)
        return await self._get_json(url, api_key)

    async def fetch_seasons(self, server_base: str, series_id: str, api_key: str) -> Dict[str, Any]:
        return await self._get_json(self._url(server_base, f"/Shows/{series_id}/Seasons", api_key), api_key)

    # --- reports (never raise) ---

    async def _post_report(self, label: str, url: str, api_key: str, body: Optional[Dict[str, Any]] = None) -> bool:
        try:
            response = await self.http.post(
                url,
                headers=self.build_headers(api_key, {
                    "Content-Type": "application/json",
                    "Accept": "application/json",
                }),
                body=body,
            )
        except Exception as e:
            logger.warning("Error reporting %s: %s", label, e)
            return False

        if response.status >= 400:
            logger.warning("%s failed with status: %s", label, response.status)
            return False

        logger.debug("%s reported, status: %s", label, response.status)
        return response.ok

    async def report_playback_start(self, server_base: str, item_id: str, api_key: str,
                                    play_session_id: Optional[str], media_source_id: Optional[str]) -> bool:
        body = {
            "ItemId": item_id,
            "MediaSourceId": media_source_id or item_id,
            "PlaySessionId": play_session_id,
            "CanSeek": True,
            "PlayMethod": "DirectPlay",
            "PositionTicks": 0,
        }
        return await self._post_report("playback start", self._url(server_base, "/Sessions/Playing", api_key),
                                       api_key, body)

    async def report_playback_progress(self, server_base: str, item_id: str, api_key: str,
                                       position: float, play_session_id: Optional[str],
                                       media_source_id: Optional[str], is_paused: bool = False) -> bool:
        body = {
            "ItemId": item_id,
            "MediaSourceId": media_source_id or item_id,
            "PlaySessionId": play_session_id,
            "PositionTicks": seconds_to_ticks(position),
            "IsPaused": is_paused,
            "CanSeek": True,
            "PlayMethod": "DirectPlay",
        }
        return await self._post_report("playback progress",
                                       self._url(server_base, "/Sessions/Playing/Progress", api_key),
                                       api_key, body)

    async def report_playback_stopped(self, server_base: str, item_id: str, api_key: str,
                                      position: float, play_session_id: Optional[str],
                                      media_source_id: Optional[str]) -> bool:
        body = {
            "ItemId": item_id,
            "MediaSourceId": media_source_id or item_id,
            "PlaySessionId": play_session_id,
            "PositionTicks": seconds_to_ticks(position),
        }
        logger.info("Reporting playback stop at %.1fs", position)
        return await self._post_report("playback stop",
                                       self._url(server_base, "/Sessions/Playing/Stopped", api_key),
                                       api_key, body)

    async def mark_played(self, server_base: str, item_id: str, api_key: str) -> bool:
        logger.info("Marking item as watched: %s", item_id)
        return await self._post_report("mark as watched",
                                       self._url(server_base, f"/UserPlayedItems/{item_id}", api_key),
                                       api_key)
