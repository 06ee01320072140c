import json
from typing import Any, Dict, Optional

import httpx

from jellycue.domain import HttpResponse
from jellycue.interfaces import IHttpClient


class HttpxTransport(IHttpClient):
    """IHttpClient backed by one shared httpx.AsyncClient."""

    def __init__(self, timeout: float = 30.0, client: Optional[httpx.AsyncClient] = None):
        self.client = client or httpx.AsyncClient(timeout=timeout)

    async def get(self, url: str, headers: Optional[Dict[str, str]] = None) -> HttpResponse:
        r = await self.client.get(url, headers=headers)
        return self._to_response(r)

    async def post(self, url: str, headers: Optional[Dict[str, str]] = None,
                   body: Optional[Any] = None) -> HttpResponse:
        if body is None:
            r = await self.client.post(url, headers=headers)
        else:
            r = await self.client.post(url, headers=headers, json=body)
        return self._to_response(r)

    async def aclose(self) -> None:
        await self.client.aclose()

    @staticmethod
    def _to_response(r: httpx.Response) -> HttpResponse:
        content_type = r.headers.get("content-type", "")
        data: Any = r.text
        if "json" in content_type and r.content:
            try:
                data = r.json()
            except json.JSONDecodeError:
                data = r.text
        return HttpResponse(status=r.status_code, data=data)
