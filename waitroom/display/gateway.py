import asyncio
import json
from typing import Any, Protocol

import aiohttp

from waitroom.display.plan import PlayCursor
from waitroom.services.store import ContentStore

DEFAULT_TIMEOUT_SEC = 5


class GatewayError(Exception):
    pass


class ContentGateway(Protocol):
    async def fetch_settings(self) -> dict[str, Any]: ...
    async def fetch_message(self) -> dict[str, Any]: ...
    async def fetch_status(self) -> dict[str, Any]: ...
    async def fetch_playlist(self) -> dict[str, Any]: ...
    async def list_contents(self) -> list[str]: ...
    async def fetch_content(self, filename: str) -> Any: ...
    async def fetch_cursor(self) -> PlayCursor: ...
    async def save_cursor(self, cursor: PlayCursor) -> None: ...


class LocalGateway:
    """Reads the JSON store in-process; used by the display embedded in the server."""

    def __init__(self, store: ContentStore) -> None:
        self.store = store

    async def fetch_settings(self) -> dict[str, Any]:
        return self.store.load_settings()

    async def fetch_message(self) -> dict[str, Any]:
        return self.store.load_message()

    async def fetch_status(self) -> dict[str, Any]:
        return self.store.load_status()

    async def fetch_playlist(self) -> dict[str, Any]:
        return self.store.playlist_status()

    async def list_contents(self) -> list[str]:
        return self.store.list_content_filenames()

    async def fetch_content(self, filename: str) -> Any:
        try:
            return self.store.load_content(filename)
        except (OSError, ValueError) as exc:
            raise GatewayError(f"Content {filename} unavailable: {exc}") from exc

    async def fetch_cursor(self) -> PlayCursor:
        playlist_index, file_index = self.store.load_cursor()
        return PlayCursor(playlist_index, file_index)

    async def save_cursor(self, cursor: PlayCursor) -> None:
        try:
            self.store.save_cursor(cursor.playlist_index, cursor.file_index)
        except (OSError, ValueError) as exc:
            raise GatewayError(f"Cursor write failed: {exc}") from exc


class HttpGateway:
    """Talks to a remote waitroom server over its JSON API."""

    def __init__(
        self,
        base_url: str,
        session: aiohttp.ClientSession | None = None,
        timeout: float = DEFAULT_TIMEOUT_SEC,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._session = session
        self._owns_session = session is None
        self._timeout = aiohttp.ClientTimeout(total=timeout)

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=self._timeout,
                headers={"Cache-Control": "no-cache", "Pragma": "no-cache"},
            )
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()

    async def _request(self, method: str, path: str, payload: Any = None) -> Any:
        session = await self._get_session()
        url = f"{self.base_url}{path}"
        try:
            async with session.request(method, url, json=payload) as response:
                if response.status >= 400:
                    raise GatewayError(f"HTTP {response.status} for {method} {path}")
                return await response.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError, json.JSONDecodeError) as exc:
            raise GatewayError(f"{method} {path} failed: {exc!r}") from exc

    async def fetch_settings(self) -> dict[str, Any]:
        return await self._request("GET", "/settings")

    async def fetch_message(self) -> dict[str, Any]:
        return await self._request("GET", "/message")

    async def fetch_status(self) -> dict[str, Any]:
        return await self._request("GET", "/status")

    async def fetch_playlist(self) -> dict[str, Any]:
        return await self._request("GET", "/playlist")

    async def list_contents(self) -> list[str]:
        response = await self._request("GET", "/contents")
        return [entry["filename"] for entry in response.get("files", []) if entry.get("filename")]

    async def fetch_content(self, filename: str) -> Any:
        return await self._request("GET", f"/contents/{filename}")

    async def fetch_cursor(self) -> PlayCursor:
        return PlayCursor.from_payload(await self.fetch_playlist())

    async def save_cursor(self, cursor: PlayCursor) -> None:
        await self._request("POST", "/playlist/cursor", cursor.as_payload())
