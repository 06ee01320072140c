import asyncio
import json
import logging
import os
import sys
from typing import Any, Awaitable, Callable, Dict, List, Optional

from jellycue.errors import PlayerError
from jellycue.interfaces import IPlayer

logger = logging.getLogger(__name__)

EventHandler = Callable[[Dict[str, Any]], Awaitable[None]]

COMMAND_TIMEOUT = 2.0
CONNECT_TIMEOUT = 5.0
OSD_DURATION_MS = 3000

# Properties mpv reports as change events; handlers subscribe to "property:<name>".
OBSERVED_PROPERTIES = ("pause",)


def _quote_option_value(value: str) -> str:
    """mpv's %n% quoting, so titles may contain commas and equals signs."""
    return f"%{len(value.encode('utf-8'))}%{value}"


class MpvDriver(IPlayer):
    """
    Talks to mpv over its JSON IPC socket. Replies are matched to requests by
    request_id; events are handed to registered handlers one at a time, in the
    order mpv sent them.
    """

    def __init__(self, player_executable_path: str = "mpv", socket_path: Optional[str] = None):
        self.player_executable_path = player_executable_path
        self.socket_path = socket_path or f"/tmp/jellycue-mpv-{os.getpid()}"
        self.request_id_counter = 0
        self.process: Optional[asyncio.subprocess.Process] = None

        self._reader: Optional[asyncio.StreamReader] = None
        self._writer: Optional[asyncio.StreamWriter] = None
        self._pending: Dict[int, asyncio.Future] = {}
        self._handlers: Dict[str, List[EventHandler]] = {}
        self._events: "asyncio.Queue[Optional[Dict[str, Any]]]" = asyncio.Queue()
        self._read_task: Optional[asyncio.Task] = None
        self._dispatch_task: Optional[asyncio.Task] = None
        self._shutdown_sent = False
        self._connected = False

    # --- events ---

    def on(self, event: str, handler: EventHandler) -> None:
        """Registers an async handler for an mpv event name or "property:<name>"."""
        self._handlers.setdefault(event, []).append(handler)

    def _queue_event(self, message: Dict[str, Any]) -> None:
        if message.get("event") == "shutdown":
            if self._shutdown_sent:
                return
            self._shutdown_sent = True
        self._events.put_nowait(message)

    async def _dispatch_events(self) -> None:
        while True:
            message = await self._events.get()
            if message is None:
                return
            name = message["event"]
            if name == "property-change":
                name = f"property:{message.get('name')}"
            for handler in self._handlers.get(name, []):
                try:
                    await handler(message)
                except Exception:
                    logger.exception("Error handling mpv event %s", name)

    # --- process & connection ---

    async def launch(self, url: Optional[str] = None, extra_args: Optional[List[str]] = None) -> None:
        """
        Starts mpv with an IPC server and connects to it. Without a URL mpv
        idles until the first file is loaded over IPC and exits once its
        playlist is done.
        """
        if sys.platform.startswith('win'):
            raise PlayerError("mpv IPC over named pipes is not supported")

        if os.path.exists(self.socket_path):
            os.remove(self.socket_path)

        command = [
            self.player_executable_path,
            "--no-terminal",
            f"--input-ipc-server={self.socket_path}",
            "--idle=no" if url else "--idle=once",
            "--force-window=yes",
        ]
        command.extend(extra_args or [])
        if url:
            command.append(url)

        logger.info("Launching mpv: %s", self.player_executable_path)
        try:
            self.process = await asyncio.create_subprocess_exec(*command)
        except OSError as e:
            raise PlayerError(f"Could not start {self.player_executable_path}: {e}") from e

        if not await self.connect(timeout=CONNECT_TIMEOUT):
            await self.close()
            raise PlayerError("Failed to connect to mpv IPC socket.")

    async def connect(self, timeout: float = CONNECT_TIMEOUT) -> bool:
        """Connects to the IPC socket, retrying until mpv has created it."""
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while loop.time() < deadline:
            if self.process is not None and self.process.returncode is not None:
                return False
            try:
                self._reader, self._writer = await asyncio.open_unix_connection(self.socket_path)
                break
            except (ConnectionRefusedError, FileNotFoundError):
                await asyncio.sleep(0.1)
        else:
            logger.error("IPC connection timed out after %s seconds.", timeout)
            return False

        self._connected = True
        self._read_task = loop.create_task(self._read_loop())
        self._dispatch_task = loop.create_task(self._dispatch_events())
        for observe_id, name in enumerate(OBSERVED_PROPERTIES, start=1):
            await self.command("observe_property", observe_id, name)
        return True

    async def _read_loop(self) -> None:
        try:
            while True:
                line = await self._reader.readline()
                if not line:
                    break
                self._handle_line(line)
        except (ConnectionResetError, BrokenPipeError) as e:
            logger.debug("IPC connection lost: %s", e)
        finally:
            self._connected = False
            for future in self._pending.values():
                if not future.done():
                    future.set_exception(PlayerError("mpv IPC connection closed"))
            self._pending.clear()
            self._queue_event({"event": "shutdown"})

    def _handle_line(self, line: bytes) -> None:
        try:
            message = json.loads(line)
        except (json.JSONDecodeError, UnicodeDecodeError):
            logger.debug("Ignoring malformed IPC line: %r", line)
            return

        if "request_id" in message:
            future = self._pending.pop(message["request_id"], None)
            if future is not None and not future.done():
                future.set_result(message)
        elif "event" in message:
            self._queue_event(message)

    async def wait_closed(self) -> None:
        """Waits until mpv exits and every queued event has been handled."""
        if self.process is not None:
            await self.process.wait()
        if self._read_task is not None:
            await self._read_task
        self._queue_event({"event": "shutdown"})
        self._events.put_nowait(None)
        if self._dispatch_task is not None:
            await self._dispatch_task

    async def close(self) -> None:
        if self._writer is not None:
            self._writer.close()
            self._writer = None
        if self._read_task is not None and not self._read_task.done():
            self._read_task.cancel()
        if self._dispatch_task is not None and not self._dispatch_task.done():
            self._dispatch_task.cancel()
        if self.process is not None and self.process.returncode is None:
            self.process.terminate()
            await self.process.wait()
        if os.path.exists(self.socket_path):
            os.remove(self.socket_path)

    # --- commands ---

    async def command(self, *args: Any) -> Any:
        """Sends a JSON command to mpv and waits for its reply."""
        if self._writer is None or not self._connected:
            raise PlayerError("Not connected to mpv")

        self.request_id_counter += 1
        request_id = self.request_id_counter
        future = asyncio.get_running_loop().create_future()
        self._pending[request_id] = future

        message = json.dumps({"command": list(args), "request_id": request_id}) + "\n"
        try:
            self._writer.write(message.encode('utf-8'))
            await self._writer.drain()
            response = await asyncio.wait_for(future, COMMAND_TIMEOUT)
        except asyncio.TimeoutError as e:
            raise PlayerError(f"mpv did not answer {args[0]}") from e
        except OSError as e:
            raise PlayerError(f"Error sending IPC command: {e}") from e
        finally:
            self._pending.pop(request_id, None)

        if response.get("error") != "success":
            raise PlayerError(f"{args[0]} failed: {response.get('error')}")
        return response.get("data")

    async def get_property(self, name: str) -> Any:
        """Returns a property value, or None while mpv has nothing to report."""
        try:
            return await self.command("get_property", name)
        except PlayerError as e:
            if "property unavailable" in str(e):
                return None
            raise

    async def _get_float(self, name: str) -> Optional[float]:
        value = await self.get_property(name)
        try:
            return float(value) if value is not None else None
        except (ValueError, TypeError):
            return None

    async def get_position(self) -> Optional[float]:
        return await self._get_float("time-pos")

    async def get_duration(self) -> Optional[float]:
        return await self._get_float("duration")

    async def is_paused(self) -> bool:
        return bool(await self.get_property("pause"))

    async def get_path(self) -> Optional[str]:
        return await self.get_property("path")

    async def seek_to(self, seconds: float) -> None:
        await self.command("seek", seconds, "absolute")

    async def load_entry(self, url: str, mode: str = "replace", title: Optional[str] = None) -> None:
        args: List[Any] = ["loadfile", url, mode]
        if title:
            args.extend([-1, f"force-media-title={_quote_option_value(title)}"])
        await self.command(*args)

    async def playlist_count(self) -> int:
        return int(await self.get_property("playlist-count") or 0)

    async def playlist_position(self) -> int:
        value = await self.get_property("playlist-pos")
        return int(value) if value is not None else -1

    async def playlist_remove(self, index: int) -> None:
        await self.command("playlist-remove", index)

    async def set_title(self, title: str) -> None:
        await self.command("set_property", "force-media-title", title)

    async def show_osd(self, text: str) -> None:
        await self.command("show-text", text, OSD_DURATION_MS)
