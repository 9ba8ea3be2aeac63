import inspect
import os
import random
import tempfile

_TMP = tempfile.mkdtemp(prefix="waitroom-tests-")
os.environ["WAITROOM_DATA_DIR"] = os.path.join(_TMP, "data")
os.environ["WAITROOM_DATABASE_URL"] = f"sqlite:///{os.path.join(_TMP, 'waitroom.db')}"
os.environ["WAITROOM_EMBEDDED_DISPLAY"] = "0"

import pytest

from waitroom.display.engine import DisplayEngine
from waitroom.display.gateway import GatewayError
from waitroom.display.plan import PlayCursor
from waitroom.display.renderer import SurfaceRenderer
from waitroom.services.store import ContentStore


class ManualScheduler:
    """TimerScheduler stand-in driven by a virtual clock."""

    def __init__(self):
        self.now = 0.0
        self._timers = {}
        self._periods = {}

    def arm(self, name, delay, callback):
        self._periods.pop(name, None)
        self._timers[name] = (self.now + delay, callback)

    def arm_repeating(self, name, period, callback):
        self._periods[name] = period
        self._timers[name] = (self.now + period, callback)

    def cancel(self, name):
        self._periods.pop(name, None)
        return self._timers.pop(name, None) is not None

    def cancel_all(self):
        self._periods.clear()
        self._timers.clear()

    def is_armed(self, name):
        return name in self._timers

    def active(self):
        return sorted(self._timers)

    def due_in(self, name):
        return self._timers[name][0] - self.now

    async def advance(self, seconds):
        target = self.now + seconds
        while True:
            due = sorted((at, name) for name, (at, _) in self._timers.items() if at <= target)
            if not due:
                break
            at, name = due[0]
            self.now = at
            _, callback = self._timers.pop(name)
            if name in self._periods:
                self._timers[name] = (at + self._periods[name], callback)
            result = callback()
            if inspect.isawaitable(result):
                await result
        self.now = target


class FakeGateway:
    """In-memory content store; names in `fail` raise GatewayError."""

    def __init__(self, contents=None, settings=None, playlist=None, message=None, status=None):
        self.contents = dict(contents or {})
        self.settings = settings if settings is not None else {
            "interval": 20,
            "duration": 8,
            "showTips": True,
            "files": {},
        }
        self.playlist = playlist or {
            "hasPlaylist": False,
            "playlist": [],
            "currentPlaylistIndex": 0,
            "currentFileIndex": 0,
        }
        self.message = message or {"text": "", "visible": False}
        self.status = status or {"mode": "hidden"}
        self.fail = set()
        self.cursor_writes = []

    def _check(self, name):
        if name in self.fail:
            raise GatewayError(f"{name} unavailable")

    async def fetch_settings(self):
        self._check("settings")
        return dict(self.settings)

    async def fetch_message(self):
        self._check("message")
        return dict(self.message)

    async def fetch_status(self):
        self._check("status")
        return dict(self.status)

    async def fetch_playlist(self):
        self._check("playlist")
        return dict(self.playlist)

    async def list_contents(self):
        self._check("contents")
        return sorted(self.contents)

    async def fetch_content(self, filename):
        self._check("content")
        if filename not in self.contents:
            raise GatewayError(f"{filename} not found")
        return self.contents[filename]

    async def fetch_cursor(self):
        self._check("cursor")
        return PlayCursor.from_payload(self.playlist)

    async def save_cursor(self, cursor):
        self._check("save_cursor")
        self.playlist.update(cursor.as_payload())
        self.cursor_writes.append(cursor)


class RecordingRenderer(SurfaceRenderer):
    def __init__(self, surface=None):
        super().__init__(surface)
        self.shown = []
        self.fallbacks = 0
        self.errors = []

    def show_item(self, selection, manual_advance=False):
        self.shown.append((selection.filename, selection.item_index))
        super().show_item(selection, manual_advance)

    def show_fallback(self):
        self.fallbacks += 1
        super().show_fallback()

    def show_error(self, message):
        self.errors.append(message)
        super().show_error(message)


def make_items(prefix, count, **extra):
    return [{"icon": "•", "title": f"{prefix}{index}", "text": f"{prefix} text {index}", **extra} for index in range(count)]


def playlist_payload(*entries, playlist_index=0, file_index=0):
    return {
        "hasPlaylist": True,
        "playlist": [
            {"filename": filename, "displayName": filename, "itemCount": count} for filename, count in entries
        ],
        "currentPlaylistIndex": playlist_index,
        "currentFileIndex": file_index,
    }


@pytest.fixture
def scheduler():
    return ManualScheduler()


@pytest.fixture
def renderer():
    return RecordingRenderer()


@pytest.fixture
def make_gateway():
    return FakeGateway


@pytest.fixture
def items():
    return make_items


@pytest.fixture
def playlist_of():
    return playlist_payload


@pytest.fixture
def make_engine(renderer, scheduler):
    def factory(gateway, **kwargs):
        kwargs.setdefault("rng", random.Random(7))
        return DisplayEngine(gateway, renderer, scheduler=scheduler, **kwargs)

    return factory


@pytest.fixture
def store(tmp_path):
    content_store = ContentStore(str(tmp_path / "data"))
    content_store.ensure()
    return content_store
