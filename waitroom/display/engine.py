import logging
import os
import random
from enum import Enum
from typing import Any, Awaitable, Callable, Mapping

from waitroom.display.cursor import CursorStore, GatewayCursorStore
from waitroom.display.gateway import ContentGateway
from waitroom.display.plan import (
    ContentFile,
    PlanKind,
    PlayCursor,
    PlayPlan,
    PlaylistEntry,
    Selection,
    advance,
    build_plan,
    cursor_of,
    describe_plan,
    next_selection,
    restore_cursor,
    skip_file,
)
from waitroom.display.renderer import Renderer, RendererError
from waitroom.display.scheduler import (
    DISPLAY_TIMER,
    HIDE_TIMER,
    POLL_TIMER,
    TimerScheduler,
    log_exceptions,
)
from waitroom.display.timing import FALLBACK_DISPLAY_SEC, FALLBACK_WAIT_SEC, Timing, resolve_timing

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = float(os.getenv("WAITROOM_POLL_INTERVAL", "5"))
INIT_ERROR_MESSAGE = "システムの初期化に失敗しました"


class EngineState(str, Enum):
    IDLE = "idle"
    SHOWING = "showing"
    HIDDEN = "hidden"
    ERROR = "error"
    DESTROYED = "destroyed"


def default_engine_settings() -> dict[str, Any]:
    return {
        "interval": FALLBACK_WAIT_SEC,
        "duration": FALLBACK_DISPLAY_SEC,
        "showTips": True,
        "files": {},
    }


def normalize_settings(raw: Any) -> dict[str, Any]:
    """Keep only well-typed fields from a settings payload, defaults elsewhere."""
    settings = default_engine_settings()
    if not isinstance(raw, Mapping):
        return settings
    for key in ("interval", "duration"):
        value = raw.get(key)
        if isinstance(value, (int, float)) and not isinstance(value, bool) and value > 0:
            settings[key] = value
    if isinstance(raw.get("showTips"), bool):
        settings["showTips"] = raw["showTips"]
    if isinstance(raw.get("files"), Mapping):
        settings["files"] = dict(raw["files"])
    return settings


def _playlist_entries(payload: Any) -> list[PlaylistEntry]:
    if not isinstance(payload, Mapping) or not payload.get("hasPlaylist"):
        return []
    entries = [PlaylistEntry.from_payload(entry) for entry in payload.get("playlist") or []]
    return [entry for entry in entries if entry.filename]


class DisplayEngine:
    def __init__(
        self,
        gateway: ContentGateway,
        renderer: Renderer,
        cursor_store: CursorStore | None = None,
        scheduler: TimerScheduler | None = None,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        manual_advance: bool = False,
        rng: random.Random | None = None,
    ) -> None:
        self.gateway = gateway
        self.renderer = renderer
        self.cursor_store = cursor_store or GatewayCursorStore(gateway)
        self.scheduler = scheduler or TimerScheduler()
        self.poll_interval = poll_interval
        self.manual_advance = manual_advance
        self.rng = rng or random.Random()

        self.settings: dict[str, Any] = default_engine_settings()
        self.message: dict[str, Any] = {"text": "", "visible": False}
        self.status: dict[str, Any] = {}
        self.plan = PlayPlan()
        self.state = EngineState.IDLE
        self.showing: Selection | None = None
        self.timing: Timing | None = None
        self.suspended = False
        self._playlist_key: tuple[str, ...] | None = None
        self._last_persisted: PlayCursor | None = None
        self._advancing = False
        self._persist_generation = 0

    async def _fetch(self, label: str, call: Callable[[], Awaitable[Any]], fallback: Any) -> Any:
        try:
            return await call()
        except Exception as exc:
            logger.warning("Failed to load %s, keeping previous value: %s", label, exc)
            return fallback

    async def load_settings(self) -> None:
        raw = await self._fetch("settings", self.gateway.fetch_settings, None)
        if raw is not None:
            self.settings = normalize_settings(raw)

    async def load_message(self) -> None:
        raw = await self._fetch("message", self.gateway.fetch_message, None)
        if isinstance(raw, Mapping):
            self.message = dict(raw)

    async def load_status(self) -> None:
        raw = await self._fetch("status", self.gateway.fetch_status, None)
        if isinstance(raw, Mapping):
            self.status = dict(raw)

    async def load_contents(self, filenames: list[str]) -> dict[str, ContentFile]:
        contents: dict[str, ContentFile] = {}
        for filename in dict.fromkeys(filenames):
            try:
                document = await self.gateway.fetch_content(filename)
            except Exception as exc:
                logger.warning("Skipping content %s: %s", filename, exc)
                continue
            contents[filename] = ContentFile.from_document(filename, document)
        return contents

    async def _load_cursor(self, playlist_payload: Any) -> PlayCursor:
        cursor = await self._fetch("cursor", self.cursor_store.get, None)
        if cursor is None:
            cursor = PlayCursor.from_payload(playlist_payload if isinstance(playlist_payload, Mapping) else None)
        return cursor

    async def rebuild_plan(self, playlist_payload: Any = None) -> PlayPlan:
        """Reload content for the current playlist (or the full scan) and rebuild the plan."""
        if playlist_payload is None:
            playlist_payload = await self._fetch("playlist", self.gateway.fetch_playlist, None)
        entries = _playlist_entries(playlist_payload)
        if entries:
            filenames = [entry.filename for entry in entries]
        else:
            filenames = await self._fetch("content list", self.gateway.list_contents, [])

        contents = await self.load_contents(list(filenames))
        self.plan = build_plan(contents, self.settings, entries, self.rng)
        cursor = await self._load_cursor(playlist_payload)
        restore_cursor(self.plan, cursor)
        self._last_persisted = cursor
        self._playlist_key = tuple(entry.filename for entry in entries) if entries else None
        logger.info(
            "Play plan built: kind=%s files=%s cursor=%s",
            self.plan.kind,
            len(contents),
            cursor_of(self.plan).as_payload(),
        )
        return self.plan

    async def init(self) -> bool:
        """Load everything and start playback. False means the error panel is up."""
        try:
            self.renderer.check()
            await self.load_settings()
            await self.load_message()
            await self.load_status()
            await self.rebuild_plan()
            self.renderer.render_status(self.status)
            self.renderer.render_message(self.message)
        except Exception as exc:
            logger.error("Display initialisation failed: %s", exc)
            self.state = EngineState.ERROR
            try:
                self.renderer.show_error(INIT_ERROR_MESSAGE)
            except (RendererError, KeyError):
                logger.error("Error panel could not be rendered either")
            return False

        await self.start()
        self.scheduler.arm_repeating(POLL_TIMER, self.poll_interval, self.poll)
        logger.info("Display engine ready (poll every %ss)", self.poll_interval)
        return True

    async def start(self) -> None:
        if not self.settings.get("showTips", True):
            self.suspended = True
            logger.info("Tips are switched off, waiting")
            if self.showing is None:
                self.renderer.show_fallback()
            return
        self.suspended = False
        if self.plan.kind == PlanKind.EMPTY:
            self.renderer.show_fallback()
            self.state = EngineState.IDLE
            return
        await self.show_next()

    def destroy(self) -> None:
        if self.state == EngineState.DESTROYED:
            return
        self.scheduler.cancel_all()
        self.state = EngineState.DESTROYED
        logger.info("Display engine stopped")

    @property
    def destroyed(self) -> bool:
        return self.state == EngineState.DESTROYED

    def _cancel_playback(self) -> None:
        self.scheduler.cancel(DISPLAY_TIMER)
        self.scheduler.cancel(HIDE_TIMER)

    @log_exceptions
    async def show_next(self) -> Selection | None:
        if self.destroyed or self.suspended:
            return None
        self._cancel_playback()

        self._advancing = True
        try:
            selection = next_selection(self.plan)
            if selection is None:
                logger.warning("Nothing playable in %s plan, showing fallback", self.plan.kind)
                self.renderer.show_fallback()
                self.showing = None
                self.state = EngineState.IDLE
                return None

            timing = resolve_timing(
                selection.item,
                selection.content.timing_source,
                self.settings,
                selection.filename,
            )
            self.renderer.show_item(selection, manual_advance=self.manual_advance)
            self.showing = selection
            self.timing = timing
            self.state = EngineState.SHOWING

            for event in advance(self.plan, self.rng):
                logger.debug("Plan event: %s", event)
            await self._persist_cursor()
        finally:
            self._advancing = False

        # poll or destroy may have run while the cursor write was in flight
        if self.destroyed or self.suspended:
            return selection
        if not self.manual_advance:
            self._arm_timers(timing)
        logger.debug(
            "Showing %s[%s] for %ss, next in %ss",
            selection.filename,
            selection.item_index,
            timing.display_time,
            timing.wait_time,
        )
        return selection

    def _arm_timers(self, timing: Timing) -> None:
        self.scheduler.arm(HIDE_TIMER, timing.display_time, self.hide_current)
        self.scheduler.arm(DISPLAY_TIMER, timing.wait_time, self.show_next)

    @log_exceptions
    def hide_current(self) -> None:
        if self.destroyed:
            return
        self.renderer.hide_item()
        self.state = EngineState.HIDDEN

    async def _persist_cursor(self) -> None:
        cursor = cursor_of(self.plan)
        try:
            await self.cursor_store.set(cursor)
        except Exception as exc:
            logger.warning("Cursor write failed, continuing with in-memory cursor: %s", exc)
            return
        self._last_persisted = cursor
        self._persist_generation += 1

    async def skip_to_next_item(self) -> Selection | None:
        if self.destroyed or self.suspended:
            return None
        logger.info("Manual skip to next item")
        return await self.show_next()

    async def skip_to_next_file(self) -> Selection | None:
        if self.destroyed or self.suspended:
            return None
        if self.showing is not None:
            for event in skip_file(self.plan, self.showing.source):
                logger.debug("Plan event: %s", event)
        logger.info("Manual skip to next file")
        return await self.show_next()

    async def reload_playlist(self, payload: Any = None) -> None:
        """Drop the current plan and rebuild it from freshly loaded data."""
        if self.destroyed:
            return
        self._cancel_playback()
        await self.rebuild_plan(payload)
        await self.start()

    @log_exceptions
    async def poll(self) -> None:
        if self.destroyed:
            return
        previous = dict(self.settings)
        await self.load_settings()
        await self.load_message()
        await self.load_status()
        self.renderer.render_status(self.status)
        self.renderer.render_message(self.message)

        payload = await self._fetch("playlist", self.gateway.fetch_playlist, None)
        if payload is not None:
            entries = _playlist_entries(payload)
            key = tuple(entry.filename for entry in entries) if entries else None
            if key != self._playlist_key:
                logger.info("Playlist changed, rebuilding play plan")
                await self.reload_playlist(payload)
                return
            if self.state == EngineState.IDLE and not self.suspended:
                logger.debug("Nothing playable yet, rescanning content")
                await self.reload_playlist(payload)
                return
        await self._reconcile_cursor()
        await self._apply_settings_change(previous)

    async def _reconcile_cursor(self) -> None:
        if self._advancing:
            return
        generation = self._persist_generation
        remote = await self._fetch("cursor", self.cursor_store.get, None)
        # a tick that persisted during the read makes `remote` our own stale write
        if self._advancing or generation != self._persist_generation:
            return
        if remote is None or remote == self._last_persisted:
            return
        if remote != cursor_of(self.plan):
            logger.info("Adopting cursor written elsewhere: %s", remote.as_payload())
            restore_cursor(self.plan, remote)
        self._last_persisted = remote

    async def _apply_settings_change(self, previous: Mapping[str, Any]) -> None:
        show_tips = self.settings.get("showTips", True)
        if show_tips != previous.get("showTips", True):
            if show_tips:
                logger.info("Tips switched on, resuming")
                await self.start()
            else:
                logger.info("Tips switched off, pausing playback")
                self.suspended = True
                self._cancel_playback()
            return
        if (
            self.settings.get("interval") != previous.get("interval")
            and not self.suspended
            and not self.manual_advance
            and self.showing is not None
            and self.scheduler.is_armed(DISPLAY_TIMER)
        ):
            timing = resolve_timing(
                self.showing.item,
                self.showing.content.timing_source,
                self.settings,
                self.showing.filename,
            )
            self.timing = timing
            logger.info("Interval changed, next item in %ss", timing.wait_time)
            self.scheduler.arm(DISPLAY_TIMER, timing.wait_time, self.show_next)

    def snapshot(self) -> dict[str, Any]:
        showing = None
        if self.showing is not None:
            showing = {
                "filename": self.showing.filename,
                "itemIndex": self.showing.item_index,
                "title": self.showing.item.get("title"),
                "source": str(self.showing.source),
            }
        return {
            "state": self.state.value,
            "suspended": self.suspended,
            "manualAdvance": self.manual_advance,
            "plan": describe_plan(self.plan, self.settings),
            "showing": showing,
            "timing": (
                {"waitTime": self.timing.wait_time, "displayTime": self.timing.display_time}
                if self.timing
                else None
            ),
            "timers": self.scheduler.active(),
        }
