import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Mapping, Protocol

from waitroom.display import text
from waitroom.display.plan import DEFAULT_ICON, Selection

logger = logging.getLogger(__name__)

CATEGORY_TITLE = "categoryTitle"
MAIN_CONTENT = "mainContent"
MESSAGE_AREA = "messageArea"
STATUS_CARD = "statusCard"
REQUIRED_REGIONS = (CATEGORY_TITLE, MAIN_CONTENT, MESSAGE_AREA, STATUS_CARD)

SYSTEM_TITLE = f"{DEFAULT_ICON} 待合室表示システム"
FALLBACK_ITEM = {
    "icon": "⚙️",
    "title": "システム準備中",
    "text": "プレイリストを設定してください。コントロール画面から設定できます。",
}
ERROR_TITLE = "⚠️ システムエラー"
STATUS_HEADING = "🩺 診察順のご案内"


class RendererError(RuntimeError):
    pass


@dataclass
class Region:
    html: str = ""
    visible: bool = False
    classes: list[str] = field(default_factory=list)

    def as_dict(self) -> dict[str, Any]:
        return {"html": self.html, "visible": self.visible, "classes": list(self.classes)}


@dataclass
class DisplaySurface:
    """In-memory stand-in for the kiosk page: one Region per named area."""

    regions: dict[str, Region] = field(
        default_factory=lambda: {name: Region() for name in REQUIRED_REGIONS}
    )
    status_width: float = 0
    status_height: float = 0

    def frame(self) -> dict[str, Any]:
        return {name: region.as_dict() for name, region in self.regions.items()}


class Renderer(Protocol):
    def check(self) -> None: ...
    def show_item(self, selection: Selection, manual_advance: bool = False) -> None: ...
    def hide_item(self) -> None: ...
    def render_status(self, status: Mapping[str, Any]) -> None: ...
    def render_message(self, message: Mapping[str, Any]) -> None: ...
    def show_fallback(self) -> None: ...
    def show_error(self, message: str) -> None: ...


class SurfaceRenderer:
    def __init__(self, surface: DisplaySurface | None = None) -> None:
        self.surface = surface or DisplaySurface()

    def _region(self, name: str) -> Region:
        return self.surface.regions[name]

    def _commit(self, name: str) -> None:
        """Hook for pushing a changed region somewhere; the surface itself is already updated."""

    def check(self) -> None:
        missing = [name for name in REQUIRED_REGIONS if name not in self.surface.regions]
        if missing:
            raise RendererError(f"Required display regions not found: {', '.join(missing)}")

    def update_title(self, meta: Mapping[str, Any] | None) -> None:
        if meta:
            title = f"{meta.get('icon') or DEFAULT_ICON} {meta.get('title') or ''}".strip()
        else:
            title = SYSTEM_TITLE
        processed = text.optimize_title(title)
        region = self._region(CATEGORY_TITLE)
        region.html = text.escape(processed)
        region.classes = ["multi-line"] if "\n" in processed else []
        region.visible = True
        self._commit(CATEGORY_TITLE)

    def show_item(self, selection: Selection, manual_advance: bool = False) -> None:
        self.update_title(selection.meta)
        region = self._region(MAIN_CONTENT)
        # fade out, swap, fade in; the page animates the visibility change
        region.visible = False
        self._commit(MAIN_CONTENT)

        item = selection.item
        title = f"{item.get('icon') or DEFAULT_ICON} {item.get('title') or ''}"
        title_classes, card_classes = text.title_classes(title)
        title_classes = title_classes + ["tip-title-button"]
        region.html = (
            f'<h2 class="{" ".join(title_classes)}" data-skip="file">{text.escape(title)}</h2>'
            f'<p class="tip-body-button" data-skip="item">{text.escape(item.get("text", ""))}</p>'
        )
        region.classes = card_classes + (["manual-advance"] if manual_advance else [])
        region.visible = True
        self._commit(MAIN_CONTENT)

    def hide_item(self) -> None:
        region = self._region(MAIN_CONTENT)
        if region.visible:
            region.visible = False
            self._commit(MAIN_CONTENT)

    def _show_panel(self, title: str, heading: str, body: str, classes: list[str]) -> None:
        title_region = self._region(CATEGORY_TITLE)
        title_region.html = text.escape(title)
        title_region.classes = []
        title_region.visible = True
        self._commit(CATEGORY_TITLE)

        region = self._region(MAIN_CONTENT)
        region.html = f"<h2>{text.escape(heading)}</h2><p>{text.escape(body)}</p>"
        region.classes = classes
        region.visible = True
        self._commit(MAIN_CONTENT)

    def show_fallback(self) -> None:
        self._show_panel(
            SYSTEM_TITLE,
            f"{FALLBACK_ITEM['icon']} {FALLBACK_ITEM['title']}",
            FALLBACK_ITEM["text"],
            [],
        )

    def show_error(self, message: str) -> None:
        self._show_panel(ERROR_TITLE, "システムエラー", message, ["error"])

    def render_message(self, message: Mapping[str, Any]) -> None:
        region = self._region(MESSAGE_AREA)
        body = (message or {}).get("text") or ""
        if (message or {}).get("visible") and body:
            region.html = f"<p>{text.escape(body)}</p>"
            region.visible = True
        else:
            region.visible = False
        self._commit(MESSAGE_AREA)

    def render_status(self, status: Mapping[str, Any]) -> None:
        status = status or {}
        mode = status.get("mode") or "rooms"
        region = self._region(STATUS_CARD)
        region.classes = ["status-card"]
        if mode == "hidden":
            region.visible = False
        elif mode == "message":
            self._render_status_message(region, status.get("statusMessage") or {})
        else:
            self._render_rooms(region, status)
        self._commit(STATUS_CARD)

    def _render_status_message(self, region: Region, status_message: Mapping[str, Any]) -> None:
        if not status_message.get("visible") or not status_message.get("text"):
            region.visible = False
            return
        lines = text.split_status_message(str(status_message["text"]))
        layout = text.message_layout(lines, self.surface.status_width, self.surface.status_height)
        style = f'style="font-size: {layout["fontSize"]}px; line-height: {layout["lineHeight"]};"'
        if layout["lineCount"] == 1:
            inner = f'<div class="vertical-message-single" {style}>{text.escape(lines[0])}</div>'
        else:
            inner = "".join(
                f'<div class="vertical-message-line line-{index}" {style}>{text.escape(line)}</div>'
                for index, line in enumerate(lines, start=1)
            )
        region.html = (
            f'<div class="vertical-message-container lines-{layout["lineCount"]}">{inner}</div>'
        )
        region.classes = ["status-card", "message-mode"]
        region.visible = True

    def _render_rooms(self, region: Region, status: Mapping[str, Any]) -> None:
        rows = []
        for key, default_label in (("room1", "第1診察室"), ("room2", "第2診察室")):
            room = status.get(key) or {}
            try:
                number = int(room.get("number") or 0)
            except (TypeError, ValueError):
                number = 0
            if not room.get("visible") or number <= 0:
                continue
            label = room.get("label") or default_label
            label_class = " ".join(filter(None, ["room-label", text.room_label_class(label)]))
            rows.append(
                '<div class="room-info">'
                f'<div class="{label_class}">{text.escape(label)}</div>'
                f'<div class="room-number">{number}</div>'
                "</div>"
            )
        if not rows:
            region.visible = False
            return
        region.html = f"<h4>{STATUS_HEADING}</h4>" + "".join(rows)
        region.visible = True


class HubRenderer(SurfaceRenderer):
    """Pushes every region change to connected kiosk pages over the realtime hub."""

    def __init__(self, hub, surface: DisplaySurface | None = None) -> None:
        super().__init__(surface)
        self.hub = hub
        self._pending: set[asyncio.Task] = set()

    def _commit(self, name: str) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        payload = {"region": name, **self.surface.regions[name].as_dict()}
        task = loop.create_task(self.hub.publish("frame", payload))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
