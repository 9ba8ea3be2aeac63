"""Play-plan construction and the cursor state machine. The cursor always names the next item to show."""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping

logger = logging.getLogger(__name__)

DEFAULT_ICON = "💡"
DISPLAY_MODES = ("random", "order", "sequence")
MIN_WEIGHT = 1
MAX_WEIGHT = 10

EVENT_PLAYLIST_WRAPPED = "playlist_wrapped"
EVENT_QUEUE_RESHUFFLED = "queue_reshuffled"
EVENT_QUEUE_WRAPPED = "queue_wrapped"
EVENT_SEQUENCE_RESTART = "sequence_cycle_restart"


class PlanKind(str, Enum):
    EMPTY = "empty"
    PLAYLIST = "playlist"
    QUEUE = "queue"
    SEQUENCE = "sequence"
    MIXED = "mixed"

    def __str__(self):
        return self.value


@dataclass
class PlayCursor:
    playlist_index: int = 0
    file_index: int = 0

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any] | None) -> "PlayCursor":
        payload = payload or {}
        return cls(
            playlist_index=_non_negative(payload.get("currentPlaylistIndex")),
            file_index=_non_negative(payload.get("currentFileIndex")),
        )

    def as_payload(self) -> dict[str, int]:
        return {
            "currentPlaylistIndex": self.playlist_index,
            "currentFileIndex": self.file_index,
        }


@dataclass(frozen=True)
class ContentFile:
    filename: str
    meta: dict[str, Any]
    items: list[dict[str, Any]]
    default_timing: dict[str, Any] | None = None

    @classmethod
    def from_document(cls, filename: str, document: Any) -> "ContentFile":
        meta: dict[str, Any] = {}
        default_timing = None
        raw_items: Any = []
        if isinstance(document, Mapping):
            if isinstance(document.get("meta"), Mapping):
                meta = dict(document["meta"])
            if isinstance(document.get("defaultTiming"), Mapping):
                default_timing = dict(document["defaultTiming"])
            raw_items = document.get("items") or []
        elif isinstance(document, list):
            raw_items = document
        items = [dict(item) for item in raw_items if isinstance(item, Mapping)]
        return cls(filename=filename, meta=meta, items=items, default_timing=default_timing)

    @property
    def timing_source(self) -> dict[str, Any]:
        """The shape `resolve_timing` expects for the file-level tier."""
        return {"defaultTiming": self.default_timing} if self.default_timing else {}


@dataclass(frozen=True)
class PlaylistEntry:
    filename: str
    display_name: str = ""
    item_count: int = 0

    @classmethod
    def from_payload(cls, payload: Any) -> "PlaylistEntry":
        if not isinstance(payload, Mapping):
            return cls(filename="")
        return cls(
            filename=str(payload.get("filename") or ""),
            display_name=str(payload.get("displayName") or ""),
            item_count=_non_negative(payload.get("itemCount")),
        )


@dataclass(frozen=True)
class QueueSlot:
    filename: str
    item_index: int
    mode: str


@dataclass
class SequenceTrack:
    filename: str
    position: int = 0


@dataclass
class Selection:
    """One resolved item, ready to be timed and rendered."""

    filename: str
    item_index: int
    item: dict[str, Any]
    content: ContentFile
    meta: dict[str, Any]
    source: PlanKind


@dataclass
class PlayPlan:
    kind: PlanKind = PlanKind.EMPTY
    contents: dict[str, ContentFile] = field(default_factory=dict)
    playlist: list[PlaylistEntry] = field(default_factory=list)
    cursor: PlayCursor = field(default_factory=PlayCursor)
    queue: list[QueueSlot] = field(default_factory=list)
    queue_pos: int = 0
    sequence: list[SequenceTrack] = field(default_factory=list)
    sequence_pos: int = 0
    mixed_turn: PlanKind = PlanKind.QUEUE
    # which part produced the last Selection in mixed mode
    last_source: PlanKind | None = None


def _non_negative(value: Any) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError):
        return 0
    return max(0, number)


def _file_settings(settings: Mapping[str, Any] | None, filename: str) -> Mapping[str, Any]:
    files = (settings or {}).get("files")
    if isinstance(files, Mapping) and isinstance(files.get(filename), Mapping):
        return files[filename]
    return {}


def file_display_mode(content: ContentFile, settings: Mapping[str, Any] | None) -> str:
    mode = _file_settings(settings, content.filename).get("displayMode") or content.meta.get("displayMode")
    return mode if mode in DISPLAY_MODES else "random"


def file_weight(filename: str, settings: Mapping[str, Any] | None) -> int:
    raw = _file_settings(settings, filename).get("weight", MIN_WEIGHT)
    try:
        weight = int(raw)
    except (TypeError, ValueError):
        weight = MIN_WEIGHT
    return max(MIN_WEIGHT, min(MAX_WEIGHT, weight))


def file_enabled(filename: str, settings: Mapping[str, Any] | None) -> bool:
    return _file_settings(settings, filename).get("enabled", True) is not False


def classify(
    contents: Mapping[str, ContentFile],
    settings: Mapping[str, Any] | None,
) -> dict[str, list[str]]:
    groups: dict[str, list[str]] = {mode: [] for mode in DISPLAY_MODES}
    for filename in sorted(contents):
        if not file_enabled(filename, settings):
            continue
        groups[file_display_mode(contents[filename], settings)].append(filename)
    return groups


def shuffle_random_slice(queue: list[QueueSlot], rng: random.Random) -> None:
    """Shuffle the random-mode slots among themselves; order-mode slots stay put."""
    positions = [index for index, slot in enumerate(queue) if slot.mode == "random"]
    slots = [queue[index] for index in positions]
    rng.shuffle(slots)
    for index, slot in zip(positions, slots):
        queue[index] = slot


def build_queue(
    contents: Mapping[str, ContentFile],
    filenames: list[str],
    settings: Mapping[str, Any] | None,
    rng: random.Random,
) -> list[QueueSlot]:
    queue: list[QueueSlot] = []
    for filename in filenames:
        content = contents[filename]
        mode = file_display_mode(content, settings)
        copies = file_weight(filename, settings) if mode == "random" else 1
        for item_index in range(len(content.items)):
            queue.extend(QueueSlot(filename, item_index, mode) for _ in range(copies))
    shuffle_random_slice(queue, rng)
    return queue


def build_plan(
    contents: Mapping[str, ContentFile],
    settings: Mapping[str, Any] | None = None,
    playlist: list[PlaylistEntry] | None = None,
    rng: random.Random | None = None,
) -> PlayPlan:
    rng = rng or random.Random()
    contents = dict(contents)
    if playlist:
        return PlayPlan(kind=PlanKind.PLAYLIST, contents=contents, playlist=list(playlist))

    groups = classify(contents, settings)
    queue_files = [name for name in sorted(contents) if name in groups["order"] or name in groups["random"]]
    sequence = [SequenceTrack(name) for name in groups["sequence"]]
    queue = build_queue(contents, queue_files, settings, rng)

    if queue and sequence:
        kind = PlanKind.MIXED
    elif sequence:
        kind = PlanKind.SEQUENCE
    elif queue:
        kind = PlanKind.QUEUE
    else:
        kind = PlanKind.EMPTY
    return PlayPlan(kind=kind, contents=contents, queue=queue, sequence=sequence)


def describe_plan(plan: PlayPlan, settings: Mapping[str, Any] | None = None) -> dict[str, Any]:
    files = []
    for filename in sorted(plan.contents):
        content = plan.contents[filename]
        files.append(
            {
                "filename": filename,
                "displayMode": file_display_mode(content, settings),
                "weight": file_weight(filename, settings),
                "enabled": file_enabled(filename, settings),
                "itemCount": len(content.items),
            }
        )
    return {
        "kind": str(plan.kind),
        "queueLength": len(plan.queue),
        "sequenceFiles": [track.filename for track in plan.sequence],
        "playlistLength": len(plan.playlist),
        "files": files,
        "cursor": cursor_of(plan).as_payload(),
    }


def _sequence_items(plan: PlayPlan, track: SequenceTrack) -> list[dict[str, Any]]:
    content = plan.contents.get(track.filename)
    return content.items if content else []


def cursor_of(plan: PlayPlan) -> PlayCursor:
    if plan.kind == PlanKind.PLAYLIST:
        return PlayCursor(plan.cursor.playlist_index, plan.cursor.file_index)
    if plan.kind in (PlanKind.SEQUENCE, PlanKind.MIXED) and plan.sequence:
        track = plan.sequence[plan.sequence_pos]
        return PlayCursor(plan.sequence_pos, track.position)
    if plan.kind == PlanKind.QUEUE:
        return PlayCursor(0, plan.queue_pos)
    return PlayCursor()


def restore_cursor(plan: PlayPlan, cursor: PlayCursor) -> None:
    """Position the plan at `cursor`; out-of-range parts are clamped at resolve time."""
    if plan.kind == PlanKind.PLAYLIST:
        plan.cursor = PlayCursor(cursor.playlist_index, cursor.file_index)
    elif plan.kind in (PlanKind.SEQUENCE, PlanKind.MIXED) and plan.sequence:
        index = cursor.playlist_index if cursor.playlist_index < len(plan.sequence) else 0
        for position, track in enumerate(plan.sequence):
            if position < index:
                track.position = len(_sequence_items(plan, track))
            elif position == index:
                track.position = cursor.file_index
            else:
                track.position = 0
        plan.sequence_pos = index
    elif plan.kind == PlanKind.QUEUE:
        plan.queue_pos = cursor.file_index if cursor.file_index < len(plan.queue) else 0


def _fallback_meta(filename: str, display_name: str = "") -> dict[str, Any]:
    return {"title": display_name or filename, "icon": DEFAULT_ICON}


def _next_playlist_slot(plan: PlayPlan) -> list[str]:
    plan.cursor.playlist_index += 1
    plan.cursor.file_index = 0
    if plan.cursor.playlist_index >= len(plan.playlist):
        plan.cursor.playlist_index = 0
        logger.info("Playlist completed, restarting from beginning")
        return [EVENT_PLAYLIST_WRAPPED]
    return []


def _resolve_playlist(plan: PlayPlan) -> Selection | None:
    # one pass over every slot, plus one for a clamped cursor
    for _ in range(len(plan.playlist) + 1):
        if plan.cursor.playlist_index >= len(plan.playlist):
            plan.cursor = PlayCursor(0, 0)
        entry = plan.playlist[plan.cursor.playlist_index]
        content = plan.contents.get(entry.filename) if entry.filename else None
        if content is None:
            logger.warning("Content not loaded for playlist slot %s (%r)", plan.cursor.playlist_index, entry.filename)
            _next_playlist_slot(plan)
            continue
        if not content.items:
            logger.warning("No items in content %s", entry.filename)
            _next_playlist_slot(plan)
            continue
        if plan.cursor.file_index >= len(content.items):
            logger.warning(
                "Cursor %s beyond %s items of %s, moving to next slot",
                plan.cursor.file_index,
                len(content.items),
                entry.filename,
            )
            _next_playlist_slot(plan)
            continue
        index = plan.cursor.file_index
        return Selection(
            filename=entry.filename,
            item_index=index,
            item=content.items[index],
            content=content,
            meta=content.meta or _fallback_meta(entry.filename, entry.display_name),
            source=PlanKind.PLAYLIST,
        )
    return None


def _next_sequence_track(plan: PlayPlan) -> list[str]:
    plan.sequence_pos += 1
    if plan.sequence_pos >= len(plan.sequence):
        for track in plan.sequence:
            track.position = 0
        plan.sequence_pos = 0
        logger.info("Sequence cycle completed for %s files, restarting", len(plan.sequence))
        return [EVENT_SEQUENCE_RESTART]
    return []


def _resolve_sequence(plan: PlayPlan) -> Selection | None:
    for _ in range(len(plan.sequence) + 1):
        track = plan.sequence[plan.sequence_pos]
        content = plan.contents.get(track.filename)
        if content is None or not content.items:
            logger.warning("Sequence file %s has no playable items", track.filename)
            track.position = len(content.items) if content else 0
            _next_sequence_track(plan)
            continue
        if track.position >= len(content.items):
            logger.warning("Sequence position %s beyond %s, moving on", track.position, track.filename)
            track.position = len(content.items)
            _next_sequence_track(plan)
            continue
        return Selection(
            filename=track.filename,
            item_index=track.position,
            item=content.items[track.position],
            content=content,
            meta=content.meta or _fallback_meta(track.filename),
            source=PlanKind.SEQUENCE,
        )
    return None


def _wrap_queue(plan: PlayPlan, rng: random.Random) -> list[str]:
    plan.queue_pos = 0
    events = [EVENT_QUEUE_WRAPPED]
    if any(slot.mode == "random" for slot in plan.queue):
        shuffle_random_slice(plan.queue, rng)
        events.append(EVENT_QUEUE_RESHUFFLED)
    return events


def _resolve_queue(plan: PlayPlan) -> Selection | None:
    for _ in range(len(plan.queue) + 1):
        if plan.queue_pos >= len(plan.queue):
            plan.queue_pos = 0
        slot = plan.queue[plan.queue_pos]
        content = plan.contents.get(slot.filename)
        if content is None or slot.item_index >= len(content.items):
            logger.warning("Queue slot %s (%s[%s]) no longer resolvable", plan.queue_pos, slot.filename, slot.item_index)
            plan.queue_pos += 1
            continue
        return Selection(
            filename=slot.filename,
            item_index=slot.item_index,
            item=content.items[slot.item_index],
            content=content,
            meta=content.meta or _fallback_meta(slot.filename),
            source=PlanKind.QUEUE,
        )
    return None


def next_selection(plan: PlayPlan) -> Selection | None:
    """Resolve the item under the cursor, skipping unusable positions forward."""
    if plan.kind == PlanKind.PLAYLIST and plan.playlist:
        selection = _resolve_playlist(plan)
    elif plan.kind == PlanKind.SEQUENCE and plan.sequence:
        selection = _resolve_sequence(plan)
    elif plan.kind == PlanKind.QUEUE and plan.queue:
        selection = _resolve_queue(plan)
    elif plan.kind == PlanKind.MIXED:
        first, second = (
            (_resolve_queue, _resolve_sequence)
            if plan.mixed_turn == PlanKind.QUEUE
            else (_resolve_sequence, _resolve_queue)
        )
        selection = first(plan) or second(plan)
    else:
        selection = None
    plan.last_source = selection.source if selection else None
    return selection


def advance(plan: PlayPlan, rng: random.Random | None = None) -> list[str]:
    """Move the cursor past the item last returned by `next_selection`."""
    rng = rng or random.Random()
    events: list[str] = []
    source = plan.last_source
    if source is None:
        return events

    if source == PlanKind.PLAYLIST:
        plan.cursor.file_index += 1
        entry = plan.playlist[plan.cursor.playlist_index]
        content = plan.contents.get(entry.filename)
        if content is None or plan.cursor.file_index >= len(content.items):
            events += _next_playlist_slot(plan)
    elif source == PlanKind.SEQUENCE:
        track = plan.sequence[plan.sequence_pos]
        track.position += 1
        if track.position >= len(_sequence_items(plan, track)):
            events += _next_sequence_track(plan)
    elif source == PlanKind.QUEUE:
        plan.queue_pos += 1
        if plan.queue_pos >= len(plan.queue):
            events += _wrap_queue(plan, rng)

    if plan.kind == PlanKind.MIXED:
        plan.mixed_turn = PlanKind.SEQUENCE if source == PlanKind.QUEUE else PlanKind.QUEUE
    plan.last_source = None
    return events


def skip_file(plan: PlayPlan, source: PlanKind) -> list[str]:
    # a cursor at item 0 has already crossed into the next file
    if source == PlanKind.PLAYLIST and plan.playlist and plan.cursor.file_index > 0:
        return _next_playlist_slot(plan)
    if source == PlanKind.SEQUENCE and plan.sequence:
        track = plan.sequence[plan.sequence_pos]
        if track.position > 0:
            track.position = len(_sequence_items(plan, track))
            return _next_sequence_track(plan)
    return []
