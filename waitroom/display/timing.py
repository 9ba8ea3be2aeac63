# wait and display time each resolve independently: item, then file defaultTiming
# (then the per-file duration for display), then global settings, then fallback

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping

FALLBACK_WAIT_SEC = 20
FALLBACK_DISPLAY_SEC = 8


@dataclass(frozen=True)
class Timing:
    wait_time: float
    display_time: float


def _present(value: Any) -> float | None:
    # bools are ints in Python; a stray `true` in JSON must not become 1 second
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value) if value > 0 else None


def _first(*candidates: Any) -> float | None:
    for candidate in candidates:
        value = _present(candidate)
        if value is not None:
            return value
    return None


def resolve_timing(
    item: Mapping[str, Any] | None,
    content: Any = None,
    settings: Mapping[str, Any] | None = None,
    filename: str | None = None,
) -> Timing:
    item = item if isinstance(item, Mapping) else {}
    settings = settings or {}
    default_timing: Mapping[str, Any] = {}
    if isinstance(content, Mapping) and isinstance(content.get("defaultTiming"), Mapping):
        default_timing = content["defaultTiming"]

    file_settings: Mapping[str, Any] = {}
    files = settings.get("files")
    if filename and isinstance(files, Mapping) and isinstance(files.get(filename), Mapping):
        file_settings = files[filename]

    wait = _first(
        item.get("waitTime"),
        default_timing.get("waitTime"),
        settings.get("interval"),
    )
    display = _first(
        item.get("displayTime"),
        default_timing.get("displayTime"),
        default_timing.get("duration"),
        file_settings.get("duration"),
        settings.get("duration"),
    )
    return Timing(
        wait_time=wait if wait is not None else FALLBACK_WAIT_SEC,
        display_time=display if display is not None else FALLBACK_DISPLAY_SEC,
    )
