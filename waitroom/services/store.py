import json
import os
import re
import tempfile
from datetime import datetime
from typing import Any

DATA_DIR = os.getenv("WAITROOM_DATA_DIR", "./data")
CONTENTS_SUBDIR = "contents"
LABEL_HISTORY_LIMIT = 10
LABEL_MAX_CHARS = 20
SHORTCUT_LETTERS = "ABCDEFGHIJKLMNOPQRSTUVWXYZ"
DISPLAY_MODES = ("random", "order", "sequence")
DEFAULT_ROOM1_LABEL = "第1診察室"
DEFAULT_ROOM2_LABEL = "第2診察室"
_CONTENT_FILENAME_RE = re.compile(r"^[A-Za-z0-9_\-.]+\.json$")


def default_settings() -> dict[str, Any]:
    return {"interval": 20, "duration": 8, "showTips": True, "files": {}}


def default_message() -> dict[str, Any]:
    return {"text": "", "visible": False}


def default_status() -> dict[str, Any]:
    return {
        "mode": "rooms",
        "statusMessage": {"text": "", "visible": False, "preset": None},
        "room1": {"label": DEFAULT_ROOM1_LABEL, "number": 0, "visible": False},
        "room2": {"label": DEFAULT_ROOM2_LABEL, "number": 0, "visible": False},
    }


def _now_str() -> str:
    return datetime.now().strftime("%Y-%m-%d %H:%M:%S")


def validate_content_filename(filename: str) -> str:
    name = (filename or "").strip()
    if (
        not name
        or name != os.path.basename(name)
        or not _CONTENT_FILENAME_RE.fullmatch(name)
        or name.startswith(".")
    ):
        raise ValueError(f"Invalid content file name: {filename!r}")
    return name


def display_name_from_filename(filename: str) -> str:
    name = filename.replace(".json", "").replace("_", " ")
    return " ".join(word[:1].upper() + word[1:] for word in name.split(" "))


def content_items(document: Any) -> list[Any]:
    """Item list of a content document in either the `{meta, items}` or the bare-array form."""
    if isinstance(document, dict):
        items = document.get("items")
        return items if isinstance(items, list) else []
    if isinstance(document, list):
        return document
    return []


def build_shortcut_map(filenames: list[str]) -> dict[str, str]:
    return dict(zip(SHORTCUT_LETTERS, sorted(filenames)))


def parse_playlist_string(playlist_string: str) -> list[str]:
    tokens = [token.strip() for token in (playlist_string or "").split(",")]
    tokens = [token for token in tokens if token]
    if not tokens:
        raise ValueError("Playlist string is empty")
    return tokens


def resolve_playlist_tokens(
    tokens: list[str],
    available: dict[str, dict[str, Any]],
) -> list[dict[str, Any]]:
    shortcut_map = build_shortcut_map(list(available))
    playlist: list[dict[str, Any]] = []
    for token in tokens:
        filename = None
        if len(token) == 1 and token.upper() in shortcut_map:
            filename = shortcut_map[token.upper()]
        elif token in available:
            filename = token
        elif f"{token}.json" in available:
            filename = f"{token}.json"
        if filename is None:
            raise ValueError(f"Unknown playlist item: {token}")
        playlist.append(dict(available[filename]))
    return playlist


class ContentStore:
    """Flat JSON files holding everything the display and the control panel share."""

    def __init__(self, data_dir: str | None = None) -> None:
        self.data_dir = os.path.abspath(data_dir or DATA_DIR)
        self.contents_dir = os.path.join(self.data_dir, CONTENTS_SUBDIR)

    def ensure(self) -> None:
        os.makedirs(self.contents_dir, exist_ok=True)

    # -- raw file access -------------------------------------------------

    def _path(self, name: str) -> str:
        return os.path.join(self.data_dir, name)

    def read_json(self, name: str, default: Any = None) -> Any:
        path = self._path(name)
        try:
            with open(path, encoding="utf-8") as f:
                return json.load(f)
        except (OSError, ValueError):
            return default

    def write_json(self, name: str, payload: Any) -> int:
        path = self._path(name)
        os.makedirs(os.path.dirname(path), exist_ok=True)
        encoded = json.dumps(payload, ensure_ascii=False, indent=2)
        fd, tmp_path = tempfile.mkstemp(dir=os.path.dirname(path), suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(encoded)
            os.replace(tmp_path, path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise
        return len(encoded.encode("utf-8"))

    # -- settings / message / status ------------------------------------

    def load_settings(self) -> dict[str, Any]:
        loaded = self.read_json("settings.json")
        settings = default_settings()
        if isinstance(loaded, dict):
            settings.update(loaded)
        if not isinstance(settings.get("files"), dict):
            settings["files"] = {}
        return settings

    def save_settings(self, changes: dict[str, Any]) -> dict[str, Any]:
        current = self.read_json("settings.json")
        merged = current if isinstance(current, dict) else default_settings()
        files_changes = changes.get("files")
        for key, value in changes.items():
            if key != "files":
                merged[key] = value
        if files_changes:
            files = merged.get("files") if isinstance(merged.get("files"), dict) else {}
            for filename, file_settings in files_changes.items():
                entry = dict(files.get(filename) or {})
                entry.update(file_settings)
                files[filename] = entry
            merged["files"] = files
        merged["lastUpdated"] = _now_str()
        self.write_json("settings.json", merged)
        return merged

    def load_message(self) -> dict[str, Any]:
        loaded = self.read_json("message.json")
        return loaded if isinstance(loaded, dict) else default_message()

    def save_message(self, text: str, visible: bool, client: dict[str, Any] | None = None) -> dict[str, Any]:
        payload = {
            "text": text,
            "visible": visible,
            "lastUpdated": _now_str(),
            "updatedBy": client or {},
        }
        self.write_json("message.json", payload)
        return payload

    def load_status(self) -> dict[str, Any]:
        loaded = self.read_json("status.json")
        return loaded if isinstance(loaded, dict) else default_status()

    def save_status(self, status: dict[str, Any], client: dict[str, Any] | None = None) -> dict[str, Any]:
        payload = dict(status)
        payload["lastUpdated"] = _now_str()
        payload["updatedBy"] = client or {}
        self.write_json("status.json", payload)
        self.push_label_history(
            [
                (payload.get("room1") or {}).get("label", ""),
                (payload.get("room2") or {}).get("label", ""),
            ]
        )
        return payload

    # -- label history ---------------------------------------------------

    def load_label_history(self) -> list[str]:
        loaded = self.read_json("label_history.json")
        if isinstance(loaded, dict) and isinstance(loaded.get("history"), list):
            return [label for label in loaded["history"] if isinstance(label, str)]
        return []

    def save_label_history(self, labels: list[str]) -> list[str]:
        cleaned: list[str] = []
        for label in labels:
            if not isinstance(label, str):
                continue
            label = label.strip()
            if label and len(label) <= LABEL_MAX_CHARS and label not in cleaned:
                cleaned.append(label)
        cleaned = cleaned[:LABEL_HISTORY_LIMIT]
        self.write_json(
            "label_history.json",
            {"history": cleaned, "lastUpdated": _now_str(), "count": len(cleaned)},
        )
        return cleaned

    def push_label_history(self, labels: list[str]) -> list[str]:
        history = self.load_label_history()
        for label in labels:
            label = (label or "").strip()
            if not label or label in (DEFAULT_ROOM1_LABEL, DEFAULT_ROOM2_LABEL):
                continue
            history = [existing for existing in history if existing != label]
            history.insert(0, label)
        return self.save_label_history(history)

    # -- content files ---------------------------------------------------

    def list_content_filenames(self) -> list[str]:
        if not os.path.isdir(self.contents_dir):
            return []
        return sorted(
            name
            for name in os.listdir(self.contents_dir)
            if name.endswith(".json") and _CONTENT_FILENAME_RE.fullmatch(name)
        )

    def load_content(self, filename: str) -> Any:
        name = validate_content_filename(filename)
        path = os.path.join(self.contents_dir, name)
        if not os.path.isfile(path):
            raise FileNotFoundError(name)
        with open(path, encoding="utf-8") as f:
            return json.load(f)

    def content_info(self, filename: str) -> dict[str, Any] | None:
        try:
            document = self.load_content(filename)
        except (OSError, ValueError):
            return None
        display_name = display_name_from_filename(filename)
        if isinstance(document, dict):
            meta = document.get("meta")
            if isinstance(meta, dict) and meta.get("title"):
                display_name = str(meta["title"])
        return {
            "filename": filename,
            "displayName": display_name,
            "itemCount": len(content_items(document)),
        }

    def available_contents(self) -> dict[str, dict[str, Any]]:
        output: dict[str, dict[str, Any]] = {}
        for filename in self.list_content_filenames():
            info = self.content_info(filename)
            if info is not None:
                output[filename] = info
        return output

    def set_content_display_mode(self, filename: str, display_mode: str) -> None:
        try:
            document = self.load_content(filename)
        except (OSError, ValueError):
            return
        if isinstance(document, dict) and isinstance(document.get("meta"), dict):
            document["meta"]["displayMode"] = display_mode
            document["meta"]["lastUpdated"] = _now_str()
            self.write_json(os.path.join(CONTENTS_SUBDIR, filename), document)

    def save_display_mode(self, filename: str, display_mode: str) -> dict[str, Any]:
        name = validate_content_filename(filename)
        if display_mode not in DISPLAY_MODES:
            raise ValueError(f"Invalid display mode: {display_mode}")
        settings = self.load_settings()
        entry = settings["files"].get(name) or {
            "enabled": True,
            "duration": 8,
            "weight": 1,
            "displayName": display_name_from_filename(name),
        }
        entry["displayMode"] = display_mode
        saved = self.save_settings({"files": {name: entry}})
        if display_mode == "sequence":
            self.save_cursor(0, 0)
        self.set_content_display_mode(name, display_mode)
        return saved

    # -- playlist + cursor -----------------------------------------------

    def load_playlist(self) -> dict[str, Any] | None:
        loaded = self.read_json("playlist.json")
        return loaded if isinstance(loaded, dict) else None

    def save_playlist(self, playlist_string: str, client: dict[str, Any] | None = None) -> dict[str, Any]:
        tokens = parse_playlist_string(playlist_string)
        available = self.available_contents()
        if not available:
            raise ValueError("No content files available")
        playlist = resolve_playlist_tokens(tokens, available)
        payload = {
            "playlist": playlist,
            "playlistString": playlist_string.strip(),
            "shortcutMap": build_shortcut_map(list(available)),
            "totalFiles": len(playlist),
            "totalItems": sum(entry["itemCount"] for entry in playlist),
            "currentPlaylistIndex": 0,
            "currentFileIndex": 0,
            "lastUpdated": _now_str(),
            "updatedBy": client or {},
        }
        self.write_json("playlist.json", payload)
        return payload

    def load_cursor(self) -> tuple[int, int]:
        document = self.load_playlist() or {}
        return (
            _non_negative_int(document.get("currentPlaylistIndex")),
            _non_negative_int(document.get("currentFileIndex")),
        )

    def save_cursor(self, playlist_index: int, file_index: int) -> dict[str, Any]:
        if playlist_index < 0 or file_index < 0:
            raise ValueError("Cursor indexes must not be negative")
        document = self.load_playlist() or {
            "playlist": [],
            "playlistString": "",
            "totalFiles": 0,
            "totalItems": 0,
        }
        document["currentPlaylistIndex"] = playlist_index
        document["currentFileIndex"] = file_index
        self.write_json("playlist.json", document)
        return document

    def playlist_status(self) -> dict[str, Any]:
        document = self.load_playlist()
        entries = (document or {}).get("playlist") or []
        if not document or not entries:
            playlist_index, file_index = self.load_cursor()
            return {
                "hasPlaylist": False,
                "playlistString": "",
                "totalFiles": 0,
                "totalItems": 0,
                "currentPlaylistIndex": playlist_index,
                "currentFileIndex": file_index,
                "currentFile": None,
                "currentFileItems": 0,
                "nextFile": None,
                "progress": "0%",
                "progressRaw": 0,
                "playlist": [],
                "lastUpdated": (document or {}).get("lastUpdated"),
            }

        playlist_index, file_index = self.load_cursor()
        current_file = None
        current_items = 0
        if playlist_index < len(entries):
            current_file = dict(entries[playlist_index])
            try:
                items = content_items(self.load_content(current_file.get("filename", "")))
            except (OSError, ValueError):
                items = []
            current_items = len(items)
            if file_index < len(items) and isinstance(items[file_index], dict):
                current_file["currentItem"] = {
                    "index": file_index,
                    "title": items[file_index].get("title", ""),
                    "icon": items[file_index].get("icon", ""),
                }
        progress = round((playlist_index + 1) / len(entries) * 100, 1)
        return {
            "hasPlaylist": True,
            "playlistString": document.get("playlistString", ""),
            "totalFiles": document.get("totalFiles", len(entries)),
            "totalItems": document.get("totalItems", 0),
            "currentPlaylistIndex": playlist_index,
            "currentFileIndex": file_index,
            "currentFile": current_file,
            "currentFileItems": current_items,
            "nextFile": entries[(playlist_index + 1) % len(entries)],
            "progress": f"{progress}%",
            "progressRaw": progress,
            "playlist": entries,
            "lastUpdated": document.get("lastUpdated"),
        }


def _non_negative_int(value: Any) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError):
        return 0
    return max(0, number)


def get_store() -> ContentStore:
    store = ContentStore()
    store.ensure()
    return store
