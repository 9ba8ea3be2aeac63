import html
import math
import re

STATUS_LINE_CHARS = 20
BREAK_TOLERANCE = 5
# (token, chars to keep on the first line counted from the token start)
NATURAL_BREAKS = (
    ("まで", 2),
    ("から", 2),
    ("です", 2),
    ("ます", 2),
    ("した", 2),
    ("ください", 4),
)
TITLE_LINE_CHARS = 15
LONG_TITLE_CHARS = 22
XLONG_TITLE_CHARS = 28
MIN_FONT_PX = 30
MAX_FONT_PX = 200
DEFAULT_BOX_PX = 400
_WHITESPACE_RE = re.compile(r"\s+")


def escape(text) -> str:
    """Escape for insertion as text; newlines become <br>."""
    if text is None:
        return ""
    return html.escape(str(text), quote=True).replace("\n", "<br>")


def find_natural_break(text: str) -> int:
    mid = len(text) // 2
    for token, offset in NATURAL_BREAKS:
        start = text.find(token)
        while start != -1:
            split = start + offset
            if 0 < start and split < len(text) and abs(split - mid) <= BREAK_TOLERANCE:
                return split
            start = text.find(token, start + 1)
    return mid


def split_status_message(text: str, max_line: int = STATUS_LINE_CHARS) -> list[str]:
    clean = (text or "").strip()
    if not clean:
        return []
    if "\n" in clean:
        return [line.strip() for line in clean.split("\n") if line.strip()]
    if len(clean) <= max_line:
        return [clean]
    split = find_natural_break(clean)
    lines: list[str] = []
    for part in (clean[:split].strip(), clean[split:].strip()):
        if len(part) > max_line:
            lines.extend(split_status_message(part, max_line))
        elif part:
            lines.append(part)
    return lines


def message_layout(lines: list[str], width: float = 0, height: float = 0) -> dict:
    """Font size for a status message so it fills the card without overflowing."""
    line_count = max(1, len(lines))
    max_chars = max((len(line) for line in lines), default=1) or 1
    available_height = height - 60 if height > 0 else DEFAULT_BOX_PX
    available_width = width - 40 if width > 0 else DEFAULT_BOX_PX

    if line_count == 1:
        if max_chars <= 4:
            font = min(available_height / max_chars * 0.9, 200)
        elif max_chars <= 8:
            font = min(available_height / max_chars * 0.8, 150)
        else:
            font = min(available_height / max_chars * 0.7, 120)
        line_height = 1.0
    elif line_count == 2:
        font = min(available_height / max_chars * 0.65, available_width / 2.5)
        line_height = 1.1
    else:
        font = min(available_height / max_chars * 0.5, available_width / 3.2)
        line_height = 1.2

    font = max(MIN_FONT_PX, min(font, MAX_FONT_PX))
    return {
        "fontSize": int(math.floor(font + 0.5)),
        "lineHeight": line_height,
        "lines": list(lines),
        "lineCount": len(lines),
        "maxCharsPerLine": max_chars,
    }


def optimize_title(text: str, max_len: int = TITLE_LINE_CHARS) -> str:
    text = (text or "").strip()
    if len(text) <= max_len or "\n" in text:
        return text
    mid = len(text) // 2
    spaces = [index for index, char in enumerate(text) if char == " "]
    # the space right after the icon is not a useful break
    spaces = [index for index in spaces if index > 2]
    if spaces:
        split = min(spaces, key=lambda index: abs(index - mid))
        return f"{text[:split].rstrip()}\n{text[split + 1:].lstrip()}"
    return f"{text[:mid]}\n{text[mid:]}"


def title_classes(title: str) -> tuple[list[str], list[str]]:
    """(classes for the title element, classes for the card) by title length."""
    length = len(title)
    if length > XLONG_TITLE_CHARS:
        return ["long-title", "xlong-title"], ["wide-card"]
    if length > LONG_TITLE_CHARS:
        return ["long-title"], ["wide-card"]
    return [], []


def room_label_class(label: str) -> str:
    length = len(_WHITESPACE_RE.sub("", label or ""))
    if length >= 6:
        return "room-label-compact"
    if length >= 3:
        return "room-label-tight"
    return ""
