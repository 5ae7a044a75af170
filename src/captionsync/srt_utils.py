"""
SRT formatting, writing and parsing utilities.
"""

import json
import logging
import re
from pathlib import Path

from .errors import MalformedTimestamp
from .models import CaptionEntry, CaptionTrack
from .timecodec import decode, encode

logger = logging.getLogger("captionsync")

_TIMING_RE = re.compile(r"^\s*(\S+)\s+-->\s+(\S+)\s*$")


def format_srt(entries: list[CaptionEntry]) -> str:
    """Serialize entries; each block ends with a blank line."""
    out = []
    for e in entries:
        out.append(f"{e.index}\n{encode(e.start)} --> {encode(e.end)}\n{e.text}\n\n")
    return "".join(out)


def write_srt_text(text: str, path: str) -> None:
    """Write serialized SRT text (UTF-8, no BOM, LF line breaks)."""
    parent = Path(path).parent
    parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8", newline="\n") as f:
        f.write(text)


def write_srt(entries: list[CaptionEntry], path: str) -> None:
    """Write entries to an SRT file."""
    write_srt_text(format_srt(entries), path)


def write_track(track: CaptionTrack, text: str | None = None) -> None:
    """Write a track; ``text`` is its already serialized form, if any."""
    write_srt_text(format_srt(track.entries) if text is None else text, track.destination)
    logger.info(f"Saved SRT -> {track.destination} ({len(track.entries)} entries)")


def parse_srt_text(raw: str) -> list[CaptionEntry]:
    """Parse SRT text back into caption entries.

    Blocks without a valid timing line are skipped with a warning; caption
    text keeps its line breaks.
    """
    raw = raw.replace("\r\n", "\n").lstrip("\ufeff")
    blocks = re.split(r"\n\s*\n", raw.strip())
    out: list[CaptionEntry] = []
    for b in blocks:
        lines = b.split("\n")
        if not lines or not lines[0].strip():
            continue
        index = None
        if re.match(r"^\d+$", lines[0].strip()):
            index = int(lines[0].strip())
            lines = lines[1:]
        if not lines:
            continue
        m = _TIMING_RE.match(lines[0])
        if not m:
            logger.warning(f"Skipping SRT block without timing line: {lines[0]!r}")
            continue
        try:
            start = decode(m.group(1))
            end = decode(m.group(2))
        except MalformedTimestamp as e:
            logger.warning(f"Skipping SRT block: {e}")
            continue
        text = "\n".join(lines[1:])
        out.append(
            CaptionEntry(
                index=index if index is not None else len(out) + 1,
                start=start,
                end=end,
                text=text,
            )
        )
    return out


def parse_srt(path: str) -> list[CaptionEntry]:
    """Parse an SRT file into caption entries."""
    with open(path, encoding="utf-8") as f:
        return parse_srt_text(f.read())


def write_manifest(tracks: list[CaptionTrack], path: str) -> None:
    """Write a JSON listing of the caption files produced by a run."""
    items = [
        {
            "file": t.destination,
            "speaker": t.speaker,
            "ordinal": t.ordinal,
            "entries": len(t.entries),
            "start": t.entries[0].start if t.entries else None,
            "end": t.entries[-1].end if t.entries else None,
        }
        for t in tracks
    ]
    Path(path).parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(items, f, ensure_ascii=False, indent=2)


def wrap_lines(text: str, max_chars: int = 42, max_lines: int = 3) -> str:
    """Wrap text to the given width; never drops words.

    Words past ``max_lines`` are appended to the last line.
    """
    words = text.split()
    lines: list[str] = []
    cur: list[str] = []
    for w in words:
        if cur and len(lines) < max_lines - 1 and sum(len(x) for x in cur) + len(cur) + len(w) > max_chars:
            lines.append(" ".join(cur))
            cur = []
        cur.append(w)
    if cur:
        lines.append(" ".join(cur))
    return "\n".join(lines)
