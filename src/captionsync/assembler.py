"""
Caption track assembly: per-clip files or one merged (optionally cleaned) file.
"""

import logging
import os
from collections.abc import Callable

from .models import CaptionEntry, CaptionTrack, TranscriptLine

logger = logging.getLogger("captionsync")

Cleaner = Callable[[list[TranscriptLine], list[CaptionEntry]], list[CaptionEntry]]


def reindex(entries: list[CaptionEntry]) -> list[CaptionEntry]:
    """Copy entries with indices renumbered 1..n."""
    return [CaptionEntry(index=i, start=e.start, end=e.end, text=e.text) for i, e in enumerate(entries, 1)]


def clip_destination(output_dir: str, speaker: str, ordinal: int) -> str:
    """<output_dir>/<speaker>-<ordinal>.srt"""
    return os.path.join(output_dir, f"{speaker}-{ordinal}.srt")


def assemble_per_clip(
    lines: list[TranscriptLine],
    clip_entries: dict[int, list[CaptionEntry]],
    output_dir: str,
) -> list[CaptionTrack]:
    """One track per clip, each renumbered from 1."""
    by_ordinal = {ln.ordinal: ln for ln in lines}
    tracks: list[CaptionTrack] = []
    for ordinal in sorted(clip_entries):
        line = by_ordinal[ordinal]
        tracks.append(
            CaptionTrack(
                destination=clip_destination(output_dir, line.speaker, ordinal),
                entries=reindex(clip_entries[ordinal]),
                speaker=line.speaker,
                ordinal=ordinal,
            )
        )
    return tracks


def assemble_merged(
    lines: list[TranscriptLine],
    clip_entries: dict[int, list[CaptionEntry]],
    destination: str,
    cleaner: Cleaner | None = None,
) -> CaptionTrack:
    """Concatenate all clips in ordinal order, clean if asked, renumber."""
    merged: list[CaptionEntry] = []
    for ordinal in sorted(clip_entries):
        merged.extend(clip_entries[ordinal])
    if cleaner is not None:
        before = len(merged)
        merged = cleaner(sorted(lines, key=lambda ln: ln.ordinal), merged)
        logger.info(f"Cleaning pass: {before} -> {len(merged)} captions")
    return CaptionTrack(destination=destination, entries=reindex(merged))
