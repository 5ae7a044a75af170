"""
Word-level caption building for a single clip.
"""

import logging
import math

from .config import MIN_CAPTION_SECONDS
from .errors import EmptyTranscription
from .models import CaptionEntry, TranscriptionResult, WordTimestamp

logger = logging.getLogger("captionsync")


def flatten_words(result: TranscriptionResult) -> list[WordTimestamp]:
    """All words of a transcription, segments flattened in order."""
    return result.words()


def build_captions(
    words: list[WordTimestamp],
    min_duration: float = MIN_CAPTION_SECONDS,
    ordinal: int | None = None,
) -> list[CaptionEntry]:
    """
    One caption per word, timed local to the clip.

    A caption runs from its word's start to the next word's start, so pauses
    between words stay on screen with the previous word. The last caption
    ends at its own word's end. Starts are clamped to be >= 0 and
    non-decreasing; captions shorter than ``min_duration`` are widened.
    Words with a NaN or infinite start or end are dropped.
    """
    spoken = []
    for w in words:
        if not (w.text or "").strip():
            continue
        if not (math.isfinite(w.start) and math.isfinite(w.end)):
            logger.warning(f"Dropping {w.text!r} with non-finite timing ({w.start}, {w.end})")
            continue
        spoken.append(w)
    if not spoken:
        raise EmptyTranscription("No words recognized", ordinal=ordinal, stage="captions")

    starts: list[float] = []
    prev = 0.0
    for w in spoken:
        s = max(prev, float(w.start), 0.0)
        if s != w.start:
            logger.debug(f"Clamped start of {w.text!r} from {w.start:.3f} to {s:.3f}")
        starts.append(s)
        prev = s

    out: list[CaptionEntry] = []
    for i, w in enumerate(spoken):
        start = starts[i]
        end = starts[i + 1] if i + 1 < len(spoken) else float(w.end)
        if end - start < min_duration:
            end = start + min_duration
        out.append(CaptionEntry(index=i + 1, start=start, end=end, text=w.text.strip()))
    return out
