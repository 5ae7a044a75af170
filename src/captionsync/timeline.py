"""
Global timeline accumulation across concatenated clips.
"""

import logging
import math

from .config import GAP_SECONDS
from .errors import DurationProbeFailed, OutOfOrderClip
from .models import CaptionEntry, Clip

logger = logging.getLogger("captionsync")


class TimelineAccumulator:
    """
    Tracks where each clip starts in the assembled audio.

    The offset starts at 0 and, after each clip, grows by the clip's
    measured duration plus ``gap_seconds``. Caption end times are never used
    to advance it, so transcription over/under-runs cannot compound.
    Clips must arrive in strictly ascending ordinal order.
    """

    def __init__(self, gap_seconds: float = GAP_SECONDS):
        if gap_seconds < 0:
            raise ValueError("gap_seconds must be >= 0")
        self.gap_seconds = gap_seconds
        self._offset = 0.0
        self._last_ordinal: int | None = None

    @property
    def offset(self) -> float:
        return self._offset

    def _check_order(self, clip: Clip) -> None:
        if self._last_ordinal is not None and clip.ordinal <= self._last_ordinal:
            raise OutOfOrderClip(
                f"Clip {clip.ordinal} submitted after clip {self._last_ordinal}",
                ordinal=clip.ordinal,
                stage="timeline",
            )

    def translate(self, entries: list[CaptionEntry], clip: Clip) -> list[CaptionEntry]:
        """Shift a clip's local captions into global time, then advance."""
        self._check_order(clip)
        shifted = [
            CaptionEntry(index=e.index, start=e.start + self._offset, end=e.end + self._offset, text=e.text)
            for e in entries
        ]
        if entries and entries[-1].end > clip.duration_seconds + self.gap_seconds:
            logger.warning(
                f"Clip {clip.ordinal}: last caption ends at {entries[-1].end:.3f}s, "
                f"past measured duration {clip.duration_seconds:.3f}s"
            )
        self.advance(clip)
        return shifted

    def advance(self, clip: Clip) -> None:
        """Move the offset past ``clip`` without emitting captions."""
        self._check_order(clip)
        d = clip.duration_seconds
        if d is None or math.isnan(d) or math.isinf(d) or d < 0:
            raise DurationProbeFailed(f"Invalid clip duration {d!r}", ordinal=clip.ordinal, stage="timeline")
        self._offset += d + self.gap_seconds
        self._last_ordinal = clip.ordinal
        logger.debug(f"Clip {clip.ordinal}: offset -> {self._offset:.3f}s")
