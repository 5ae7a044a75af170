"""
Data models for the caption synchronization pipeline.
"""

from dataclasses import dataclass, field


@dataclass(frozen=True)
class TranscriptLine:
    """One dialogue line; maps to exactly one audio clip."""

    speaker: str
    text: str
    ordinal: int


@dataclass(frozen=True)
class Clip:
    """A synthesized audio clip with its measured duration."""

    ordinal: int
    audio_ref: str
    duration_seconds: float


@dataclass
class WordTimestamp:
    """A recognized word, timed relative to its own clip."""

    text: str
    start: float  # seconds
    end: float  # seconds


@dataclass
class TranscriptionResult:
    """Word-level transcription of one clip, grouped in segments."""

    segments: list[list[WordTimestamp]] = field(default_factory=list)

    def words(self) -> list[WordTimestamp]:
        return [w for seg in self.segments for w in seg]


@dataclass
class CaptionEntry:
    """A single timed caption."""

    index: int
    start: float  # seconds
    end: float  # seconds
    text: str


@dataclass
class CaptionTrack:
    """Ordered captions destined for one output file."""

    destination: str
    entries: list[CaptionEntry]
    speaker: str | None = None
    ordinal: int | None = None


@dataclass
class ClipFailure:
    """A per-clip failure collected during a synchronization pass."""

    ordinal: int
    stage: str
    error: Exception
