"""
Exception hierarchy for the caption synchronization pipeline.

Every error can carry the ordinal of the clip it concerns and the pipeline
stage that raised it, so a failed run can be reported with a single line.
"""

from .models import ClipFailure


class CaptionSyncError(RuntimeError):
    """Base class for all pipeline errors."""

    def __init__(self, message: str, *, ordinal: int | None = None, stage: str | None = None):
        self.message = message
        self.ordinal = ordinal
        self.stage = stage
        super().__init__(self._describe())

    def _describe(self) -> str:
        where = []
        if self.stage:
            where.append(f"stage={self.stage}")
        if self.ordinal is not None:
            where.append(f"clip={self.ordinal}")
        if not where:
            return self.message
        return f"[{', '.join(where)}] {self.message}"


class MalformedTimestamp(CaptionSyncError, ValueError):
    """A display timestamp does not match HH:MM:SS,mmm."""


class EmptyTranscription(CaptionSyncError):
    """A clip's transcription contained no words."""


class OutOfOrderClip(CaptionSyncError):
    """Clips were fed to the timeline out of ordinal order."""


class TranscriptionUnavailable(CaptionSyncError):
    """The transcription service failed, timed out or lost a result."""


class SynthesisFailed(CaptionSyncError):
    """Speech synthesis for a line failed."""


class DurationProbeFailed(CaptionSyncError):
    """The duration of a clip could not be measured."""


class UnknownSpeaker(CaptionSyncError):
    """A transcript speaker has no configured voice."""


class CleaningFailed(CaptionSyncError):
    """The cleaning pass (regrouping or GPT polishing) failed."""


class RenderFailed(CaptionSyncError):
    """A caption track could not be serialized to SRT."""


class IncompleteCaptionTrack(CaptionSyncError):
    """One or more clips failed; no caption track may be published."""

    def __init__(self, failures: list[ClipFailure]):
        self.failures = failures
        details = "; ".join(f"clip {f.ordinal} ({f.stage}): {f.error}" for f in failures)
        super().__init__(f"{len(failures)} clip(s) failed: {details}", stage="synchronize")
