"""
Caption synchronization pass and end-to-end pipeline orchestration.
"""

import logging
import os
from collections.abc import Callable, Mapping

from tqdm import tqdm

from .assembler import Cleaner, assemble_merged, assemble_per_clip
from .captions import build_captions, flatten_words
from .cleaning import clean_captions
from .config import PipelineConfig
from .errors import (
    CaptionSyncError,
    CleaningFailed,
    EmptyTranscription,
    IncompleteCaptionTrack,
    RenderFailed,
    TranscriptionUnavailable,
    UnknownSpeaker,
)
from .io_ffmpeg import concatenate_clips, probe_duration
from .models import CaptionEntry, CaptionTrack, Clip, ClipFailure, TranscriptionResult, TranscriptLine
from .production import produce_clips
from .srt_utils import format_srt, write_manifest, write_track
from .status import NullStatusSink, StatusSink, report_status
from .stt import Transcriber, dump_transcriptions
from .timeline import TimelineAccumulator
from .tts import SynthFunc

logger = logging.getLogger("captionsync")


def correlate_results(
    clips: list[Clip], results: list[TranscriptionResult]
) -> dict[int, TranscriptionResult]:
    """Map a batched transcription response (request order) to clip ordinals."""
    if len(results) != len(clips):
        raise TranscriptionUnavailable(
            f"Expected {len(clips)} transcription results, got {len(results)}",
            stage="transcription",
        )
    return {clip.ordinal: res for clip, res in zip(clips, results)}


def _guarded(cleaner: Cleaner) -> Cleaner:
    def _clean(lines: list[TranscriptLine], entries: list[CaptionEntry]) -> list[CaptionEntry]:
        try:
            return cleaner(lines, entries)
        except CaptionSyncError:
            raise
        except Exception as e:
            raise CleaningFailed(f"Cleaner failed: {e}", stage="cleaning") from e

    return _clean


def synchronize_captions(
    lines: list[TranscriptLine],
    clips: list[Clip],
    transcriptions: Mapping[int, TranscriptionResult],
    config: PipelineConfig,
    cleaner: Cleaner | None = None,
) -> list[CaptionTrack]:
    """
    Turn per-clip word timestamps into globally timed caption tracks.

    Clips are walked in ordinal order through a single TimelineAccumulator.
    Clips without words are collected as failures; if any clip failed,
    IncompleteCaptionTrack is raised and no track is returned. Any other
    error aborts the pass immediately.
    """
    by_ordinal = {ln.ordinal: ln for ln in lines}
    for clip in clips:
        if clip.ordinal not in by_ordinal:
            raise ValueError(f"No transcript line for clip {clip.ordinal}")

    timeline = TimelineAccumulator(config.gap_seconds)
    failures: list[ClipFailure] = []
    clip_entries: dict[int, list[CaptionEntry]] = {}

    for clip in tqdm(sorted(clips, key=lambda c: c.ordinal), desc="Captions", disable=len(clips) < 2):
        result = transcriptions.get(clip.ordinal)
        if result is None:
            raise TranscriptionUnavailable(
                "No transcription result for clip", ordinal=clip.ordinal, stage="transcription"
            )
        try:
            local = build_captions(flatten_words(result), config.min_caption_seconds, ordinal=clip.ordinal)
        except EmptyTranscription as e:
            logger.warning(f"Clip {clip.ordinal}: {e.message}")
            failures.append(ClipFailure(ordinal=clip.ordinal, stage="captions", error=e))
            timeline.advance(clip)
            continue
        clip_entries[clip.ordinal] = timeline.translate(local, clip)

    if failures:
        raise IncompleteCaptionTrack(failures)

    logger.info(f"Timeline: {len(clips)} clips, total {timeline.offset:.3f}s")
    if cleaner is not None and not config.clean:
        logger.warning("A cleaner was given but cleaning is off; keeping word-level captions")
    if config.mode == "per-clip":
        return assemble_per_clip(lines, clip_entries, config.output_dir)

    if config.clean and cleaner is None:
        cleaner = clean_captions
    destination = os.path.join(config.output_dir, config.merged_name)
    return [assemble_merged(lines, clip_entries, destination, _guarded(cleaner) if config.clean else None)]


def run_pipeline(
    lines: list[TranscriptLine],
    config: PipelineConfig,
    synth: SynthFunc,
    transcriber: Transcriber,
    probe: Callable[[str], float] = probe_duration,
    status: StatusSink | None = None,
    cleaner: Cleaner | None = None,
    job_id: str | None = None,
    voices: Mapping[str, str] | None = None,
    transcriptions: Mapping[int, TranscriptionResult] | None = None,
    concat_path: str | None = None,
    transcriptions_path: str | None = None,
) -> list[CaptionTrack]:
    """
    Synthesize, transcribe and caption a dialogue; write the caption files.

    Files are written only after every clip has been captioned and every
    track has been serialized. ``voices``,
    when given, is checked to cover every speaker before any synthesis.
    ``transcriptions`` skips the transcription call (results keyed by ordinal);
    otherwise fresh results are saved to ``transcriptions_path`` when given.
    """
    sink = NullStatusSink() if config.local else status
    lines = sorted(lines, key=lambda ln: ln.ordinal)
    if voices is not None:
        missing = sorted({ln.speaker for ln in lines} - set(voices))
        if missing:
            raise UnknownSpeaker(f"No voice configured for: {', '.join(missing)}", stage="speakers")

    try:
        report_status(sink, job_id, "Generating audio", 12)
        clips = produce_clips(
            lines,
            synth,
            config.voice_dir,
            probe=probe,
            max_concurrent=config.max_concurrent,
            skip_existing=config.skip_existing,
        )

        if concat_path:
            concatenate_clips(
                [c.audio_ref for c in clips],
                concat_path,
                config.gap_seconds,
                expected_seconds=[c.duration_seconds for c in clips],
            )

        if transcriptions is None:
            report_status(sink, job_id, "Transcribing audio", 20)
            try:
                results = transcriber([c.audio_ref for c in clips])
            except CaptionSyncError:
                raise
            except Exception as e:
                raise TranscriptionUnavailable(str(e), stage="transcription") from e
            transcriptions = correlate_results(clips, results)
            if transcriptions_path:
                dump_transcriptions(transcriptions, transcriptions_path)
                logger.info(f"Saved transcriptions -> {transcriptions_path}")

        if config.clean:
            report_status(sink, job_id, "Cleaning subtitle srt files", 35)
        tracks = synchronize_captions(lines, clips, transcriptions, config, cleaner)

        rendered: list[tuple[CaptionTrack, str]] = []
        for track in tracks:
            try:
                rendered.append((track, format_srt(track.entries)))
            except ValueError as e:
                raise RenderFailed(
                    f"Cannot serialize {track.destination}: {e}", ordinal=track.ordinal, stage="render"
                ) from e
    except CaptionSyncError as e:
        logger.error(f"Caption sync aborted: {e}")
        report_status(sink, job_id, "Caption sync failed", 0)
        raise

    for track, text in rendered:
        write_track(track, text)
    write_manifest(tracks, os.path.join(config.output_dir, "manifest.json"))
    report_status(sink, job_id, "Captions complete", 100)
    return tracks
