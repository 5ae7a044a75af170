"""
Per-line clip production (synthesis + duration probe) with bounded parallelism.
"""

import asyncio
import logging
import os
from collections.abc import Callable

from tqdm.asyncio import tqdm

from .errors import CaptionSyncError, DurationProbeFailed, SynthesisFailed
from .io_ffmpeg import ensure_dir, probe_duration
from .models import Clip, TranscriptLine
from .tts import SynthFunc

logger = logging.getLogger("captionsync")


def clip_audio_path(voice_dir: str, speaker: str, ordinal: int) -> str:
    return os.path.join(voice_dir, f"{speaker}-{ordinal}.mp3")


def _tag(e: CaptionSyncError, ordinal: int, stage: str) -> CaptionSyncError:
    return type(e)(e.message, ordinal=ordinal, stage=e.stage or stage)


async def produce_clips_async(
    lines: list[TranscriptLine],
    synth: SynthFunc,
    voice_dir: str,
    probe: Callable[[str], float] = probe_duration,
    max_concurrent: int = 5,
    skip_existing: bool = False,
) -> list[Clip]:
    """Synthesize and measure every line; clips are returned in ordinal order.

    Work for different lines runs concurrently (at most ``max_concurrent`` at
    a time); the first failure aborts the whole batch.
    """
    ordinals = [ln.ordinal for ln in lines]
    if len(set(ordinals)) != len(ordinals):
        raise ValueError("Transcript line ordinals must be unique")
    ensure_dir(voice_dir)
    semaphore = asyncio.Semaphore(max_concurrent)

    async def produce_one(line: TranscriptLine) -> Clip:
        async with semaphore:
            path = clip_audio_path(voice_dir, line.speaker, line.ordinal)
            if skip_existing and os.path.exists(path):
                logger.debug(f"Reusing {path}")
            else:
                try:
                    await asyncio.to_thread(synth, line.speaker, line.text, path)
                except CaptionSyncError as e:
                    raise _tag(e, line.ordinal, "synthesis") from e
                except Exception as e:
                    raise SynthesisFailed(str(e), ordinal=line.ordinal, stage="synthesis") from e
            try:
                duration = await asyncio.to_thread(probe, path)
            except CaptionSyncError as e:
                raise _tag(e, line.ordinal, "duration") from e
            except Exception as e:
                raise DurationProbeFailed(str(e), ordinal=line.ordinal, stage="duration") from e
            return Clip(ordinal=line.ordinal, audio_ref=path, duration_seconds=float(duration))

    clips = await tqdm.gather(*[produce_one(ln) for ln in lines], desc="TTS clips")
    return sorted(clips, key=lambda c: c.ordinal)


def produce_clips(
    lines: list[TranscriptLine],
    synth: SynthFunc,
    voice_dir: str,
    probe: Callable[[str], float] = probe_duration,
    max_concurrent: int = 5,
    skip_existing: bool = False,
) -> list[Clip]:
    """Sync wrapper for produce_clips_async."""
    return asyncio.run(
        produce_clips_async(lines, synth, voice_dir, probe, max_concurrent, skip_existing)
    )
