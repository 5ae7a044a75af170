"""
Audio utilities: duration probing via ffprobe and clip concatenation via pydub.
"""

import logging
import math
import subprocess
from pathlib import Path

from pydub import AudioSegment

from .errors import DurationProbeFailed

logger = logging.getLogger("captionsync")

DRIFT_WARN_SECONDS = 0.005


def run(cmd: list[str], *, check: bool = True) -> str:
    """Run a shell command and return stdout."""
    logger.debug("Running: %s", " ".join(map(str, cmd)))
    try:
        proc = subprocess.run(
            cmd, stdout=subprocess.PIPE, stderr=subprocess.STDOUT, text=True, check=False
        )
    except FileNotFoundError as e:
        raise RuntimeError(f"{cmd[0]} not found on PATH") from e
    if proc.returncode != 0 and check:
        logger.error("Command failed with code %d: %s", proc.returncode, proc.stdout)
        msg = f"Command failed with code {proc.returncode}"
        raise RuntimeError(msg)
    return proc.stdout


def ensure_dir(path: str) -> None:
    """Ensure directory exists."""
    if path:
        Path(path).mkdir(parents=True, exist_ok=True)


def probe_duration(audio_path: str) -> float:
    """Measured duration of an audio file in seconds."""
    try:
        out = run(
            [
                "ffprobe",
                "-v",
                "error",
                "-show_entries",
                "format=duration",
                "-of",
                "default=noprint_wrappers=1:nokey=1",
                audio_path,
            ]
        )
        seconds = float(out.strip())
    except (RuntimeError, ValueError) as e:
        raise DurationProbeFailed(f"Could not probe {audio_path}: {e}", stage="duration") from e
    if math.isnan(seconds) or seconds < 0:
        raise DurationProbeFailed(f"ffprobe reported {seconds} for {audio_path}", stage="duration")
    return seconds


def concatenate_clips(
    audio_paths: list[str],
    out_path: str,
    gap_seconds: float,
    expected_seconds: list[float] | None = None,
) -> AudioSegment:
    """
    Join clips in order, each followed by ``gap_seconds`` of silence.

    ``expected_seconds`` are the durations the caption timeline was built
    from; the difference to each decoded clip is logged, and clips off by
    more than DRIFT_WARN_SECONDS are reported as warnings.
    """
    if expected_seconds is not None and len(expected_seconds) != len(audio_paths):
        raise ValueError(f"Got {len(expected_seconds)} durations for {len(audio_paths)} clips")
    ensure_dir(str(Path(out_path).parent))
    gap = AudioSegment.silent(duration=int(round(gap_seconds * 1000)))
    combined = AudioSegment.silent(duration=0)
    drift = 0.0
    for i, p in enumerate(audio_paths):
        seg = AudioSegment.from_file(p)
        if expected_seconds is not None:
            decoded = len(seg) / 1000
            diff = decoded - expected_seconds[i]
            drift += diff
            msg = (
                f"Clip {p}: decoded {decoded:.3f}s, "
                f"timeline {expected_seconds[i]:.3f}s ({diff * 1000:+.0f} ms)"
            )
            if abs(diff) > DRIFT_WARN_SECONDS:
                logger.warning(msg)
            else:
                logger.debug(msg)
        combined += seg + gap
    if expected_seconds is not None:
        logger.info(f"Audio vs caption timeline drift after {len(audio_paths)} clips: {drift * 1000:+.0f} ms")
    fmt = Path(out_path).suffix.lstrip(".") or "mp3"
    combined.export(out_path, format=fmt)
    logger.info(f"Concatenated {len(audio_paths)} clips -> {out_path} ({len(combined) / 1000:.3f}s)")
    return combined
