"""
Speech-to-text with word timestamps: local transcription server, OpenAI Whisper, faster-whisper.
"""

import json
import logging
import math
from collections.abc import Callable, Mapping
from typing import Any

import httpx

from .config import DEFAULT_TRANSCRIBE_URL
from .errors import TranscriptionUnavailable
from .models import TranscriptionResult, WordTimestamp

logger = logging.getLogger("captionsync")

# Optional OpenAI SDK
try:
    from openai import OpenAI
except ImportError:
    OpenAI = None

# transcribe(audio_paths) -> one result per path, same order
Transcriber = Callable[[list[str]], list[TranscriptionResult]]


def _get(obj: Any, key: str, default: Any = None) -> Any:
    if isinstance(obj, dict):
        return obj.get(key, default)
    return getattr(obj, key, default)


def _parse_word(w: Any) -> WordTimestamp | None:
    text = _get(w, "text")
    if text is None:
        text = _get(w, "word", "")
    try:
        start = float(_get(w, "start"))
        end = float(_get(w, "end"))
    except (TypeError, ValueError):
        logger.warning(f"Dropping word with malformed timestamps: {w!r}")
        return None
    if not (math.isfinite(start) and math.isfinite(end)):
        logger.warning(f"Dropping word with non-finite timestamps: {w!r}")
        return None
    return WordTimestamp(text=str(text), start=start, end=end)


def parse_transcription_result(payload: Any) -> TranscriptionResult:
    """
    Build a TranscriptionResult from a service response for one clip.

    Accepts dicts or SDK objects with ``segments[].words[]``, a flat
    ``words[]`` list, or a one-element list wrapping either.
    """
    if isinstance(payload, list):
        payload = payload[0] if payload else {}
    segs = _get(payload, "segments") or []
    if not any(_get(s, "words") for s in segs):
        flat = _get(payload, "words") or []
        segs = [{"words": flat}] if flat else []

    out: list[list[WordTimestamp]] = []
    for seg in segs:
        words = [p for p in (_parse_word(w) for w in (_get(seg, "words") or [])) if p is not None]
        out.append(words)
    return TranscriptionResult(segments=out)


class TranscriptionServerClient:
    """Client for a local transcription server returning word timestamps.

    POSTs ``{"audios": [path, ...]}`` and expects a JSON array with one result
    per path, in request order.
    """

    def __init__(
        self,
        url: str = DEFAULT_TRANSCRIBE_URL,
        timeout: float = 600.0,
        http_client: httpx.Client | None = None,
    ):
        self.url = url
        self.timeout = timeout
        self._client = http_client

    def __call__(self, audio_paths: list[str]) -> list[TranscriptionResult]:
        return self.transcribe(audio_paths)

    def transcribe(self, audio_paths: list[str]) -> list[TranscriptionResult]:
        client = self._client or httpx.Client(timeout=self.timeout)
        logger.info(f"Transcribing {len(audio_paths)} clip(s) via {self.url} …")
        try:
            r = client.post(self.url, json={"audios": audio_paths})
            r.raise_for_status()
            data = r.json()
        except httpx.TimeoutException as e:
            raise TranscriptionUnavailable(f"Transcription timed out: {e}", stage="transcription") from e
        except httpx.HTTPStatusError as e:
            raise TranscriptionUnavailable(
                f"Transcription server responded with status {e.response.status_code}",
                stage="transcription",
            ) from e
        except (httpx.HTTPError, ValueError) as e:
            raise TranscriptionUnavailable(f"Transcription failed: {e}", stage="transcription") from e
        finally:
            if self._client is None:
                client.close()

        if not isinstance(data, list):
            raise TranscriptionUnavailable("Transcription server returned a non-list body", stage="transcription")
        return [parse_transcription_result(item) for item in data]


def transcribe_whisper_api(
    client: OpenAI, audio_paths: list[str], model: str = "whisper-1", language: str | None = None
) -> list[TranscriptionResult]:
    """Transcribe each clip with the OpenAI API, requesting word timestamps."""
    if client is None:
        raise TranscriptionUnavailable(
            "OpenAI client is not initialized (missing OPENAI_API_KEY)", stage="transcription"
        )

    results: list[TranscriptionResult] = []
    for path in audio_paths:
        kwargs = {
            "model": model,
            "response_format": "verbose_json",
            "timestamp_granularities": ["word", "segment"],
        }
        if language:
            kwargs["language"] = language
        try:
            with open(path, "rb") as f:
                logger.info(f"Transcribing {path} with {model} …")
                resp = client.audio.transcriptions.create(file=f, **kwargs)
        except Exception as e:
            raise TranscriptionUnavailable(f"Whisper API failed for {path}: {e}", stage="transcription") from e
        results.append(parse_transcription_result({"words": _get(resp, "words") or []}))
    return results


def transcribe_local_faster_whisper(
    audio_paths: list[str], local_model: str = "base", beam_size: int = 1, language: str | None = None
) -> list[TranscriptionResult]:
    """Transcribe clips locally with faster-whisper word timestamps."""
    try:
        from faster_whisper import WhisperModel
    except ImportError as e:
        raise RuntimeError(
            "faster-whisper is not installed. Install with: pip install 'captionsync[local]'"
        ) from e

    logger.info(f"Transcribing locally with faster-whisper ({local_model}) …")
    model = WhisperModel(local_model, device="cpu", compute_type="int8")

    results: list[TranscriptionResult] = []
    for path in audio_paths:
        segments_iter, _info = model.transcribe(
            path,
            language=language,
            beam_size=beam_size,
            word_timestamps=True,
        )
        segs = [
            [WordTimestamp(text=w.word, start=float(w.start), end=float(w.end)) for w in (s.words or [])]
            for s in segments_iter
        ]
        results.append(TranscriptionResult(segments=segs))
    return results


def dump_transcriptions(transcriptions: Mapping[int, TranscriptionResult], path: str) -> None:
    """Save transcription results keyed by clip ordinal."""
    data = {
        str(ordinal): {
            "segments": [
                {"words": [{"text": w.text, "start": w.start, "end": w.end} for w in seg]}
                for seg in res.segments
            ]
        }
        for ordinal, res in sorted(transcriptions.items())
    }
    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f, ensure_ascii=False, indent=2)


def load_transcriptions(path: str) -> dict[int, TranscriptionResult]:
    """Load results written by dump_transcriptions."""
    with open(path, encoding="utf-8") as f:
        data = json.load(f)
    return {int(k): parse_transcription_result(v) for k, v in data.items()}
