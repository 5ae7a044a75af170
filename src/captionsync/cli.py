"""
Command-line interface for the caption synchronization pipeline.
"""

import argparse
import json
import logging
import os
import sys
from functools import partial

from .cleaning import clean_captions, make_gpt_cleaner
from .config import (
    DEFAULT_ELEVENLABS_MODEL,
    DEFAULT_MERGED_NAME,
    DEFAULT_TRANSCRIBE_URL,
    GAP_SECONDS,
    PipelineConfig,
    load_env,
)
from .errors import CaptionSyncError
from .io_ffmpeg import ensure_dir
from .models import TranscriptLine
from .pipeline import run_pipeline
from .speakers import load_voice_map
from .status import HttpStatusSink, LoggingStatusSink
from .stt import (
    TranscriptionServerClient,
    load_transcriptions,
    transcribe_local_faster_whisper,
    transcribe_whisper_api,
)
from .tts import make_synth_elevenlabs, make_synth_openai

logger = logging.getLogger("captionsync")

# Optional OpenAI SDK
try:
    from openai import OpenAI
except ImportError:
    OpenAI = None


def setup_logging(verbose: bool = False) -> None:
    """Setup logging configuration."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")


def load_transcript(path: str) -> list[TranscriptLine]:
    """Read dialogue lines from JSON.

    Accepts a list (or ``{"transcript": [...]}``) of objects with
    ``person``/``speaker`` and ``line``/``text``; ordinals follow list order.
    """
    with open(path, encoding="utf-8") as f:
        data = json.load(f)
    if isinstance(data, dict):
        data = data.get("transcript", [])
    lines: list[TranscriptLine] = []
    for i, item in enumerate(data):
        speaker = item.get("person") or item.get("speaker")
        text = item.get("line") or item.get("text")
        if not speaker or text is None:
            raise ValueError(f"{path}: line {i} needs 'person' and 'line'")
        lines.append(TranscriptLine(speaker=str(speaker), text=str(text), ordinal=i))
    return lines


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    ap = argparse.ArgumentParser(description="Dialogue narration with synchronized captions")

    # IO
    ap.add_argument("--transcript", required=True, help="Dialogue JSON: [{person, line}, ...]")
    ap.add_argument("--workdir", default=".work")
    ap.add_argument("--voice-dir", default="public/voice")
    ap.add_argument("--output-dir", default="public/srt")
    ap.add_argument("--audio-out", default=None, help="Concatenated audio (default: <workdir>/audio.mp3)")

    # Captions
    ap.add_argument("--mode", choices=["per-clip", "merged"], default="per-clip")
    ap.add_argument("--merged-name", default=DEFAULT_MERGED_NAME)
    ap.add_argument("--gap", type=float, default=GAP_SECONDS, help="Silence after each clip (sec)")
    ap.add_argument("--clean", action="store_true", help="Regroup word captions by line/sentence")
    ap.add_argument("--gpt-clean", action="store_true", help="Clean and polish captions with GPT")
    ap.add_argument("--gpt-model", default="gpt-4o-mini")
    ap.add_argument("--max-chars", type=int, default=42, help="Wrap width for cleaned captions")
    ap.add_argument("--max-lines", type=int, default=2, help="Max lines per cleaned caption")

    # TTS
    ap.add_argument("--tts-provider", choices=["elevenlabs", "openai"], default="elevenlabs")
    ap.add_argument("--elevenlabs-model-id", default=DEFAULT_ELEVENLABS_MODEL)
    ap.add_argument("--tts-model", default="gpt-4o-mini-tts", help="Used when --tts-provider=openai")
    ap.add_argument("--voices-file", default=None, help="JSON object speaker -> voice id")
    ap.add_argument("--max-concurrent", type=int, default=5, help="Parallel TTS requests")
    ap.add_argument(
        "--no-tts",
        action="store_true",
        help="Reuse clips already in --voice-dir instead of synthesizing",
    )

    # STT
    ap.add_argument("--stt", choices=["server", "openai", "local"], default="server")
    ap.add_argument("--transcribe-url", default=DEFAULT_TRANSCRIBE_URL)
    ap.add_argument("--whisper-model", default="whisper-1")
    ap.add_argument("--local-model", default="base")
    ap.add_argument(
        "--transcriptions-json",
        default=None,
        help="Use saved transcription results (skip STT)",
    )

    # Job status
    ap.add_argument("--job-id", default=None, help="Report progress for this job (disables local mode)")
    ap.add_argument("--status-url", default=os.getenv("STATUS_URL"))

    # Logging
    ap.add_argument("--verbose", "-v", action="store_true", help="Enable verbose logging")

    return ap.parse_args(argv)


def _openai_client() -> "OpenAI":
    if not OpenAI:
        raise RuntimeError("openai package not installed. Install with: pip install openai")
    key = os.getenv("OPENAI_API_KEY")
    if not key:
        raise RuntimeError("OPENAI_API_KEY is not set. Put it in .env or environment.")
    return OpenAI(api_key=key)


def main(argv: list[str] | None = None) -> None:
    """Main CLI entry point."""
    load_env()
    args = parse_args(argv)
    setup_logging(args.verbose)

    lines = load_transcript(args.transcript)
    logger.info(f"Loaded transcript -> {args.transcript} ({len(lines)} lines)")
    ensure_dir(args.workdir)

    config = PipelineConfig(
        output_dir=args.output_dir,
        voice_dir=args.voice_dir,
        workdir=args.workdir,
        mode=args.mode,
        merged_name=args.merged_name,
        gap_seconds=args.gap,
        clean=args.clean or args.gpt_clean,
        local=args.job_id is None,
        max_concurrent=args.max_concurrent,
        skip_existing=args.no_tts,
    )

    need_openai = args.tts_provider == "openai" or args.stt == "openai" or args.gpt_clean
    client = _openai_client() if need_openai else None

    try:
        voices = load_voice_map([ln.speaker for ln in lines], voices_file=args.voices_file)

        if args.tts_provider == "openai":
            synth = make_synth_openai(client, args.tts_model, voices)
        else:
            eleven_key = os.getenv("ELEVENLABS_API_KEY") or os.getenv("ELEVEN_API_KEY")
            if not eleven_key and not args.no_tts:
                raise RuntimeError("ELEVENLABS_API_KEY is not set. Put it in .env or environment.")
            synth = make_synth_elevenlabs(eleven_key, voices, args.elevenlabs_model_id)

        if args.stt == "openai":

            def transcriber(paths):
                return transcribe_whisper_api(client, paths, model=args.whisper_model)

        elif args.stt == "local":

            def transcriber(paths):
                return transcribe_local_faster_whisper(paths, local_model=args.local_model)

        else:
            transcriber = TranscriptionServerClient(args.transcribe_url)

        transcriptions = None
        if args.transcriptions_json:
            transcriptions = load_transcriptions(args.transcriptions_json)
            logger.info(f"Loaded transcriptions -> {args.transcriptions_json} ({len(transcriptions)} clips)")

        cleaner = None
        if args.gpt_clean:
            cleaner = make_gpt_cleaner(client, args.gpt_model, args.max_chars, args.max_lines)
        elif args.clean:
            cleaner = partial(clean_captions, max_chars=args.max_chars, max_lines=args.max_lines)

        status = HttpStatusSink(args.status_url) if args.status_url else LoggingStatusSink()

        tracks = run_pipeline(
            lines,
            config,
            synth,
            transcriber,
            status=status,
            cleaner=cleaner,
            job_id=args.job_id,
            voices=voices,
            transcriptions=transcriptions,
            concat_path=args.audio_out or os.path.join(args.workdir, "audio.mp3"),
            transcriptions_path=os.path.join(args.workdir, "transcriptions.json"),
        )
    except CaptionSyncError as e:
        logger.error(str(e))
        sys.exit(1)

    logger.info(f"Done ({len(tracks)} caption file(s) in {config.output_dir})")


if __name__ == "__main__":
    main()
