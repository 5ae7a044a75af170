"""
Pipeline configuration, defaults and .env loading.
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

logger = logging.getLogger("captionsync")

# Silence inserted after every clip in the assembled audio (seconds)
GAP_SECONDS = 0.2
# Shortest caption the builder will emit (seconds)
MIN_CAPTION_SECONDS = 0.001

DEFAULT_TRANSCRIBE_URL = os.getenv("TRANSCRIBE_URL", "http://127.0.0.1:5000/transcribe")
DEFAULT_ELEVENLABS_MODEL = os.getenv("ELEVENLABS_MODEL_ID", "eleven_multilingual_v2")
DEFAULT_MERGED_NAME = "captions.srt"

MODES = ("per-clip", "merged")


@dataclass
class PipelineConfig:
    """Settings for one synchronization run."""

    output_dir: str = "public/srt"
    voice_dir: str = "public/voice"
    workdir: str = ".work"
    mode: str = "per-clip"
    merged_name: str = DEFAULT_MERGED_NAME
    gap_seconds: float = GAP_SECONDS
    min_caption_seconds: float = MIN_CAPTION_SECONDS
    clean: bool = False
    local: bool = True
    max_concurrent: int = 5
    skip_existing: bool = False

    def __post_init__(self) -> None:
        if self.mode not in MODES:
            raise ValueError(f"mode must be one of {MODES}, got {self.mode!r}")
        if self.gap_seconds < 0:
            raise ValueError("gap_seconds must be >= 0")
        if self.min_caption_seconds <= 0:
            raise ValueError("min_caption_seconds must be > 0")
        if self.max_concurrent < 1:
            raise ValueError("max_concurrent must be >= 1")
        if self.clean and self.mode != "merged":
            logger.info("Cleaning requested; switching to merged mode")
            self.mode = "merged"


def load_env() -> None:
    """Load .env from the project root, falling back to the current directory."""
    project_root = Path(__file__).parent.parent.parent
    env_path = project_root / ".env"
    if env_path.exists():
        load_dotenv(env_path)
    else:
        load_dotenv()
