"""
Speaker -> voice mapping, validated before any synthesis starts.
"""

import json
import logging
import os
import re
from collections.abc import Iterable, Mapping

from .errors import UnknownSpeaker

logger = logging.getLogger("captionsync")


def voice_env_var(speaker: str) -> str:
    """Environment variable holding a speaker's voice, e.g. JOE_ROGAN_VOICE_ID."""
    return re.sub(r"[^A-Z0-9]+", "_", speaker.upper()).strip("_") + "_VOICE_ID"


def load_voice_map(
    speakers: Iterable[str],
    env: Mapping[str, str] | None = None,
    voices_file: str | None = None,
) -> dict[str, str]:
    """
    Resolve a voice for every speaker.

    Entries in ``voices_file`` (a JSON object speaker -> voice) win over
    ``<SPEAKER>_VOICE_ID`` environment variables. Raises UnknownSpeaker
    listing every speaker that has neither.
    """
    env = os.environ if env is None else env
    from_file: dict[str, str] = {}
    if voices_file:
        with open(voices_file, encoding="utf-8") as f:
            data = json.load(f)
        if not isinstance(data, dict):
            raise ValueError(f"{voices_file}: expected a JSON object of speaker -> voice")
        from_file = {str(k): str(v) for k, v in data.items() if v}

    voices: dict[str, str] = {}
    missing: list[str] = []
    for speaker in dict.fromkeys(speakers):
        voice = from_file.get(speaker) or (env.get(voice_env_var(speaker)) or "").strip()
        if voice:
            voices[speaker] = voice
        else:
            missing.append(speaker)
    if missing:
        hints = ", ".join(f"{s} ({voice_env_var(s)})" for s in missing)
        raise UnknownSpeaker(f"No voice configured for: {hints}", stage="speakers")
    logger.debug(f"Voice map: {voices}")
    return voices
