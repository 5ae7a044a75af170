"""
Text-to-speech synthesis with ElevenLabs and OpenAI.
"""

import logging
from collections.abc import Callable, Mapping

import httpx

from .errors import SynthesisFailed, UnknownSpeaker

logger = logging.getLogger("captionsync")

# Optional OpenAI SDK
try:
    from openai import OpenAI
except ImportError:
    OpenAI = None

# synth(speaker, text, out_path)
SynthFunc = Callable[[str, str, str], None]

ELEVENLABS_URL = "https://api.elevenlabs.io/v1/text-to-speech/{voice_id}"


def elevenlabs_tts_speak(
    api_key: str,
    voice_id: str,
    text: str,
    out_path: str,
    model_id: str = "eleven_multilingual_v2",
    http_client: httpx.Client | None = None,
) -> None:
    """Synthesize speech with ElevenLabs and save the MP3 to ``out_path``."""
    if not api_key:
        raise SynthesisFailed("ELEVENLABS_API_KEY is not set.", stage="synthesis")

    headers = {
        "xi-api-key": api_key,
        "accept": "audio/mpeg",
        "Content-Type": "application/json",
        "User-Agent": "captionsync/0.1",
    }
    payload = {
        "text": text,
        "model_id": model_id,
        "voice_settings": {"stability": 0.5, "similarity_boost": 0.75},
    }

    client = http_client or httpx.Client(follow_redirects=True, timeout=60.0)
    try:
        r = client.post(ELEVENLABS_URL.format(voice_id=voice_id), json=payload, headers=headers)
    except httpx.HTTPError as e:
        raise SynthesisFailed(f"ElevenLabs request failed: {e}", stage="synthesis") from e
    finally:
        if http_client is None:
            client.close()
    ctype = r.headers.get("content-type", "")
    if r.status_code != 200 or not ctype.startswith(("audio/", "application/octet-stream")):
        raise SynthesisFailed(f"ElevenLabs TTS failed: {r.status_code} {r.text[:300]}", stage="synthesis")
    with open(out_path, "wb") as f:
        f.write(r.content)


def tts_speak_openai(
    client: OpenAI,
    text: str,
    model: str,
    voice: str,
    out_path: str,
    instructions: str | None = None,
) -> None:
    """Synthesize speech using OpenAI TTS (MP3)."""
    if client is None:
        raise SynthesisFailed("OpenAI client is not initialized (missing OPENAI_API_KEY)", stage="synthesis")

    kwargs = {"model": model, "voice": voice, "input": text, "response_format": "mp3"}
    if instructions:
        kwargs["instructions"] = instructions
    try:
        with client.audio.speech.with_streaming_response.create(**kwargs) as resp:
            resp.stream_to_file(out_path)
    except Exception as e:
        raise SynthesisFailed(f"OpenAI TTS failed: {e}", stage="synthesis") from e


def _voice_for(voices: Mapping[str, str], speaker: str) -> str:
    try:
        return voices[speaker]
    except KeyError:
        raise UnknownSpeaker(f"No voice configured for {speaker}", stage="synthesis") from None


def make_synth_elevenlabs(api_key: str, voices: Mapping[str, str], model_id: str) -> SynthFunc:
    """Create an ElevenLabs synthesis function keyed by speaker."""

    def _synth(speaker: str, text: str, out_path: str) -> None:
        elevenlabs_tts_speak(api_key, _voice_for(voices, speaker), text, out_path, model_id=model_id)

    return _synth


def make_synth_openai(
    client: OpenAI, tts_model: str, voices: Mapping[str, str], instructions: str | None = None
) -> SynthFunc:
    """Create an OpenAI synthesis function keyed by speaker."""

    def _synth(speaker: str, text: str, out_path: str) -> None:
        tts_speak_openai(client, text, tts_model, _voice_for(voices, speaker), out_path, instructions)

    return _synth
