"""
Caption synchronization for narrated dialogue videos.

A pipeline for:
- Synthesizing one audio clip per dialogue line (ElevenLabs or OpenAI TTS)
- Transcribing the clips back into word-level timestamps
- Shifting every clip's captions onto the concatenated timeline
- Writing per-clip or merged SRT files, optionally regrouped into readable captions
"""

__version__ = "0.1.0"
