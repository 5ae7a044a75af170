"""
Conversion between seconds and SRT display timestamps (HH:MM:SS,mmm).
"""

import math
import re

from .errors import MalformedTimestamp

_TS_RE = re.compile(r"(\d{2,}):(\d{2}):(\d{2}),(\d{3})")


def encode(seconds: float) -> str:
    """Format seconds as HH:MM:SS,mmm.

    Whole seconds are floored and the fractional part is rounded half-up to
    the millisecond; a rounded 1000 ms carries into the seconds field.
    Hours are not wrapped at 24.
    """
    if seconds < 0 or math.isnan(seconds) or math.isinf(seconds):
        raise ValueError(f"Cannot encode timestamp for {seconds!r}")
    whole = math.floor(seconds)
    millis = math.floor((seconds - whole) * 1000 + 0.5)
    total_ms = int(whole) * 1000 + int(millis)
    s, ms = divmod(total_ms, 1000)
    m, s = divmod(s, 60)
    h, m = divmod(m, 60)
    return f"{h:02}:{m:02}:{s:02},{ms:03}"


def decode(ts: str) -> float:
    """Parse HH:MM:SS,mmm into seconds."""
    m = _TS_RE.fullmatch(ts.strip()) if isinstance(ts, str) else None
    if not m:
        raise MalformedTimestamp(f"Malformed timestamp: {ts!r}", stage="decode")
    h, m_, s, ms = map(int, m.groups())
    return h * 3600 + m_ * 60 + s + ms / 1000.0
