"""
Caption cleaning: regroup word-level captions into readable line/sentence captions.
"""

import json
import logging
import re
from bisect import bisect_right
from difflib import SequenceMatcher

from .assembler import Cleaner
from .errors import CleaningFailed
from .models import CaptionEntry, TranscriptLine
from .srt_utils import wrap_lines

logger = logging.getLogger("captionsync")

# Optional OpenAI SDK
try:
    from openai import OpenAI
except ImportError:
    OpenAI = None

_SENT_END_RE = re.compile(r'[.!?]["\')\]]*\s*$')


def _norm(text: str) -> str:
    return "".join(ch for ch in text.lower() if ch.isalnum())


def _map_position(opcodes: list[tuple], i: int) -> int:
    """Position in the word stream aligned with position ``i`` of the line stream."""
    for tag, i1, i2, j1, j2 in opcodes:
        if tag == "insert" or not i1 <= i <= i2:
            continue
        if tag == "equal":
            return j1 + (i - i1)
        if tag == "delete":
            return j1
        return j1 + round((i - i1) * (j2 - j1) / (i2 - i1))
    return opcodes[-1][4] if opcodes else 0


def _nearest_boundary(bounds: list[int], pos: int) -> int:
    # bounds[k] = characters before word k; ties keep zero-width words with the earlier line
    k = bisect_right(bounds, pos)
    if k < len(bounds) and bounds[k] - pos < pos - bounds[k - 1]:
        return k
    return k - 1


def split_by_lines(
    lines: list[TranscriptLine], entries: list[CaptionEntry]
) -> list[list[CaptionEntry]]:
    """
    Assign word captions to transcript lines.

    The normalized text of all lines is aligned with the normalized text of
    all words (difflib), and each line ends at the word boundary closest to
    where its last character aligns. Spelling drift such as "20" spoken as
    "twenty" stays local to the line it occurs in. The last line takes
    whatever remains; lines that receive no captions are dropped.
    """
    if not lines:
        return [list(entries)] if entries else []

    bounds = [0]
    for e in entries:
        bounds.append(bounds[-1] + len(_norm(e.text)))
    word_stream = "".join(_norm(e.text) for e in entries)

    line_stream = ""
    line_ends: list[int] = []
    for line in lines:
        line_stream += _norm(line.text)
        line_ends.append(len(line_stream))

    opcodes = SequenceMatcher(None, line_stream, word_stream, autojunk=False).get_opcodes()

    groups: list[list[CaptionEntry]] = []
    pos = 0
    for li, end in enumerate(line_ends):
        if li == len(lines) - 1:
            cut = len(entries)
        else:
            cut = max(pos, _nearest_boundary(bounds, _map_position(opcodes, end)))
        chunk = entries[pos:cut]
        pos = cut
        if chunk:
            groups.append(chunk)
    return groups


def _caption(words: list[CaptionEntry], max_chars: int, max_lines: int) -> CaptionEntry:
    text = " ".join(w.text.strip() for w in words if w.text.strip())
    return CaptionEntry(
        index=0,
        start=words[0].start,
        end=words[-1].end,
        text=wrap_lines(text, max_chars=max_chars, max_lines=max_lines),
    )


def clean_captions(
    lines: list[TranscriptLine],
    entries: list[CaptionEntry],
    max_chars: int = 42,
    max_lines: int = 2,
) -> list[CaptionEntry]:
    """
    Regroup word captions along transcript line and sentence boundaries.

    A caption never spans two lines. Inside a line, a caption closes after
    a word ending a sentence, or before a word that would push the text past
    ``max_chars * max_lines`` characters.
    """
    budget = max_chars * max_lines
    out: list[CaptionEntry] = []
    for group in split_by_lines(lines, entries):
        cur: list[CaptionEntry] = []
        cur_len = 0
        for w in group:
            word = w.text.strip()
            if cur and cur_len + 1 + len(word) > budget:
                out.append(_caption(cur, max_chars, max_lines))
                cur, cur_len = [], 0
            cur.append(w)
            cur_len += len(word) + (1 if cur_len else 0)
            if _SENT_END_RE.search(word):
                out.append(_caption(cur, max_chars, max_lines))
                cur, cur_len = [], 0
        if cur:
            out.append(_caption(cur, max_chars, max_lines))
    return [CaptionEntry(index=i, start=c.start, end=c.end, text=c.text) for i, c in enumerate(out, 1)]


def polish_caption_texts(client: OpenAI, texts: list[str], model: str) -> list[str]:
    """Fix transcription errors in caption texts with GPT, keeping the count."""
    if client is None:
        raise CleaningFailed("OpenAI client is not initialized (missing OPENAI_API_KEY)", stage="cleaning")

    logger.info("Polishing captions with GPT …")
    system = (
        "You are a careful subtitle editor. "
        "Fix transcription mistakes, casing and punctuation without changing meaning. "
        "Keep the number and order of lines exactly the same. "
        "Return ONLY a JSON array of strings."
    )
    try:
        chat = client.chat.completions.create(
            model=model,
            messages=[
                {"role": "system", "content": system},
                {"role": "user", "content": json.dumps(texts, ensure_ascii=False)},
            ],
            temperature=0.2,
        )
    except Exception as e:
        raise CleaningFailed(f"Caption polishing request failed: {e}", stage="cleaning") from e
    content = chat.choices[0].message.content or ""
    try:
        improved = json.loads(content)
    except json.JSONDecodeError:
        start = content.find("[")
        end = content.rfind("]")
        if start == -1 or end == -1:
            raise CleaningFailed("Model did not return valid JSON", stage="cleaning") from None
        try:
            improved = json.loads(content[start : end + 1])
        except json.JSONDecodeError as e:
            raise CleaningFailed(f"Model did not return valid JSON: {e}", stage="cleaning") from e

    if not isinstance(improved, list) or len(improved) != len(texts):
        logger.warning("Caption count changed during polishing. Using unpolished captions.")
        return texts
    return [str(t).strip() for t in improved]


def make_gpt_cleaner(
    client: OpenAI, model: str = "gpt-4o-mini", max_chars: int = 42, max_lines: int = 2
) -> Cleaner:
    """Create a cleaner that regroups captions, then polishes their text."""

    def _clean(lines: list[TranscriptLine], entries: list[CaptionEntry]) -> list[CaptionEntry]:
        grouped = clean_captions(lines, entries, max_chars=max_chars, max_lines=max_lines)
        texts = [" ".join(c.text.split()) for c in grouped]
        polished = polish_caption_texts(client, texts, model)
        return [
            CaptionEntry(
                index=c.index,
                start=c.start,
                end=c.end,
                text=wrap_lines(t, max_chars=max_chars, max_lines=max_lines),
            )
            for c, t in zip(grouped, polished)
        ]

    return _clean
