"""
Tests for caption track assembly.
"""

import os

from src.captionsync.assembler import assemble_merged, assemble_per_clip, clip_destination, reindex
from src.captionsync.models import CaptionEntry, TranscriptLine

LINES = [
    TranscriptLine(speaker="JOE_ROGAN", text="Hi", ordinal=0),
    TranscriptLine(speaker="BARACK_OBAMA", text="there friend", ordinal=1),
]


def _clip_entries():
    return {
        1: [
            CaptionEntry(index=1, start=1.7, end=2.2, text="there"),
            CaptionEntry(index=2, start=2.2, end=3.0, text="friend"),
        ],
        0: [CaptionEntry(index=1, start=0.0, end=1.5, text="Hi")],
    }


def test_reindex_from_one():
    entries = [CaptionEntry(index=7, start=0, end=1, text="a"), CaptionEntry(index=3, start=1, end=2, text="b")]

    assert [e.index for e in reindex(entries)] == [1, 2]
    assert entries[0].index == 7


def test_per_clip_tracks():
    tracks = assemble_per_clip(LINES, _clip_entries(), "out")

    assert [t.destination for t in tracks] == [
        os.path.join("out", "JOE_ROGAN-0.srt"),
        os.path.join("out", "BARACK_OBAMA-1.srt"),
    ]
    assert [e.index for e in tracks[1].entries] == [1, 2]
    assert tracks[1].entries[0].start == 1.7
    assert tracks[1].speaker == "BARACK_OBAMA"


def test_clip_destination():
    assert clip_destination("srt", "RICK_SANCHEZ", 3) == os.path.join("srt", "RICK_SANCHEZ-3.srt")


def test_merged_track_is_ordered_and_reindexed():
    track = assemble_merged(LINES, _clip_entries(), "out/captions.srt")

    assert [e.text for e in track.entries] == ["Hi", "there", "friend"]
    assert [e.index for e in track.entries] == [1, 2, 3]


def test_merged_track_uses_cleaner_output():
    seen = {}

    def cleaner(lines, entries):
        seen["lines"] = [ln.ordinal for ln in lines]
        seen["count"] = len(entries)
        return [CaptionEntry(index=99, start=entries[0].start, end=entries[-1].end, text="all")]

    track = assemble_merged(list(reversed(LINES)), _clip_entries(), "out/captions.srt", cleaner)

    assert seen == {"lines": [0, 1], "count": 3}
    assert len(track.entries) == 1
    assert track.entries[0].index == 1
    assert track.entries[0].end == 3.0
