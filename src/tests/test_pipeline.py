"""
Tests for the synchronization pass and the end-to-end pipeline.
"""

import json
import logging
import os

import pytest

from src.captionsync.config import PipelineConfig
from src.captionsync.errors import (
    CleaningFailed,
    IncompleteCaptionTrack,
    OutOfOrderClip,
    RenderFailed,
    TranscriptionUnavailable,
    UnknownSpeaker,
)
from src.captionsync.models import CaptionEntry, Clip, TranscriptionResult, TranscriptLine, WordTimestamp
from src.captionsync.pipeline import correlate_results, run_pipeline, synchronize_captions
from src.captionsync.srt_utils import format_srt, parse_srt
from src.captionsync.status import StatusSink
from src.captionsync.stt import parse_transcription_result

LINES = [
    TranscriptLine(speaker="JOE_ROGAN", text="Hi", ordinal=0),
    TranscriptLine(speaker="BARACK_OBAMA", text="there", ordinal=1),
    TranscriptLine(speaker="JOE_ROGAN", text="World", ordinal=2),
]
DURATIONS = [1.5, 2.0, 1.0]


def _clips():
    return [Clip(ordinal=i, audio_ref=f"clip{i}.mp3", duration_seconds=d) for i, d in enumerate(DURATIONS)]


def _results():
    return {
        i: TranscriptionResult(segments=[[WordTimestamp(ln.text, 0.0, DURATIONS[i])]])
        for i, ln in enumerate(LINES)
    }


def test_three_clip_merged_track(tmp_path):
    """Global starts are 0.0, 1.5 + 0.2 and then + 2.0 + 0.2."""
    config = PipelineConfig(output_dir=str(tmp_path), mode="merged")

    tracks = synchronize_captions(LINES, _clips(), _results(), config)

    assert len(tracks) == 1
    entries = tracks[0].entries
    assert [e.index for e in entries] == [1, 2, 3]
    assert [e.text for e in entries] == ["Hi", "there", "World"]
    assert [round(e.start, 6) for e in entries] == [0.0, 1.7, 3.9]
    assert format_srt(entries) == (
        "1\n00:00:00,000 --> 00:00:01,500\nHi\n\n"
        "2\n00:00:01,700 --> 00:00:03,700\nthere\n\n"
        "3\n00:00:03,900 --> 00:00:04,900\nWorld\n\n"
    )
    assert tracks[0].destination == os.path.join(str(tmp_path), "captions.srt")


def test_per_clip_tracks_are_global_and_renumbered(tmp_path):
    config = PipelineConfig(output_dir=str(tmp_path))
    results = _results()
    results[1] = TranscriptionResult(
        segments=[[WordTimestamp("there", 0.0, 0.8)], [WordTimestamp("friend", 0.9, 1.8)]]
    )

    tracks = synchronize_captions(LINES, _clips(), results, config)

    assert [os.path.basename(t.destination) for t in tracks] == [
        "JOE_ROGAN-0.srt",
        "BARACK_OBAMA-1.srt",
        "JOE_ROGAN-2.srt",
    ]
    second = tracks[1].entries
    assert [e.index for e in second] == [1, 2]
    assert second[0].start == pytest.approx(1.7)
    assert second[0].end == pytest.approx(2.6)
    assert second[1].end == pytest.approx(3.5)


def test_results_are_matched_by_ordinal_not_order(tmp_path):
    config = PipelineConfig(output_dir=str(tmp_path), mode="merged")
    results = dict(reversed(list(_results().items())))

    tracks = synchronize_captions(LINES, list(reversed(_clips())), results, config)

    assert [e.text for e in tracks[0].entries] == ["Hi", "there", "World"]


def test_empty_clip_fails_whole_pass(tmp_path):
    config = PipelineConfig(output_dir=str(tmp_path))
    results = _results()
    results[1] = TranscriptionResult(segments=[[]])

    with pytest.raises(IncompleteCaptionTrack) as exc:
        synchronize_captions(LINES, _clips(), results, config)

    assert [f.ordinal for f in exc.value.failures] == [1]
    assert "clip 1" in str(exc.value)


def test_missing_result_is_transcription_unavailable(tmp_path):
    config = PipelineConfig(output_dir=str(tmp_path))
    results = _results()
    del results[2]

    with pytest.raises(TranscriptionUnavailable) as exc:
        synchronize_captions(LINES, _clips(), results, config)
    assert exc.value.ordinal == 2


def test_duplicate_clip_ordinal_is_out_of_order(tmp_path):
    config = PipelineConfig(output_dir=str(tmp_path))
    clips = _clips() + [Clip(ordinal=2, audio_ref="dup.mp3", duration_seconds=1.0)]

    with pytest.raises(OutOfOrderClip):
        synchronize_captions(LINES, clips, _results(), config)


def test_clean_mode_regroups_captions(tmp_path):
    lines = [TranscriptLine("A", "Hello there. How are you?", 0)]
    clips = [Clip(0, "a.mp3", 2.0)]
    words = [
        WordTimestamp("Hello", 0.0, 0.3),
        WordTimestamp("there.", 0.3, 0.7),
        WordTimestamp("How", 0.9, 1.1),
        WordTimestamp("are", 1.1, 1.3),
        WordTimestamp("you?", 1.3, 1.8),
    ]
    config = PipelineConfig(output_dir=str(tmp_path), clean=True)

    tracks = synchronize_captions(lines, clips, {0: TranscriptionResult([words])}, config)

    assert config.mode == "merged"
    assert [e.text for e in tracks[0].entries] == ["Hello there.", "How are you?"]
    assert tracks[0].entries[0].end == pytest.approx(0.9)


def test_correlate_results_length_mismatch():
    with pytest.raises(TranscriptionUnavailable):
        correlate_results(_clips(), [TranscriptionResult()])


class _Recorder(StatusSink):
    def __init__(self, fail=False):
        self.calls = []
        self.fail = fail

    def update(self, job_id, label, progress):
        self.calls.append((job_id, label, progress))
        if self.fail:
            raise ConnectionError("status db down")


def _fake_synth(speaker, text, out_path):
    with open(out_path, "wb") as f:
        f.write(text.encode())


def _fake_probe(path):
    ordinal = int(os.path.basename(path).rsplit("-", 1)[1].split(".")[0])
    return DURATIONS[ordinal]


def _fake_transcriber(paths):
    return [_results()[i] for i in range(len(paths))]


def _config(tmp_path, **kw):
    return PipelineConfig(
        output_dir=str(tmp_path / "srt"),
        voice_dir=str(tmp_path / "voice"),
        workdir=str(tmp_path),
        **kw,
    )


def test_run_pipeline_writes_tracks_and_manifest(tmp_path):
    config = _config(tmp_path, local=False)
    sink = _Recorder()

    tracks = run_pipeline(
        LINES,
        config,
        _fake_synth,
        _fake_transcriber,
        probe=_fake_probe,
        status=sink,
        job_id="job-1",
        transcriptions_path=str(tmp_path / "transcriptions.json"),
    )

    assert len(tracks) == 3
    parsed = parse_srt(str(tmp_path / "srt" / "BARACK_OBAMA-1.srt"))
    assert parsed[0].start == pytest.approx(1.7)
    with open(tmp_path / "srt" / "manifest.json", encoding="utf-8") as f:
        manifest = json.load(f)
    assert [m["ordinal"] for m in manifest] == [0, 1, 2]
    assert [c[1] for c in sink.calls] == ["Generating audio", "Transcribing audio", "Captions complete"]
    assert sink.calls[-1] == ("job-1", "Captions complete", 100)
    assert (tmp_path / "transcriptions.json").exists()


def test_status_failures_do_not_abort(tmp_path):
    config = _config(tmp_path, local=False, mode="merged")

    tracks = run_pipeline(
        LINES, config, _fake_synth, _fake_transcriber, probe=_fake_probe, status=_Recorder(fail=True)
    )

    assert os.path.exists(tracks[0].destination)


def test_local_mode_skips_status(tmp_path):
    sink = _Recorder()

    run_pipeline(LINES, _config(tmp_path), _fake_synth, _fake_transcriber, probe=_fake_probe, status=sink)

    assert sink.calls == []


def test_failed_pass_writes_nothing(tmp_path):
    def transcriber(paths):
        out = _fake_transcriber(paths)
        out[2] = TranscriptionResult(segments=[])
        return out

    with pytest.raises(IncompleteCaptionTrack):
        run_pipeline(LINES, _config(tmp_path), _fake_synth, transcriber, probe=_fake_probe)

    assert not (tmp_path / "srt").exists()


def test_transcriber_crash_becomes_transcription_unavailable(tmp_path):
    def transcriber(paths):
        raise TimeoutError("no answer")

    with pytest.raises(TranscriptionUnavailable):
        run_pipeline(LINES, _config(tmp_path), _fake_synth, transcriber, probe=_fake_probe)


def test_unknown_speaker_fails_before_synthesis(tmp_path):
    calls = []

    def synth(speaker, text, out_path):
        calls.append(speaker)

    with pytest.raises(UnknownSpeaker):
        run_pipeline(
            LINES,
            _config(tmp_path),
            synth,
            _fake_transcriber,
            probe=_fake_probe,
            voices={"JOE_ROGAN": "v1"},
        )
    assert calls == []


def test_saved_transcriptions_skip_stt(tmp_path):
    def transcriber(paths):
        raise AssertionError("should not be called")

    tracks = run_pipeline(
        LINES,
        _config(tmp_path, mode="merged"),
        _fake_synth,
        transcriber,
        probe=_fake_probe,
        transcriptions=_results(),
    )

    assert len(tracks[0].entries) == 3


def test_nan_word_time_fails_run_without_writing(tmp_path):
    """A NaN timing from the transcriber fails the clip instead of a half-written track."""

    def transcriber(paths):
        out = _fake_transcriber(paths)
        bad = [{"segments": [{"words": [{"text": "there", "start": 0.0, "end": "nan"}]}]}]
        out[1] = parse_transcription_result(bad)
        return out

    sink = _Recorder()

    with pytest.raises(IncompleteCaptionTrack) as exc:
        run_pipeline(
            LINES, _config(tmp_path, local=False), _fake_synth, transcriber, probe=_fake_probe, status=sink
        )

    assert [f.ordinal for f in exc.value.failures] == [1]
    assert not (tmp_path / "srt").exists()
    assert sink.calls[-1][1:] == ("Caption sync failed", 0)


def test_unserializable_track_writes_nothing(tmp_path):
    def cleaner(lines, entries):
        return [CaptionEntry(index=1, start=0.0, end=float("nan"), text="broken")]

    sink = _Recorder()

    with pytest.raises(RenderFailed) as exc:
        run_pipeline(
            LINES,
            _config(tmp_path, local=False, clean=True),
            _fake_synth,
            _fake_transcriber,
            probe=_fake_probe,
            status=sink,
            cleaner=cleaner,
        )

    assert exc.value.stage == "render"
    assert not (tmp_path / "srt").exists()
    assert sink.calls[-1][1:] == ("Caption sync failed", 0)


def test_cleaner_crash_is_reported_as_cleaning_failure(tmp_path):
    def cleaner(lines, entries):
        raise RuntimeError("Model did not answer")

    sink = _Recorder()

    with pytest.raises(CleaningFailed) as exc:
        run_pipeline(
            LINES,
            _config(tmp_path, local=False, clean=True),
            _fake_synth,
            _fake_transcriber,
            probe=_fake_probe,
            status=sink,
            cleaner=cleaner,
        )

    assert exc.value.stage == "cleaning"
    assert "Model did not answer" in str(exc.value)
    assert sink.calls[-1][1:] == ("Caption sync failed", 0)
    assert not (tmp_path / "srt").exists()


def test_cleaner_without_clean_mode_is_ignored_with_warning(tmp_path, caplog):
    calls = []

    def cleaner(lines, entries):
        calls.append(len(entries))
        return entries

    config = PipelineConfig(output_dir=str(tmp_path), mode="merged")

    with caplog.at_level(logging.WARNING, logger="captionsync"):
        tracks = synchronize_captions(LINES, _clips(), _results(), config, cleaner)

    assert calls == []
    assert [e.text for e in tracks[0].entries] == ["Hi", "there", "World"]
    assert any("cleaning is off" in r.getMessage() for r in caplog.records)
