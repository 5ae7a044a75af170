"""
Tests for job status reporting.
"""

import json

import httpx

from src.captionsync.status import HttpStatusSink, LoggingStatusSink, NullStatusSink, report_status


def test_http_sink_posts_payload():
    seen = []

    def handler(request):
        seen.append(json.loads(request.content))
        return httpx.Response(204)

    client = httpx.Client(transport=httpx.MockTransport(handler))
    sink = HttpStatusSink("http://status.local/update", http_client=client)

    report_status(sink, "video-9", "Transcribing audio", 20)

    assert seen == [{"job_id": "video-9", "status": "Transcribing audio", "progress": 20}]


def test_report_status_swallows_failures(caplog):
    client = httpx.Client(transport=httpx.MockTransport(lambda request: httpx.Response(500)))
    sink = HttpStatusSink("http://status.local/update", http_client=client)

    report_status(sink, "video-9", "Generating audio", 12)

    assert "Generating audio" in caplog.text


def test_logging_and_null_sinks(caplog):
    caplog.set_level("INFO", logger="captionsync")

    report_status(LoggingStatusSink(), "job", "Captions complete", 100)
    report_status(NullStatusSink(), "job", "ignored", 1)
    report_status(None, "job", "ignored", 1)

    assert "Captions complete (100%)" in caplog.text
    assert "ignored" not in caplog.text
