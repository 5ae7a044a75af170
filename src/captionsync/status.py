"""
Job status reporting. Failures here never abort the pipeline.
"""

import logging

import httpx

logger = logging.getLogger("captionsync")


class StatusSink:
    """Receives progress updates for a job."""

    def update(self, job_id: str | None, label: str, progress: int) -> None:
        raise NotImplementedError


class NullStatusSink(StatusSink):
    """Used in local mode."""

    def update(self, job_id: str | None, label: str, progress: int) -> None:
        return None


class LoggingStatusSink(StatusSink):
    def update(self, job_id: str | None, label: str, progress: int) -> None:
        logger.info(f"[status] {job_id or '-'}: {label} ({progress}%)")


class HttpStatusSink(StatusSink):
    """POSTs ``{"job_id", "status", "progress"}`` to a URL."""

    def __init__(self, url: str, timeout: float = 5.0, http_client: httpx.Client | None = None):
        self.url = url
        self.timeout = timeout
        self._client = http_client

    def update(self, job_id: str | None, label: str, progress: int) -> None:
        payload = {"job_id": job_id, "status": label, "progress": progress}
        if self._client is not None:
            self._client.post(self.url, json=payload).raise_for_status()
            return
        with httpx.Client(timeout=self.timeout) as client:
            client.post(self.url, json=payload).raise_for_status()


def report_status(sink: StatusSink | None, job_id: str | None, label: str, progress: int) -> None:
    """Send a status update; errors are logged and swallowed."""
    if sink is None:
        return
    try:
        sink.update(job_id, label, progress)
    except Exception as e:
        logger.warning(f"Status update '{label}' failed: {e}")
