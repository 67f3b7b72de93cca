"""
Progress reporting module for the image puller service.

A pull session pushes events into a ``ProgressChannel``; the web layer drains
the channel as a Server-Sent-Events stream. The stream carries zero or more
progress events followed by exactly one terminal event (summary or error),
after which it ends.

SSE frames:
    data: {"layerDigest": ..., "downloadedSize": ..., "totalSize": ..., "percentage": ...}
    data: {"summary": {"total": ..., "skipped": ..., "downloaded": ...}}
    data: {"error": {"message": ..., "details": [digest, ...], "timeouts": [digest, ...]}}
"""

import json
import logging
import queue
import threading

from .errors import PartialFailureError, PullerError
from .models import DownloadProgress, DownloadSummary

logger = logging.getLogger(__name__)

_CLOSE = object()


def format_sse(payload: dict) -> str:
    """
    Encode one event as an SSE ``data:`` frame.

    Example:
        >>> format_sse({"summary": {"total": 1, "skipped": 0, "downloaded": 1}})
        'data: {"summary": {"total": 1, "skipped": 0, "downloaded": 1}}\\n\\n'
    """
    return f"data: {json.dumps(payload)}\n\n"


class ProgressChannel:
    """
    One-way, thread-safe event stream for a single pull session.

    Producers (download workers) call ``progress``; the session calls exactly
    one of ``summary`` or ``error``. The consumer iterates ``stream()`` or
    ``events()``.
    """

    def __init__(self):
        self._events = queue.Queue()
        self._lock = threading.Lock()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def _put(self, payload: dict, terminal: bool = False):
        with self._lock:
            if self._closed:
                logger.debug(f"Dropping event on closed channel: {payload}")
                return
            self._events.put(payload)
            if terminal:
                self._closed = True
                self._events.put(_CLOSE)

    def progress(self, event: DownloadProgress):
        self._put(event.to_dict())

    def summary(self, summary: DownloadSummary):
        self._put({"summary": summary.to_dict()}, terminal=True)

    def error(self, message: str, details: list[str] | None = None, timeouts: list[str] | None = None):
        self._put(
            {"error": {"message": message, "details": details or [], "timeouts": timeouts or []}},
            terminal=True,
        )

    def events(self, timeout: float | None = None):
        """
        Yield event payloads until the terminal event has been yielded.

        Raises:
            queue.Empty: no event arrived within *timeout* seconds
        """
        while True:
            payload = self._events.get(timeout=timeout)
            if payload is _CLOSE:
                return
            yield payload

    def stream(self):
        """Yield SSE frames until the terminal event."""
        for payload in self.events():
            yield format_sse(payload)


class PullSession:
    """
    Runs one download on a background thread and reports through a channel.

    The thread is not tied to the HTTP connection: if the client disconnects,
    in-flight workers still run to completion before the session ends.

    Usage:
        session = PullSession(manager, "library/nginx", token, layers).start()
        return Response(session.channel.stream(), mimetype="text/event-stream")
    """

    def __init__(self, manager, image: str, token: str, layers: list, config=None,
                 channel: ProgressChannel | None = None):
        self.manager = manager
        self.image = image
        self.token = token
        self.layers = layers
        self.config = config
        self.channel = channel or ProgressChannel()
        self.results = None
        self._thread = threading.Thread(target=self.run, name=f"pull-{image}", daemon=True)

    def start(self) -> "PullSession":
        self._thread.start()
        return self

    def join(self, timeout: float | None = None):
        self._thread.join(timeout)

    def run(self):
        """Download every blob, then emit exactly one terminal event."""
        try:
            self.results = self.manager.download(
                self.image,
                self.token,
                self.layers,
                config=self.config,
                on_progress=self.channel.progress,
            )
            self.manager.raise_for_failures(self.results)
        except PartialFailureError as e:
            logger.error(f"Pull of {self.image} failed: {e}")
            self.channel.error(e.message, details=e.failed, timeouts=e.timed_out)
            return
        except PullerError as e:
            logger.error(f"Pull of {self.image} failed: {e}")
            self.channel.error(e.message)
            return
        except Exception as e:
            logger.exception(f"Unexpected error while pulling {self.image}")
            self.channel.error(str(e) or type(e).__name__)
            return

        self.channel.summary(self.manager.summarize(self.results))
