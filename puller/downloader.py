"""
Blob download module for the image puller service.

Retrieves the config and layer blobs of one image through a fixed-size pool
of worker threads. Each worker repeatedly pops one item from a shared queue,
processes it to completion and exits once the queue is empty.

Per item:
    1. Probe the cache; a hit emits a single 100% progress event and skips the
       network entirely.
    2. On a miss, stream the blob from the registry into the cache path under
       a per-item deadline, emitting a progress event after every chunk. A
       transfer whose byte count differs from the declared size fails.
    3. Failures (including a fired deadline, reported as ``"timeout"``) are
       recorded as data in a ``LayerDownloadResult``; they never propagate out
       of the worker. Partial files stay on disk and are re-downloaded later
       because their size does not match.

The session is successful only when every item succeeded; callers aggregate
with ``summarize`` and ``raise_for_failures`` after the pool has drained.
"""

import logging
import queue
import threading
import time
from typing import Callable

import requests

from .cache import CONFIG_SUFFIX, LAYER_SUFFIX, image_cache_dir, probe
from .client import bearer_headers, check_response
from .config import config
from .errors import BlobTimeoutError, PartialFailureError, UpstreamError
from .models import DownloadProgress, DownloadSummary, LayerDownloadResult

logger = logging.getLogger(__name__)

TIMEOUT_ERROR = "timeout"

ProgressCallback = Callable[[DownloadProgress], None]


class Deadline:
    """
    Deadline for a single blob transfer.

    A timer closes the attached response when the deadline passes, which
    unblocks a worker stuck in a socket read. ``check()`` is called after
    every chunk so a slow but steady transfer is aborted as well. Firing only
    affects the transfer it is attached to.
    """

    def __init__(self, seconds: float):
        self.seconds = seconds
        self.expired = threading.Event()
        self._ends_at = time.monotonic() + seconds
        self._response = None
        self._lock = threading.Lock()
        self._timer = threading.Timer(seconds, self._fire)
        self._timer.daemon = True

    def __enter__(self):
        self._timer.start()
        return self

    def __exit__(self, *exc):
        self._timer.cancel()
        return False

    def remaining(self) -> float:
        return max(0.001, self._ends_at - time.monotonic())

    def attach(self, response):
        """Register the response to abort when the deadline fires."""
        with self._lock:
            self._response = response
            fired = self.expired.is_set()
        if fired:
            self._abort(response)

    def check(self):
        """
        Raises:
            BlobTimeoutError: the deadline has passed
        """
        if self.expired.is_set() or time.monotonic() >= self._ends_at:
            self.expired.set()
            raise BlobTimeoutError(f"Transfer exceeded {self.seconds:g}s deadline")

    def _fire(self):
        with self._lock:
            self.expired.set()
            response = self._response
        if response is not None:
            self._abort(response)

    @staticmethod
    def _abort(response):
        try:
            response.close()
        except Exception as e:
            logger.debug(f"Closing timed out response raised: {e}")


class DownloadManager:
    """
    Bounded worker pool that pulls the blobs of one image into the cache.

    Usage:
        manager = DownloadManager(client, "/var/cache/puller")
        results = manager.download("library/nginx", token, layers, config=config_descriptor,
                                   on_progress=channel.progress)
        manager.raise_for_failures(results)
    """

    def __init__(self, client, download_root: str, workers: int | None = None,
                 blob_timeout: float | None = None, chunk_size: int | None = None, cfg=None):
        """
        Args:
            client: ``RegistryClient`` (or a stub with the same ``get`` signature)
            download_root: Cache root; blobs land in ``<root>/<image>/``
            workers: Pool width (default ``CONCURRENT_DOWNLOADS``)
            blob_timeout: Per-blob deadline in seconds (default ``BLOB_TIMEOUT``)
            chunk_size: Streaming chunk size in bytes (default ``CHUNK_SIZE``)
            cfg: Configuration override (defaults to the global config)
        """
        self.cfg = cfg or config
        self.client = client
        self.download_root = download_root
        self.workers = max(1, workers or self.cfg.CONCURRENT_DOWNLOADS)
        self.blob_timeout = blob_timeout or self.cfg.BLOB_TIMEOUT
        self.chunk_size = chunk_size or self.cfg.CHUNK_SIZE

    def download(self, image: str, token: str, layers: list, config=None,
                 on_progress: ProgressCallback | None = None) -> list[LayerDownloadResult]:
        """
        Download *config* (if given) and all *layers* of *image*.

        Blocks until every item has an outcome. Results come back in request
        order, the config blob first.

        Args:
            image: Normalized image name
            token: Bearer token for the registry
            layers: ``Layer`` descriptors in manifest order
            config: Optional config ``Descriptor``, cached as ``<digest>.json``
            on_progress: Called with a ``DownloadProgress`` from worker threads
        """
        emit = on_progress or (lambda event: None)
        cache_dir = image_cache_dir(self.download_root, image)

        items = []
        if config is not None:
            items.append((config, CONFIG_SUFFIX))
        items.extend((layer, LAYER_SUFFIX) for layer in layers)

        work = queue.Queue()
        for index, (descriptor, suffix) in enumerate(items):
            work.put((index, descriptor, suffix))
        results: list[LayerDownloadResult | None] = [None] * len(items)

        width = min(self.workers, len(items))
        logger.info(f"Pulling {image}: {len(items)} blob(s) with {width} worker(s)")

        threads = [
            threading.Thread(
                target=self._worker,
                args=(work, results, image, token, cache_dir, emit),
                name=f"blob-worker-{n}",
                daemon=True,
            )
            for n in range(width)
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        summary = self.summarize(results)
        logger.info(
            f"Pull of {image} finished: total={summary.total}, skipped={summary.skipped}, "
            f"downloaded={summary.downloaded}, failed={sum(1 for r in results if not r.success)}"
        )
        return results

    def _worker(self, work: queue.Queue, results: list, image: str, token: str,
                cache_dir: str, emit: ProgressCallback):
        while True:
            try:
                index, descriptor, suffix = work.get_nowait()
            except queue.Empty:
                return
            results[index] = self.fetch_blob(image, token, cache_dir, descriptor, suffix, emit)

    def fetch_blob(self, image: str, token: str, cache_dir: str, descriptor,
                   suffix: str = LAYER_SUFFIX, emit: ProgressCallback | None = None) -> LayerDownloadResult:
        """
        Process one queue item to completion. Never raises.
        """
        emit = emit or (lambda event: None)
        digest = descriptor.digest

        cached = probe(cache_dir, descriptor, suffix)
        if cached.hit:
            logger.info(f"Skipping cached blob {digest}")
            emit(DownloadProgress.of(digest, descriptor.size, descriptor.size))
            return LayerDownloadResult(digest=digest, success=True, skipped=True, file_name=cached.path)

        deadline = Deadline(self.blob_timeout)
        try:
            with deadline:
                self._stream_blob(image, token, descriptor, cached.path, deadline, emit)
        except (BlobTimeoutError, requests.Timeout) as e:
            logger.warning(f"Blob {digest} timed out: {e}")
            return LayerDownloadResult(digest=digest, success=False, error=TIMEOUT_ERROR)
        except Exception as e:
            if deadline.expired.is_set():
                logger.warning(f"Blob {digest} aborted by deadline: {e}")
                return LayerDownloadResult(digest=digest, success=False, error=TIMEOUT_ERROR)
            logger.error(f"Blob {digest} failed: {e}")
            return LayerDownloadResult(digest=digest, success=False, error=str(e) or type(e).__name__)

        return LayerDownloadResult(digest=digest, success=True, skipped=False, file_name=cached.path)

    def _stream_blob(self, image: str, token: str, descriptor, path: str,
                     deadline: Deadline, emit: ProgressCallback):
        digest = descriptor.digest
        url = f"{self.cfg.REGISTRY_URL}/v2/{image}/blobs/{digest}"
        logger.info(f"Downloading blob {digest} ({descriptor.size} bytes)")

        resp = self.client.get(url, headers=bearer_headers(token), stream=True, timeout=deadline.remaining())
        deadline.attach(resp)
        try:
            check_response(resp, f"Blob request for {digest}")
            content_length = resp.headers.get("Content-Length")
            total = int(content_length) if content_length else descriptor.size

            downloaded = 0
            last = None
            with open(path, "wb") as f:
                for chunk in resp.iter_content(chunk_size=self.chunk_size):
                    deadline.check()
                    if not chunk:
                        continue
                    f.write(chunk)
                    downloaded += len(chunk)
                    last = DownloadProgress.of(digest, downloaded, total)
                    emit(last)
            deadline.check()
        finally:
            resp.close()

        if downloaded != descriptor.size:
            logger.error(f"Blob {digest}: received {downloaded} bytes, manifest declares {descriptor.size}")
            raise UpstreamError(f"Blob {digest} size mismatch: received {downloaded} of {descriptor.size} bytes", 502)
        # Content-Length may disagree with the manifest
        if last is None or last.percentage < 100:
            emit(DownloadProgress.of(digest, downloaded, descriptor.size))
        logger.debug(f"Saved blob {digest} to {path}")

    @staticmethod
    def summarize(results: list[LayerDownloadResult]) -> DownloadSummary:
        skipped = sum(1 for r in results if r.success and r.skipped)
        downloaded = sum(1 for r in results if r.success and not r.skipped)
        return DownloadSummary(total=len(results), skipped=skipped, downloaded=downloaded)

    @staticmethod
    def raise_for_failures(results: list[LayerDownloadResult]):
        """
        Raises:
            PartialFailureError: at least one blob failed; timeouts listed separately
        """
        failed = [r.digest for r in results if not r.success]
        if failed:
            timed_out = [r.digest for r in results if r.timed_out]
            raise PartialFailureError(failed, timed_out)
