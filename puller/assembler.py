"""
Image assembly module for the image puller service.

Rebuilds the legacy ``docker save`` layout from cached blobs and streams it
as a single uncompressed tar archive.

Archive layout:
    manifest.json           [{"Config": "<config>.json", "RepoTags": [...], "Layers": [...]}]
    repositories            {"<name>": {"<tag>": "<config>"}}
    <config>.json           config blob, verbatim
    <layer>/VERSION         "1.0"
    <layer>/json            legacy layer descriptor, parent = previous layer
    <layer>/layer.tar       layer blob, verbatim

Directory and file names use the digest without its algorithm prefix.
"""

import json
import logging
import os
import queue
import shutil
import tarfile
import tempfile
import threading
import time
from datetime import datetime, timezone

from .cache import CONFIG_SUFFIX, image_cache_dir, probe
from .client import bearer_headers
from .config import config
from .errors import AssemblyError
from .validation import digest_hex, normalize_image_name, repo_tag_name, safe_file_base_name

logger = logging.getLogger(__name__)

LAYER_VERSION = "1.0"
PLACEHOLDER_CMD = ["baselayer"]


def archive_name(raw_image: str, tag: str) -> str:
    """
    Attachment file name of an exported image.

    Example:
        >>> archive_name("bitnami/redis", "7.2")
        'bitnami_redis-7.2.tar'
    """
    return f"{safe_file_base_name(raw_image)}-{tag}.tar"


def _timestamp() -> str:
    now = datetime.now(timezone.utc)
    return now.strftime("%Y-%m-%dT%H:%M:%S.") + f"{now.microsecond // 1000:03d}Z"


def _write_json(path: str, data):
    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2)


def remove_tree(path: str):
    """Delete a working directory; failures are logged, never raised."""
    try:
        shutil.rmtree(path)
        logger.debug(f"Removed working directory {path}")
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.warning(f"Failed to remove working directory {path}: {e}")


def write_legacy_layout(work_dir: str, manifest, repo_name: str, tag: str,
                        config_path: str, layer_paths: list[str]):
    """
    Populate *work_dir* with the legacy image layout.

    Args:
        work_dir: Empty, existing directory
        manifest: ``ExportManifest`` (config, ordered layers, platform)
        repo_name: Repository name recorded in RepoTags / repositories
        tag: Image tag
        config_path: Local path of the config blob
        layer_paths: Local paths of the layer blobs, in manifest order
    """
    config_id = digest_hex(manifest.config.digest)
    layer_ids = [digest_hex(layer.digest) for layer in manifest.layers]

    for index, (layer_id, source) in enumerate(zip(layer_ids, layer_paths)):
        layer_dir = os.path.join(work_dir, layer_id)
        os.makedirs(layer_dir, exist_ok=True)

        with open(os.path.join(layer_dir, "VERSION"), "w", encoding="utf-8") as f:
            f.write(LAYER_VERSION)

        descriptor = {"id": layer_id}
        if index > 0:
            descriptor["parent"] = layer_ids[index - 1]
        descriptor.update({
            "created": _timestamp(),
            "container_config": {"Cmd": list(PLACEHOLDER_CMD)},
            "architecture": manifest.platform.architecture,
            "os": manifest.platform.os,
        })
        _write_json(os.path.join(layer_dir, "json"), descriptor)

        shutil.copyfile(source, os.path.join(layer_dir, "layer.tar"))
        logger.debug(f"Layer {index + 1}/{len(layer_ids)} staged: {layer_id}")

    _write_json(os.path.join(work_dir, "manifest.json"), [{
        "Config": f"{config_id}.json",
        "RepoTags": [f"{repo_name}:{tag}"],
        "Layers": [f"{layer_id}/layer.tar" for layer_id in layer_ids],
    }])

    shutil.copyfile(config_path, os.path.join(work_dir, f"{config_id}.json"))

    _write_json(os.path.join(work_dir, "repositories"), {repo_name: {tag: config_id}})


def _normalize_member(info: tarfile.TarInfo) -> tarfile.TarInfo:
    info.mtime = 0
    info.uid = info.gid = 0
    info.uname = info.gname = ""
    return info


class _ArchivePipe:
    """
    File-like sink connecting the tar writer thread to the response iterator.

    The bounded queue keeps at most a few chunks in memory; the writer blocks
    until the consumer catches up, and gives up once the consumer cancels.
    """

    _END = object()

    def __init__(self, maxsize: int = 16):
        self._chunks = queue.Queue(maxsize=maxsize)
        self._cancelled = threading.Event()
        self._error = None

    def write(self, data) -> int:
        self._put(bytes(data))
        return len(data)

    def finish(self, error: Exception | None = None):
        self._error = error
        self._put(self._END)

    def cancel(self):
        self._cancelled.set()

    def _put(self, item):
        while not self._cancelled.is_set():
            try:
                self._chunks.put(item, timeout=0.1)
                return
            except queue.Full:
                continue
        raise AssemblyError("Archive stream was closed by the consumer")

    def __iter__(self):
        while True:
            item = self._chunks.get()
            if item is self._END:
                if self._error is not None:
                    raise AssemblyError(f"Failed to write archive: {self._error}") from self._error
                return
            yield item


class ArchiveStream:
    """
    Iterable of tar bytes for an assembled working directory.

    Iterating starts a writer thread that packs the directory in tar stream
    mode (uncompressed, ustar, mtime 0, symlinks followed). ``close()`` stops
    the writer and deletes the working directory; the web server calls it
    when the response finishes or the client goes away.
    """

    def __init__(self, work_dir: str):
        self.work_dir = work_dir
        self._pipe = _ArchivePipe()
        self._writer = None
        self._closed = False

    def __iter__(self):
        self._writer = threading.Thread(target=self._write, name="archive-writer", daemon=True)
        self._writer.start()
        try:
            yield from self._pipe
        finally:
            self.close()

    def _write(self):
        error = None
        try:
            with tarfile.open(fileobj=self._pipe, mode="w|", format=tarfile.USTAR_FORMAT,
                              dereference=True) as tar:
                for name in sorted(os.listdir(self.work_dir)):
                    tar.add(os.path.join(self.work_dir, name), arcname=name, filter=_normalize_member)
        except Exception as e:
            error = e
            logger.error(f"Writing archive from {self.work_dir} failed: {e}")
        try:
            self._pipe.finish(error)
        except AssemblyError:
            logger.debug("Archive consumer went away before the end of the stream")

    def close(self):
        if self._closed:
            return
        self._closed = True
        self._pipe.cancel()
        if self._writer is not None:
            self._writer.join()
        remove_tree(self.work_dir)


class ImageAssembler:
    """
    Builds legacy image archives from blobs cached by the download manager.

    Usage:
        assembler = ImageAssembler(client, "/var/cache/puller", "/tmp/puller")
        stream = assembler.assemble("nginx", "latest", token, export_manifest)
        for chunk in stream:
            ...
    """

    def __init__(self, client, download_root: str, tmp_root: str, cfg=None):
        self.cfg = cfg or config
        self.client = client
        self.download_root = download_root
        self.tmp_root = tmp_root

    def assemble(self, raw_image: str, tag: str, token: str, manifest) -> ArchiveStream:
        """
        Build the layout for *raw_image*:*tag* and return its archive stream.

        The directory is built before returning, so every failure surfaces
        here rather than halfway through a response.

        Args:
            raw_image: Image name as given by the client (recorded in RepoTags)
            tag: Image tag
            token: Bearer token, used only if the config blob is not cached
            manifest: ``ExportManifest``

        Raises:
            AssemblyError: a layer blob is missing from the cache, or a local
                filesystem operation failed
            UpstreamError: fetching the config blob failed
        """
        image = normalize_image_name(raw_image)
        cache_dir = image_cache_dir(self.download_root, image)

        layer_paths = []
        missing = []
        for layer in manifest.layers:
            cached = probe(cache_dir, layer)
            if cached.hit:
                layer_paths.append(cached.path)
            else:
                missing.append(layer.digest)
        if missing:
            logger.error(f"Cannot assemble {image}:{tag}, {len(missing)} layer(s) not downloaded: {missing}")
            raise AssemblyError(f"Layers not downloaded: {', '.join(missing)}")

        config_path = self._config_blob(image, token, cache_dir, manifest.config)

        work_dir = None
        try:
            os.makedirs(self.tmp_root, exist_ok=True)
            work_dir = tempfile.mkdtemp(prefix=f"{safe_file_base_name(image)}-{int(time.time() * 1000)}-", dir=self.tmp_root)
            logger.info(f"Assembling {image}:{tag} in {work_dir}")
            write_legacy_layout(work_dir, manifest, repo_tag_name(raw_image), tag, config_path, layer_paths)
        except OSError as e:
            logger.error(f"Assembling {image}:{tag} failed: {e}")
            if work_dir:
                remove_tree(work_dir)
            raise AssemblyError(f"Failed to assemble image: {e}") from e

        logger.info(f"Assembled {image}:{tag}: {len(layer_paths)} layer(s)")
        return ArchiveStream(work_dir)

    def _config_blob(self, image: str, token: str, cache_dir: str, descriptor) -> str:
        cached = probe(cache_dir, descriptor, CONFIG_SUFFIX)
        if cached.hit:
            return cached.path

        logger.info(f"Fetching config blob {descriptor.digest}")
        resp = self.client.get_checked(
            f"{self.cfg.REGISTRY_URL}/v2/{image}/blobs/{descriptor.digest}",
            f"Config blob request for {descriptor.digest}",
            headers=bearer_headers(token),
        )
        try:
            with open(cached.path, "wb") as f:
                f.write(resp.content)
        except OSError as e:
            raise AssemblyError(f"Failed to store config blob: {e}") from e
        return cached.path
