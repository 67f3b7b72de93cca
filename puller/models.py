"""Pydantic models for registry manifests and pull session records."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

__all__ = [
    "Descriptor",
    "Layer",
    "Platform",
    "ManifestEntry",
    "ManifestIndex",
    "ManifestDetail",
    "ExportManifest",
    "DownloadProgress",
    "LayerDownloadResult",
    "DownloadSummary",
    "UNKNOWN_PLATFORM",
]


class _Model(BaseModel):
    """Frozen model that accepts and emits the registry's camelCase keys."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class Descriptor(_Model):
    """Content descriptor of a single blob (layer or config)."""

    digest: str            # <algorithm>:<hex>
    size: int = Field(ge=0)
    media_type: str = Field(default="", alias="mediaType")


class Layer(Descriptor):
    """A layer blob; list order defines the parent chain."""


class Platform(_Model):
    architecture: str
    os: str
    variant: str | None = None


UNKNOWN_PLATFORM = Platform(architecture="unknown", os="unknown")


class ManifestEntry(_Model):
    """One per-platform manifest reference inside an index."""

    digest: str
    media_type: str = Field(default="", alias="mediaType")
    platform: Platform = UNKNOWN_PLATFORM
    size: int = 0


class ManifestIndex(_Model):
    """
    Multi-platform manifest list / OCI image index.

    Single-platform responses are normalized into this shape by the resolver.
    """

    schema_version: int = Field(default=2, alias="schemaVersion")
    media_type: str = Field(default="", alias="mediaType")
    manifests: list[ManifestEntry]


class ManifestDetail(_Model):
    """Concrete single-platform image manifest."""

    config: Descriptor
    layers: list[Layer]
    media_type: str = Field(default="", alias="mediaType")
    schema_version: int = Field(default=2, alias="schemaVersion")


class ExportManifest(ManifestDetail):
    """Manifest detail plus the platform chosen by the client, input to the assembler."""

    platform: Platform = UNKNOWN_PLATFORM


class DownloadProgress(_Model):
    layer_digest: str = Field(alias="layerDigest")
    downloaded_size: int = Field(alias="downloadedSize")
    total_size: int = Field(alias="totalSize")
    percentage: int

    @classmethod
    def of(cls, digest: str, downloaded: int, total: int) -> "DownloadProgress":
        """Build a progress record, percentage is floor(downloaded * 100 / total) capped at 100."""
        percentage = 100 if total <= 0 else min(100, downloaded * 100 // total)
        return cls(
            layer_digest=digest,
            downloaded_size=downloaded,
            total_size=total,
            percentage=percentage,
        )


class LayerDownloadResult(_Model):
    """Outcome of one requested blob; ``error == "timeout"`` marks a fired deadline."""

    digest: str
    success: bool
    skipped: bool = False
    file_name: str | None = Field(default=None, alias="fileName")
    error: str | None = None

    @property
    def timed_out(self) -> bool:
        return self.error == "timeout"


class DownloadSummary(_Model):
    total: int
    skipped: int
    downloaded: int
