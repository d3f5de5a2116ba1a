"""Storage for downloaded video assets."""

from __future__ import annotations

import os
import re
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import BinaryIO, Protocol

from starlette.concurrency import run_in_threadpool

from vidforge.jobs.capability import AssetPayload
from vidforge.utils.time import Clock, utc_now

_VARIANT_SUFFIXES: dict[str, tuple[str, str]] = {
  "video": (".mp4", "video/mp4"),
  "thumbnail": ("_thumbnail.webp", "image/webp"),
  "spritesheet": ("_spritesheet.jpg", "image/jpeg"),
}


@dataclass(frozen=True)
class StoredAsset:
  """Metadata of one stored asset file."""

  variant: str
  path: str
  url: str
  size: int
  content_type: str
  stored_at: datetime


class AssetStorage(Protocol):
  """Contract for asset storage backends."""

  async def next_version(self, batch_id: str, external_id: str) -> int:
    """Return the version number the next download of ``external_id`` should use."""
    ...

  async def save(self, *, batch_id: str, external_id: str, version: int, variant: str, payload: AssetPayload) -> StoredAsset:
    """Store one variant and return its metadata."""
    ...

  async def delete(self, path: str) -> None:
    """Remove a stored asset; missing files are ignored."""
    ...


def _safe_segment(value: str) -> str:
  cleaned = re.sub(r"[^A-Za-z0-9_.-]", "_", value).strip("._")
  if not cleaned:
    raise ValueError(f"Cannot build a file name from {value!r}")
  return cleaned


def asset_filename(external_id: str, version: int, variant: str) -> str:
  """``vid_123_V2.mp4``, ``vid_123_V2_thumbnail.webp``, ``vid_123_V2_spritesheet.jpg``."""
  if variant not in _VARIANT_SUFFIXES:
    raise ValueError(f"Unknown asset variant {variant!r}")
  suffix, _ = _VARIANT_SUFFIXES[variant]
  return f"{_safe_segment(external_id)}_V{version}{suffix}"


class LocalAssetStorage:
  """Stores assets under ``base_dir/<batch_id>/`` and serves them from ``base_url``."""

  def __init__(self, base_dir: Path | str, *, base_url: str = "/generated-videos", clock: Clock = utc_now) -> None:
    self._base_dir = Path(base_dir)
    self._base_url = base_url.rstrip("/")
    self._clock = clock

  @property
  def base_dir(self) -> Path:
    return self._base_dir

  def _batch_dir(self, batch_id: str) -> Path:
    return self._base_dir / _safe_segment(batch_id)

  def _scan_versions(self, batch_id: str, external_id: str) -> int:
    directory = self._batch_dir(batch_id)
    if not directory.is_dir():
      return 1
    pattern = re.compile(rf"^{re.escape(_safe_segment(external_id))}_V(\d+)")
    versions = [int(match.group(1)) for entry in directory.iterdir() if (match := pattern.match(entry.name))]
    return max(versions, default=0) + 1

  async def next_version(self, batch_id: str, external_id: str) -> int:
    return await run_in_threadpool(self._scan_versions, batch_id, external_id)

  async def save(self, *, batch_id: str, external_id: str, version: int, variant: str, payload: AssetPayload) -> StoredAsset:
    filename = asset_filename(external_id, version, variant)
    directory = self._batch_dir(batch_id)
    target = directory / filename
    tmp_path = target.with_name(f".{filename}.part")
    await run_in_threadpool(directory.mkdir, parents=True, exist_ok=True)

    if isinstance(payload, bytes | bytearray):
      await run_in_threadpool(tmp_path.write_bytes, bytes(payload))
      size = len(payload)
    else:
      size = await self._write_stream(tmp_path, payload)
    await run_in_threadpool(os.replace, tmp_path, target)

    relative = f"{directory.name}/{filename}"
    _, content_type = _VARIANT_SUFFIXES[variant]
    return StoredAsset(variant=variant, path=relative, url=f"{self._base_url}/{relative}", size=size, content_type=content_type, stored_at=self._clock())

  async def _write_stream(self, path: Path, payload: AssetPayload) -> int:
    handle: BinaryIO = await run_in_threadpool(path.open, "wb")
    size = 0
    try:
      async for chunk in payload:  # type: ignore[union-attr]
        await run_in_threadpool(handle.write, chunk)
        size += len(chunk)
    except BaseException:
      await run_in_threadpool(handle.close)
      await run_in_threadpool(path.unlink, missing_ok=True)
      raise
    await run_in_threadpool(handle.close)
    return size

  async def delete(self, path: str) -> None:
    target = (self._base_dir / path).resolve()
    if self._base_dir.resolve() not in target.parents:
      raise ValueError(f"Refusing to delete outside the asset directory: {path!r}")
    await run_in_threadpool(target.unlink, missing_ok=True)
