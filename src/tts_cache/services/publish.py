"""
Publish Hand-off.

Artifacts can be republished to an external asset platform for playback in
the game client. The upload client itself lives outside this package; this
module only defines the interface it implements and the side index that
remembers which fingerprints were already published.

    class MyPublisher:
        def publish(self, path: Path, fingerprint: str) -> str:
            ...  # upload, return the platform's asset id
            # raise PublishError("rate limited", retryable=True) on failure

    index = AssetIndex("./artifacts-index.json")
    asset_id = publish_artifact(meta, MyPublisher(), index)

Index file format:
    {
      "5a2b...e1": {"asset_id": "1234567", "published_at": 1712345678.9},
      ...
    }

The index is an accelerator for the publisher's own bookkeeping. The cache
never reads it, and a missing or corrupt file just starts empty.
"""
from __future__ import annotations

import json
import os
import tempfile
import threading
import time
from pathlib import Path
from typing import Any, Dict, Optional, Protocol, Union

from tts_cache.core.logging import get_logger, info, warn
from tts_cache.pipeline.models import ArtifactMetadata

_LOG = get_logger("tts-cache.publish")


class PublishError(Exception):
    """
    Publishing failed.

    Attributes:
        retryable: True if the same call may succeed later (rate limits,
            transient network errors). Retry policy belongs to the caller.
    """

    def __init__(self, message: str, retryable: bool = False):
        super().__init__(message)
        self.message = message
        self.retryable = retryable


class Publisher(Protocol):
    def publish(self, path: Path, fingerprint: str) -> str:
        """Upload the file at path and return the external asset id."""
        ...


class AssetIndex:
    """
    Persistent fingerprint -> asset id map.

    Thread-safe. Every write replaces the whole file atomically.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self._lock = threading.Lock()
        self._entries: Dict[str, Dict[str, Any]] = self._load()

    def _load(self) -> Dict[str, Dict[str, Any]]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            warn(_LOG, "index_unreadable", path=str(self.path), error=str(e))
            return {}
        if not isinstance(data, dict):
            warn(_LOG, "index_unreadable", path=str(self.path), error="root is not an object")
            return {}
        return {k: v for k, v in data.items() if isinstance(v, dict) and "asset_id" in v}

    def get(self, fp: str) -> Optional[str]:
        with self._lock:
            entry = self._entries.get(fp)
            return str(entry["asset_id"]) if entry else None

    def put(self, fp: str, asset_id: str) -> None:
        with self._lock:
            self._entries[fp] = {"asset_id": asset_id, "published_at": time.time()}
            self._write()

    def remove(self, fp: str) -> bool:
        with self._lock:
            if self._entries.pop(fp, None) is None:
                return False
            self._write()
            return True

    def _write(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(prefix=self.path.name + ".", suffix=".tmp", dir=str(self.path.parent))
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(self._entries, f, indent=2, sort_keys=True)
            os.replace(tmp, self.path)
        except BaseException:
            try:
                os.unlink(tmp)
            except FileNotFoundError:
                pass
            raise

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, fp: str) -> bool:
        with self._lock:
            return fp in self._entries


def publish_artifact(
    meta: ArtifactMetadata,
    publisher: Publisher,
    index: Optional[AssetIndex] = None,
) -> str:
    """
    Publish meta's file once and return its asset id.

    A fingerprint already in the index is not uploaded again.

    Raises:
        PublishError: From the publisher, unchanged.
    """
    if index is not None:
        existing = index.get(meta.fingerprint)
        if existing is not None:
            return existing

    try:
        asset_id = publisher.publish(meta.path, meta.fingerprint)
    except PublishError as e:
        warn(_LOG, "publish_failed", fp=meta.fingerprint[:8], retryable=e.retryable, error=e.message)
        raise

    if index is not None:
        index.put(meta.fingerprint, asset_id)
    info(_LOG, "published", fp=meta.fingerprint[:8], asset_id=asset_id)
    return asset_id
