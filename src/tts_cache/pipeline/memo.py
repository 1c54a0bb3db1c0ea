"""
In-Memory Metadata Memo.

An LRU map from fingerprint to ArtifactMetadata that saves the ffprobe call
(and the stat bookkeeping) on repeat hits within one process.

The filesystem stays the single source of truth. An entry is only trusted
after the caller has re-stated the artifact and the size and mtime still
match what was memoized; a mismatch or a missing file drops the entry
(see ``ArtifactCache._memo_lookup``). The memo is never written to disk and
never consulted when deciding whether to generate.
"""
from __future__ import annotations

import threading
from collections import OrderedDict
from typing import Dict, Optional

from tts_cache.core.config import Defaults
from tts_cache.core.logging import debug, get_logger
from tts_cache.pipeline.models import ArtifactMetadata

_LOG = get_logger("tts-cache.memo")


class MetadataMemo:
    """
    Thread-safe LRU of artifact metadata.

    Statistics:
        hits, misses and stale (entries dropped after failing re-validation)
        are tracked for /health.
    """

    def __init__(self, max_items: int = Defaults.MEMO_MAX_ITEMS):
        self.max_items = int(max_items)
        self._d: "OrderedDict[str, ArtifactMetadata]" = OrderedDict()
        self._lock = threading.Lock()

        self._hits = 0
        self._misses = 0
        self._stale = 0

    def get(self, fp: str) -> Optional[ArtifactMetadata]:
        """Return the memoized metadata for fp (not yet re-validated)."""
        with self._lock:
            meta = self._d.get(fp)
            if meta is None:
                self._misses += 1
                return None
            self._d.move_to_end(fp)
            self._hits += 1
            return meta

    def set(self, fp: str, meta: ArtifactMetadata) -> None:
        with self._lock:
            self._d[fp] = meta
            self._d.move_to_end(fp)
            while len(self._d) > self.max_items:
                self._d.popitem(last=False)

    def drop_stale(self, fp: str) -> None:
        """Remove an entry that no longer matches the filesystem."""
        with self._lock:
            if self._d.pop(fp, None) is not None:
                self._stale += 1
                # The hit counted by get() turned out to be a miss.
                self._hits -= 1
                self._misses += 1
        debug(_LOG, "stale", fp=fp[:8])

    def delete(self, fp: str) -> bool:
        with self._lock:
            return self._d.pop(fp, None) is not None

    def clear(self) -> int:
        with self._lock:
            count = len(self._d)
            self._d.clear()
            return count

    def stats(self) -> Dict[str, int]:
        with self._lock:
            return {
                "hits": self._hits,
                "misses": self._misses,
                "stale": self._stale,
                "size": len(self._d),
                "max_items": self.max_items,
            }

    def __len__(self) -> int:
        with self._lock:
            return len(self._d)

    def __contains__(self, fp: str) -> bool:
        with self._lock:
            return fp in self._d
