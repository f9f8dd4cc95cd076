"""Analysis result cache backed by LMDB.

Cache structure:
    {cache_dir}/analysis.lmdb/
    ├── data.mdb
    └── lock.mdb

Key format:
    results:{algo_hash}:{sample_rate}:{audio_hash}   → JSON {"bpm": ..., "key": ...}

``algo_hash`` covers the estimator sources, so editing the tempo or key
code produces a new hash and old entries simply aren't read. Stale entries
are cleaned up at startup via prefix scan. ``audio_hash`` is derived from
the file content, so re-uploads of the same beat under another name hit.
``sample_rate`` is the decode rate, or ``native``; results differ by rate.
"""

import functools
import hashlib
import json
import logging
from pathlib import Path

import lmdb

from redpine.analysis.models import AnalysisResult

logger = logging.getLogger(__name__)

# LMDB map size: 1 GB virtual address space (file grows on demand).
_MAP_SIZE = 1024 * 1024 * 1024

# Source files whose content determines the cached values.
ALGORITHM_FILES: list[str] = [
    "redpine/analysis/tempo.py",
    "redpine/analysis/key.py",
    "redpine/audio/preprocessing.py",
]


class AnalysisCache:
    """Per-file BPM/key cache (LMDB backend)."""

    def __init__(self, cache_dir: Path | str = ".cache"):
        self.cache_dir = Path(cache_dir)
        self._algo_hash = self._combined_hash(*ALGORITHM_FILES)

        lmdb_path = self.cache_dir / "analysis.lmdb"
        lmdb_path.mkdir(parents=True, exist_ok=True)
        self._env = lmdb.open(
            str(lmdb_path),
            map_size=_MAP_SIZE,
            max_dbs=0,
            readahead=False,
        )

        self._cleanup_stale_entries()

    def _result_key(self, audio_hash: str, sample_rate: int | None) -> bytes:
        return f"results:{self._algo_hash}:{sample_rate or 'native'}:{audio_hash}".encode()

    # ------------------------------------------------------------------
    # Hashing helpers
    # ------------------------------------------------------------------

    @staticmethod
    def audio_hash(file_path: str) -> str:
        """SHA-256 of the file content -> 16 hex chars."""
        h = hashlib.sha256()
        with open(file_path, "rb") as f:
            for chunk in iter(lambda: f.read(1 << 16), b""):
                h.update(chunk)
        return h.hexdigest()[:16]

    @staticmethod
    def bytes_hash(content: bytes) -> str:
        return hashlib.sha256(content).hexdigest()[:16]

    @staticmethod
    def _combined_hash(*rel_paths: str) -> str:
        """SHA-256 of concatenated source files -> 12 hex chars."""
        h = hashlib.sha256()
        for rp in sorted(rel_paths):
            p = _package_root() / rp
            if p.exists():
                h.update(p.read_bytes())
        return h.hexdigest()[:12]

    # ------------------------------------------------------------------
    # Results: results:{algo_hash}:{sample_rate}:{audio_hash}
    # ------------------------------------------------------------------

    def load_result(self, audio_hash: str, sample_rate: int | None) -> AnalysisResult | None:
        key = self._result_key(audio_hash, sample_rate)
        with self._env.begin() as txn:
            data = txn.get(key)
        if data is None:
            return None
        try:
            payload = json.loads(data)
        except json.JSONDecodeError:
            logger.warning("Corrupt cache entry for %s, ignoring", audio_hash)
            return None
        return AnalysisResult(
            bpm=payload.get("bpm"),
            key=payload.get("key"),
            duration=payload.get("duration", 0.0),
        )

    def save_result(
        self, audio_hash: str, sample_rate: int | None, result: AnalysisResult
    ) -> None:
        key = self._result_key(audio_hash, sample_rate)
        payload = {**result.to_dict(), "duration": result.duration}
        with self._env.begin(write=True) as txn:
            txn.put(key, json.dumps(payload).encode())

    # ------------------------------------------------------------------
    # Stale entry cleanup
    # ------------------------------------------------------------------

    def _cleanup_stale_entries(self) -> None:
        """Remove LMDB entries whose hash doesn't match current source code."""
        stat = self._env.stat()
        if stat["entries"] == 0:
            return

        valid_prefix = f"results:{self._algo_hash}:"
        with self._env.begin(write=True) as txn:
            cursor = txn.cursor()
            stale: list[bytes] = []
            for key_bytes, _ in cursor:
                if not key_bytes.decode(errors="replace").startswith(valid_prefix):
                    stale.append(key_bytes)
            for key_bytes in stale:
                txn.delete(key_bytes)

        if stale:
            logger.info("LMDB cleanup: removed %d stale entries", len(stale))

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def close(self) -> None:
        """Close the LMDB environment."""
        if self._env:
            self._env.close()
            self._env = None


@functools.lru_cache(maxsize=1)
def _package_root() -> Path:
    return Path(__file__).resolve().parent.parent.parent
