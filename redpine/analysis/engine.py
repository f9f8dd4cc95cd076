"""Analysis orchestrator - decodes audio and runs the tempo and key estimators."""

import logging
import os
import tempfile
import time
from concurrent.futures import ThreadPoolExecutor, wait, FIRST_EXCEPTION
from pathlib import Path

from redpine.analysis.models import AnalysisResult, AudioSampleBuffer, BulkItemResult
from redpine.analysis.key import estimate_key
from redpine.analysis.tempo import estimate_bpm
from redpine.audio.loader import AudioDecodeError, load_audio
from redpine.config import settings

logger = logging.getLogger(__name__)


class AnalysisTimeoutError(TimeoutError):
    """Raised when an analysis exceeds its wall-clock budget."""


# Marks constructor arguments that fall back to the current settings; None is
# a meaningful value for both (no time limit, native sample rate).
_FROM_SETTINGS = object()


class AnalysisEngine:
    """Runs BPM and key detection over decoded audio.

    Parameters
    ----------
    cache:
        Optional ``AnalysisCache``; results are looked up by file content
        and decode sample rate.
    timeout:
        Wall-clock budget in seconds for one ``analyze_audio`` call, or
        None for no limit. Work that overruns is abandoned, not cancelled.
    max_workers:
        Files analyzed in parallel by ``analyze_files``.
    sample_rate:
        Decode rate passed to ``load_audio``, or None for the native rate.

    Arguments left out are read from ``settings`` when the engine is built.
    """

    def __init__(
        self,
        cache=None,
        timeout=_FROM_SETTINGS,
        max_workers: int | None = None,
        sample_rate=_FROM_SETTINGS,
    ):
        self.cache = cache  # AnalysisCache | None
        self.timeout: float | None = (
            settings.analysis_timeout_seconds if timeout is _FROM_SETTINGS else timeout
        )
        self.max_workers = max_workers or settings.max_workers
        self.sample_rate: int | None = (
            settings.sample_rate if sample_rate is _FROM_SETTINGS else sample_rate
        )

    def analyze_audio(self, buffer: AudioSampleBuffer) -> AnalysisResult:
        """Analyze pre-decoded audio; tempo and key run concurrently."""
        duration = buffer.duration_seconds
        logger.info(f"Analyzing {duration:.1f}s of audio at {buffer.sample_rate}Hz")
        started = time.monotonic()

        pool = ThreadPoolExecutor(max_workers=2)
        try:
            bpm_future = pool.submit(estimate_bpm, buffer)
            key_future = pool.submit(estimate_key, buffer)
            done, pending = wait(
                [bpm_future, key_future],
                timeout=self.timeout,
                return_when=FIRST_EXCEPTION,
            )
            errors = [f.exception() for f in done if f.exception() is not None]
            if errors:
                raise errors[0]
            if pending:
                raise AnalysisTimeoutError(
                    f"Analysis exceeded {self.timeout}s for {duration:.1f}s of audio"
                )
            bpm = bpm_future.result()
            key = key_future.result()
        finally:
            pool.shutdown(wait=False, cancel_futures=True)

        logger.info(f"  BPM: {bpm}, key: {key} ({time.monotonic() - started:.2f}s)")
        return AnalysisResult(bpm=bpm, key=key, duration=round(duration, 3))

    def analyze_file(self, file_path: str) -> AnalysisResult:
        """Decode and analyze an audio file, consulting the cache first."""
        audio_hash = None
        if self.cache:
            audio_hash = self.cache.audio_hash(str(file_path))
            cached = self.cache.load_result(audio_hash, self.sample_rate)
            if cached is not None:
                logger.info(f"Result for {Path(file_path).name} loaded from cache")
                return cached

        buffer = load_audio(file_path, sr=self.sample_rate)
        result = self.analyze_audio(buffer)

        if self.cache and audio_hash:
            self.cache.save_result(audio_hash, self.sample_rate, result)
        return result

    def analyze_bytes(self, content: bytes, suffix: str = "") -> AnalysisResult:
        """Analyze an in-memory upload via a temporary file.

        A cached upload is answered from its content hash without touching
        disk. Otherwise librosa needs a real path for compressed formats
        decoded by audioread; the file is removed whatever happens.
        """
        if self.cache:
            cached = self.cache.load_result(self.cache.bytes_hash(content), self.sample_rate)
            if cached is not None:
                logger.info("Upload result loaded from cache")
                return cached

        tmp_path: str | None = None
        try:
            with tempfile.NamedTemporaryFile(suffix=suffix, delete=False) as tmp:
                tmp.write(content)
                tmp_path = tmp.name
            return self.analyze_file(tmp_path)
        finally:
            if tmp_path is not None:
                try:
                    os.unlink(tmp_path)
                except OSError:
                    pass

    def analyze_files(self, file_paths: list[str]) -> list[BulkItemResult]:
        """Analyze independent files in parallel, keeping input order.

        A file that fails to decode or times out is reported in its own row;
        the rest of the batch still runs.
        """
        logger.info(f"Bulk analysis of {len(file_paths)} files")
        with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
            futures = [pool.submit(self._analyze_one, str(p)) for p in file_paths]
            items = [f.result() for f in futures]

        failed = sum(1 for item in items if not item.ok)
        if failed:
            logger.info(f"  {failed}/{len(items)} files could not be analyzed")
        return items

    def _analyze_one(self, file_path: str) -> BulkItemResult:
        name = Path(file_path).name
        try:
            return BulkItemResult(filename=name, result=self.analyze_file(file_path))
        except (AudioDecodeError, AnalysisTimeoutError, OSError) as e:
            logger.warning(f"  {name}: {e}")
            return BulkItemResult(filename=name, error=str(e))
