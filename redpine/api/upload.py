"""File upload endpoints for BPM and key analysis."""

import functools
import logging
import os
import tempfile

from fastapi import APIRouter, UploadFile, File, HTTPException
from fastapi.concurrency import run_in_threadpool

from redpine.api.schemas import AnalysisResponse, BulkAnalysisResponse, BulkItemResponse
from redpine.analysis.engine import AnalysisEngine, AnalysisTimeoutError
from redpine.audio.loader import AudioDecodeError
from redpine.config import settings

logger = logging.getLogger(__name__)

router = APIRouter()

ALLOWED_EXTENSIONS = {".wav", ".mp3", ".flac", ".ogg", ".m4a", ".aac", ".aiff", ".aif"}


@functools.lru_cache(maxsize=1)
def _get_cache():
    if not settings.cache_dir:
        return None
    from redpine.analysis.cache import AnalysisCache
    return AnalysisCache(settings.cache_dir)


def get_engine() -> AnalysisEngine:
    return AnalysisEngine(
        cache=_get_cache(),
        timeout=settings.analysis_timeout_seconds,
        max_workers=settings.max_workers,
    )


def _suffix(filename: str | None) -> str:
    if filename and "." in filename:
        return "." + filename.rsplit(".", 1)[-1].lower()
    return ""


def _validate_upload(filename: str | None, content: bytes) -> None:
    ext = _suffix(filename)
    if ext and ext not in ALLOWED_EXTENSIONS:
        raise HTTPException(400, f"Unsupported format. Use: {', '.join(sorted(ALLOWED_EXTENSIONS))}")
    if len(content) > settings.max_upload_mb * 1024 * 1024:
        raise HTTPException(400, f"File too large (max {settings.max_upload_mb} MB)")


@router.post("/analyze", response_model=AnalysisResponse)
async def analyze_file(file: UploadFile = File(...)):
    """Detect BPM and key of an uploaded beat to pre-fill the upload form."""
    content = await file.read()
    _validate_upload(file.filename, content)

    engine = get_engine()
    try:
        result = await run_in_threadpool(engine.analyze_bytes, content, _suffix(file.filename))
    except AudioDecodeError:
        raise HTTPException(400, "Could not decode audio file")
    except AnalysisTimeoutError:
        raise HTTPException(504, "Analysis timed out")
    except Exception:
        logger.exception(f"Analysis of {file.filename!r} failed")
        raise HTTPException(500, "Analysis failed")

    return AnalysisResponse(bpm=result.bpm, key=result.key, duration=result.duration)


@router.post("/analyze/bulk", response_model=BulkAnalysisResponse)
async def analyze_bulk(files: list[UploadFile] = File(...)):
    """Detect BPM and key for every file of a bulk upload.

    Files that cannot be analyzed get an ``error`` instead of failing the
    whole request.
    """
    if len(files) > settings.max_bulk_files:
        raise HTTPException(400, f"Too many files (max {settings.max_bulk_files})")

    uploads = []
    for file in files:
        content = await file.read()
        _validate_upload(file.filename, content)
        uploads.append((file.filename or "", content))

    engine = get_engine()
    try:
        items = await run_in_threadpool(_analyze_uploads, engine, uploads)
    except Exception:
        logger.exception(f"Bulk analysis of {len(uploads)} files failed")
        raise HTTPException(500, "Analysis failed")

    return BulkAnalysisResponse(items=[
        BulkItemResponse(
            filename=name,
            bpm=item.result.bpm if item.result else None,
            key=item.result.key if item.result else None,
            error=item.error,
        )
        for (name, _), item in zip(uploads, items)
    ])


def _analyze_uploads(engine: AnalysisEngine, uploads: list[tuple[str, bytes]]):
    with tempfile.TemporaryDirectory(prefix="redpine-bulk-") as tmp_dir:
        paths = []
        for i, (name, content) in enumerate(uploads):
            path = os.path.join(tmp_dir, f"{i}{_suffix(name)}")
            with open(path, "wb") as f:
                f.write(content)
            paths.append(path)
        return engine.analyze_files(paths)
