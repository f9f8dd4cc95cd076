"""Pydantic response models for API."""

from pydantic import BaseModel


class AnalysisResponse(BaseModel):
    bpm: int | None = None
    key: str | None = None  # "<PitchClass> <Major|Minor>"
    duration: float = 0.0


class BulkItemResponse(BaseModel):
    filename: str
    bpm: int | None = None
    key: str | None = None
    error: str | None = None


class BulkAnalysisResponse(BaseModel):
    items: list[BulkItemResponse]
