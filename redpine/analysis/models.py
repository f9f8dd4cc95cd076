"""Core data models for audio analysis."""

from dataclasses import dataclass

import numpy as np


@dataclass(frozen=True, eq=False)
class AudioSampleBuffer:
    """Decoded samples of a single channel plus their sample rate.

    The samples array is copied on construction and marked read-only, so a
    buffer can be shared between estimators running on different threads.
    """
    samples: np.ndarray
    sample_rate: int

    def __post_init__(self):
        if self.sample_rate <= 0:
            raise ValueError(f"sample_rate must be positive, got {self.sample_rate}")
        samples = np.array(self.samples, dtype=np.float64).ravel()
        samples.flags.writeable = False
        object.__setattr__(self, "samples", samples)
        object.__setattr__(self, "sample_rate", int(self.sample_rate))

    @classmethod
    def from_array(cls, audio: np.ndarray, sample_rate: int) -> "AudioSampleBuffer":
        """Build a buffer from mono or (channels, frames) audio, keeping channel 0."""
        audio = np.asarray(audio)
        if audio.ndim > 1:
            audio = audio[0]
        return cls(samples=audio, sample_rate=sample_rate)

    def __len__(self) -> int:
        return len(self.samples)

    @property
    def duration_seconds(self) -> float:
        return len(self.samples) / self.sample_rate


@dataclass
class AnalysisResult:
    """Tempo and key of one audio file."""
    bpm: int | None
    key: str | None  # e.g. "A Minor"
    duration: float = 0.0  # seconds

    def to_dict(self) -> dict:
        return {"bpm": self.bpm, "key": self.key}


@dataclass
class BulkItemResult:
    """One row of a bulk analysis: either a result or an error message."""
    filename: str
    result: AnalysisResult | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.result is not None
