"""Shared test fixtures for audio analysis tests."""

import numpy as np
import pytest
import soundfile as sf
from fastapi.testclient import TestClient

from redpine.analysis.models import AudioSampleBuffer
from redpine.main import app

SR = 44100


@pytest.fixture
def client():
    """FastAPI test client."""
    return TestClient(app)


def generate_impulse_train(
    bpm: float,
    duration_seconds: float = 30.0,
    sr: int = SR,
) -> np.ndarray:
    """Unit impulses one beat apart, the first at sample 0."""
    n_samples = int(duration_seconds * sr)
    audio = np.zeros(n_samples, dtype=np.float64)
    interval = int(round(60.0 / bpm * sr))
    audio[::interval] = 1.0
    return audio


def generate_tones(
    freqs: list[float],
    duration_seconds: float = 5.0,
    sr: int = SR,
    amplitude: float = 0.5,
) -> np.ndarray:
    """Sum of equal-amplitude sine waves, scaled to stay within [-1, 1]."""
    t = np.arange(int(duration_seconds * sr)) / sr
    audio = sum(np.sin(2 * np.pi * f * t) for f in freqs)
    return amplitude * audio / len(freqs)


def make_buffer(audio: np.ndarray, sr: int = SR) -> AudioSampleBuffer:
    return AudioSampleBuffer(samples=audio, sample_rate=sr)


def write_wav(path, audio: np.ndarray, sr: int = SR) -> str:
    sf.write(str(path), audio, sr)
    return str(path)


@pytest.fixture
def a4_sine():
    """5 seconds of A4 (440 Hz) at 44.1 kHz."""
    return generate_tones([440.0])


@pytest.fixture
def impulses_120():
    """30 seconds of unit impulses every 0.5 s at 44.1 kHz."""
    return generate_impulse_train(bpm=120)


@pytest.fixture
def silence():
    return np.zeros(SR * 3)
