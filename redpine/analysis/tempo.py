"""Tempo estimation by autocorrelation of a bass-energy envelope."""

import math

import numpy as np

from redpine.analysis.models import AudioSampleBuffer
from redpine.audio.preprocessing import (
    analysis_window,
    block_means,
    moving_energy,
    round_half_up,
)

ANALYSIS_SECONDS = 30

# Autocorrelation search range
MIN_BPM = 60
MAX_BPM = 200

# Octave correction folds estimates into this range before snapping
OCTAVE_LOW = 70
OCTAVE_HIGH = 180

COMMON_BPMS = tuple(range(70, 181, 5))


def filter_radius(sample_rate: int) -> int:
    """Half-width of the energy smoothing neighbourhood (~200 Hz cutoff)."""
    return max(1, sample_rate // 200)


def envelope_window_size(sample_rate: int) -> int:
    """Samples per envelope value (50 ms)."""
    return max(1, sample_rate // 20)


def energy_envelope(
    samples: np.ndarray,
    sample_rate: int,
    start: int,
    length: int,
) -> np.ndarray:
    """Low-passed energy of ``samples[start:start + length]`` in 50 ms windows."""
    filtered = moving_energy(samples, start, length, filter_radius(sample_rate))
    return block_means(filtered, envelope_window_size(sample_rate))


def lag_range(window_size: int, sample_rate: int) -> tuple[int, int]:
    """Envelope lags covering MAX_BPM (shortest) to MIN_BPM (longest)."""
    window_seconds = window_size / sample_rate
    min_lag = max(1, math.floor(60 / (MAX_BPM * window_seconds)))
    max_lag = math.floor(60 / (MIN_BPM * window_seconds))
    return min_lag, max_lag


def best_lag(envelope: np.ndarray, window_size: int, sample_rate: int) -> int:
    """Lag (in envelope windows) with the highest mean autocorrelation.

    Lags are tried in ascending order and only a strictly larger score
    replaces the current best, so ties go to the shortest lag. Lags longer
    than half the envelope are not tried; if none can be, the shortest lag
    of the range is returned.
    """
    min_lag, max_lag = lag_range(window_size, sample_rate)
    upper = min(max_lag, len(envelope) // 2)

    result = min_lag
    best = -math.inf
    for lag in range(min_lag, upper + 1):
        n = len(envelope) - lag
        correlation = float(np.dot(envelope[:n], envelope[lag:])) / n
        if correlation > best:
            best = correlation
            result = lag
    return result


def lag_to_bpm(lag: int, window_size: int, sample_rate: int) -> int:
    seconds_per_beat = (lag * window_size) / sample_rate
    return round_half_up(60 / seconds_per_beat)


def normalize_bpm(bpm: float) -> int:
    """Fold a raw estimate into 70-180 BPM and snap it to a common tempo.

    Doubling and halving can leave a fractional value (185 -> 92.5); the
    snap resolves equal distances to the slower tempo (92.5 -> 90).
    """
    if not math.isfinite(bpm) or bpm <= 0:
        raise ValueError(f"BPM must be a positive number, got {bpm}")

    while bpm < OCTAVE_LOW:
        bpm *= 2
    while bpm > OCTAVE_HIGH:
        bpm /= 2

    return min(COMMON_BPMS, key=lambda common: abs(common - bpm))


def estimate_bpm(buffer: AudioSampleBuffer) -> int | None:
    """Estimate the dominant beat rate of a clip.

    Looks at up to 30 s after skipping the first 10% of the clip. Returns
    None for an empty buffer. Silence still yields a value (every lag
    scores zero and the shortest wins), there is no confidence score.
    """
    if len(buffer) == 0:
        return None

    sr = buffer.sample_rate
    start, length = analysis_window(len(buffer), sr, ANALYSIS_SECONDS)
    envelope = energy_envelope(buffer.samples, sr, start, length)

    window_size = envelope_window_size(sr)
    lag = best_lag(envelope, window_size, sr)
    return normalize_bpm(lag_to_bpm(lag, window_size, sr))
