"""Windowing and filtering helpers shared by the tempo and key estimators."""

from __future__ import annotations

import math

import numpy as np
from scipy.signal import get_window


def round_half_up(x: float) -> int:
    """Round to the nearest integer, halves towards +inf (2.5 -> 3, -2.5 -> -2)."""
    return int(math.floor(x + 0.5))


def analysis_window(
    n_samples: int,
    sample_rate: int,
    max_seconds: float,
    skip_fraction: float = 0.1,
) -> tuple[int, int]:
    """Pick the part of a clip worth analyzing.

    Skips the first *skip_fraction* of the clip (lead-in silence, fades) and
    keeps at most *max_seconds* from there.

    Returns
    -------
    tuple[int, int]
        ``(start, length)`` in samples.
    """
    start = int(math.floor(n_samples * skip_fraction))
    length = min(int(sample_rate * max_seconds), n_samples - start)
    return start, max(0, length)


def hann_window(size: int) -> np.ndarray:
    """Periodic Hann window, ``0.5 * (1 - cos(2*pi*n / size))``."""
    return get_window("hann", size, fftbins=True)


def moving_energy(
    samples: np.ndarray,
    start: int,
    length: int,
    radius: int,
) -> np.ndarray:
    """Mean of squared samples around each position of a window.

    For every index ``i`` in ``[start, start + length)`` averages ``x[j]**2``
    over ``j`` in ``[i - radius, i + radius)``, clipped to the whole buffer
    (the neighbourhood may reach outside the window itself). This is a crude
    low-pass on signal energy: with ``radius = sr / 200`` it mostly keeps the
    bass and kick.
    """
    n = len(samples)
    if length <= 0 or n == 0:
        return np.zeros(0, dtype=np.float64)

    squared = np.square(samples, dtype=np.float64)
    csum = np.concatenate(([0.0], np.cumsum(squared)))

    idx = np.arange(start, start + length)
    lo = np.maximum(0, idx - radius)
    hi = np.minimum(n, idx + radius)
    energy = (csum[hi] - csum[lo]) / (hi - lo)
    # prefix-sum differences can dip a hair below zero
    return np.maximum(energy, 0.0)


def block_means(values: np.ndarray, block: int) -> np.ndarray:
    """Average consecutive blocks of *block* values; the last block may be short."""
    n = len(values)
    if n == 0:
        return np.zeros(0, dtype=np.float64)
    starts = np.arange(0, n, block)
    sums = np.add.reduceat(values, starts)
    counts = np.minimum(block, n - starts)
    return sums / counts


def frame_signal(
    samples: np.ndarray,
    start: int,
    end: int,
    frame_size: int,
    hop: int,
) -> np.ndarray:
    """Cut ``samples[start:end]`` into overlapping frames that fit completely.

    Frames begin at ``start, start + hop, ...`` while the frame start is
    below ``end - frame_size``. Returns a ``(n_frames, frame_size)`` array,
    possibly with zero rows.
    """
    starts = np.arange(start, end - frame_size, hop)
    if len(starts) == 0:
        return np.zeros((0, frame_size), dtype=np.float64)
    windows = np.lib.stride_tricks.sliding_window_view(samples, frame_size)
    return windows[starts]
