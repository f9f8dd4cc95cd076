"""Key estimation: Goertzel chromagram + Krumhansl-Schmuckler profiles."""

import math

import numpy as np
from scipy.signal import lfilter

from redpine.analysis.models import AudioSampleBuffer
from redpine.audio.preprocessing import (
    analysis_window,
    frame_signal,
    hann_window,
    round_half_up,
)

PITCH_CLASSES = ("C", "C#", "D", "D#", "E", "F", "F#", "G", "G#", "A", "A#", "B")

# C4..B4 in Hz
PITCH_FREQUENCIES = (
    261.63, 277.18, 293.66, 311.13, 329.63, 349.23,
    369.99, 392.00, 415.30, 440.00, 466.16, 493.88,
)

MAJOR_PROFILE = (6.35, 2.23, 3.48, 2.33, 4.38, 4.09, 2.52, 5.19, 2.39, 3.66, 2.29, 2.88)
MINOR_PROFILE = (6.33, 2.68, 3.52, 5.38, 2.60, 3.53, 2.54, 4.75, 3.98, 2.69, 3.34, 3.17)

ANALYSIS_SECONDS = 20
FRAME_SIZE = 4096
HOP_SIZE = 2048
N_OCTAVES = 4  # octave multipliers 1/2, 1, 2, 4 around PITCH_FREQUENCIES

DEFAULT_KEY = "C Major"

_MODES = (
    ("Major", np.array(MAJOR_PROFILE), float(np.sum(np.square(MAJOR_PROFILE)))),
    ("Minor", np.array(MINOR_PROFILE), float(np.sum(np.square(MINOR_PROFILE)))),
)


def goertzel_power(frames: np.ndarray, k: int) -> np.ndarray:
    """Power of DFT bin *k* for every row of a (n_frames, frame_size) array.

    Runs the Goertzel recurrence ``s[n] = x[n] + c*s[n-1] - s[n-2]`` as an
    IIR filter along each row and reads the power from the last two states.
    """
    frame_size = frames.shape[1]
    coeff = 2 * math.cos(2 * math.pi * k / frame_size)
    states = lfilter([1.0], [1.0, -coeff, 1.0], frames, axis=1)
    s1 = states[:, -1]
    s2 = states[:, -2]
    return s1 * s1 + s2 * s2 - coeff * s1 * s2


def chromagram(samples: np.ndarray, sample_rate: int) -> np.ndarray:
    """12-bin pitch class energy, normalized so the strongest class is 1.

    Uses up to 20 s after skipping the first 10% of the clip, in Hann
    windowed frames of 4096 samples with 50% overlap. Returns all zeros
    when no complete frame fits or the audio is silent.
    """
    chroma = np.zeros(12, dtype=np.float64)

    start, length = analysis_window(len(samples), sample_rate, ANALYSIS_SECONDS)
    frames = frame_signal(samples, start, start + length, FRAME_SIZE, HOP_SIZE)
    if len(frames) == 0:
        return chroma
    frames = frames * hann_window(FRAME_SIZE)

    nyquist = sample_rate / 2
    for pc, base_freq in enumerate(PITCH_FREQUENCIES):
        for octave in range(N_OCTAVES):
            freq = base_freq * 2 ** (octave - 1)
            if freq > nyquist:
                continue
            k = round_half_up(freq * FRAME_SIZE / sample_rate)
            power = goertzel_power(frames, k)
            chroma[pc] += float(np.sum(np.sqrt(np.abs(power))))

    peak = chroma.max()
    if peak > 0:
        chroma /= peak
    return chroma


def key_from_chromagram(chroma: np.ndarray) -> str:
    """Best of the 24 major/minor keys by normalized profile correlation.

    Roots are tried C..B with major before minor, and only a strictly
    better score wins, so ties keep the earlier key. An all-zero
    chromagram scores 0 everywhere and gives ``DEFAULT_KEY``.
    """
    chroma = np.asarray(chroma, dtype=np.float64)
    # rotation does not change the sum of squares, so one value serves all 24
    chroma_energy = float(np.sum(chroma * chroma))

    best_key = DEFAULT_KEY
    best_score = -math.inf
    for root in range(12):
        rotated = np.roll(chroma, -root)
        for mode, profile, profile_energy in _MODES:
            score = float(np.dot(rotated, profile))
            score /= math.sqrt(chroma_energy * profile_energy) or 1
            if score > best_score:
                best_score = score
                best_key = f"{PITCH_CLASSES[root]} {mode}"
    return best_key


def estimate_key(buffer: AudioSampleBuffer) -> str:
    """Estimate the musical key of a clip, e.g. ``"A Minor"``.

    Never fails: clips too short for a single frame and silent clips fall
    back to ``DEFAULT_KEY``.
    """
    return key_from_chromagram(chromagram(buffer.samples, buffer.sample_rate))
