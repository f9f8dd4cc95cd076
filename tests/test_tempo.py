"""Tests for the autocorrelation tempo estimator."""

import numpy as np
import pytest

from redpine.analysis.tempo import (
    COMMON_BPMS,
    best_lag,
    energy_envelope,
    estimate_bpm,
    lag_range,
    lag_to_bpm,
    normalize_bpm,
)
from tests.conftest import SR, generate_impulse_train, make_buffer


def test_empty_buffer_returns_none():
    assert estimate_bpm(make_buffer(np.zeros(0))) is None


def test_silence_returns_common_bpm(silence):
    bpm = estimate_bpm(make_buffer(silence))
    assert bpm in COMMON_BPMS
    # every lag scores 0, the shortest lag (200 BPM) wins and is halved
    assert bpm == 100


def test_very_short_clip_does_not_fail():
    bpm = estimate_bpm(make_buffer(np.full(100, 0.3)))
    assert bpm in COMMON_BPMS


def test_impulses_at_120_bpm(impulses_120):
    assert estimate_bpm(make_buffer(impulses_120)) == 120


@pytest.mark.parametrize("bpm", [80, 100, 150])
def test_impulse_trains_on_window_grid(bpm):
    """Beat periods that are a whole number of 50 ms windows are recovered."""
    audio = generate_impulse_train(bpm=bpm, duration_seconds=30)
    assert estimate_bpm(make_buffer(audio)) == bpm


def test_estimate_is_idempotent(impulses_120):
    buffer = make_buffer(impulses_120)
    assert estimate_bpm(buffer) == estimate_bpm(buffer)


def test_estimate_does_not_modify_buffer(impulses_120):
    buffer = make_buffer(impulses_120)
    before = buffer.samples.copy()
    estimate_bpm(buffer)
    np.testing.assert_array_equal(buffer.samples, before)


def test_lag_range_at_44100():
    # 50 ms windows: 200 BPM = 0.3 s = 6 windows, 60 BPM = 1 s = 20 windows
    assert lag_range(2205, SR) == (6, 20)


@pytest.mark.parametrize("lag,expected", [(6, 200), (10, 120), (20, 60), (7, 171)])
def test_lag_to_bpm(lag, expected):
    assert lag_to_bpm(lag, 2205, SR) == expected


def test_best_lag_prefers_shortest_on_tie():
    # Ones every 10 windows: lags 10 and 20 both score exactly 0.1
    envelope = np.zeros(200)
    envelope[::10] = 1.0
    assert best_lag(envelope, 2205, SR) == 10


def test_best_lag_constant_envelope_takes_first_lag():
    assert best_lag(np.ones(100), 2205, SR) == 6


def test_best_lag_too_short_envelope_falls_back_to_min_lag():
    assert best_lag(np.ones(5), 2205, SR) == 6


def test_slow_envelope_is_doubled_into_range():
    envelope = np.zeros(400)
    envelope[::20] = 1.0
    lag = best_lag(envelope, 2205, SR)
    assert lag == 20
    raw = lag_to_bpm(lag, 2205, SR)
    assert raw == 60
    assert normalize_bpm(raw) == 120


@pytest.mark.parametrize("raw,expected", [
    (35, 70),      # doubled once
    (17.5, 70),    # doubled twice
    (69, 140),
    (70, 70),
    (170, 170),
    (171, 170),
    (180, 180),
    (200, 100),    # halved
    (370, 90),     # 185 -> 92.5, equidistant from 90 and 95, slower wins
    (72.5, 70),    # equidistant from 70 and 75
    (77.5, 75),
    (123, 125),
])
def test_normalize_bpm(raw, expected):
    assert normalize_bpm(raw) == expected


def test_normalize_bpm_rejects_non_positive():
    with pytest.raises(ValueError):
        normalize_bpm(0)


def test_energy_envelope_shape_and_sign():
    rng = np.random.default_rng(0)
    samples = rng.uniform(-1, 1, SR)
    envelope = energy_envelope(samples, SR, 0, SR)
    # 1 s in 50 ms windows
    assert len(envelope) == 20
    assert np.all(envelope >= 0)


def test_energy_envelope_reads_outside_window():
    """The smoothing neighbourhood may reach before the analysis window."""
    samples = np.zeros(SR)
    samples[999] = 1.0
    envelope = energy_envelope(samples, SR, 1000, 2205)
    assert envelope[0] > 0
