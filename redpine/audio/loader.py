"""Audio file decoding."""

from __future__ import annotations

import logging
from io import BytesIO
from pathlib import Path
from typing import Union

import librosa

from redpine.analysis.models import AudioSampleBuffer
from redpine.config import settings

logger = logging.getLogger(__name__)


class AudioDecodeError(ValueError):
    """Raised when an uploaded file cannot be decoded into samples."""


def load_audio(
    file_path_or_buffer: Union[str, Path, BytesIO],
    sr: int | None = settings.sample_rate,
) -> AudioSampleBuffer:
    """Decode an audio file or buffer into the samples of its first channel.

    Parameters
    ----------
    file_path_or_buffer:
        Path to an audio file or a BytesIO buffer containing audio data.
    sr:
        Target sample rate. ``None`` keeps the file's native rate.

    Raises
    ------
    AudioDecodeError
        If the data is missing, malformed or in an unsupported format.
    """
    try:
        audio, sample_rate = librosa.load(file_path_or_buffer, sr=sr, mono=False)
    except Exception as e:  # soundfile, audioread and ffmpeg all raise their own types
        logger.warning(f"Could not decode {file_path_or_buffer!r}: {e}")
        raise AudioDecodeError(f"Could not decode audio: {e}") from e

    buffer = AudioSampleBuffer.from_array(audio, int(sample_rate))
    logger.debug(f"Decoded {buffer.duration_seconds:.1f}s at {buffer.sample_rate}Hz")
    return buffer
