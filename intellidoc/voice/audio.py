"""
IntelliDoc Audio Utilities
==========================
Pure sample-level helpers used by capture, the STT loop and playback.

- resample / stereo_to_mono / normalize / noise_gate
- energy-based voice activity detection
- float32 <-> int16 conversion
- fixed-capacity ring buffer
- WAV encode/decode (stdlib wave + numpy)

Nothing here touches audio devices.
"""

import io
import wave
import logging
from enum import Enum
from pathlib import Path
from typing import Union

import numpy as np

from .errors import AudioError, VoiceIOError
from .models import AudioData

logger = logging.getLogger(__name__)

DEFAULT_VAD_THRESHOLD = 0.01


class VadResult(Enum):
    """Voice activity decision for one block of samples."""
    SPEECH = "speech"
    SILENCE = "silence"


def _as_f32(samples) -> np.ndarray:
    return np.asarray(samples, dtype=np.float32).reshape(-1)


def resample(samples, from_rate: int, to_rate: int) -> np.ndarray:
    """
    Linear-interpolation resampler.

    Output length is round(len * to_rate / from_rate). Equal rates return
    a copy of the input.
    """
    samples = _as_f32(samples)
    if from_rate <= 0 or to_rate <= 0:
        raise AudioError(f"invalid resample rates {from_rate} -> {to_rate}")
    if from_rate == to_rate or len(samples) == 0:
        return samples.copy()

    out_len = int(round(len(samples) * to_rate / from_rate))
    if out_len == 0:
        return np.zeros(0, dtype=np.float32)

    ratio = from_rate / to_rate
    positions = np.arange(out_len, dtype=np.float64) * ratio
    # Clamp so the last output sample never reads past the input
    positions = np.minimum(positions, len(samples) - 1)
    return np.interp(positions, np.arange(len(samples)), samples).astype(np.float32)


def stereo_to_mono(samples) -> np.ndarray:
    """Average interleaved L/R pairs. A trailing odd sample passes through."""
    samples = _as_f32(samples)
    paired = len(samples) - (len(samples) % 2)
    mono = samples[:paired].reshape(-1, 2).mean(axis=1)
    if paired < len(samples):
        mono = np.append(mono, samples[-1])
    return mono.astype(np.float32)


def normalize(samples) -> np.ndarray:
    """Scale so the loudest sample has magnitude 1.0."""
    samples = _as_f32(samples).copy()
    if len(samples) == 0:
        return samples
    peak = float(np.max(np.abs(samples)))
    if peak > 0.0 and peak != 1.0:
        factor = 1.0 / peak
        if np.isfinite(factor):
            samples *= factor
    return samples


def noise_gate(samples, threshold: float) -> np.ndarray:
    """Zero every sample quieter than threshold."""
    samples = _as_f32(samples).copy()
    samples[np.abs(samples) < threshold] = 0.0
    return samples


def rms(samples) -> float:
    samples = _as_f32(samples)
    if len(samples) == 0:
        return 0.0
    return float(np.sqrt(np.mean(samples.astype(np.float64) ** 2)))


def detect_voice_activity(samples, threshold: float = DEFAULT_VAD_THRESHOLD) -> VadResult:
    """Energy VAD: speech when RMS exceeds threshold."""
    if rms(samples) > threshold:
        return VadResult.SPEECH
    return VadResult.SILENCE


def f32_to_i16(samples) -> np.ndarray:
    """Clamp to [-1, 1], scale by 32767 and truncate."""
    clipped = np.clip(_as_f32(samples), -1.0, 1.0)
    return (clipped * 32767.0).astype(np.int16)


def i16_to_f32(samples) -> np.ndarray:
    return np.asarray(samples, dtype=np.int16).astype(np.float32) / 32768.0


class AudioBuffer:
    """
    Fixed-capacity ring buffer of float32 samples.

    Writes wrap around and overwrite the oldest samples. read_all()
    returns exactly `capacity` samples, oldest first.
    """

    def __init__(self, capacity: int):
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self._buffer = np.zeros(capacity, dtype=np.float32)
        self._write_pos = 0

    @property
    def capacity(self) -> int:
        return len(self._buffer)

    def write(self, samples) -> None:
        samples = _as_f32(samples)
        cap = self.capacity
        if len(samples) >= cap:
            # Only the newest `cap` samples survive
            self._buffer[:] = samples[-cap:]
            self._write_pos = 0
            return
        end = self._write_pos + len(samples)
        if end <= cap:
            self._buffer[self._write_pos:end] = samples
        else:
            first = cap - self._write_pos
            self._buffer[self._write_pos:] = samples[:first]
            self._buffer[:end - cap] = samples[first:]
        self._write_pos = end % cap

    def read_all(self) -> np.ndarray:
        return np.concatenate(
            (self._buffer[self._write_pos:], self._buffer[:self._write_pos])
        )

    def clear(self) -> None:
        self._buffer[:] = 0.0
        self._write_pos = 0


# =============================================================================
# WAV
# =============================================================================

def read_wav(source: Union[str, Path, bytes]) -> AudioData:
    """Decode 8/16/32-bit PCM WAV from a path or raw bytes."""
    try:
        handle = io.BytesIO(source) if isinstance(source, (bytes, bytearray)) else str(source)
        with wave.open(handle, 'rb') as wav:
            sample_rate = wav.getframerate()
            channels = wav.getnchannels()
            sample_width = wav.getsampwidth()
            frames = wav.readframes(wav.getnframes())
    except (wave.Error, EOFError) as e:
        raise AudioError(f"invalid WAV data: {e}") from e
    except OSError as e:
        raise VoiceIOError(str(e)) from e

    if sample_width == 2:
        samples = np.frombuffer(frames, dtype='<i2').astype(np.float32) / 32768.0
    elif sample_width == 4:
        samples = np.frombuffer(frames, dtype='<i4').astype(np.float32) / 2147483648.0
    elif sample_width == 1:
        samples = np.frombuffer(frames, dtype=np.uint8).astype(np.float32) / 128.0 - 1.0
    else:
        raise AudioError(f"unsupported WAV sample width: {sample_width}")

    return AudioData(samples, sample_rate, channels)


def to_wav_bytes(audio: AudioData) -> bytes:
    """Encode as 16-bit PCM WAV."""
    buffer = io.BytesIO()
    with wave.open(buffer, 'wb') as wav:
        wav.setnchannels(audio.channels)
        wav.setsampwidth(2)
        wav.setframerate(audio.sample_rate)
        wav.writeframes(f32_to_i16(audio.samples).astype('<i2').tobytes())
    return buffer.getvalue()
