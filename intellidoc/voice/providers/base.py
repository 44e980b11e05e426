"""
IntelliDoc Speech Provider Interfaces
=====================================
Abstract base classes for speech-to-text and text-to-speech backends,
plus helpers shared by every backend.

All STT engines implement:
- start_listening(): stream of TranscriptionResult from the microphone
- stop_listening(): end the stream
- transcribe(): one-shot recognition of a sample buffer
- supported_languages()

All TTS engines implement:
- synthesize() / synthesize_stream()
- get_word_timings()
- stop(), available_voices(), set_rate(), set_voice()
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import List, Optional, Union

from ..channel import Channel
from ..models import AudioData, TranscriptionResult, WordTiming

logger = logging.getLogger(__name__)

MIN_RATE = 0.25
MAX_RATE = 3.0

# Average speaking pace at rate 1.0
WORDS_PER_SECOND = 2.5


class VoiceGender(str, Enum):
    MALE = "male"
    FEMALE = "female"
    NEUTRAL = "neutral"


@dataclass
class VoiceInfo:
    """A selectable TTS voice."""
    id: str
    name: str
    language: str
    gender: VoiceGender = VoiceGender.NEUTRAL
    style: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "language": self.language,
            "gender": VoiceGender(self.gender).value,
            "style": self.style,
        }


def clamp_rate(rate: float) -> float:
    """Clamp a speaking rate to the supported range."""
    return max(MIN_RATE, min(MAX_RATE, float(rate)))


def estimate_word_timings(text: str, speaking_rate: float = 1.0) -> List[WordTiming]:
    """
    Estimate back-to-back word timings for text spoken at speaking_rate.

    Each word lasts (1000 / (2.5 * rate)) * max(0.5, len(word) / 5) ms,
    so short words get at least half the average word duration.
    """
    ms_per_word = 1000.0 / (WORDS_PER_SECOND * clamp_rate(speaking_rate))
    timings = []
    current_ms = 0
    for word in text.split():
        duration = int(ms_per_word * max(0.5, len(word) / 5.0))
        timings.append(WordTiming(word, current_ms, current_ms + duration, 1.0))
        current_ms += duration
    return timings


def model_exists(path: Union[str, Path]) -> bool:
    return Path(path).exists()


def get_default_model_path(provider_type: str, models_dir: Union[str, Path] = "voice_models") -> Path:
    """Default model location for a local provider type ("whisper" or "piper")."""
    models_dir = Path(models_dir)
    if provider_type == "whisper":
        return models_dir / "whisper" / "faster-whisper-base"
    if provider_type == "piper":
        return models_dir / "piper" / "en_US-lessac-medium.onnx"
    raise ValueError(f"unknown provider type: {provider_type}")


class SpeechToText(ABC):
    """Abstract speech-to-text backend."""

    name: str = "base"

    @abstractmethod
    async def start_listening(self) -> Channel:
        """
        Start continuous recognition from the microphone.

        Returns:
            Channel of TranscriptionResult, closed after stop_listening()

        Raises:
            InvalidState: already listening
        """

    @abstractmethod
    async def stop_listening(self) -> None:
        """Stop continuous recognition."""

    @abstractmethod
    async def transcribe(self, samples, sample_rate: int) -> TranscriptionResult:
        """Recognize a complete buffer of float32 samples."""

    @abstractmethod
    def is_listening(self) -> bool:
        ...

    @abstractmethod
    def supported_languages(self) -> List[str]:
        ...


class TextToSpeech(ABC):
    """Abstract text-to-speech backend."""

    name: str = "base"

    @abstractmethod
    async def synthesize(self, text: str) -> AudioData:
        """Synthesize text to a complete audio buffer."""

    @abstractmethod
    async def synthesize_stream(self, text: str) -> Channel:
        """
        Synthesize text as a stream of AudioChunk.

        The last chunk has is_final set.
        """

    @abstractmethod
    async def get_word_timings(self, text: str) -> List[WordTiming]:
        ...

    @abstractmethod
    async def stop(self) -> None:
        """Cancel in-progress synthesis and streaming."""

    @abstractmethod
    def available_voices(self) -> List[VoiceInfo]:
        ...

    @abstractmethod
    def set_rate(self, rate: float) -> float:
        """Set speaking rate, clamped to [0.25, 3.0]. Returns the applied rate."""

    @abstractmethod
    def set_voice(self, voice_id: str) -> None:
        """
        Switch voice.

        Raises:
            ModelNotFound: the voice is not installed
        """
