"""
IntelliDoc Voice Models
=======================
Value types passed between the audio pipeline, providers and manager.

All types serialize to plain dicts with to_dict() so they can cross the
host boundary (UI events, JSON logs) without leaking engine internals.
"""

from dataclasses import dataclass, field, replace
from enum import Enum, auto
from typing import List, Optional

import numpy as np

from .errors import AudioError


class VoiceState(Enum):
    """Voice manager states."""
    IDLE = auto()
    LISTENING = auto()
    PROCESSING = auto()
    SPEAKING = auto()
    READING = auto()

    def to_str(self) -> str:
        return self.name.lower()


@dataclass(frozen=True)
class WordTiming:
    """A single word with its time window in milliseconds (end exclusive)."""
    word: str
    start_ms: int
    end_ms: int
    confidence: float = 1.0

    def __post_init__(self):
        if self.start_ms > self.end_ms:
            raise ValueError(
                f"word '{self.word}' ends before it starts ({self.start_ms} > {self.end_ms})"
            )

    @property
    def duration_ms(self) -> int:
        return self.end_ms - self.start_ms

    def to_dict(self) -> dict:
        return {
            "word": self.word,
            "start_ms": self.start_ms,
            "end_ms": self.end_ms,
            "confidence": self.confidence,
        }


@dataclass(frozen=True)
class TranscriptionResult:
    """Speech-to-text output for one window of audio."""
    text: str
    is_final: bool = True
    confidence: float = 0.0
    timestamp_ms: int = 0
    words: tuple = ()

    def __post_init__(self):
        object.__setattr__(self, "words", tuple(self.words))

    def to_dict(self) -> dict:
        return {
            "text": self.text,
            "is_final": self.is_final,
            "confidence": self.confidence,
            "timestamp_ms": self.timestamp_ms,
            "words": [w.to_dict() for w in self.words],
        }


class AudioData:
    """
    Interleaved float32 PCM samples in [-1, 1].

    The sample count must be a multiple of the channel count.
    """

    __slots__ = ("samples", "sample_rate", "channels")

    def __init__(self, samples, sample_rate: int, channels: int = 1):
        samples = np.asarray(samples, dtype=np.float32).reshape(-1)
        if channels < 1:
            raise AudioError(f"invalid channel count {channels}")
        if sample_rate <= 0:
            raise AudioError(f"invalid sample rate {sample_rate}")
        if len(samples) % channels != 0:
            raise AudioError(
                f"{len(samples)} samples do not divide into {channels} channels"
            )
        self.samples = samples
        self.sample_rate = sample_rate
        self.channels = channels

    @classmethod
    def empty(cls, sample_rate: int = 22050, channels: int = 1) -> "AudioData":
        return cls(np.zeros(0, dtype=np.float32), sample_rate, channels)

    @property
    def frame_count(self) -> int:
        return len(self.samples) // self.channels

    @property
    def duration_seconds(self) -> float:
        return self.frame_count / self.sample_rate

    @property
    def is_empty(self) -> bool:
        return len(self.samples) == 0

    def __len__(self) -> int:
        return len(self.samples)

    def __repr__(self) -> str:
        return (
            f"AudioData(samples={len(self.samples)}, "
            f"sample_rate={self.sample_rate}, channels={self.channels})"
        )


@dataclass
class AudioChunk:
    """A slice of synthesized audio plus the words that start inside it."""
    data: bytes
    word_timings: List[WordTiming] = field(default_factory=list)
    is_final: bool = False
    sample_rate: int = 22050
    channels: int = 1

    @classmethod
    def from_samples(
        cls,
        samples: np.ndarray,
        word_timings: List[WordTiming],
        is_final: bool,
        sample_rate: int,
        channels: int = 1,
    ) -> "AudioChunk":
        data = np.asarray(samples, dtype="<f4").tobytes()
        return cls(data, list(word_timings), is_final, sample_rate, channels)

    def to_audio_data(self) -> AudioData:
        samples = np.frombuffer(self.data, dtype="<f4").astype(np.float32)
        return AudioData(samples, self.sample_rate, self.channels)


@dataclass
class ReadingPosition:
    """Cursor into a document while it is being read aloud."""
    document_id: str = ""
    page: int = 0
    paragraph_id: str = ""
    word_index: int = 0
    character_offset: int = 0
    timestamp_ms: int = 0

    def copy(self, **changes) -> "ReadingPosition":
        return replace(self, **changes)

    def to_dict(self) -> dict:
        return {
            "document_id": self.document_id,
            "page": self.page,
            "paragraph_id": self.paragraph_id,
            "word_index": self.word_index,
            "character_offset": self.character_offset,
            "timestamp_ms": self.timestamp_ms,
        }

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "ReadingPosition":
        if not data:
            return cls()
        return cls(
            document_id=str(data.get("document_id", "")),
            page=int(data.get("page", 0)),
            paragraph_id=str(data.get("paragraph_id", "")),
            word_index=int(data.get("word_index", 0)),
            character_offset=int(data.get("character_offset", 0)),
            timestamp_ms=int(data.get("timestamp_ms", 0)),
        )
