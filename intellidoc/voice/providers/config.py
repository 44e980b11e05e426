"""
IntelliDoc Provider Configuration
=================================
Tagged configuration variants for every speech backend the engine knows
about. Only WhisperLocal and PiperLocal have a backend today; the others
exist so configs written for them round-trip and fail cleanly with
ProviderNotAvailable when used.

Serialized form is a flat dict with a "type" tag:
    {"type": "whisper_local", "model_path": "...", "model_size": "base"}
"""

from dataclasses import dataclass, asdict, fields
from enum import Enum
from typing import Dict, Optional, Type


class WhisperModelSize(str, Enum):
    """Whisper checkpoint sizes."""
    TINY = "tiny"
    BASE = "base"
    SMALL = "small"
    MEDIUM = "medium"
    LARGE = "large"

    @property
    def approx_size(self) -> str:
        return _WHISPER_SIZES[self]

    @property
    def faster_whisper_name(self) -> str:
        """Name accepted by faster_whisper.download_model()."""
        return "large-v3" if self is WhisperModelSize.LARGE else self.value

    @property
    def directory_name(self) -> str:
        return f"faster-whisper-{self.value}"


_WHISPER_SIZES = {
    WhisperModelSize.TINY: "75MB",
    WhisperModelSize.BASE: "142MB",
    WhisperModelSize.SMALL: "466MB",
    WhisperModelSize.MEDIUM: "1.5GB",
    WhisperModelSize.LARGE: "3GB",
}


class PollyEngine(str, Enum):
    STANDARD = "standard"
    NEURAL = "neural"
    GENERATIVE = "generative"


class _Tagged:
    """Shared (de)serialization for tagged provider variants."""

    TYPE_TAG = ""
    DISPLAY_NAME = ""

    def to_dict(self) -> dict:
        data = {"type": self.TYPE_TAG}
        for key, value in asdict(self).items():
            data[key] = value.value if isinstance(value, Enum) else value
        return data

    @property
    def display_name(self) -> str:
        return self.DISPLAY_NAME


# =============================================================================
# SPEECH-TO-TEXT
# =============================================================================

@dataclass
class STTProvider(_Tagged):
    """Base for speech-to-text variants."""


@dataclass
class WhisperLocal(STTProvider):
    TYPE_TAG = "whisper_local"
    DISPLAY_NAME = "Whisper (local)"
    model_path: str = "voice_models/whisper/faster-whisper-base"
    model_size: WhisperModelSize = WhisperModelSize.BASE

    def __post_init__(self):
        self.model_size = WhisperModelSize(self.model_size)


@dataclass
class Vosk(STTProvider):
    TYPE_TAG = "vosk"
    DISPLAY_NAME = "Vosk"
    model_path: str = ""


@dataclass
class OpenAIWhisper(STTProvider):
    TYPE_TAG = "openai_whisper"
    DISPLAY_NAME = "OpenAI Whisper API"
    api_key: str = ""


@dataclass
class AWSTranscribe(STTProvider):
    TYPE_TAG = "aws_transcribe"
    DISPLAY_NAME = "AWS Transcribe"
    region: str = ""
    access_key_id: str = ""
    secret_access_key: str = ""


@dataclass
class GoogleSpeech(STTProvider):
    TYPE_TAG = "google_speech"
    DISPLAY_NAME = "Google Speech-to-Text"
    credentials_path: str = ""
    project_id: str = ""


@dataclass
class AzureSpeech(STTProvider):
    TYPE_TAG = "azure_speech"
    DISPLAY_NAME = "Azure Speech"
    subscription_key: str = ""
    region: str = ""


@dataclass
class Deepgram(STTProvider):
    TYPE_TAG = "deepgram"
    DISPLAY_NAME = "Deepgram"
    api_key: str = ""
    model: str = ""


@dataclass
class AssemblyAI(STTProvider):
    TYPE_TAG = "assembly_ai"
    DISPLAY_NAME = "AssemblyAI"
    api_key: str = ""


# =============================================================================
# TEXT-TO-SPEECH
# =============================================================================

@dataclass
class TTSProvider(_Tagged):
    """Base for text-to-speech variants."""


@dataclass
class PiperLocal(TTSProvider):
    TYPE_TAG = "piper_local"
    DISPLAY_NAME = "Piper (local)"
    model_path: str = "voice_models/piper/en_US-lessac-medium.onnx"


@dataclass
class CoquiLocal(TTSProvider):
    TYPE_TAG = "coqui_local"
    DISPLAY_NAME = "Coqui TTS"
    model_name: str = ""


@dataclass
class ESpeakNG(TTSProvider):
    TYPE_TAG = "espeak_ng"
    DISPLAY_NAME = "eSpeak NG"
    voice: str = ""


@dataclass
class OpenAITTS(TTSProvider):
    TYPE_TAG = "openai_tts"
    DISPLAY_NAME = "OpenAI TTS"
    api_key: str = ""
    voice: str = ""
    model: str = ""


@dataclass
class AWSPolly(TTSProvider):
    TYPE_TAG = "aws_polly"
    DISPLAY_NAME = "AWS Polly"
    region: str = ""
    access_key_id: str = ""
    secret_access_key: str = ""
    voice_id: str = ""
    engine: PollyEngine = PollyEngine.NEURAL

    def __post_init__(self):
        self.engine = PollyEngine(self.engine)


@dataclass
class GoogleTTS(TTSProvider):
    TYPE_TAG = "google_tts"
    DISPLAY_NAME = "Google Text-to-Speech"
    credentials_path: str = ""
    voice_name: str = ""
    speaking_rate: float = 1.0


@dataclass
class AzureTTS(TTSProvider):
    TYPE_TAG = "azure_tts"
    DISPLAY_NAME = "Azure TTS"
    subscription_key: str = ""
    region: str = ""
    voice_name: str = ""


@dataclass
class ElevenLabs(TTSProvider):
    TYPE_TAG = "eleven_labs"
    DISPLAY_NAME = "ElevenLabs"
    api_key: str = ""
    voice_id: str = ""
    stability: float = 0.5
    clarity: float = 0.75


STT_VARIANTS: Dict[str, Type[STTProvider]] = {
    cls.TYPE_TAG: cls
    for cls in (WhisperLocal, Vosk, OpenAIWhisper, AWSTranscribe,
                GoogleSpeech, AzureSpeech, Deepgram, AssemblyAI)
}

TTS_VARIANTS: Dict[str, Type[TTSProvider]] = {
    cls.TYPE_TAG: cls
    for cls in (PiperLocal, CoquiLocal, ESpeakNG, OpenAITTS,
                AWSPolly, GoogleTTS, AzureTTS, ElevenLabs)
}


def _from_dict(data: dict, variants: dict, kind: str):
    tag = data.get("type")
    cls = variants.get(tag)
    if cls is None:
        raise ValueError(f"unknown {kind} provider type: {tag!r}")
    names = {f.name for f in fields(cls)}
    return cls(**{k: v for k, v in data.items() if k in names})


def stt_provider_from_dict(data: dict) -> STTProvider:
    return _from_dict(data, STT_VARIANTS, "STT")


def tts_provider_from_dict(data: dict) -> TTSProvider:
    return _from_dict(data, TTS_VARIANTS, "TTS")


def provider_model_path(provider) -> Optional[str]:
    """Filesystem model path for local variants, None for cloud ones."""
    return getattr(provider, "model_path", None)
