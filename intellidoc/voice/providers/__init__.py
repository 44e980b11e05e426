"""
IntelliDoc Speech Providers
===========================
Speech-to-text and text-to-speech backends behind a common interface.

Components:
- config: tagged provider variants (WhisperLocal, PiperLocal, cloud stubs)
- base: SpeechToText / TextToSpeech interfaces and timing estimation
- whisper_stt: Faster-Whisper backend
- piper_tts: Piper backend
- factory: variant -> backend dispatch
"""

from .base import (
    SpeechToText,
    TextToSpeech,
    VoiceInfo,
    VoiceGender,
    clamp_rate,
    estimate_word_timings,
    model_exists,
    get_default_model_path,
)
from .config import (
    STTProvider,
    TTSProvider,
    WhisperModelSize,
    WhisperLocal,
    PiperLocal,
    stt_provider_from_dict,
    tts_provider_from_dict,
)
from .factory import create_stt_provider, create_tts_provider
from .piper_tts import PiperTTS, PIPER_VOICES
from .whisper_stt import WhisperSTT

__all__ = [
    "SpeechToText",
    "TextToSpeech",
    "VoiceInfo",
    "VoiceGender",
    "clamp_rate",
    "estimate_word_timings",
    "model_exists",
    "get_default_model_path",
    "STTProvider",
    "TTSProvider",
    "WhisperModelSize",
    "WhisperLocal",
    "PiperLocal",
    "stt_provider_from_dict",
    "tts_provider_from_dict",
    "create_stt_provider",
    "create_tts_provider",
    "PiperTTS",
    "PIPER_VOICES",
    "WhisperSTT",
]
