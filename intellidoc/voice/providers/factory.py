"""
IntelliDoc Provider Factory
===========================
Builds speech backends from their tagged configuration variant.

The dispatch tables are closed: adding a backend means adding a builder
here. Variants without a builder raise ProviderNotAvailable.
"""

import logging
from typing import Callable, Dict, Optional, Type

from ..channel import DEFAULT_CAPACITY
from ..errors import ProviderNotAvailable
from .base import SpeechToText, TextToSpeech
from .config import STTProvider, TTSProvider, WhisperLocal, PiperLocal
from .piper_tts import PiperTTS, STREAM_CHUNK_SAMPLES
from .whisper_stt import WhisperSTT

logger = logging.getLogger(__name__)


def _build_whisper(provider: WhisperLocal, language: Optional[str], noise_suppression: bool,
                   channel_capacity: int) -> SpeechToText:
    return WhisperSTT(
        provider.model_path,
        model_size=provider.model_size,
        language=language,
        vad_filter=noise_suppression,
        channel_capacity=channel_capacity,
    )


def _build_piper(provider: PiperLocal, channel_capacity: int, chunk_samples: int) -> TextToSpeech:
    return PiperTTS(provider.model_path, channel_capacity=channel_capacity, chunk_samples=chunk_samples)


_STT_BUILDERS: Dict[Type[STTProvider], Callable[..., SpeechToText]] = {
    WhisperLocal: _build_whisper,
}

_TTS_BUILDERS: Dict[Type[TTSProvider], Callable[..., TextToSpeech]] = {
    PiperLocal: _build_piper,
}


def create_stt_provider(
    provider: STTProvider,
    language: Optional[str] = "en",
    noise_suppression: bool = True,
    channel_capacity: int = DEFAULT_CAPACITY,
) -> SpeechToText:
    """
    Create the speech-to-text backend for a provider variant.

    Raises:
        ProviderNotAvailable: no backend exists for the variant
        ModelNotFound: the variant's model is missing
    """
    builder = _STT_BUILDERS.get(type(provider))
    if builder is None:
        raise ProviderNotAvailable(f"{provider.display_name} STT not yet implemented")
    logger.info(f"Creating STT provider: {provider.display_name}")
    return builder(provider, language, noise_suppression, channel_capacity)


def create_tts_provider(
    provider: TTSProvider,
    channel_capacity: int = DEFAULT_CAPACITY,
    chunk_samples: int = STREAM_CHUNK_SAMPLES,
) -> TextToSpeech:
    """
    Create the text-to-speech backend for a provider variant.

    Raises:
        ProviderNotAvailable: no backend exists for the variant
        ModelNotFound: the variant's model is missing
    """
    builder = _TTS_BUILDERS.get(type(provider))
    if builder is None:
        raise ProviderNotAvailable(f"{provider.display_name} TTS not yet implemented")
    logger.info(f"Creating TTS provider: {provider.display_name}")
    return builder(provider, channel_capacity, chunk_samples)


def implemented_providers() -> dict:
    """Tags of the variants that have a backend."""
    return {
        "stt": [cls.TYPE_TAG for cls in _STT_BUILDERS],
        "tts": [cls.TYPE_TAG for cls in _TTS_BUILDERS],
    }
