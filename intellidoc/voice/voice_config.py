"""
IntelliDoc Voice Configuration
==============================
Per-user voice settings: providers, voice, language, reading speed,
wake word and listening behaviour.

Saved as JSON (default ~/.intellidoc/voice_config.json). Provider
variants are stored with their "type" tag.
"""

import json
import copy
import logging
from pathlib import Path
from dataclasses import dataclass, field
from typing import Optional, Union

from .providers.base import clamp_rate
from .providers.config import (
    STTProvider,
    TTSProvider,
    WhisperLocal,
    PiperLocal,
    stt_provider_from_dict,
    tts_provider_from_dict,
)

logger = logging.getLogger(__name__)


@dataclass
class VoiceConfig:
    """Voice subsystem configuration."""

    stt_provider: STTProvider = field(default_factory=WhisperLocal)
    tts_provider: TTSProvider = field(default_factory=PiperLocal)

    voice_id: str = "default"
    language: str = "en-US"
    reading_speed: float = 1.0  # 0.25 - 3.0

    wake_word_enabled: bool = False
    wake_word: str = "Hey IntelliDoc"

    auto_punctuation: bool = True
    noise_suppression: bool = True
    continuous_listening: bool = False

    def __post_init__(self):
        self.reading_speed = clamp_rate(self.reading_speed)

    def copy(self) -> "VoiceConfig":
        return copy.deepcopy(self)

    def to_dict(self) -> dict:
        return {
            "stt_provider": self.stt_provider.to_dict(),
            "tts_provider": self.tts_provider.to_dict(),
            "voice_id": self.voice_id,
            "language": self.language,
            "reading_speed": self.reading_speed,
            "wake_word_enabled": self.wake_word_enabled,
            "wake_word": self.wake_word,
            "auto_punctuation": self.auto_punctuation,
            "noise_suppression": self.noise_suppression,
            "continuous_listening": self.continuous_listening,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "VoiceConfig":
        """
        Build a config from a dict, keeping defaults for missing keys.

        Raises:
            ValueError: unknown provider type
        """
        config = cls()
        if "stt_provider" in data:
            config.stt_provider = stt_provider_from_dict(data["stt_provider"])
        if "tts_provider" in data:
            config.tts_provider = tts_provider_from_dict(data["tts_provider"])
        for key in ("voice_id", "language", "wake_word"):
            if key in data:
                setattr(config, key, str(data[key]))
        for key in ("wake_word_enabled", "auto_punctuation", "noise_suppression", "continuous_listening"):
            if key in data:
                setattr(config, key, bool(data[key]))
        if "reading_speed" in data:
            config.reading_speed = clamp_rate(float(data["reading_speed"]))
        return config

    def save(self, path: Union[str, Path]) -> bool:
        """Save configuration to file."""
        try:
            path = Path(path)
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(path, "w", encoding="utf-8") as f:
                json.dump(self.to_dict(), f, indent=2)
            logger.info(f"Voice config saved to {path}")
            return True
        except OSError as e:
            logger.error(f"Failed to save voice config: {e}")
            return False

    @classmethod
    def load(cls, path: Union[str, Path]) -> "VoiceConfig":
        """Load configuration from file, falling back to defaults."""
        path = Path(path)
        if not path.exists():
            return cls()
        try:
            with open(path, encoding="utf-8") as f:
                config = cls.from_dict(json.load(f))
            logger.info(f"Voice config loaded from {path}")
            return config
        except (OSError, ValueError, TypeError) as e:
            logger.warning(f"Failed to load voice config: {e}, using defaults")
            return cls()


def load_voice_config(path: Optional[Union[str, Path]] = None) -> VoiceConfig:
    """Load the user's voice config from the configured location."""
    if path is None:
        from ..config import get_config
        path = get_config().voice_config_path
    return VoiceConfig.load(path)
