"""
IntelliDoc Configuration
========================
Environment-level settings for the IntelliDoc voice engine.

Version: 0.3.0

Per-user voice preferences (providers, speed, wake word) live in
VoiceConfig and are persisted as JSON. This module only covers process
settings: where models and logs live, channel sizes, timing knobs and
download behaviour.

All settings can be overridden via environment variables with the
INTELLIDOC_ prefix, e.g. INTELLIDOC_MODELS_DIR=/opt/voice_models.
"""

from pydantic_settings import BaseSettings
from pydantic import Field, field_validator, AliasChoices
from pathlib import Path
from typing import Optional


def get_default_base_dir() -> Path:
    """Return the default base directory for IntelliDoc."""
    return Path.home() / ".intellidoc"


def get_env_file_path() -> Path:
    """Return the path to the .env file."""
    env_path = Path.home() / ".intellidoc" / ".env"
    if env_path.exists():
        return env_path
    # Fallback to current directory for development
    if Path(".env").exists():
        return Path(".env")
    return env_path


class IntelliDocConfig(BaseSettings):
    """
    IntelliDoc process configuration.

    Paths default to ~/.intellidoc/ subdirectories.
    """

    base_dir: Path = Field(default_factory=get_default_base_dir)

    models_dir_override: Optional[Path] = Field(
        default=None,
        validation_alias=AliasChoices("INTELLIDOC_MODELS_DIR", "models_dir_override"),
        description="Directory holding whisper/ and piper/ model folders"
    )

    log_level: str = Field(default="INFO", description="Root log level for the CLI")

    # =========================================================================
    # STREAMING / TIMING
    # =========================================================================

    channel_capacity: int = Field(
        default=100, ge=1, le=10000,
        description="Capacity of every transcription/audio/position channel"
    )

    sync_poll_interval_ms: int = Field(
        default=50, ge=1, le=1000,
        description="Upper bound on how long the reading synchronizer sleeps between checks"
    )

    stream_chunk_samples: int = Field(
        default=1024, ge=64, le=65536,
        description="Samples per streamed TTS chunk"
    )

    # =========================================================================
    # DOWNLOADS / PLAYBACK
    # =========================================================================

    download_timeout: float = Field(default=60.0, ge=1.0, le=3600.0)
    download_retries: int = Field(default=3, ge=0, le=10)

    alsa_device: Optional[str] = Field(
        default=None,
        description="ALSA device passed to aplay when sounddevice is unavailable"
    )

    model_config = {
        "env_prefix": "INTELLIDOC_",
        "env_file": str(get_env_file_path()),
        "env_file_encoding": "utf-8",
        "extra": "ignore"
    }

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Normalize log level names."""
        v = v.upper().strip()
        if v not in ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'):
            return 'INFO'
        return v

    @property
    def models_dir(self) -> Path:
        if self.models_dir_override is not None:
            return self.models_dir_override
        return self.base_dir / "voice_models"

    @property
    def logs_dir(self) -> Path:
        return self.base_dir / "logs"

    @property
    def cache_dir(self) -> Path:
        return self.base_dir / "cache"

    @property
    def voice_config_path(self) -> Path:
        return self.base_dir / "voice_config.json"

    def ensure_directories(self) -> None:
        """Create all required directories if they don't exist."""
        for dir_path in [
            self.logs_dir,
            self.cache_dir,
            self.models_dir / "whisper",
            self.models_dir / "piper",
        ]:
            dir_path.mkdir(parents=True, exist_ok=True)


# Global config instance
_config: Optional[IntelliDocConfig] = None


def get_config() -> IntelliDocConfig:
    """Get or create the global configuration instance."""
    global _config
    if _config is None:
        _config = IntelliDocConfig()
    return _config


def reload_config() -> IntelliDocConfig:
    """Force reload configuration from environment."""
    global _config
    _config = IntelliDocConfig()
    return _config
