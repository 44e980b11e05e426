"""
IntelliDoc Voice Subsystem
==========================
Microphone capture -> Whisper STT -> command parsing, and Piper TTS ->
playback with word-synchronized reading positions.

Components:
- models: value types shared by every layer
- channel: bounded async streams
- audio: sample utilities, VAD, WAV codec
- devices, capture, playback: sound hardware
- providers: STT/TTS backends and their configuration
- commands: rule-based voice command parser
- actions: command -> UI action mapping
- manager: listening/speaking/reading state machine
- service: host-facing facade with event emission
- doctor: environment diagnostics

Usage:
    from intellidoc.voice import VoiceManager, VoiceConfig, ReadingPosition

    vm = VoiceManager(VoiceConfig())
    await vm.initialize()

    positions = await vm.read_content(text, ReadingPosition("doc-1", page=1))
    async for position in positions:
        highlight(position.word_index)
"""

from .errors import (
    VoiceError,
    NotInitialized,
    InvalidState,
    AudioError,
    STTError,
    TTSError,
    ProviderNotAvailable,
    ModelNotFound,
    ApiError,
    VoiceIOError,
)
from .models import (
    VoiceState,
    WordTiming,
    TranscriptionResult,
    AudioData,
    AudioChunk,
    ReadingPosition,
)
from .channel import Channel
from .voice_config import VoiceConfig, load_voice_config
from .commands import VoiceCommand, VoiceCommandParser
from .actions import VoiceAction, VoiceResponse, process_voice_command
from .playback import AudioPlayer
from .capture import AudioCapture
from .manager import VoiceManager
from .service import VoiceService
from .doctor import voice_doctor

__all__ = [
    # Errors
    "VoiceError",
    "NotInitialized",
    "InvalidState",
    "AudioError",
    "STTError",
    "TTSError",
    "ProviderNotAvailable",
    "ModelNotFound",
    "ApiError",
    "VoiceIOError",
    # Models
    "VoiceState",
    "WordTiming",
    "TranscriptionResult",
    "AudioData",
    "AudioChunk",
    "ReadingPosition",
    "Channel",
    # Config
    "VoiceConfig",
    "load_voice_config",
    # Commands
    "VoiceCommand",
    "VoiceCommandParser",
    "VoiceAction",
    "VoiceResponse",
    "process_voice_command",
    # Audio I/O
    "AudioPlayer",
    "AudioCapture",
    # Engine
    "VoiceManager",
    "VoiceService",
    "voice_doctor",
]
