"""
IntelliDoc Voice Errors
=======================
Error taxonomy shared by the voice manager, providers and audio pipeline.

Providers wrap backend failures (subprocess, HTTP, inference) in the
matching subclass so callers only ever handle VoiceError.
"""


class VoiceError(Exception):
    """Base class for all voice engine errors."""


class NotInitialized(VoiceError):
    """Operation requires providers that have not been created yet."""

    def __init__(self, message: str = "Voice system not initialized"):
        super().__init__(message)


class InvalidState(VoiceError):
    """Operation is illegal in the manager's current state."""

    def __init__(self, detail: str):
        self.detail = detail
        super().__init__(f"Invalid state: {detail}")


class AudioError(VoiceError):
    """Device or sample-format failure."""

    def __init__(self, detail: str):
        self.detail = detail
        super().__init__(f"Audio error: {detail}")


class STTError(VoiceError):
    """Speech-to-text backend failure."""

    def __init__(self, detail: str):
        self.detail = detail
        super().__init__(f"STT error: {detail}")


class TTSError(VoiceError):
    """Text-to-speech backend failure."""

    def __init__(self, detail: str):
        self.detail = detail
        super().__init__(f"TTS error: {detail}")


class ProviderNotAvailable(VoiceError):
    """The configured provider variant has no backend."""

    def __init__(self, detail: str):
        self.detail = detail
        super().__init__(f"Provider not available: {detail}")


class ModelNotFound(VoiceError):
    """A model asset is missing on disk."""

    def __init__(self, path: str):
        self.path = path
        super().__init__(f"Model not found: {path}")


class ApiError(VoiceError):
    """Remote API or download failure."""

    def __init__(self, detail: str):
        self.detail = detail
        super().__init__(f"API error: {detail}")


class VoiceIOError(VoiceError):
    """Filesystem failure while reading or writing voice assets."""

    def __init__(self, detail: str):
        self.detail = detail
        super().__init__(f"IO error: {detail}")
