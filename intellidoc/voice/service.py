"""
IntelliDoc Voice Service
========================
Host-facing facade over the voice manager.

The host (desktop shell, web bridge, CLI) talks to one VoiceService. It
owns:
- the user's VoiceConfig, behind a readers/writer lock
- the VoiceManager, behind an exclusive lock
- transcription and reading sessions keyed by session/document id

Background pumps forward stream items to the host through an emit
callback:

    voice:transcription        every TranscriptionResult
    voice:transcription_final  final, non-empty results (wake word stripped)
    voice:reading_position     every ReadingPosition
    voice:reading_complete     {"document_id": ...} when a reading ends
    voice:error                {"message": ...} when a pump fails
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Callable, Dict, List, Optional, Union

from ..config import IntelliDocConfig, get_config
from .actions import VoiceResponse, process_voice_command
from .channel import Channel
from .commands import VoiceCommand, strip_wake_word
from .errors import ModelNotFound, ProviderNotAvailable, VoiceError
from .manager import VoiceManager
from .models import ReadingPosition, TranscriptionResult, VoiceState, WordTiming
from .providers import piper_tts, whisper_stt
from .providers.base import VoiceInfo, clamp_rate, estimate_word_timings
from .providers.config import WhisperModelSize
from .voice_config import VoiceConfig

logger = logging.getLogger(__name__)

EVENT_TRANSCRIPTION = "voice:transcription"
EVENT_TRANSCRIPTION_FINAL = "voice:transcription_final"
EVENT_READING_POSITION = "voice:reading_position"
EVENT_READING_COMPLETE = "voice:reading_complete"
EVENT_ERROR = "voice:error"

EmitCallback = Callable[[str, dict], None]


class ReadWriteLock:
    """asyncio lock allowing many readers or one writer."""

    def __init__(self):
        self._cond = asyncio.Condition()
        self._readers = 0
        self._writer = False

    @asynccontextmanager
    async def read(self):
        async with self._cond:
            await self._cond.wait_for(lambda: not self._writer)
            self._readers += 1
        try:
            yield
        finally:
            async with self._cond:
                self._readers -= 1
                self._cond.notify_all()

    @asynccontextmanager
    async def write(self):
        async with self._cond:
            await self._cond.wait_for(lambda: not self._writer and self._readers == 0)
            self._writer = True
        try:
            yield
        finally:
            async with self._cond:
                self._writer = False
                self._cond.notify_all()


class VoiceService:
    """
    One per application.

    Usage:
        service = VoiceService(emit=lambda name, payload: ui.send(name, payload))
        await service.initialize()
        await service.start_reading("doc-1", text, ReadingPosition("doc-1", page=1))
    """

    def __init__(
        self,
        config: Optional[VoiceConfig] = None,
        emit: Optional[EmitCallback] = None,
        settings: Optional[IntelliDocConfig] = None,
        manager: Optional[VoiceManager] = None,
    ):
        self.settings = settings or get_config()
        self._config = config or VoiceConfig()
        self._config_lock = ReadWriteLock()
        self._manager = manager or VoiceManager(
            self._config.copy(),
            channel_capacity=self.settings.channel_capacity,
            poll_interval_ms=self.settings.sync_poll_interval_ms,
            stream_chunk_samples=self.settings.stream_chunk_samples,
        )
        self._manager_lock = asyncio.Lock()
        self._emit = emit

        self._transcription_sessions: Dict[str, asyncio.Task] = {}
        self._reading_sessions: Dict[str, asyncio.Task] = {}

    @property
    def manager(self) -> VoiceManager:
        return self._manager

    def active_sessions(self) -> dict:
        """Ids of the transcription and reading sessions still being pumped."""
        return {
            "transcription": list(self._transcription_sessions),
            "reading": list(self._reading_sessions),
        }

    # =========================================================================
    # CONFIG
    # =========================================================================

    async def get_voice_config(self) -> VoiceConfig:
        async with self._config_lock.read():
            return self._config.copy()

    async def set_voice_config(self, config: VoiceConfig) -> None:
        """Store a new config. Providers are rebuilt only by initialize()."""
        async with self._config_lock.write():
            self._config = config.copy()
        async with self._manager_lock:
            self._manager.update_config(config.copy())

    async def set_reading_speed(self, speed: float) -> float:
        async with self._config_lock.write():
            self._config.reading_speed = clamp_rate(speed)
            applied = self._config.reading_speed
        async with self._manager_lock:
            self._manager.set_reading_speed(applied)
        return applied

    def save_voice_config(self, path: Optional[Union[str, Path]] = None) -> bool:
        return self._config.save(path or self.settings.voice_config_path)

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    async def initialize(self) -> bool:
        async with self._manager_lock:
            await self._manager.initialize()
        return True

    async def is_initialized(self) -> bool:
        async with self._manager_lock:
            return self._manager.is_initialized

    async def get_state(self) -> VoiceState:
        async with self._manager_lock:
            return await self._manager.get_state()

    async def shutdown(self) -> None:
        async with self._manager_lock:
            await self._manager.shutdown()
        tasks = list(self._transcription_sessions.values()) + list(self._reading_sessions.values())
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._transcription_sessions.clear()
        self._reading_sessions.clear()

    # =========================================================================
    # LISTENING
    # =========================================================================

    async def start_listening(self, session_id: str) -> None:
        async with self._manager_lock:
            results = await self._manager.start_listening()
        task = asyncio.create_task(self._pump_transcriptions(session_id, results))
        self._transcription_sessions[session_id] = task

    async def stop_listening(self) -> None:
        async with self._manager_lock:
            await self._manager.stop_listening()

    async def _pump_transcriptions(self, session_id: str, results: Channel) -> None:
        try:
            async for result in results:
                self._send(EVENT_TRANSCRIPTION, result.to_dict())
                if not (result.is_final and result.text):
                    continue

                final = await self._apply_wake_word(result)
                if final is None:
                    continue
                self._send(EVENT_TRANSCRIPTION_FINAL, final.to_dict())

                async with self._config_lock.read():
                    continuous = self._config.continuous_listening
                if not continuous:
                    await self.stop_listening()
                    break
        except VoiceError as e:
            logger.error(f"Transcription session {session_id} failed: {e}")
            self._send(EVENT_ERROR, {"message": str(e), "session_id": session_id})
        finally:
            await results.aclose()
            if self._transcription_sessions.get(session_id) is asyncio.current_task():
                del self._transcription_sessions[session_id]

    async def _apply_wake_word(self, result: TranscriptionResult) -> Optional[TranscriptionResult]:
        async with self._config_lock.read():
            enabled = self._config.wake_word_enabled
            wake_word = self._config.wake_word
        if not enabled:
            return result
        command_text = strip_wake_word(result.text, wake_word)
        if not command_text:
            return None
        return TranscriptionResult(
            text=command_text,
            is_final=True,
            confidence=result.confidence,
            timestamp_ms=result.timestamp_ms,
            words=result.words,
        )

    async def parse_command(self, text: str) -> VoiceCommand:
        async with self._manager_lock:
            return self._manager.parse_command(text)

    async def transcribe(self, samples, sample_rate: int) -> TranscriptionResult:
        async with self._manager_lock:
            return await self._manager.transcribe(samples, sample_rate)

    # =========================================================================
    # SPEAKING / READING
    # =========================================================================

    async def speak_text(self, text: str) -> None:
        async with self._manager_lock:
            await self._manager.speak(text)

    async def start_reading(
        self,
        document_id: str,
        content: str,
        start_position: Optional[ReadingPosition] = None,
    ) -> None:
        start = start_position.copy() if start_position else ReadingPosition(document_id, page=1)
        async with self._manager_lock:
            positions = await self._manager.read_content(content, start)
        task = asyncio.create_task(self._pump_positions(document_id, positions))
        self._reading_sessions[document_id] = task

    async def stop_reading(self) -> None:
        async with self._manager_lock:
            await self._manager.stop_reading()

    async def get_reading_position(self) -> Optional[ReadingPosition]:
        async with self._manager_lock:
            return await self._manager.get_reading_position()

    async def _pump_positions(self, document_id: str, positions: Channel) -> None:
        try:
            async for position in positions:
                self._send(EVENT_READING_POSITION, position.to_dict())
            self._send(EVENT_READING_COMPLETE, {"document_id": document_id})
        finally:
            if self._reading_sessions.get(document_id) is asyncio.current_task():
                del self._reading_sessions[document_id]

    # =========================================================================
    # COMMANDS
    # =========================================================================

    async def process_command(
        self,
        command: VoiceCommand,
        position: Optional[ReadingPosition] = None,
    ) -> VoiceResponse:
        async with self._config_lock.write():
            before = self._config.reading_speed
            response = process_voice_command(command, position, self._config)
            after = self._config.reading_speed
        if after != before:
            async with self._manager_lock:
                self._manager.set_reading_speed(after)
        return response

    async def get_word_timings(self, text: str) -> List[WordTiming]:
        async with self._config_lock.read():
            speed = self._config.reading_speed
        return estimate_word_timings(text, speed)

    # =========================================================================
    # VOICES & MODELS
    # =========================================================================

    async def get_available_voices(self) -> List[VoiceInfo]:
        async with self._manager_lock:
            tts = self._manager.tts
            if tts is not None:
                return tts.available_voices()
        return list(piper_tts.PIPER_VOICES)

    async def get_stt_languages(self) -> List[str]:
        async with self._manager_lock:
            stt = self._manager.stt
            if stt is not None:
                return stt.supported_languages()
        return list(whisper_stt.SUPPORTED_LANGUAGES)

    def model_path(self, model_type: str, model_id: str) -> Path:
        """Where a model of this type and id lives under the models directory."""
        models_dir = self.settings.models_dir
        if model_type == "whisper":
            return models_dir / "whisper" / _whisper_directory(model_id)
        if model_type == "piper":
            return models_dir / "piper" / f"{model_id}.onnx"
        raise ProviderNotAvailable(f"unknown model type: {model_type}")

    async def is_voice_model_available(self, model_type: str, model_id: str) -> bool:
        try:
            return self.model_path(model_type, model_id).exists()
        except ProviderNotAvailable:
            return False

    async def download_voice_model(self, model_type: str, model_id: str) -> str:
        """Download a model into the models directory. Returns its path."""
        target_dir = self.settings.models_dir / model_type
        if model_type == "whisper":
            size = _whisper_size(model_id)
            path = await asyncio.to_thread(whisper_stt.download_model, size, target_dir)
        elif model_type == "piper":
            session = piper_tts.create_download_session(self.settings.download_retries)
            path = await asyncio.to_thread(
                piper_tts.download_voice, model_id, target_dir, session, self.settings.download_timeout
            )
        else:
            raise ProviderNotAvailable(f"unknown model type: {model_type}")
        return str(path)

    def _send(self, event: str, payload: dict) -> None:
        if self._emit is None:
            return
        try:
            self._emit(event, payload)
        except Exception as e:
            logger.debug(f"Event callback error ({event}): {e}")


def _whisper_size(model_id: str) -> WhisperModelSize:
    name = model_id.lower()
    for prefix in ("faster-whisper-", "ggml-"):
        if name.startswith(prefix):
            name = name[len(prefix):]
    name = name.replace(".bin", "")
    try:
        return WhisperModelSize(name)
    except ValueError as e:
        raise ModelNotFound(f"unknown whisper model: {model_id}") from e


def _whisper_directory(model_id: str) -> str:
    try:
        return _whisper_size(model_id).directory_name
    except ModelNotFound:
        return model_id
