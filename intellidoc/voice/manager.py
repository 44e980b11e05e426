"""
IntelliDoc Voice Manager
========================
State machine coordinating listening, speaking and read-aloud.

States:
    IDLE -> LISTENING   start_listening()   (back on stop or stream end)
    IDLE -> READING     read_content()      (back on stop or last word)
    IDLE -> SPEAKING    speak()             (back when playback ends)
    IDLE -> PROCESSING  transcribe()        (back when inference ends)

Starting anything while not IDLE raises InvalidState; anything before
initialize() raises NotInitialized.

Read-aloud runs two tasks per session: playback of the synthesized
audio and a synchronizer that emits a ReadingPosition whenever elapsed
time crosses a word's start. Word timings drive the cursor, not audio
delivery, so highlighting stays smooth even when playback stalls.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Callable, List, Optional

import numpy as np

from .channel import Channel, DEFAULT_CAPACITY
from .commands import VoiceCommand, VoiceCommandParser
from .errors import InvalidState, NotInitialized, VoiceError
from .models import AudioData, ReadingPosition, TranscriptionResult, VoiceState, WordTiming
from .playback import AudioPlayer
from .providers.base import SpeechToText, TextToSpeech, clamp_rate
from .providers.factory import create_stt_provider, create_tts_provider
from .providers.piper_tts import STREAM_CHUNK_SAMPLES
from .voice_config import VoiceConfig

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL_MS = 50
# Synthesized audio is handed to the player in segments of about this length
PLAYBACK_SEGMENT_SECONDS = 1.0


@dataclass
class _ReadingSession:
    cancelled: asyncio.Event = field(default_factory=asyncio.Event)
    tasks: List[asyncio.Task] = field(default_factory=list)


class VoiceManager:
    """
    Voice engine for one application.

    Usage:
        vm = VoiceManager(VoiceConfig())
        await vm.initialize()

        positions = await vm.read_content(text, ReadingPosition("doc-1", page=3))
        async for position in positions:
            highlight(position.word_index)

        results = await vm.start_listening()
        async for result in results:
            command = vm.parse_command(result.text)
    """

    def __init__(
        self,
        config: Optional[VoiceConfig] = None,
        player: Optional[AudioPlayer] = None,
        channel_capacity: int = DEFAULT_CAPACITY,
        poll_interval_ms: int = DEFAULT_POLL_INTERVAL_MS,
        stream_chunk_samples: int = STREAM_CHUNK_SAMPLES,
        stt_factory: Callable[..., SpeechToText] = create_stt_provider,
        tts_factory: Callable[..., TextToSpeech] = create_tts_provider,
    ):
        """
        Initialize voice manager.

        Args:
            config: Voice configuration (defaults when None)
            player: Audio output (a fresh AudioPlayer when None)
            channel_capacity: Capacity of every stream handed out
            poll_interval_ms: Longest synchronizer sleep between stop checks
            stream_chunk_samples: Samples per synthesized audio chunk
            stt_factory: Builds the STT backend from config.stt_provider
            tts_factory: Builds the TTS backend from config.tts_provider
        """
        self.config = config or VoiceConfig()
        self.channel_capacity = channel_capacity
        self.poll_interval = poll_interval_ms / 1000.0
        self.stream_chunk_samples = stream_chunk_samples

        self._player = player or AudioPlayer()
        self._stt_factory = stt_factory
        self._tts_factory = tts_factory
        self._parser = VoiceCommandParser(self.config.language)

        self._stt: Optional[SpeechToText] = None
        self._tts: Optional[TextToSpeech] = None

        self._state = VoiceState.IDLE
        self._state_lock = asyncio.Lock()
        self._position: Optional[ReadingPosition] = None
        self._position_lock = asyncio.Lock()

        self._session: Optional[_ReadingSession] = None
        self._listen_task: Optional[asyncio.Task] = None

        self._on_state_change: Optional[Callable[[VoiceState], None]] = None

    @property
    def state(self) -> VoiceState:
        return self._state

    @property
    def is_initialized(self) -> bool:
        return self._stt is not None and self._tts is not None

    @property
    def stt(self) -> Optional[SpeechToText]:
        return self._stt

    @property
    def tts(self) -> Optional[TextToSpeech]:
        return self._tts

    def set_callbacks(self, on_state_change: Optional[Callable[[VoiceState], None]] = None) -> None:
        """Set event callbacks."""
        self._on_state_change = on_state_change

    async def get_state(self) -> VoiceState:
        return self._state

    async def initialize(self) -> None:
        """
        Create STT and TTS backends from the current config.

        Raises:
            ProviderNotAvailable, ModelNotFound: backend cannot be built
        """
        logger.info("Initializing voice manager...")
        config = self.config
        stt = self._stt_factory(
            config.stt_provider,
            language=config.language,
            noise_suppression=config.noise_suppression,
            channel_capacity=self.channel_capacity,
        )
        tts = self._tts_factory(
            config.tts_provider,
            channel_capacity=self.channel_capacity,
            chunk_samples=self.stream_chunk_samples,
        )
        tts.set_rate(config.reading_speed)
        if config.voice_id and config.voice_id != "default":
            tts.set_voice(config.voice_id)

        self._stt, self._tts = stt, tts
        logger.info(f"Voice manager initialized (stt={stt.name}, tts={tts.name})")

    def update_config(self, config: VoiceConfig) -> None:
        """Replace the config. Providers keep running until initialize() is called again."""
        self.config = config
        self._parser = VoiceCommandParser(config.language)

    def set_reading_speed(self, speed: float) -> float:
        """Update reading speed in the config and the live TTS backend."""
        self.config.reading_speed = clamp_rate(speed)
        if self._tts is not None:
            self._tts.set_rate(self.config.reading_speed)
        return self.config.reading_speed

    def parse_command(self, text: str) -> VoiceCommand:
        return self._parser.parse(text)

    async def get_reading_position(self) -> Optional[ReadingPosition]:
        async with self._position_lock:
            return self._position.copy() if self._position else None

    # =========================================================================
    # LISTENING
    # =========================================================================

    async def start_listening(self) -> Channel:
        """
        Start continuous recognition.

        Returns:
            Channel of TranscriptionResult; the manager returns to IDLE
            when it ends
        """
        stt = self._require_stt()
        await self._enter(VoiceState.LISTENING)
        try:
            source = await stt.start_listening()
        except BaseException:
            await self._leave(VoiceState.LISTENING)
            raise

        out: Channel = Channel(self.channel_capacity)
        task = asyncio.create_task(self._forward_transcriptions(stt, source, out))
        self._listen_task = task
        logger.info("Listening started")
        return out

    async def stop_listening(self) -> None:
        stt = self._require_stt()
        await stt.stop_listening()
        await self._leave(VoiceState.LISTENING)
        logger.info("Listening stopped")

    async def _forward_transcriptions(self, stt: SpeechToText, source: Channel, out: Channel) -> None:
        task = asyncio.current_task()
        try:
            async for result in source:
                if not await out.send(result):
                    if self._listen_task is task:
                        await stt.stop_listening()
                    break
        finally:
            await source.aclose()
            # A newer listening session owns the state once this one was replaced
            if self._listen_task is task:
                self._listen_task = None
                await self._leave(VoiceState.LISTENING)
            await out.close()

    async def transcribe(self, samples, sample_rate: int) -> TranscriptionResult:
        """One-shot recognition of a sample buffer."""
        stt = self._require_stt()
        await self._enter(VoiceState.PROCESSING)
        try:
            return await stt.transcribe(np.asarray(samples, dtype=np.float32), sample_rate)
        finally:
            await self._leave(VoiceState.PROCESSING)

    # =========================================================================
    # SPEAKING
    # =========================================================================

    async def speak(self, text: str) -> None:
        """Synthesize and play text, returning when playback ends."""
        tts = self._require_tts()
        await self._enter(VoiceState.SPEAKING)
        try:
            audio = await tts.synthesize(text)
            await self._player.play(audio)
        finally:
            await self._leave(VoiceState.SPEAKING)

    # =========================================================================
    # READING
    # =========================================================================

    async def read_content(self, text: str, start_position: ReadingPosition) -> Channel:
        """
        Read text aloud from start_position.

        Returns:
            Channel of ReadingPosition, one per word, closed when reading
            stops or completes
        """
        tts = self._require_tts()
        await self._enter(VoiceState.READING)

        session = _ReadingSession()
        self._session = session
        async with self._position_lock:
            self._position = start_position.copy()

        try:
            timings = await tts.get_word_timings(text)
            audio_stream = await tts.synthesize_stream(text)
        except BaseException:
            self._session = None
            await self._leave(VoiceState.READING)
            raise

        positions: Channel = Channel(self.channel_capacity)
        session.tasks = [
            asyncio.create_task(self._play_stream(audio_stream, session)),
            asyncio.create_task(self._synchronize(timings, start_position.copy(), positions, session)),
        ]
        logger.info(f"Reading started: {len(timings)} words, document={start_position.document_id}")
        return positions

    async def stop_reading(self) -> None:
        tts = self._require_tts()
        session = self._session
        if session is not None:
            session.cancelled.set()
        await tts.stop()
        self._player.stop()
        await self._leave(VoiceState.READING)
        logger.info("Reading stopped")

    async def _play_stream(self, stream: Channel, session: _ReadingSession) -> None:
        """Play synthesized chunks in order until the stream ends or the session is cancelled."""
        pending: List[np.ndarray] = []
        pending_samples = 0
        sample_rate, channels = 0, 1
        try:
            async for chunk in stream:
                if session.cancelled.is_set():
                    break
                audio = chunk.to_audio_data()
                sample_rate, channels = audio.sample_rate, audio.channels
                pending.append(audio.samples)
                pending_samples += len(audio.samples)

                segment_full = pending_samples >= sample_rate * channels * PLAYBACK_SEGMENT_SECONDS
                if (segment_full or chunk.is_final) and pending_samples > 0:
                    segment = AudioData(np.concatenate(pending), sample_rate, channels)
                    pending, pending_samples = [], 0
                    await self._player.play(segment)
                if chunk.is_final:
                    break

            if pending_samples > 0 and not session.cancelled.is_set():
                await self._player.play(AudioData(np.concatenate(pending), sample_rate, channels))
        except VoiceError as e:
            logger.error(f"Reading playback failed: {e}")
        finally:
            await stream.aclose()

    async def _synchronize(
        self,
        timings: List[WordTiming],
        start: ReadingPosition,
        out: Channel,
        session: _ReadingSession,
    ) -> None:
        """Emit a position each time elapsed time crosses a word's start."""
        loop = asyncio.get_running_loop()
        started = loop.time()
        emitted = 0
        try:
            for index, timing in enumerate(timings):
                if not await self._sleep_until(started + timing.start_ms / 1000.0, session):
                    break
                position = start.copy(
                    word_index=index,
                    character_offset=0,
                    timestamp_ms=timing.start_ms,
                )
                async with self._position_lock:
                    self._position = position
                if not await out.send(position.copy()):
                    # Consumer went away: nobody is following along any more
                    session.cancelled.set()
                    self._player.stop()
                    break
                emitted += 1
        finally:
            logger.debug(f"Synchronizer finished after {emitted}/{len(timings)} words")
            if self._session is session:
                self._session = None
                await self._leave(VoiceState.READING)
            await out.close()

    async def _sleep_until(self, deadline: float, session: _ReadingSession) -> bool:
        """Sleep in poll-sized slices. False if reading was stopped meanwhile."""
        loop = asyncio.get_running_loop()
        while True:
            if session.cancelled.is_set() or self._state != VoiceState.READING:
                return False
            remaining = deadline - loop.time()
            if remaining <= 0:
                return True
            await asyncio.sleep(min(remaining, self.poll_interval))

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    async def shutdown(self) -> None:
        """Stop whatever is active and wait for background tasks."""
        if self._state == VoiceState.LISTENING and self._stt is not None:
            await self.stop_listening()
        if self._state == VoiceState.READING and self._tts is not None:
            await self.stop_reading()

        tasks = [t for t in ([self._listen_task] + (self._session.tasks if self._session else [])) if t]
        for task in tasks:
            if not task.done():
                task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        logger.info("Voice manager shut down")

    def get_status(self) -> dict:
        """Get voice system status."""
        return {
            "state": self._state.to_str(),
            "initialized": self.is_initialized,
            "stt": self._stt.name if self._stt else None,
            "tts": self._tts.name if self._tts else None,
            "config": self.config.to_dict(),
            "position": self._position.to_dict() if self._position else None,
        }

    # =========================================================================
    # STATE
    # =========================================================================

    def _require_stt(self) -> SpeechToText:
        if self._stt is None:
            raise NotInitialized()
        return self._stt

    def _require_tts(self) -> TextToSpeech:
        if self._tts is None:
            raise NotInitialized()
        return self._tts

    async def _enter(self, state: VoiceState) -> None:
        """IDLE -> state, or InvalidState."""
        async with self._state_lock:
            if self._state != VoiceState.IDLE:
                raise InvalidState(f"Already active ({self._state.to_str()})")
            self._set_state(state)

    async def _leave(self, state: VoiceState) -> None:
        """state -> IDLE; no-op if the manager already moved on."""
        async with self._state_lock:
            if self._state == state:
                self._set_state(VoiceState.IDLE)

    def _set_state(self, state: VoiceState) -> None:
        """Set state and fire callback."""
        logger.debug(f"Voice state: {self._state.to_str()} -> {state.to_str()}")
        self._state = state
        if self._on_state_change:
            try:
                self._on_state_change(state)
            except Exception as e:
                logger.debug(f"State callback error: {e}")
