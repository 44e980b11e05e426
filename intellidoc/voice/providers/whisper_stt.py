"""
IntelliDoc Whisper STT
======================
Speech-to-text using Faster-Whisper on local CTranslate2 checkpoints.

Features:
- Lazy model load, cached for the lifetime of the provider
- Word-level timestamps mapped onto WordTiming
- Continuous listening: 2 s windows with 0.5 s of carried-over context
- Optional VAD filtering (driven by the noise_suppression setting)
- Model download through faster_whisper.download_model()

Inference runs in a worker thread; the event loop never blocks on it.
"""

import time
import asyncio
import logging
import threading
from pathlib import Path
from typing import Callable, List, Optional, Union

import numpy as np

from ..audio import resample
from ..capture import AudioCapture, AudioConfig
from ..channel import Channel, DEFAULT_CAPACITY
from ..errors import InvalidState, ModelNotFound, ProviderNotAvailable, ApiError, STTError, VoiceIOError
from ..models import TranscriptionResult, WordTiming
from .base import SpeechToText
from .config import WhisperModelSize

logger = logging.getLogger(__name__)

# Try to import faster-whisper
try:
    import faster_whisper
    from faster_whisper import WhisperModel
    FASTER_WHISPER_AVAILABLE = True
except ImportError:
    FASTER_WHISPER_AVAILABLE = False
    WhisperModel = None
    logger.warning("faster-whisper not available, STT disabled")

WHISPER_SAMPLE_RATE = 16000
# Transcribe once two seconds of audio are buffered
WINDOW_SAMPLES = WHISPER_SAMPLE_RATE * 2
# Keep the last half second so words straddling a window edge survive
CONTEXT_SAMPLES = WHISPER_SAMPLE_RATE // 2

SUPPORTED_LANGUAGES = [
    "en", "zh", "de", "es", "ru", "ko", "fr", "ja", "pt", "tr", "pl",
    "ca", "nl", "ar", "sv", "it", "id", "hi", "fi", "vi", "he", "uk",
    "el", "ms", "cs", "ro", "da", "hu", "ta", "no", "th",
]


def whisper_language(language: Optional[str]) -> Optional[str]:
    """Map a locale like "en-US" to a Whisper language code (None = auto-detect)."""
    if not language or language.lower() == "auto":
        return None
    code = language.replace("_", "-").split("-")[0].lower()
    return code if code in SUPPORTED_LANGUAGES else None


def _now_ms() -> int:
    return int(time.time() * 1000)


class WhisperSTT(SpeechToText):
    """
    Faster-Whisper speech-to-text provider.

    Usage:
        stt = WhisperSTT("voice_models/whisper/faster-whisper-base")
        results = await stt.start_listening()
        async for result in results:
            print(result.text)
    """

    name = "whisper"

    def __init__(
        self,
        model_path: Union[str, Path],
        model_size: WhisperModelSize = WhisperModelSize.BASE,
        language: Optional[str] = "en",
        device: str = "auto",
        compute_type: str = "int8",
        vad_filter: bool = True,
        channel_capacity: int = DEFAULT_CAPACITY,
        capture_factory: Optional[Callable[[AudioConfig], AudioCapture]] = None,
    ):
        """
        Initialize Whisper STT.

        Args:
            model_path: Directory of a converted faster-whisper checkpoint
            model_size: Size the checkpoint was converted from
            language: Locale or language code; "auto" to detect
            device: Device to use (auto, cuda, cpu)
            compute_type: Compute type (int8, float16, float32)
            vad_filter: Skip non-speech with faster-whisper's VAD
            channel_capacity: Capacity of the transcription channel
            capture_factory: Builds the microphone capture (tests inject fakes)

        Raises:
            ModelNotFound: model_path does not exist
        """
        self.model_path = Path(model_path)
        if not self.model_path.exists():
            raise ModelNotFound(str(self.model_path))

        self.model_size = WhisperModelSize(model_size)
        self.language = whisper_language(language)
        self.device = device
        self.compute_type = compute_type
        self.vad_filter = vad_filter
        self.channel_capacity = channel_capacity
        self._capture_factory = capture_factory or (
            lambda cfg: AudioCapture(cfg, channel_capacity=channel_capacity)
        )

        self._model: Optional["WhisperModel"] = None
        self._model_lock = threading.Lock()
        self._listening = False
        self._capture: Optional[AudioCapture] = None
        self._listen_task: Optional[asyncio.Task] = None

    @property
    def is_loaded(self) -> bool:
        return self._model is not None

    def is_listening(self) -> bool:
        return self._listening

    def supported_languages(self) -> List[str]:
        return list(SUPPORTED_LANGUAGES)

    def load_model(self) -> "WhisperModel":
        """Load the Whisper model once (blocking)."""
        if not FASTER_WHISPER_AVAILABLE:
            raise ProviderNotAvailable("faster-whisper is not installed")

        with self._model_lock:
            if self._model is None:
                logger.info(f"Loading Faster-Whisper model: {self.model_path} ({self.model_size.value})")
                start_time = time.time()
                try:
                    self._model = WhisperModel(
                        str(self.model_path),
                        device=self.device,
                        compute_type=self.compute_type,
                    )
                except Exception as e:
                    raise STTError(f"failed to load Whisper model: {e}") from e
                logger.info(f"Model loaded in {time.time() - start_time:.2f}s")
            return self._model

    def unload_model(self) -> None:
        """Unload the model to free memory."""
        with self._model_lock:
            self._model = None
        logger.info("Model unloaded")

    async def transcribe(self, samples, sample_rate: int) -> TranscriptionResult:
        audio = np.asarray(samples, dtype=np.float32).reshape(-1)
        if sample_rate != WHISPER_SAMPLE_RATE:
            audio = resample(audio, sample_rate, WHISPER_SAMPLE_RATE)

        if not FASTER_WHISPER_AVAILABLE:
            logger.warning("faster-whisper not installed, returning empty transcription")
            return TranscriptionResult(text="", is_final=True, confidence=0.0, timestamp_ms=_now_ms())

        if len(audio) == 0:
            return TranscriptionResult(text="", is_final=True, confidence=0.0, timestamp_ms=_now_ms())

        return await asyncio.to_thread(self._transcribe_sync, audio)

    def _transcribe_sync(self, audio: np.ndarray) -> TranscriptionResult:
        """Run inference (worker thread)."""
        model = self.load_model()
        start_time = time.time()
        try:
            segments, info = model.transcribe(
                audio,
                language=self.language,
                beam_size=5,
                vad_filter=self.vad_filter,
                word_timestamps=True,
            )
            # segments is lazy; decoding happens while iterating
            segments = list(segments)
        except Exception as e:
            raise STTError(f"transcription failed: {e}") from e

        words: List[WordTiming] = []
        text_parts = []
        for segment in segments:
            text_parts.append(segment.text.strip())
            for word in segment.words or []:
                start_ms = int(word.start * 1000)
                end_ms = max(start_ms, int(word.end * 1000))
                words.append(WordTiming(word.word.strip(), start_ms, end_ms, float(word.probability)))

        if words:
            confidence = sum(w.confidence for w in words) / len(words)
        elif segments:
            # Convert log probability to confidence
            confidence = sum(2 ** s.avg_logprob for s in segments) / len(segments)
        else:
            confidence = 0.0

        text = " ".join(p for p in text_parts if p).strip()
        logger.info(
            f"Transcribed: '{text[:50]}' "
            f"(lang={info.language}, conf={confidence:.2f}, time={time.time() - start_time:.2f}s)"
        )
        return TranscriptionResult(
            text=text,
            is_final=True,
            confidence=min(confidence, 1.0),
            timestamp_ms=_now_ms(),
            words=words,
        )

    async def start_listening(self) -> Channel:
        if self._listening:
            raise InvalidState("Already listening")

        capture = self._capture_factory(
            AudioConfig(sample_rate=WHISPER_SAMPLE_RATE, channels=1, buffer_size=1024)
        )
        chunks = await capture.start_capture()

        self._capture = capture
        self._listening = True
        out: Channel = Channel(self.channel_capacity)
        self._listen_task = asyncio.create_task(self._listen_loop(capture, chunks, out))
        logger.info("Whisper listening started")
        return out

    async def stop_listening(self) -> None:
        self._listening = False
        if self._capture is not None:
            self._capture.stop_capture()
        logger.info("Whisper listening stopped")

    async def _listen_loop(self, capture: AudioCapture, chunks: Channel, out: Channel) -> None:
        buffer = np.zeros(0, dtype=np.float32)
        fresh = 0
        try:
            async for chunk in chunks:
                buffer = np.concatenate((buffer, chunk))
                fresh += len(chunk)
                if len(buffer) >= WINDOW_SAMPLES:
                    if not await self._emit(buffer, out):
                        break
                    buffer = buffer[-CONTEXT_SAMPLES:].copy()
                    fresh = 0

            # Flush whatever arrived after the last full window
            if fresh > 0 and not out.receiver_closed:
                await self._emit(buffer, out)
        finally:
            capture.stop_capture()
            # Leave listening flags alone when a newer session has taken over
            if self._capture is capture:
                self._capture = None
                self._listening = False
            await out.close()

    async def _emit(self, buffer: np.ndarray, out: Channel) -> bool:
        """Transcribe a window and forward non-empty text. False once the consumer is gone."""
        try:
            result = await self.transcribe(buffer, WHISPER_SAMPLE_RATE)
        except (STTError, ProviderNotAvailable) as e:
            logger.error(f"Transcription error: {e}")
            return True
        if not result.text:
            return True
        return await out.send(result)


def download_model(
    model_size: Union[WhisperModelSize, str],
    target_dir: Union[str, Path],
) -> Path:
    """
    Download a faster-whisper checkpoint into <target_dir>/faster-whisper-<size>.

    Blocking; call through asyncio.to_thread from async code.

    Returns:
        Path of the model directory (existing directories are returned as-is)
    """
    size = WhisperModelSize(model_size)
    output_dir = Path(target_dir) / size.directory_name
    if output_dir.exists() and any(output_dir.iterdir()):
        logger.info(f"Whisper model already present: {output_dir}")
        return output_dir

    if not FASTER_WHISPER_AVAILABLE:
        raise ProviderNotAvailable("faster-whisper is not installed")

    logger.info(f"Downloading Whisper {size.value} model ({size.approx_size}) to {output_dir}")
    try:
        output_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise VoiceIOError(f"cannot create {output_dir}: {e}") from e

    try:
        faster_whisper.download_model(size.faster_whisper_name, output_dir=str(output_dir))
    except Exception as e:
        raise ApiError(f"Whisper model download failed: {e}") from e

    logger.info(f"Whisper model downloaded: {output_dir}")
    return output_dir
