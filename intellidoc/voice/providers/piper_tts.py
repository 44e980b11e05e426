"""
IntelliDoc Piper TTS
====================
Text-to-speech through the Piper command-line synthesizer.

Piper reads text on stdin and writes a WAV file; this provider wraps
that in a worker thread, estimates word timings for highlighting, and
slices the audio into chunks for streaming playback.

Voices are ONNX models with a sibling .onnx.json config, downloaded
from the rhasspy/piper-voices repository on Hugging Face.
"""

import os
import shutil
import asyncio
import logging
import tempfile
import subprocess
from pathlib import Path
from typing import List, Optional, Union

import numpy as np
import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from ..audio import read_wav
from ..channel import Channel, DEFAULT_CAPACITY
from ..errors import ApiError, AudioError, ModelNotFound, TTSError, VoiceIOError
from ..models import AudioChunk, AudioData, WordTiming
from .base import TextToSpeech, VoiceGender, VoiceInfo, clamp_rate, estimate_word_timings

logger = logging.getLogger(__name__)

PIPER_SAMPLE_RATE = 22050
STREAM_CHUNK_SAMPLES = 1024
SYNTHESIS_TIMEOUT = 60
VOICES_BASE_URL = "https://huggingface.co/rhasspy/piper-voices/resolve/main"

PIPER_VOICES = [
    VoiceInfo("en_US-lessac-medium", "Lessac (US English)", "en-US", VoiceGender.FEMALE, "neutral"),
    VoiceInfo("en_US-ryan-medium", "Ryan (US English)", "en-US", VoiceGender.MALE, "neutral"),
    VoiceInfo("en_GB-alba-medium", "Alba (British English)", "en-GB", VoiceGender.FEMALE, "neutral"),
    VoiceInfo("de_DE-thorsten-medium", "Thorsten (German)", "de-DE", VoiceGender.MALE, "neutral"),
    VoiceInfo("es_ES-sharvard-medium", "Sharvard (Spanish)", "es-ES", VoiceGender.MALE, "neutral"),
    VoiceInfo("fr_FR-upmc-medium", "UPMC (French)", "fr-FR", VoiceGender.FEMALE, "neutral"),
]


def find_piper_executable() -> Optional[str]:
    """Find the piper binary."""
    locations = [
        os.environ.get("PIPER_BIN"),
        shutil.which("piper"),
        shutil.which("piper-tts"),
        str(Path.home() / ".local" / "bin" / "piper"),
        "/usr/local/bin/piper",
        "/usr/bin/piper",
    ]
    for loc in locations:
        if loc and Path(loc).exists():
            return loc
    return None


class PiperTTS(TextToSpeech):
    """
    Piper text-to-speech provider.

    When the piper binary is missing, synthesis logs a warning and
    returns empty audio so reading still advances on estimated timings.
    """

    name = "piper"

    def __init__(
        self,
        model_path: Union[str, Path],
        piper_path: Optional[str] = None,
        channel_capacity: int = DEFAULT_CAPACITY,
        chunk_samples: int = STREAM_CHUNK_SAMPLES,
    ):
        """
        Initialize Piper TTS.

        Args:
            model_path: Path to the voice's .onnx file
            piper_path: Piper executable (auto-detected when None)
            channel_capacity: Capacity of the audio chunk channel
            chunk_samples: Samples per streamed chunk

        Raises:
            ModelNotFound: the model file does not exist
        """
        model_path = Path(model_path)
        if not model_path.exists():
            raise ModelNotFound(str(model_path))

        self.model_path = model_path
        self.piper_path = piper_path or find_piper_executable()
        self.channel_capacity = channel_capacity
        self.chunk_samples = chunk_samples

        self._rate = 1.0
        self._voice_id = model_path.stem
        self._is_speaking = False
        self._process: Optional[subprocess.Popen] = None
        self._stream_task: Optional[asyncio.Task] = None

        if not self.piper_path:
            logger.warning("Piper binary not found, synthesis will produce silence")

    @property
    def config_path(self) -> Path:
        """The voice's .onnx.json config beside the model."""
        return self.model_path.with_name(self.model_path.name + ".json")

    @property
    def rate(self) -> float:
        return self._rate

    @property
    def voice_id(self) -> str:
        return self._voice_id

    @property
    def is_speaking(self) -> bool:
        return self._is_speaking

    def set_rate(self, rate: float) -> float:
        self._rate = clamp_rate(rate)
        return self._rate

    def set_voice(self, voice_id: str) -> None:
        candidate = self.model_path.parent / f"{voice_id}.onnx"
        if not candidate.exists():
            raise ModelNotFound(str(candidate))
        self.model_path = candidate
        self._voice_id = voice_id
        logger.info(f"Piper voice set to {voice_id}")

    def available_voices(self) -> List[VoiceInfo]:
        voices = list(PIPER_VOICES)
        known = {v.id for v in voices}
        for onnx in sorted(self.model_path.parent.glob("*.onnx")):
            if onnx.stem not in known:
                voices.append(VoiceInfo(onnx.stem, onnx.stem, _voice_language(onnx.stem)))
        return voices

    async def get_word_timings(self, text: str) -> List[WordTiming]:
        return estimate_word_timings(text, self._rate)

    async def synthesize(self, text: str) -> AudioData:
        if not text.strip():
            return AudioData.empty(PIPER_SAMPLE_RATE, 1)

        if not self.piper_path:
            logger.warning("Piper not available, returning empty audio")
            return AudioData.empty(PIPER_SAMPLE_RATE, 1)

        self._is_speaking = True
        try:
            return await asyncio.to_thread(self._synthesize_sync, text)
        finally:
            self._is_speaking = False

    def _build_command(self, output_path: Path) -> List[str]:
        cmd = [
            self.piper_path,
            "--model", str(self.model_path),
            "--output_file", str(output_path),
        ]
        if self.config_path.exists():
            cmd.extend(["--config", str(self.config_path)])
        if self._rate != 1.0:
            # Piper stretches phoneme length, so faster speech is a shorter scale
            cmd.extend(["--length_scale", f"{1.0 / self._rate:.2f}"])
        return cmd

    def _synthesize_sync(self, text: str) -> AudioData:
        """Run piper (worker thread)."""
        fd, temp_name = tempfile.mkstemp(suffix=".wav", prefix="intellidoc_tts_")
        os.close(fd)
        output_path = Path(temp_name)
        cmd = self._build_command(output_path)
        logger.debug(f"Running: {' '.join(cmd)}")

        try:
            self._process = subprocess.Popen(
                cmd,
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
            )
            _, stderr = self._process.communicate(input=text, timeout=SYNTHESIS_TIMEOUT)
            if self._process.returncode != 0:
                raise TTSError(f"Piper failed: {stderr.strip()}")
            return read_wav(output_path)
        except subprocess.TimeoutExpired as e:
            self._process.kill()
            raise TTSError(f"Piper timed out after {SYNTHESIS_TIMEOUT}s") from e
        except AudioError as e:
            raise TTSError(f"Piper produced unreadable audio: {e}") from e
        except OSError as e:
            raise TTSError(f"Piper could not be started: {e}") from e
        finally:
            self._process = None
            output_path.unlink(missing_ok=True)

    async def synthesize_stream(self, text: str) -> Channel:
        audio = await self.synthesize(text)
        timings = estimate_word_timings(text, self._rate)
        channel: Channel = Channel(self.channel_capacity)
        self._is_speaking = True
        self._stream_task = asyncio.create_task(self._stream_chunks(audio, timings, channel))
        return channel

    async def _stream_chunks(self, audio: AudioData, timings: List[WordTiming], channel: Channel) -> None:
        try:
            if audio.is_empty:
                await channel.send(AudioChunk.from_samples(
                    np.zeros(0, dtype=np.float32), timings, True, audio.sample_rate, audio.channels
                ))
                return

            step = self.chunk_samples * audio.channels
            total = len(audio.samples)
            ms_per_sample = 1000.0 / (audio.sample_rate * audio.channels)
            for start in range(0, total, step):
                if not self._is_speaking:
                    break
                end = min(start + step, total)
                window_start = start * ms_per_sample
                window_end = end * ms_per_sample
                words = [t for t in timings if window_start <= t.start_ms < window_end]
                chunk = AudioChunk.from_samples(
                    audio.samples[start:end], words, end >= total,
                    audio.sample_rate, audio.channels,
                )
                if not await channel.send(chunk):
                    break
                # Yield so other tasks (playback, synchronizer) keep running
                await asyncio.sleep(0.01)
        finally:
            self._is_speaking = False
            await channel.close()

    async def stop(self) -> None:
        self._is_speaking = False
        process = self._process
        if process is not None and process.poll() is None:
            process.terminate()
        logger.debug("Piper stopped")


def _voice_language(voice_id: str) -> str:
    locale = voice_id.split("-")[0]
    return locale.replace("_", "-")


def voice_urls(voice_id: str) -> List[str]:
    """Model and config URLs, e.g. en/en_US/lessac/medium/en_US-lessac-medium.onnx."""
    try:
        locale, speaker, quality = voice_id.split("-")
    except ValueError as e:
        raise ApiError(f"invalid Piper voice id: {voice_id}") from e
    family = locale.split("_")[0]
    base = f"{VOICES_BASE_URL}/{family}/{locale}/{speaker}/{quality}/{voice_id}"
    return [f"{base}.onnx", f"{base}.onnx.json"]


def create_download_session(max_retries: int = 3) -> requests.Session:
    """requests session that retries transient server errors."""
    session = requests.Session()
    retry_strategy = Retry(
        total=max_retries,
        backoff_factor=0.5,
        status_forcelist=[500, 502, 503, 504],
        allowed_methods=frozenset(["GET"]),
    )
    adapter = HTTPAdapter(max_retries=retry_strategy)
    session.mount("http://", adapter)
    session.mount("https://", adapter)
    session.headers["User-Agent"] = "IntelliDoc/0.3.0"
    return session


def download_voice(
    voice_id: str,
    target_dir: Union[str, Path],
    session: Optional[requests.Session] = None,
    timeout: float = 60.0,
) -> Path:
    """
    Download a Piper voice (.onnx + .onnx.json) into target_dir.

    Blocking; call through asyncio.to_thread from async code.

    Returns:
        Path of the .onnx file (existing voices are returned as-is)
    """
    target_dir = Path(target_dir)
    model_path = target_dir / f"{voice_id}.onnx"
    if model_path.exists():
        logger.info(f"Piper voice already present: {model_path}")
        return model_path

    try:
        target_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise VoiceIOError(f"cannot create {target_dir}: {e}") from e

    session = session or create_download_session()
    for url in voice_urls(voice_id):
        destination = target_dir / url.rsplit("/", 1)[1]
        partial = destination.with_name(destination.name + ".part")
        logger.info(f"Downloading {url}")
        try:
            with session.get(url, stream=True, timeout=timeout) as response:
                response.raise_for_status()
                with open(partial, "wb") as f:
                    for block in response.iter_content(chunk_size=1 << 16):
                        f.write(block)
            partial.replace(destination)
        except requests.exceptions.RequestException as e:
            partial.unlink(missing_ok=True)
            raise ApiError(f"Piper voice download failed ({url}): {e}") from e
        except OSError as e:
            partial.unlink(missing_ok=True)
            raise VoiceIOError(f"cannot write {destination}: {e}") from e

    logger.info(f"Piper voice downloaded: {model_path}")
    return model_path
