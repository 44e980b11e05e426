"""
IntelliDoc Audio Playback
=========================
Speaker output with multiple backend support.

Backends, in order of preference:
- sounddevice (PortAudio)
- aplay subprocess (Linux ALSA)
- timed stub that only waits for the audio's duration

Blocking backend calls run in a worker thread so playback can be
awaited from the event loop.
"""

import time
import shutil
import asyncio
import logging
import tempfile
import subprocess
from pathlib import Path
from typing import Callable, List, Optional
from dataclasses import dataclass

from .audio import to_wav_bytes
from .errors import AudioError
from .models import AudioData, WordTiming

logger = logging.getLogger(__name__)

# sounddevice raises OSError when the PortAudio library itself is missing
try:
    import sounddevice as sd
    SOUNDDEVICE_AVAILABLE = True
except (ImportError, OSError):
    SOUNDDEVICE_AVAILABLE = False
    logger.warning("sounddevice not available")

SYNC_POLL_SECONDS = 0.01


@dataclass
class PlaybackResult:
    """Result of audio playback."""
    success: bool
    duration: float = 0.0
    backend: str = ""
    stopped: bool = False


class AudioPlayer:
    """
    Awaitable audio player.

    Usage:
        player = AudioPlayer()
        await player.play(audio)
        player.stop()
    """

    def __init__(
        self,
        device_index: Optional[int] = None,
        volume: float = 1.0,
        alsa_device: Optional[str] = None,
    ):
        """
        Initialize audio player.

        Args:
            device_index: Output device index (None for default)
            volume: Volume level (0.0 - 1.0)
            alsa_device: ALSA device name for the aplay fallback
        """
        self.device_index = device_index
        self.volume = max(0.0, min(1.0, volume))
        self.alsa_device = alsa_device

        self._muted = False
        self._playing = False
        self._stopped = False
        self._aplay_process: Optional[subprocess.Popen] = None

    @property
    def is_muted(self) -> bool:
        return self._muted

    @property
    def is_playing(self) -> bool:
        return self._playing

    def mute(self, muted: bool = True) -> None:
        self._muted = muted
        logger.debug(f"Audio {'muted' if muted else 'unmuted'}")

    def set_volume(self, volume: float) -> None:
        """Set volume level (0.0 - 1.0)."""
        self.volume = max(0.0, min(1.0, volume))
        logger.debug(f"Volume set to {self.volume:.0%}")

    async def play(self, audio: AudioData) -> PlaybackResult:
        """
        Play audio and wait until it finishes or stop() is called.

        Raises:
            AudioError: the backend failed
        """
        if audio.is_empty:
            return PlaybackResult(success=True, duration=0.0, backend="none")
        if self._muted:
            return PlaybackResult(success=True, duration=0.0, backend="muted")

        self._stopped = False
        self._playing = True
        try:
            if SOUNDDEVICE_AVAILABLE:
                await asyncio.to_thread(self._play_sounddevice, audio)
                backend = "sounddevice"
            elif shutil.which("aplay"):
                await asyncio.to_thread(self._play_aplay, audio)
                backend = "aplay"
            else:
                await self._play_stub(audio)
                backend = "stub"
        finally:
            self._playing = False

        return PlaybackResult(
            success=True,
            duration=audio.duration_seconds,
            backend=backend,
            stopped=self._stopped,
        )

    def stop(self) -> None:
        """Abort current playback."""
        self._stopped = True
        if SOUNDDEVICE_AVAILABLE and self._playing:
            try:
                sd.stop()
            except sd.PortAudioError as e:
                logger.debug(f"sounddevice stop failed: {e}")
        process = self._aplay_process
        if process is not None and process.poll() is None:
            process.terminate()
        logger.debug("Playback stopped")

    def _play_sounddevice(self, audio: AudioData) -> None:
        """Play using sounddevice (worker thread)."""
        data = audio.samples * self.volume
        if audio.channels > 1:
            data = data.reshape(-1, audio.channels)
        try:
            sd.play(data, audio.sample_rate, device=self.device_index)
            sd.wait()
        except sd.PortAudioError as e:
            raise AudioError(f"sounddevice playback failed: {e}") from e

    def _play_aplay(self, audio: AudioData) -> None:
        """Play using aplay (Linux fallback, worker thread)."""
        scaled = AudioData(audio.samples * self.volume, audio.sample_rate, audio.channels)
        with tempfile.NamedTemporaryFile(suffix=".wav", delete=False) as f:
            f.write(to_wav_bytes(scaled))
            temp_path = Path(f.name)

        cmd = ["aplay", "-q"]
        if self.alsa_device:
            cmd.extend(["-D", self.alsa_device])
        cmd.append(str(temp_path))

        try:
            self._aplay_process = subprocess.Popen(
                cmd, stdout=subprocess.DEVNULL, stderr=subprocess.PIPE
            )
            _, stderr = self._aplay_process.communicate(timeout=audio.duration_seconds + 5)
            if self._aplay_process.returncode != 0 and not self._stopped:
                raise AudioError(f"aplay failed: {stderr.decode(errors='replace').strip()}")
        except subprocess.TimeoutExpired as e:
            self._aplay_process.kill()
            raise AudioError("aplay playback timeout") from e
        except OSError as e:
            raise AudioError(f"aplay could not be started: {e}") from e
        finally:
            self._aplay_process = None
            temp_path.unlink(missing_ok=True)

    async def _play_stub(self, audio: AudioData) -> None:
        logger.warning("No audio output backend, simulating playback")
        deadline = time.monotonic() + audio.duration_seconds
        while not self._stopped:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                break
            await asyncio.sleep(min(remaining, 0.05))


async def play_audio(audio: AudioData, device_index: Optional[int] = None) -> PlaybackResult:
    """Play audio on a fresh player and wait for it to finish."""
    return await AudioPlayer(device_index=device_index).play(audio)


async def play_audio_with_sync(
    audio: AudioData,
    word_timings: List[WordTiming],
    on_word: Callable[[int], None],
    player: Optional[AudioPlayer] = None,
) -> PlaybackResult:
    """
    Play audio and call on_word(index) as playback reaches each word.

    Word boundaries are checked every 10 ms against wall-clock time
    since playback started.
    """
    player = player or AudioPlayer()
    started = time.monotonic()
    playback = asyncio.ensure_future(player.play(audio))

    next_word = 0
    try:
        while next_word < len(word_timings):
            elapsed_ms = (time.monotonic() - started) * 1000.0
            while next_word < len(word_timings) and word_timings[next_word].start_ms <= elapsed_ms:
                on_word(next_word)
                next_word += 1
            if playback.done() and next_word < len(word_timings):
                # Audio ended early; remaining words are still reported in order
                for index in range(next_word, len(word_timings)):
                    on_word(index)
                next_word = len(word_timings)
                break
            await asyncio.sleep(SYNC_POLL_SECONDS)
        return await playback
    except BaseException:
        player.stop()
        playback.cancel()
        raise
