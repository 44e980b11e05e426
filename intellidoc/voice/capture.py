"""
IntelliDoc Audio Capture
========================
Continuous microphone capture delivered as a bounded async stream.

A dedicated thread performs blocking reads from a sounddevice
InputStream and hands each block to the event loop through
Channel.send(). When the channel is full the capture thread waits,
so a slow consumer throttles capture instead of buffering forever.

Usage:
    capture = AudioCapture(AudioConfig(sample_rate=16000))
    chunks = await capture.start_capture()
    async for chunk in chunks:
        ...
    capture.stop_capture()
"""

import time
import asyncio
import logging
import threading
import concurrent.futures
from dataclasses import dataclass
from typing import Optional, Callable

import numpy as np

from .audio import rms
from .channel import Channel, DEFAULT_CAPACITY
from .devices import get_default_input_device
from .errors import AudioError

logger = logging.getLogger(__name__)

# sounddevice raises OSError when the PortAudio library itself is missing
try:
    import sounddevice as sd
    AUDIO_AVAILABLE = True
except (ImportError, OSError):
    AUDIO_AVAILABLE = False
    logger.warning("sounddevice not available, capture disabled")

# How long the capture thread waits on a full channel before re-checking stop
_SEND_POLL_SECONDS = 0.1


@dataclass
class AudioConfig:
    """Capture format."""
    sample_rate: int = 16000
    channels: int = 1
    buffer_size: int = 1024


class AudioCapture:
    """
    Microphone capture engine.

    Chunks are interleaved float32 numpy arrays of buffer_size frames.
    """

    def __init__(
        self,
        config: Optional[AudioConfig] = None,
        device_index: Optional[int] = None,
        channel_capacity: int = DEFAULT_CAPACITY,
        on_level_update: Optional[Callable[[float], None]] = None,
    ):
        """
        Initialize audio capture.

        Args:
            config: Sample rate / channels / block size
            device_index: Input device index (None for default)
            channel_capacity: Maximum number of undelivered chunks
            on_level_update: Callback receiving the RMS of every block
        """
        self.config = config or AudioConfig()
        self.device_index = device_index
        self.channel_capacity = channel_capacity
        self.on_level_update = on_level_update

        self._recording = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._current_rms = 0.0

    @property
    def is_recording(self) -> bool:
        return self._recording.is_set()

    @property
    def current_level(self) -> float:
        """Get current audio level (RMS)."""
        return self._current_rms

    async def start_capture(self) -> Channel:
        """
        Start capturing.

        Returns:
            Channel of float32 sample blocks, closed when capture stops

        Raises:
            AudioError: already recording, or no input device exists
        """
        if self.is_recording:
            raise AudioError("Already recording")

        if AUDIO_AVAILABLE and self.device_index is None and get_default_input_device() is None:
            raise AudioError("No input device found")

        loop = asyncio.get_running_loop()
        channel: Channel = Channel(self.channel_capacity)
        self._recording.set()

        target = self._capture_loop if AUDIO_AVAILABLE else self._idle_loop
        self._thread = threading.Thread(
            target=target, args=(loop, channel), name="audio-capture", daemon=True
        )
        self._thread.start()

        logger.info(
            f"Capture started ({self.config.sample_rate} Hz, "
            f"{self.config.channels} ch, device={self.device_index or 'default'})"
        )
        return channel

    def stop_capture(self) -> None:
        """Stop capturing. Idempotent."""
        if not self._recording.is_set():
            return
        self._recording.clear()
        logger.info("Capture stopped")

    def _capture_loop(self, loop: asyncio.AbstractEventLoop, channel: Channel) -> None:
        """Blocking read loop (capture thread)."""
        try:
            with sd.InputStream(
                samplerate=self.config.sample_rate,
                channels=self.config.channels,
                dtype='float32',
                blocksize=self.config.buffer_size,
                device=self.device_index,
            ) as stream:
                while self._recording.is_set():
                    data, overflowed = stream.read(self.config.buffer_size)
                    if overflowed:
                        logger.warning("Audio capture overflow, samples dropped")

                    chunk = np.asarray(data, dtype=np.float32).reshape(-1).copy()
                    self._report_level(chunk)

                    if not self._deliver(loop, channel, chunk):
                        break
        except sd.PortAudioError as e:
            logger.error(f"Audio capture failed: {e}")
        finally:
            self._recording.clear()
            self._close_channel(loop, channel)

    def _idle_loop(self, loop: asyncio.AbstractEventLoop, channel: Channel) -> None:
        """Stand-in capture thread when no audio backend is installed."""
        logger.warning("Audio capture running without a backend, no audio will be produced")
        while self._recording.is_set():
            time.sleep(_SEND_POLL_SECONDS)
        self._close_channel(loop, channel)

    def _deliver(self, loop: asyncio.AbstractEventLoop, channel: Channel, chunk: np.ndarray) -> bool:
        """Send one chunk from the capture thread, blocking while the channel is full."""
        if loop.is_closed():
            return False
        future = asyncio.run_coroutine_threadsafe(channel.send(chunk), loop)
        while True:
            try:
                return future.result(timeout=_SEND_POLL_SECONDS)
            except concurrent.futures.TimeoutError:
                if not self._recording.is_set():
                    future.cancel()
                    return False

    def _close_channel(self, loop: asyncio.AbstractEventLoop, channel: Channel) -> None:
        if loop.is_closed():
            return
        try:
            asyncio.run_coroutine_threadsafe(channel.close(), loop)
        except RuntimeError:
            # Loop shut down between the check and the call
            logger.debug("Event loop closed before capture channel could be closed")

    def _report_level(self, chunk: np.ndarray) -> None:
        self._current_rms = rms(chunk)
        if self.on_level_update:
            try:
                self.on_level_update(self._current_rms)
            except Exception as e:
                logger.debug(f"Level callback error: {e}")
