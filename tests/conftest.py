import asyncio
import inspect
from typing import List, Optional

import numpy as np
import pytest

from intellidoc.config import IntelliDocConfig
from intellidoc.voice.channel import Channel
from intellidoc.voice.errors import InvalidState, ModelNotFound
from intellidoc.voice.models import AudioChunk, AudioData, TranscriptionResult, WordTiming
from intellidoc.voice.playback import PlaybackResult
from intellidoc.voice.providers.base import (
    SpeechToText,
    TextToSpeech,
    VoiceGender,
    VoiceInfo,
    clamp_rate,
)


def pytest_pyfunc_call(pyfuncitem):
    test_func = pyfuncitem.obj
    if inspect.iscoroutinefunction(test_func):
        funcargs = pyfuncitem.funcargs
        testargs = {arg: funcargs[arg] for arg in pyfuncitem._fixtureinfo.argnames}
        asyncio.run(test_func(**testargs))
        return True
    return None


# =============================================================================
# Fakes
# =============================================================================

class FakeSTT(SpeechToText):
    """Replays scripted transcriptions instead of listening to a microphone."""

    name = "fake-stt"

    def __init__(self, results: Optional[List[TranscriptionResult]] = None, hold_open: bool = False):
        self.results = list(results or [])
        self.hold_open = hold_open
        self.transcribed = []
        self.stop_calls = 0
        self._out: Optional[Channel] = None
        self._task: Optional[asyncio.Task] = None

    async def start_listening(self) -> Channel:
        if self._out is not None:
            raise InvalidState("Already listening")
        self._out = Channel(16)
        self._task = asyncio.create_task(self._replay(self._out))
        return self._out

    async def _replay(self, out: Channel) -> None:
        for result in self.results:
            if not await out.send(result):
                return
        if not self.hold_open:
            await out.close()

    async def stop_listening(self) -> None:
        self.stop_calls += 1
        out, self._out = self._out, None
        if out is not None:
            await out.close()

    async def transcribe(self, samples, sample_rate: int) -> TranscriptionResult:
        self.transcribed.append((len(samples), sample_rate))
        return TranscriptionResult("transcribed text", True, 0.9)

    def is_listening(self) -> bool:
        return self._out is not None

    def supported_languages(self) -> List[str]:
        return ["en", "de"]


class FakeTTS(TextToSpeech):
    """Silent synthesizer with evenly spaced word timings."""

    name = "fake-tts"
    sample_rate = 1000

    def __init__(self, word_ms: int = 20):
        self.word_ms = word_ms
        self.rate = 1.0
        self.voice_id = "default"
        self.stop_calls = 0
        self.synthesized = []

    def _timings(self, text: str) -> List[WordTiming]:
        return [
            WordTiming(word, i * self.word_ms, (i + 1) * self.word_ms)
            for i, word in enumerate(text.split())
        ]

    async def synthesize(self, text: str) -> AudioData:
        self.synthesized.append(text)
        frames = len(text.split()) * self.word_ms * self.sample_rate // 1000
        return AudioData(np.zeros(frames, dtype=np.float32), self.sample_rate)

    async def synthesize_stream(self, text: str) -> Channel:
        audio = await self.synthesize(text)
        channel = Channel(4)
        await channel.send(AudioChunk.from_samples(audio.samples, self._timings(text), True, self.sample_rate))
        await channel.close()
        return channel

    async def get_word_timings(self, text: str) -> List[WordTiming]:
        return self._timings(text)

    async def stop(self) -> None:
        self.stop_calls += 1

    def available_voices(self) -> List[VoiceInfo]:
        return [VoiceInfo("fake", "Fake", "en-US", VoiceGender.NEUTRAL, "neutral")]

    def set_rate(self, rate: float) -> float:
        self.rate = clamp_rate(rate)
        return self.rate

    def set_voice(self, voice_id: str) -> None:
        if voice_id != "fake":
            raise ModelNotFound(voice_id)
        self.voice_id = voice_id


class FakePlayer:
    """Records audio instead of playing it."""

    def __init__(self):
        self.played: List[AudioData] = []
        self.stop_calls = 0

    async def play(self, audio: AudioData) -> PlaybackResult:
        self.played.append(audio)
        await asyncio.sleep(0)
        return PlaybackResult(success=True, duration=audio.duration_seconds, backend="fake")

    def stop(self) -> None:
        self.stop_calls += 1


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def settings(tmp_path):
    return IntelliDocConfig(base_dir=tmp_path)


@pytest.fixture
def fake_stt():
    return FakeSTT()


@pytest.fixture
def fake_tts():
    return FakeTTS()


@pytest.fixture
def fake_player():
    return FakePlayer()
