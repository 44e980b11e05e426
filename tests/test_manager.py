"""
VoiceManager state machine and reading synchronizer tests.

Providers and the player are fakes from conftest.py; no audio hardware
or models are touched.
"""

import asyncio

import numpy as np
import pytest

from conftest import FakePlayer, FakeSTT, FakeTTS
from intellidoc.voice.errors import InvalidState, NotInitialized, TTSError
from intellidoc.voice.manager import VoiceManager
from intellidoc.voice.models import ReadingPosition, TranscriptionResult, VoiceState
from intellidoc.voice.voice_config import VoiceConfig


def make_manager(stt=None, tts=None, player=None, config=None):
    stt = stt or FakeSTT()
    tts = tts or FakeTTS()
    return VoiceManager(
        config or VoiceConfig(),
        player=player or FakePlayer(),
        poll_interval_ms=5,
        stt_factory=lambda provider, **kwargs: stt,
        tts_factory=lambda provider, **kwargs: tts,
    )


async def wait_for_state(manager, state, timeout=1.0):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while manager.state != state:
        if loop.time() > deadline:
            raise AssertionError(f"state stayed {manager.state}, expected {state}")
        await asyncio.sleep(0.005)


# =============================================================================
# Lifecycle
# =============================================================================
class TestLifecycle:

    async def test_operations_require_initialize(self):
        manager = make_manager()
        assert not manager.is_initialized
        with pytest.raises(NotInitialized):
            await manager.speak("hello")
        with pytest.raises(NotInitialized):
            await manager.start_listening()
        with pytest.raises(NotInitialized):
            await manager.read_content("hello", ReadingPosition())

    async def test_initialize_applies_config(self):
        tts = FakeTTS()
        manager = make_manager(tts=tts, config=VoiceConfig(reading_speed=1.5, voice_id="fake"))
        await manager.initialize()

        assert manager.is_initialized
        assert tts.rate == 1.5
        assert tts.voice_id == "fake"
        assert await manager.get_state() == VoiceState.IDLE

    async def test_set_reading_speed_reaches_provider(self):
        tts = FakeTTS()
        manager = make_manager(tts=tts)
        await manager.initialize()

        assert manager.set_reading_speed(7) == 3.0
        assert tts.rate == 3.0
        assert manager.config.reading_speed == 3.0

    async def test_status(self):
        manager = make_manager()
        await manager.initialize()
        status = manager.get_status()
        assert status["state"] == "idle"
        assert status["stt"] == "fake-stt"
        assert status["tts"] == "fake-tts"
        assert status["position"] is None

    def test_parse_command_uses_parser(self):
        manager = make_manager()
        assert manager.parse_command("go to page 3").to_dict() == {"type": "go_to_page", "page": 3}


# =============================================================================
# Speaking, listening, transcribing
# =============================================================================
class TestSpeakAndListen:

    async def test_speak_passes_through_speaking(self):
        tts, player = FakeTTS(), FakePlayer()
        manager = make_manager(tts=tts, player=player)
        states = []
        manager.set_callbacks(on_state_change=states.append)
        await manager.initialize()

        await manager.speak("hello world")

        assert states == [VoiceState.SPEAKING, VoiceState.IDLE]
        assert tts.synthesized == ["hello world"]
        assert len(player.played) == 1

    async def test_listening_ends_when_stream_ends(self):
        results = [TranscriptionResult("first"), TranscriptionResult("second")]
        manager = make_manager(stt=FakeSTT(results))
        await manager.initialize()

        stream = await manager.start_listening()
        assert manager.state == VoiceState.LISTENING

        received = await stream.collect(timeout=1)
        assert [r.text for r in received] == ["first", "second"]
        assert manager.state == VoiceState.IDLE

    async def test_second_start_is_rejected(self):
        stt = FakeSTT(hold_open=True)
        manager = make_manager(stt=stt)
        await manager.initialize()

        stream = await manager.start_listening()
        with pytest.raises(InvalidState):
            await manager.start_listening()
        with pytest.raises(InvalidState):
            await manager.read_content("hello", ReadingPosition())

        await manager.stop_listening()
        assert manager.state == VoiceState.IDLE
        assert await stream.collect(timeout=1) == []
        assert stt.stop_calls >= 1

    async def test_transcribe_passes_through_processing(self):
        stt = FakeSTT()
        manager = make_manager(stt=stt)
        states = []
        manager.set_callbacks(on_state_change=states.append)
        await manager.initialize()

        result = await manager.transcribe(np.zeros(1600), 16000)

        assert result.text == "transcribed text"
        assert stt.transcribed == [(1600, 16000)]
        assert states == [VoiceState.PROCESSING, VoiceState.IDLE]

    async def test_state_callback_errors_are_contained(self):
        manager = make_manager()

        def broken(state):
            raise RuntimeError("ui went away")

        manager.set_callbacks(on_state_change=broken)
        await manager.initialize()
        await manager.speak("still works")
        assert manager.state == VoiceState.IDLE


# =============================================================================
# Reading
# =============================================================================
class TestReading:

    async def test_positions_follow_word_order(self):
        player = FakePlayer()
        manager = make_manager(tts=FakeTTS(word_ms=10), player=player)
        await manager.initialize()
        start = ReadingPosition("doc-1", page=3, paragraph_id="p7", word_index=99, character_offset=5)

        positions = await manager.read_content("one two three four", start)
        assert manager.state == VoiceState.READING

        received = await positions.collect(timeout=2)

        assert [p.word_index for p in received] == [0, 1, 2, 3]
        assert [p.timestamp_ms for p in received] == [0, 10, 20, 30]
        assert all(p.document_id == "doc-1" and p.page == 3 and p.paragraph_id == "p7" for p in received)
        assert all(p.character_offset == 0 for p in received)
        assert manager.state == VoiceState.IDLE

        position = await manager.get_reading_position()
        assert position.word_index == 3

        await manager.shutdown()
        assert sum(len(a) for a in player.played) == 40

    async def test_stop_reading_halts_positions(self):
        tts, player = FakeTTS(word_ms=1000), FakePlayer()
        manager = make_manager(tts=tts, player=player)
        await manager.initialize()

        positions = await manager.read_content("a b c d e", ReadingPosition("doc", page=1))
        first = await asyncio.wait_for(positions.recv(), 1)
        assert first.word_index == 0

        await manager.stop_reading()

        assert manager.state == VoiceState.IDLE
        assert await positions.collect(timeout=1) == []
        assert tts.stop_calls == 1
        assert player.stop_calls >= 1

    async def test_consumer_leaving_stops_reading(self):
        player = FakePlayer()
        manager = make_manager(tts=FakeTTS(word_ms=200), player=player)
        await manager.initialize()

        positions = await manager.read_content("a b c", ReadingPosition("doc", page=1))
        await asyncio.wait_for(positions.recv(), 1)
        await positions.aclose()

        await wait_for_state(manager, VoiceState.IDLE, timeout=2)
        assert player.stop_calls >= 1

    async def test_reading_can_restart_after_completion(self):
        manager = make_manager(tts=FakeTTS(word_ms=5))
        await manager.initialize()

        for _ in range(2):
            positions = await manager.read_content("x y", ReadingPosition("doc", page=1))
            assert len(await positions.collect(timeout=1)) == 2

    async def test_synthesis_failure_returns_to_idle(self):
        class FailingTTS(FakeTTS):
            async def synthesize_stream(self, text):
                raise TTSError("piper exploded")

        manager = make_manager(tts=FailingTTS())
        await manager.initialize()

        with pytest.raises(TTSError):
            await manager.read_content("hello", ReadingPosition())
        assert manager.state == VoiceState.IDLE


# =============================================================================
# Restarts
# =============================================================================
class TestRestart:

    async def test_listening_restart_keeps_new_session(self):
        stt = FakeSTT(hold_open=True)
        manager = make_manager(stt=stt)
        await manager.initialize()

        first = await manager.start_listening()
        await manager.stop_listening()
        second = await manager.start_listening()
        assert await first.collect(timeout=1) == []
        await asyncio.sleep(0.05)

        assert manager.state == VoiceState.LISTENING
        with pytest.raises(InvalidState):
            await manager.read_content("hello", ReadingPosition())

        await manager.stop_listening()
        assert await second.collect(timeout=1) == []
        assert manager.state == VoiceState.IDLE

    async def test_reading_restart_keeps_new_session(self):
        manager = make_manager(tts=FakeTTS(word_ms=1000))
        await manager.initialize()

        first = await manager.read_content("a b c", ReadingPosition("doc", page=1))
        await manager.stop_reading()
        second = await manager.read_content("d e f", ReadingPosition("doc", page=2))
        assert await first.collect(timeout=1) == []
        await asyncio.sleep(0.05)

        assert manager.state == VoiceState.READING
        assert (await asyncio.wait_for(second.recv(), 1)).page == 2
        await manager.stop_reading()
        assert manager.state == VoiceState.IDLE
