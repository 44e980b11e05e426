"""
VoiceService facade tests: event pumps, wake word, config locking,
model management.
"""

import asyncio

import pytest

from conftest import FakePlayer, FakeSTT, FakeTTS
from intellidoc.voice import commands as cmd
from intellidoc.voice.errors import ModelNotFound, ProviderNotAvailable
from intellidoc.voice.manager import VoiceManager
from intellidoc.voice.models import ReadingPosition, TranscriptionResult, VoiceState
from intellidoc.voice.providers import piper_tts
from intellidoc.voice.service import (
    EVENT_READING_COMPLETE,
    EVENT_READING_POSITION,
    EVENT_TRANSCRIPTION,
    EVENT_TRANSCRIPTION_FINAL,
    ReadWriteLock,
    VoiceService,
)
from intellidoc.voice.voice_config import VoiceConfig
from intellidoc.voice.providers.config import WhisperModelSize


class Recorder:
    """Collects emitted events."""

    def __init__(self):
        self.events = []

    def __call__(self, name, payload):
        self.events.append((name, payload))

    def named(self, name):
        return [payload for event, payload in self.events if event == name]


def make_service(settings, config=None, stt=None, tts=None):
    recorder = Recorder()
    manager = VoiceManager(
        VoiceConfig(),
        player=FakePlayer(),
        poll_interval_ms=5,
        stt_factory=lambda provider, **kwargs: stt or FakeSTT(),
        tts_factory=lambda provider, **kwargs: tts or FakeTTS(word_ms=5),
    )
    service = VoiceService(config or VoiceConfig(), emit=recorder, settings=settings, manager=manager)
    return service, recorder


async def wait_until(predicate, timeout=1.0):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached")
        await asyncio.sleep(0.005)


# =============================================================================
# Event pumps
# =============================================================================
class TestEvents:

    async def test_reading_emits_positions_then_complete(self, settings):
        service, recorder = make_service(settings)
        await service.initialize()

        await service.start_reading("doc-9", "alpha beta gamma", ReadingPosition("doc-9", page=2))
        await wait_until(lambda: recorder.named(EVENT_READING_COMPLETE))

        positions = recorder.named(EVENT_READING_POSITION)
        assert [p["word_index"] for p in positions] == [0, 1, 2]
        assert recorder.events[-1] == (EVENT_READING_COMPLETE, {"document_id": "doc-9"})
        assert await service.get_state() == VoiceState.IDLE

    async def test_single_shot_listening_stops_after_final(self, settings):
        stt = FakeSTT([
            TranscriptionResult("go to", is_final=False),
            TranscriptionResult("go to page four"),
            TranscriptionResult("never delivered"),
        ], hold_open=True)
        service, recorder = make_service(settings, stt=stt)
        await service.initialize()

        await service.start_listening("session-1")
        await wait_until(lambda: not service.active_sessions()["transcription"])
        await wait_until(lambda: service.manager.state == VoiceState.IDLE)
        assert stt.stop_calls > 0

        finals = recorder.named(EVENT_TRANSCRIPTION_FINAL)
        assert [f["text"] for f in finals] == ["go to page four"]
        assert len(recorder.named(EVENT_TRANSCRIPTION)) >= 2

    async def test_wake_word_filters_and_strips(self, settings):
        config = VoiceConfig(wake_word_enabled=True, continuous_listening=True)
        stt = FakeSTT([
            TranscriptionResult("what time is it"),
            TranscriptionResult("Hey IntelliDoc, next page"),
        ])
        service, recorder = make_service(settings, config=config, stt=stt)
        await service.initialize()

        await service.start_listening("session-2")
        await wait_until(lambda: not service.active_sessions()["transcription"])

        assert [f["text"] for f in recorder.named(EVENT_TRANSCRIPTION_FINAL)] == ["next page"]
        assert len(recorder.named(EVENT_TRANSCRIPTION)) == 2

    async def test_broken_emit_does_not_stop_reading(self, settings):
        service, _ = make_service(settings)

        def broken(name, payload):
            raise RuntimeError("window closed")

        service._emit = broken
        await service.initialize()
        await service.start_reading("doc", "one two", None)
        await wait_until(lambda: service.manager.state == VoiceState.IDLE)

    async def test_reading_restart_under_same_id(self, settings):
        service, _ = make_service(settings, tts=FakeTTS(word_ms=1000))
        await service.initialize()

        await service.start_reading("doc", "a b c", ReadingPosition("doc", page=1))
        await service.stop_reading()
        await service.start_reading("doc", "d e f", ReadingPosition("doc", page=4))
        await asyncio.sleep(0.1)

        assert service.active_sessions()["reading"] == ["doc"]
        assert await service.get_state() == VoiceState.READING

        await service.shutdown()
        assert service.active_sessions() == {"transcription": [], "reading": []}
        assert await service.get_state() == VoiceState.IDLE

    async def test_listening_restart_under_same_id(self, settings):
        stt = FakeSTT(hold_open=True)
        service, _ = make_service(settings, stt=stt)
        await service.initialize()

        await service.start_listening("mic")
        await service.stop_listening()
        await service.start_listening("mic")
        await asyncio.sleep(0.05)

        assert service.active_sessions()["transcription"] == ["mic"]
        assert service.manager.state == VoiceState.LISTENING

        await service.shutdown()
        assert service.active_sessions()["transcription"] == []


# =============================================================================
# Config and commands
# =============================================================================
class TestConfig:

    async def test_config_copies(self, settings):
        service, _ = make_service(settings)
        config = await service.get_voice_config()
        config.voice_id = "changed"
        assert (await service.get_voice_config()).voice_id == "default"

    async def test_set_voice_config_reaches_manager(self, settings):
        service, _ = make_service(settings)
        await service.set_voice_config(VoiceConfig(language="de-DE"))
        assert service.manager.config.language == "de-DE"
        assert (await service.get_voice_config()).language == "de-DE"

    async def test_set_reading_speed_clamps(self, settings):
        tts = FakeTTS()
        service, _ = make_service(settings, tts=tts)
        await service.initialize()

        assert await service.set_reading_speed(0.01) == 0.25
        assert tts.rate == 0.25
        assert (await service.get_voice_config()).reading_speed == 0.25

    async def test_speed_command_updates_engine(self, settings):
        tts = FakeTTS()
        service, _ = make_service(settings, tts=tts)
        await service.initialize()

        response = await service.process_command(cmd.AdjustSpeed(0.5), ReadingPosition("doc", page=1))

        assert response.text == "Speed set to 1.5x"
        assert (await service.get_voice_config()).reading_speed == 1.5
        assert tts.rate == 1.5

    async def test_word_timings_use_configured_speed(self, settings):
        service, _ = make_service(settings, config=VoiceConfig(reading_speed=2.0))
        timings = await service.get_word_timings("Hello world")
        assert [t.end_ms for t in timings] == [200, 400]

    async def test_save_voice_config(self, settings):
        service, _ = make_service(settings, config=VoiceConfig(voice_id="en_GB-alba-medium"))
        assert service.save_voice_config()
        assert VoiceConfig.load(settings.voice_config_path).voice_id == "en_GB-alba-medium"

    async def test_parse_command(self, settings):
        service, _ = make_service(settings)
        assert await service.parse_command("zoom out") == cmd.Zoom(cmd.ZoomDirection.OUT)


class TestReadWriteLock:

    async def test_writer_waits_for_readers(self):
        lock = ReadWriteLock()
        order = []

        async def reader():
            async with lock.read():
                order.append("read-start")
                await asyncio.sleep(0.02)
                order.append("read-end")

        async def writer():
            await asyncio.sleep(0.005)
            async with lock.write():
                order.append("write")

        await asyncio.gather(reader(), reader(), writer())
        assert order[-1] == "write"
        assert order.count("read-start") == 2


# =============================================================================
# Voices and models
# =============================================================================
class TestModels:

    async def test_voices_before_and_after_initialize(self, settings):
        service, _ = make_service(settings)
        assert [v.id for v in await service.get_available_voices()] == [v.id for v in piper_tts.PIPER_VOICES]

        await service.initialize()
        assert [v.id for v in await service.get_available_voices()] == ["fake"]
        assert await service.get_stt_languages() == ["en", "de"]

    async def test_model_availability(self, settings):
        service, _ = make_service(settings)
        piper_dir = settings.models_dir / "piper"
        whisper_dir = settings.models_dir / "whisper" / "faster-whisper-base"
        piper_dir.mkdir(parents=True)
        whisper_dir.mkdir(parents=True)
        (piper_dir / "en_US-ryan-medium.onnx").write_bytes(b"onnx")

        assert await service.is_voice_model_available("piper", "en_US-ryan-medium")
        assert not await service.is_voice_model_available("piper", "en_GB-alba-medium")
        assert await service.is_voice_model_available("whisper", "base")
        assert await service.is_voice_model_available("whisper", "ggml-base.bin")
        assert not await service.is_voice_model_available("whisper", "small")
        assert not await service.is_voice_model_available("vosk", "anything")

    async def test_download_rejects_unknown_models(self, settings):
        service, _ = make_service(settings)
        with pytest.raises(ProviderNotAvailable):
            await service.download_voice_model("vosk", "model")
        with pytest.raises(ModelNotFound):
            await service.download_voice_model("whisper", "enormous")

    async def test_download_piper_voice(self, settings, monkeypatch):
        calls = []

        def fake_download(voice_id, target_dir, session, timeout):
            calls.append((voice_id, target_dir, timeout))
            return target_dir / f"{voice_id}.onnx"

        monkeypatch.setattr(piper_tts, "download_voice", fake_download)
        service, _ = make_service(settings)

        path = await service.download_voice_model("piper", "en_US-ryan-medium")

        assert path == str(settings.models_dir / "piper" / "en_US-ryan-medium.onnx")
        assert calls == [("en_US-ryan-medium", settings.models_dir / "piper", settings.download_timeout)]

    async def test_download_whisper_accepts_legacy_names(self, settings, monkeypatch):
        from intellidoc.voice.providers import whisper_stt

        sizes = []
        monkeypatch.setattr(
            whisper_stt, "download_model",
            lambda size, target_dir: sizes.append(size) or target_dir / size.directory_name,
        )
        service, _ = make_service(settings)

        await service.download_voice_model("whisper", "ggml-tiny.bin")
        assert sizes == [WhisperModelSize.TINY]
