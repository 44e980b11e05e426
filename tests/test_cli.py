"""
CLI, diagnostics and settings tests.
"""

import json
import types

from intellidoc import main as cli
from intellidoc.config import IntelliDocConfig
from intellidoc.voice import devices, doctor
from intellidoc.voice.devices import AudioDevice


def _device(index, inputs, outputs):
    return AudioDevice(index, f"device-{index}", "ALSA", inputs, outputs, 48000.0)


# =============================================================================
# Command line
# =============================================================================
class TestMain:

    def test_parse_prints_command(self, capsys):
        assert cli.main(["--parse", "go to page 12"]) == 0
        assert json.loads(capsys.readouterr().out) == {"type": "go_to_page", "page": 12}

    def test_timings_use_speed(self, capsys):
        assert cli.main(["--timings", "Hello world", "--speed", "2"]) == 0
        timings = json.loads(capsys.readouterr().out)
        assert [(t["word"], t["start_ms"], t["end_ms"]) for t in timings] == [
            ("Hello", 0, 200),
            ("world", 200, 400),
        ]

    def test_no_arguments_prints_help(self, capsys):
        assert cli.main([]) == 0
        assert "intellidoc-voice" in capsys.readouterr().out

    def test_download_failure_exit_code(self, monkeypatch, settings):
        monkeypatch.setattr(cli, "get_config", lambda: settings)
        assert cli.main(["--download", "vosk", "model"]) == 1


# =============================================================================
# Doctor
# =============================================================================
class TestDoctor:

    def test_healthy_environment(self, monkeypatch, settings):
        monkeypatch.setattr(doctor, "AUDIO_AVAILABLE", True)
        monkeypatch.setattr(doctor, "FASTER_WHISPER_AVAILABLE", True)
        monkeypatch.setattr(doctor, "find_piper_executable", lambda: "/usr/bin/piper")
        monkeypatch.setattr(doctor, "list_input_devices", lambda: [_device(0, 1, 0)])
        monkeypatch.setattr(doctor, "list_output_devices", lambda: [_device(1, 0, 2)])
        (settings.models_dir / "whisper" / "faster-whisper-base").mkdir(parents=True)
        (settings.models_dir / "piper").mkdir(parents=True)
        (settings.models_dir / "piper" / "en_US-lessac-medium.onnx").write_bytes(b"onnx")

        results = doctor.voice_doctor(settings)

        assert results["overall"] == "ok"
        by_name = {c["name"]: c for c in results["checks"]}
        assert by_name["whisper_models"]["message"] == "faster-whisper-base"
        assert by_name["piper_voices"]["message"] == "en_US-lessac-medium"

    def test_missing_pieces(self, monkeypatch, settings):
        monkeypatch.setattr(doctor, "AUDIO_AVAILABLE", False)
        monkeypatch.setattr(doctor, "FASTER_WHISPER_AVAILABLE", True)
        monkeypatch.setattr(doctor, "find_piper_executable", lambda: None)
        monkeypatch.setattr(doctor, "list_input_devices", lambda: [])
        monkeypatch.setattr(doctor, "list_output_devices", lambda: [])

        results = doctor.voice_doctor(settings)

        assert results["overall"] == "error"
        statuses = {c["name"]: c["status"] for c in results["checks"]}
        assert statuses["sounddevice"] == "error"
        assert statuses["piper"] == "warning"
        assert statuses["piper_voices"] == "warning"
        assert statuses["input_devices"] == "error"

    def test_print_returns_results(self, monkeypatch, settings, capsys):
        monkeypatch.setattr(doctor, "list_input_devices", lambda: [])
        monkeypatch.setattr(doctor, "list_output_devices", lambda: [])

        results = doctor.print_voice_doctor(settings)

        assert results["overall"] == "error"
        assert "[FAIL]" in capsys.readouterr().out


# =============================================================================
# Settings
# =============================================================================
class TestSettings:

    def test_log_level_normalized(self, tmp_path):
        assert IntelliDocConfig(base_dir=tmp_path, log_level=" debug ").log_level == "DEBUG"
        assert IntelliDocConfig(base_dir=tmp_path, log_level="loud").log_level == "INFO"

    def test_directories(self, settings):
        settings.ensure_directories()
        assert (settings.models_dir / "whisper").is_dir()
        assert (settings.models_dir / "piper").is_dir()
        assert settings.voice_config_path.parent == settings.base_dir


# =============================================================================
# Devices
# =============================================================================
class TestDevices:

    def _fake_sounddevice(self, monkeypatch):
        raw = [
            {"name": "Speakers", "hostapi": 0, "max_input_channels": 0,
             "max_output_channels": 2, "default_samplerate": 48000},
            {"name": "USB Mic", "hostapi": 0, "max_input_channels": 1,
             "max_output_channels": 0, "default_samplerate": 16000},
            {"name": "Headset", "hostapi": 5, "max_input_channels": 1,
             "max_output_channels": 2, "default_samplerate": 44100},
        ]
        module = types.SimpleNamespace(
            query_devices=lambda: raw,
            query_hostapis=lambda: [{"name": "ALSA"}],
            default=types.SimpleNamespace(device=(2, 0)),
            PortAudioError=RuntimeError,
        )
        monkeypatch.setattr(devices, "sd", module, raising=False)
        monkeypatch.setattr(devices, "SOUNDDEVICE_AVAILABLE", True)

    def test_inputs_and_default(self, monkeypatch):
        self._fake_sounddevice(monkeypatch)

        assert [d.name for d in devices.list_input_devices()] == ["USB Mic", "Headset"]
        assert [d.name for d in devices.list_output_devices()] == ["Speakers", "Headset"]
        default = devices.get_default_input_device()
        assert default.index == 2
        assert default.hostapi == "unknown"

    def test_report_without_backend(self, monkeypatch):
        monkeypatch.setattr(devices, "SOUNDDEVICE_AVAILABLE", False)
        assert devices.device_report() == {"available": False, "inputs": [], "outputs": []}
        assert devices.get_default_input_device() is None
