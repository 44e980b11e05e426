"""
IntelliDoc Voice Doctor
=======================
Environment diagnostics for the voice subsystem.
"""

import logging
from typing import Optional

import numpy as np

from ..config import IntelliDocConfig, get_config
from .capture import AUDIO_AVAILABLE
from .devices import list_input_devices, list_output_devices
from .providers.piper_tts import find_piper_executable
from .providers.whisper_stt import FASTER_WHISPER_AVAILABLE

logger = logging.getLogger(__name__)

STATUS_ICONS = {
    "ok": "[ OK ]",
    "warning": "[WARN]",
    "error": "[FAIL]",
}


def _check(name: str, status: str, message: str) -> dict:
    return {"name": name, "status": status, "message": message}


def voice_doctor(settings: Optional[IntelliDocConfig] = None) -> dict:
    """
    Run voice system diagnostics.

    Returns:
        Dict with "overall" (ok / warning / error) and a list of checks
    """
    settings = settings or get_config()
    checks = [_check("numpy", "ok", f"NumPy {np.__version__}")]

    if AUDIO_AVAILABLE:
        checks.append(_check("sounddevice", "ok", "Audio library available"))
    else:
        checks.append(_check("sounddevice", "error", "pip install sounddevice (and PortAudio)"))

    if FASTER_WHISPER_AVAILABLE:
        checks.append(_check("faster-whisper", "ok", "STT engine available"))
    else:
        checks.append(_check("faster-whisper", "error", "pip install faster-whisper"))

    piper = find_piper_executable()
    if piper:
        checks.append(_check("piper", "ok", f"TTS engine at {piper}"))
    else:
        checks.append(_check("piper", "warning", "Install piper or set PIPER_BIN for speech output"))

    whisper_dir = settings.models_dir / "whisper"
    piper_dir = settings.models_dir / "piper"
    whisper_models = sorted(p.name for p in whisper_dir.iterdir() if p.is_dir()) if whisper_dir.is_dir() else []
    piper_voices = sorted(p.stem for p in piper_dir.glob("*.onnx")) if piper_dir.is_dir() else []

    if whisper_models:
        checks.append(_check("whisper_models", "ok", ", ".join(whisper_models)))
    else:
        checks.append(_check("whisper_models", "warning", f"No models in {whisper_dir}"))

    if piper_voices:
        checks.append(_check("piper_voices", "ok", ", ".join(piper_voices)))
    else:
        checks.append(_check("piper_voices", "warning", f"No voices in {piper_dir}"))

    inputs = list_input_devices()
    outputs = list_output_devices()

    if inputs:
        checks.append(_check("input_devices", "ok", f"{len(inputs)} microphone(s) found"))
    else:
        checks.append(_check("input_devices", "error", "No microphones found"))

    if outputs:
        checks.append(_check("output_devices", "ok", f"{len(outputs)} speaker(s) found"))
    else:
        checks.append(_check("output_devices", "error", "No speakers found"))

    statuses = {c["status"] for c in checks}
    if "error" in statuses:
        overall = "error"
    elif "warning" in statuses:
        overall = "warning"
    else:
        overall = "ok"

    logger.debug(f"Voice doctor: {overall} ({len(checks)} checks)")
    return {"overall": overall, "checks": checks}


def print_voice_doctor(settings: Optional[IntelliDocConfig] = None) -> dict:
    """Print voice diagnostics to console."""
    results = voice_doctor(settings)

    print(f"\n{'=' * 60}")
    print("  IntelliDoc Voice Doctor")
    print(f"{'=' * 60}")

    for check in results["checks"]:
        icon = STATUS_ICONS.get(check["status"], "?")
        print(f"\n  {icon} {check['name']}")
        print(f"         {check['message']}")

    print(f"\n  {'=' * 50}")
    print(f"  {STATUS_ICONS.get(results['overall'], '?')} Overall: {results['overall'].upper()}")

    if results["overall"] == "error":
        print("\n  Voice features may not work correctly.")
        print("  Please install missing dependencies.")
    print()
    return results
