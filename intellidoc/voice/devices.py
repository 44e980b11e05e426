"""
IntelliDoc Audio Devices
========================
Microphone and speaker discovery through PortAudio.

Capture refuses to start when no microphone is present; the voice
doctor and `intellidoc-voice --devices` report what was found.
"""

import logging
from dataclasses import dataclass, asdict
from typing import List, Optional

logger = logging.getLogger(__name__)

# sounddevice raises OSError when the PortAudio library itself is missing
try:
    import sounddevice as sd
    SOUNDDEVICE_AVAILABLE = True
except (ImportError, OSError):
    SOUNDDEVICE_AVAILABLE = False
    logger.warning("sounddevice not available, no audio devices will be listed")


@dataclass
class AudioDevice:
    """One PortAudio endpoint."""
    index: int
    name: str
    hostapi: str
    input_channels: int
    output_channels: int
    sample_rate: float
    default: bool = False

    def to_dict(self) -> dict:
        return asdict(self)


def _query(kind: str) -> List[AudioDevice]:
    """Devices with at least one channel of the given kind ("input" or "output")."""
    if not SOUNDDEVICE_AVAILABLE:
        return []

    try:
        raw_devices = sd.query_devices()
        hostapis = sd.query_hostapis()
        default_index = sd.default.device[0 if kind == "input" else 1]
    except sd.PortAudioError as e:
        logger.error(f"Could not query {kind} devices: {e}")
        return []

    devices = []
    for index, raw in enumerate(raw_devices):
        channels = raw[f"max_{kind}_channels"]
        if channels <= 0:
            continue
        api = raw["hostapi"]
        devices.append(AudioDevice(
            index=index,
            name=raw["name"],
            hostapi=hostapis[api]["name"] if api < len(hostapis) else "unknown",
            input_channels=raw["max_input_channels"],
            output_channels=raw["max_output_channels"],
            sample_rate=float(raw["default_samplerate"]),
            default=(index == default_index),
        ))
    return devices


def list_input_devices() -> List[AudioDevice]:
    return _query("input")


def list_output_devices() -> List[AudioDevice]:
    return _query("output")


def get_default_input_device() -> Optional[AudioDevice]:
    """The system default microphone, else the first one found."""
    inputs = list_input_devices()
    return next((d for d in inputs if d.default), inputs[0] if inputs else None)


def device_report() -> dict:
    """Microphones and speakers as plain dicts."""
    return {
        "available": SOUNDDEVICE_AVAILABLE,
        "inputs": [d.to_dict() for d in list_input_devices()],
        "outputs": [d.to_dict() for d in list_output_devices()],
    }
