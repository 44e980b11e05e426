#!/usr/bin/env python3
"""
IntelliDoc Voice Smoke Test
===========================
Run: python tools/smoke_voice.py [--speak "text"]

Checks the pieces that work without models first, then initializes the
real providers and reads a sentence aloud if the models are installed.
"""

import sys
import asyncio
import argparse


async def read_aloud(text: str) -> int:
    from intellidoc.config import get_config
    from intellidoc.voice import ReadingPosition, VoiceConfig, VoiceError, VoiceManager
    from intellidoc.voice.providers.config import PiperLocal, WhisperLocal

    settings = get_config()
    config = VoiceConfig(
        stt_provider=WhisperLocal(model_path=str(settings.models_dir / "whisper" / "faster-whisper-base")),
        tts_provider=PiperLocal(model_path=str(settings.models_dir / "piper" / "en_US-lessac-medium.onnx")),
    )
    manager = VoiceManager(config)
    try:
        await manager.initialize()
    except VoiceError as e:
        print(f"  - Skipped ({e})")
        print("    Download models with: intellidoc-voice --download whisper base")
        print("                          intellidoc-voice --download piper en_US-lessac-medium")
        return 0

    positions = await manager.read_content(text, ReadingPosition("smoke", page=1))
    words = text.split()
    async for position in positions:
        print(f"    [{position.timestamp_ms:>6} ms] {words[position.word_index]}")
    await manager.shutdown()
    print("  ✓ Read aloud OK")
    return 0


def main():
    parser = argparse.ArgumentParser(description="IntelliDoc voice smoke test")
    parser.add_argument("--speak", default="The quick brown fox jumps over the lazy dog.")
    args = parser.parse_args()

    print("=" * 50)
    print("IntelliDoc Voice Smoke Test")
    print("=" * 50)
    print()

    print("[1/4] Testing imports...")
    try:
        from intellidoc.voice import VoiceCommandParser, process_voice_command, VoiceConfig
        from intellidoc.voice.providers import estimate_word_timings
        print("  ✓ Imports OK")
    except ImportError as e:
        print(f"  ✗ Import failed: {e}")
        return 1

    print("[2/4] Testing command parsing...")
    parser_ = VoiceCommandParser()
    for text, tag in [
        ("go to page 5", "go_to_page"),
        ("highlight this in green", "highlight"),
        ("slow down", "adjust_speed"),
        ("what is entropy?", "ask_question"),
    ]:
        command = parser_.parse(text)
        if command.TYPE_TAG != tag:
            print(f"  ✗ '{text}' parsed as {command.TYPE_TAG}, expected {tag}")
            return 1
    response = process_voice_command(parser_.parse("faster"), None, VoiceConfig())
    print(f"  ✓ Parsing OK ({response.text})")

    print("[3/4] Testing word timings...")
    timings = estimate_word_timings(args.speak, 1.0)
    if not timings or any(a.end_ms != b.start_ms for a, b in zip(timings, timings[1:])):
        print("  ✗ Timings are not back-to-back")
        return 1
    print(f"  ✓ Timings OK ({len(timings)} words, {timings[-1].end_ms} ms)")

    print("[4/4] Reading aloud...")
    code = asyncio.run(read_aloud(args.speak))

    print()
    print("=" * 50)
    print("✓ Smoke test finished")
    print("=" * 50)
    return code


if __name__ == '__main__':
    sys.exit(main())
