#!/usr/bin/env python3
"""
IntelliDoc Voice - command line
===============================

CLI Usage:
  intellidoc-voice --doctor                      Voice system diagnostics
  intellidoc-voice --devices                     List audio input/output devices
  intellidoc-voice --parse "go to page 5"        Parse a voice command (JSON)
  intellidoc-voice --timings "text" --speed 1.5  Estimated word timings (JSON)
  intellidoc-voice --voices                      List Piper voices
  intellidoc-voice --download piper en_US-lessac-medium
  intellidoc-voice --download whisper base
"""

import sys
import json
import asyncio
import logging
import argparse
from typing import List, Optional

from . import __version__
from .config import get_config

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

logger = logging.getLogger(__name__)


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog='intellidoc-voice',
        description='IntelliDoc voice engine tools',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  intellidoc-voice --doctor
  intellidoc-voice --parse "highlight this in green"
  intellidoc-voice --timings "Hello world" --speed 2
  intellidoc-voice --download whisper base
        """
    )

    parser.add_argument(
        '--doctor',
        action='store_true',
        help='Run voice system diagnostics'
    )
    parser.add_argument(
        '--devices',
        action='store_true',
        help='List audio input and output devices'
    )
    parser.add_argument(
        '--parse',
        metavar='TEXT',
        help='Parse TEXT as a voice command and print it as JSON'
    )
    parser.add_argument(
        '--timings',
        metavar='TEXT',
        help='Print estimated word timings for TEXT'
    )
    parser.add_argument(
        '--speed',
        type=float,
        default=1.0,
        help='Reading speed for --timings (0.25 - 3.0, default 1.0)'
    )
    parser.add_argument(
        '--voices',
        action='store_true',
        help='List available TTS voices'
    )
    parser.add_argument(
        '--download',
        nargs=2,
        metavar=('TYPE', 'MODEL_ID'),
        help='Download a model: TYPE is whisper or piper'
    )
    parser.add_argument(
        '--debug',
        action='store_true',
        help='Enable debug logging'
    )
    parser.add_argument(
        '--version',
        action='version',
        version=f'%(prog)s {__version__}'
    )
    return parser


def setup_logging(debug: bool = False) -> None:
    level = logging.DEBUG if debug else getattr(logging, get_config().log_level, logging.INFO)
    logging.basicConfig(level=level, format=LOG_FORMAT)


def _print_json(data) -> None:
    print(json.dumps(data, indent=2, ensure_ascii=False))


def run_parse(text: str) -> int:
    from .voice.commands import VoiceCommandParser

    _print_json(VoiceCommandParser().parse(text).to_dict())
    return 0


def run_timings(text: str, speed: float) -> int:
    from .voice.providers.base import estimate_word_timings

    _print_json([t.to_dict() for t in estimate_word_timings(text, speed)])
    return 0


def run_doctor() -> int:
    from .voice.doctor import print_voice_doctor

    results = print_voice_doctor()
    return 1 if results["overall"] == "error" else 0


def run_devices() -> int:
    from .voice.devices import device_report

    _print_json(device_report())
    return 0


def run_voices() -> int:
    from .voice.service import VoiceService

    voices = asyncio.run(VoiceService().get_available_voices())
    _print_json([v.to_dict() for v in voices])
    return 0


def run_download(model_type: str, model_id: str) -> int:
    from .voice.errors import VoiceError
    from .voice.service import VoiceService

    config = get_config()
    config.ensure_directories()
    try:
        path = asyncio.run(VoiceService(settings=config).download_voice_model(model_type, model_id))
    except VoiceError as e:
        logger.error(f"Download failed: {e}")
        return 1
    print(path)
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args(argv if argv is not None else sys.argv[1:])

    setup_logging(args.debug)

    if args.doctor:
        return run_doctor()

    if args.devices:
        return run_devices()

    if args.parse is not None:
        return run_parse(args.parse)

    if args.timings is not None:
        return run_timings(args.timings, args.speed)

    if args.voices:
        return run_voices()

    if args.download:
        return run_download(*args.download)

    parser.print_help()
    return 0


if __name__ == '__main__':
    sys.exit(main())
