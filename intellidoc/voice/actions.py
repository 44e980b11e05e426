"""
IntelliDoc Voice Actions
========================
Maps a parsed VoiceCommand to the response shown or spoken to the user
and the UI action it triggers.

Actions are plain data: the host applies them (creates the annotation,
scrolls the view, ...). Speed commands also update the caller's
VoiceConfig, so the caller should hold its config lock while mapping.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from . import commands as cmd
from .models import ReadingPosition
from .providers.base import clamp_rate
from .voice_config import VoiceConfig

logger = logging.getLogger(__name__)

DEFAULT_HIGHLIGHT_COLOR = "yellow"


# =============================================================================
# ACTION VARIANTS
# =============================================================================

class VoiceAction:
    """Base class for UI actions. Serialized with a snake_case "type" tag."""

    TYPE_TAG = ""

    def to_dict(self) -> dict:
        return {"type": self.TYPE_TAG}


@dataclass
class AddAnnotation(VoiceAction):
    TYPE_TAG = "add_annotation"
    position: ReadingPosition
    content: str
    color: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "type": self.TYPE_TAG,
            "position": self.position.to_dict(),
            "content": self.content,
            "color": self.color,
        }


@dataclass
class AddHighlight(VoiceAction):
    TYPE_TAG = "add_highlight"
    position: ReadingPosition
    color: str = DEFAULT_HIGHLIGHT_COLOR

    def to_dict(self) -> dict:
        return {"type": self.TYPE_TAG, "position": self.position.to_dict(), "color": self.color}


@dataclass
class ScrollTo(VoiceAction):
    TYPE_TAG = "scroll_to"
    position: ReadingPosition

    def to_dict(self) -> dict:
        return {"type": self.TYPE_TAG, "position": self.position.to_dict()}


@dataclass
class ShowLLMResponse(VoiceAction):
    TYPE_TAG = "show_llm_response"
    response: str

    def to_dict(self) -> dict:
        return {"type": self.TYPE_TAG, "response": self.response}


@dataclass
class StartReading(VoiceAction):
    TYPE_TAG = "start_reading"
    position: ReadingPosition

    def to_dict(self) -> dict:
        return {"type": self.TYPE_TAG, "position": self.position.to_dict()}


@dataclass
class StopReading(VoiceAction):
    TYPE_TAG = "stop_reading"


@dataclass
class AdjustSpeed(VoiceAction):
    TYPE_TAG = "adjust_speed"
    speed: float

    def to_dict(self) -> dict:
        return {"type": self.TYPE_TAG, "speed": self.speed}


@dataclass
class VoiceResponse:
    """What to tell the user, and what the UI should do."""
    text: str
    should_speak: bool = False
    action: Optional[VoiceAction] = None

    def to_dict(self) -> dict:
        return {
            "text": self.text,
            "should_speak": self.should_speak,
            "action": self.action.to_dict() if self.action else None,
        }


# =============================================================================
# MAPPER
# =============================================================================

def _speed_response(config: VoiceConfig, speed: float) -> VoiceResponse:
    config.reading_speed = clamp_rate(speed)
    return VoiceResponse(
        text=f"Speed set to {config.reading_speed:.1f}x",
        should_speak=True,
        action=AdjustSpeed(config.reading_speed),
    )


def process_voice_command(
    command: cmd.VoiceCommand,
    current_position: Optional[ReadingPosition],
    config: VoiceConfig,
) -> VoiceResponse:
    """
    Turn a command into a response and optional action.

    A missing position is treated as the zero position (page 0).
    Speed commands write the clamped speed back into config.
    """
    position = current_position.copy() if current_position else ReadingPosition()

    if isinstance(command, cmd.NoteDown):
        return VoiceResponse(
            text=f"Added note: {command.content}",
            should_speak=True,
            action=AddAnnotation(position, command.content, DEFAULT_HIGHLIGHT_COLOR),
        )

    if isinstance(command, cmd.Highlight):
        return VoiceResponse(
            text="Highlighted",
            should_speak=False,
            action=AddHighlight(position, command.color or DEFAULT_HIGHLIGHT_COLOR),
        )

    if isinstance(command, cmd.StartReading):
        return VoiceResponse("Starting to read", False, StartReading(position))

    if isinstance(command, cmd.StopReading):
        return VoiceResponse("Stopped reading", False, StopReading())

    if isinstance(command, cmd.AdjustSpeed):
        return _speed_response(config, config.reading_speed + command.delta)

    if isinstance(command, cmd.SetSpeed):
        return _speed_response(config, command.speed)

    if isinstance(command, cmd.AskQuestion):
        # Answering is the LLM layer's job; it replies with ShowLLMResponse
        return VoiceResponse(f"Processing question: {command.question}", False)

    if isinstance(command, cmd.ExplainSelection):
        return VoiceResponse("Explaining selection...", False)

    if isinstance(command, cmd.Summarize):
        return VoiceResponse(f"Summarizing {command.scope.value.capitalize()}...", False)

    if isinstance(command, cmd.GoToPage):
        position.page = command.page
        return VoiceResponse(f"Going to page {command.page}", True, ScrollTo(position))

    if isinstance(command, cmd.NavigatePage):
        if command.direction == cmd.PageDirection.NEXT:
            position.page += 1
        else:
            position.page = max(position.page - 1, 1)
        return VoiceResponse(f"Page {position.page}", False, ScrollTo(position))

    if isinstance(command, cmd.Repeat):
        return VoiceResponse("Repeating...", False)

    if isinstance(command, cmd.FreeText):
        return VoiceResponse(command.text, False)

    logger.debug(f"No action for command {command.TYPE_TAG}")
    return VoiceResponse("Command not recognized", True)
