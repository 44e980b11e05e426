"""
IntelliDoc Voice Commands
=========================
Rule-based parser turning a transcript into a structured VoiceCommand.

Rules run in a fixed order and the first match wins:

1. note-taking prefixes        8. define
2. question prefixes           9. translate
3. highlight                  10. search
4. reading control            11. zoom
5. page navigation            12. trailing "?"  -> question
6. speed                      13. anything else -> free text
7. summarize

The order matters: "what is entropy?" is a question (rule 2), not a
definition (rule 8), and "summarize this page" is a summary (rule 7),
not navigation.
"""

import re
import logging
from dataclasses import dataclass, asdict, fields
from enum import Enum
from typing import Dict, Optional, Type

logger = logging.getLogger(__name__)

MIN_SPEED = 0.25
MAX_SPEED = 3.0
SPEED_STEP = 0.25


class SummarizeScope(str, Enum):
    SELECTION = "selection"
    PAGE = "page"
    SECTION = "section"
    DOCUMENT = "document"


class PageDirection(str, Enum):
    NEXT = "next"
    PREVIOUS = "previous"


class ZoomDirection(str, Enum):
    IN = "in"
    OUT = "out"


# =============================================================================
# COMMAND VARIANTS
# =============================================================================

class VoiceCommand:
    """Base class for parsed commands. Serialized with a snake_case "type" tag."""

    TYPE_TAG = ""

    def to_dict(self) -> dict:
        data = {"type": self.TYPE_TAG}
        for key, value in asdict(self).items():
            data[key] = value.value if isinstance(value, Enum) else value
        return data

    @staticmethod
    def from_dict(data: dict) -> "VoiceCommand":
        """
        Rebuild a command from to_dict() output.

        Raises:
            ValueError: unknown command type
        """
        cls = COMMAND_TYPES.get(data.get("type"))
        if cls is None:
            raise ValueError(f"unknown voice command type: {data.get('type')!r}")
        names = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in names})


@dataclass
class NoteDown(VoiceCommand):
    TYPE_TAG = "note_down"
    content: str


@dataclass
class Highlight(VoiceCommand):
    TYPE_TAG = "highlight"
    color: Optional[str] = None


@dataclass
class StartReading(VoiceCommand):
    TYPE_TAG = "start_reading"


@dataclass
class StopReading(VoiceCommand):
    TYPE_TAG = "stop_reading"


@dataclass
class SkipSection(VoiceCommand):
    TYPE_TAG = "skip_section"


@dataclass
class GoBack(VoiceCommand):
    TYPE_TAG = "go_back"


@dataclass
class GoToPage(VoiceCommand):
    TYPE_TAG = "go_to_page"
    page: int


@dataclass
class AskQuestion(VoiceCommand):
    TYPE_TAG = "ask_question"
    question: str


@dataclass
class ExplainSelection(VoiceCommand):
    TYPE_TAG = "explain_selection"


@dataclass
class Summarize(VoiceCommand):
    TYPE_TAG = "summarize"
    scope: SummarizeScope = SummarizeScope.SELECTION

    def __post_init__(self):
        self.scope = SummarizeScope(self.scope)


@dataclass
class AdjustSpeed(VoiceCommand):
    TYPE_TAG = "adjust_speed"
    delta: float


@dataclass
class SetSpeed(VoiceCommand):
    TYPE_TAG = "set_speed"
    speed: float


@dataclass
class Repeat(VoiceCommand):
    TYPE_TAG = "repeat"


@dataclass
class Define(VoiceCommand):
    TYPE_TAG = "define"
    word: str


@dataclass
class Translate(VoiceCommand):
    TYPE_TAG = "translate"
    target_language: str


@dataclass
class Search(VoiceCommand):
    TYPE_TAG = "search"
    query: str


@dataclass
class NavigatePage(VoiceCommand):
    TYPE_TAG = "navigate_page"
    direction: PageDirection

    def __post_init__(self):
        self.direction = PageDirection(self.direction)


@dataclass
class Zoom(VoiceCommand):
    TYPE_TAG = "zoom"
    direction: ZoomDirection

    def __post_init__(self):
        self.direction = ZoomDirection(self.direction)


@dataclass
class FreeText(VoiceCommand):
    TYPE_TAG = "free_text"
    text: str


@dataclass
class Unknown(VoiceCommand):
    TYPE_TAG = "unknown"
    text: str = ""


COMMAND_TYPES: Dict[str, Type[VoiceCommand]] = {
    cls.TYPE_TAG: cls
    for cls in (NoteDown, Highlight, StartReading, StopReading, SkipSection, GoBack,
                GoToPage, AskQuestion, ExplainSelection, Summarize, AdjustSpeed,
                SetSpeed, Repeat, Define, Translate, Search, NavigatePage, Zoom,
                FreeText, Unknown)
}


# =============================================================================
# PARSER
# =============================================================================

NOTE_PREFIXES = [
    "note down", "note", "write down", "write",
    "add note", "take note", "remember", "记下", "メモ",
]

ASK_PREFIXES = ["ask", "question", "what is", "what are", "how do", "how does", "why"]

HIGHLIGHT_COLORS = ["yellow", "green", "blue", "red", "purple", "orange", "pink"]

START_READING_PHRASES = ["read from here", "start reading", "read this", "read aloud", "read", "play"]
STOP_READING_PHRASES = ["stop reading", "stop", "pause", "pause reading", "quiet", "silence"]
REPEAT_PHRASES = ["repeat", "say again", "again", "replay"]
SKIP_PHRASES = ["skip section", "skip to next", "next section", "skip"]
BACK_PHRASES = ["go back", "back", "previous", "rewind"]

SPEED_UP_PHRASES = ["speed up", "faster", "increase speed", "quicker"]
SLOW_DOWN_PHRASES = ["slow down", "slower", "decrease speed", "reduce speed"]

DEFINE_PREFIXES = ["define", "what does", "what is"]
SEARCH_PREFIXES = ["search for", "search", "find", "look for"]

TRANSLATE_LANGUAGES = [
    ("spanish", "es"), ("french", "fr"), ("german", "de"), ("chinese", "zh"),
    ("japanese", "ja"), ("korean", "ko"), ("italian", "it"), ("portuguese", "pt"),
    ("russian", "ru"), ("arabic", "ar"),
]

NUMBER_WORDS = {
    "one": 1, "two": 2, "three": 3, "four": 4, "five": 5,
    "six": 6, "seven": 7, "eight": 8, "nine": 9, "ten": 10,
}

_DIGITS = re.compile(r"\d+")
_FLOAT = re.compile(r"(\d+\.?\d*)")
_NUMBER_WORD = re.compile(r"\b(" + "|".join(NUMBER_WORDS) + r")\b")


def _matches_phrase(text: str, phrases) -> bool:
    return any(text == p or text.startswith(p) for p in phrases)


def _has_prefix(text: str, prefix: str) -> bool:
    """Prefix match that must end on a word boundary for latin-script prefixes."""
    if not text.startswith(prefix):
        return False
    if len(text) == len(prefix) or not prefix.isascii():
        return True
    return not text[len(prefix)].isalnum()


def extract_number(text: str) -> Optional[int]:
    """First digit run, else a spelled-out number one..ten."""
    match = _DIGITS.search(text)
    if match:
        return int(match.group())
    match = _NUMBER_WORD.search(text)
    if match:
        return NUMBER_WORDS[match.group(1)]
    return None


def extract_float(text: str) -> Optional[float]:
    match = _FLOAT.search(text)
    return float(match.group(1)) if match else None


def strip_wake_word(text: str, wake_word: str) -> Optional[str]:
    """
    Return the text following the wake phrase, or None if it is absent.

    Matching ignores case and punctuation ("hey, intellidoc!" matches
    "Hey IntelliDoc").
    """
    words = re.findall(r"\w+", wake_word.lower())
    if not words:
        return text.strip()
    pattern = re.compile(r"\b" + r"\W+".join(map(re.escape, words)) + r"\b\W*", re.IGNORECASE)
    match = pattern.search(text)
    if match is None:
        return None
    return text[match.end():].strip()


class VoiceCommandParser:
    """
    Ordered rule cascade over the lower-cased transcript.

    Usage:
        parser = VoiceCommandParser()
        parser.parse("go to page 5")   # GoToPage(page=5)
    """

    def __init__(self, language: str = "en-US"):
        self.language = language

    def parse(self, text: str) -> VoiceCommand:
        original = text.strip()
        lower = original.lower()

        if not lower:
            return Unknown("")

        for rule in (
            self._parse_note,
            self._parse_question,
            self._parse_highlight,
            self._parse_reading_control,
            self._parse_navigation,
            self._parse_speed,
            self._parse_summarize,
            self._parse_define,
            self._parse_translate,
            self._parse_search,
            self._parse_zoom,
        ):
            command = rule(lower, original)
            if command is not None:
                logger.debug(f"Parsed '{original}' as {command.TYPE_TAG}")
                return command

        if lower.endswith("?"):
            return AskQuestion(original)

        return FreeText(original)

    def _parse_note(self, lower: str, original: str) -> Optional[VoiceCommand]:
        for prefix in NOTE_PREFIXES:
            if not _has_prefix(lower, prefix):
                continue
            if ":" in original:
                content = original.split(":", 1)[1].strip()
            else:
                content = original[len(prefix):].strip()
            if content:
                return NoteDown(content)
        return None

    def _parse_question(self, lower: str, original: str) -> Optional[VoiceCommand]:
        for prefix in ASK_PREFIXES:
            if _has_prefix(lower, prefix):
                if ":" in original:
                    question = original.split(":", 1)[1].strip()
                else:
                    question = original
                return AskQuestion(question)
        return None

    def _parse_highlight(self, lower: str, original: str) -> Optional[VoiceCommand]:
        if "highlight" not in lower:
            return None
        color = next((c for c in HIGHLIGHT_COLORS if c in lower), None)
        return Highlight(color)

    def _parse_reading_control(self, lower: str, original: str) -> Optional[VoiceCommand]:
        if _matches_phrase(lower, START_READING_PHRASES):
            return StartReading()
        if _matches_phrase(lower, STOP_READING_PHRASES):
            return StopReading()
        if _matches_phrase(lower, REPEAT_PHRASES):
            return Repeat()
        if _matches_phrase(lower, SKIP_PHRASES):
            return SkipSection()
        if lower in BACK_PHRASES:
            return GoBack()
        if lower in ("explain this", "explain") or lower.startswith("explain this"):
            return ExplainSelection()
        return None

    def _parse_navigation(self, lower: str, original: str) -> Optional[VoiceCommand]:
        if lower in ("next page", "page down"):
            return NavigatePage(PageDirection.NEXT)
        if lower in ("previous page", "page up", "last page"):
            return NavigatePage(PageDirection.PREVIOUS)
        if lower.startswith("go to page") or lower.startswith("page"):
            page = extract_number(lower)
            if page is not None:
                return GoToPage(page)
        return None

    def _parse_speed(self, lower: str, original: str) -> Optional[VoiceCommand]:
        if _matches_phrase(lower, SPEED_UP_PHRASES):
            return AdjustSpeed(SPEED_STEP)
        if _matches_phrase(lower, SLOW_DOWN_PHRASES):
            return AdjustSpeed(-SPEED_STEP)
        if lower.startswith("set speed to") or lower.startswith("speed"):
            speed = extract_float(lower)
            if speed is not None and MIN_SPEED <= speed <= MAX_SPEED:
                return SetSpeed(speed)
        return None

    def _parse_summarize(self, lower: str, original: str) -> Optional[VoiceCommand]:
        if "summar" not in lower:
            return None
        if "document" in lower or "entire" in lower:
            scope = SummarizeScope.DOCUMENT
        elif "section" in lower:
            scope = SummarizeScope.SECTION
        elif "page" in lower:
            scope = SummarizeScope.PAGE
        else:
            scope = SummarizeScope.SELECTION
        return Summarize(scope)

    def _parse_define(self, lower: str, original: str) -> Optional[VoiceCommand]:
        if not any(lower.startswith(p) for p in DEFINE_PREFIXES):
            return None
        words = lower.split()
        if not words:
            return None
        word = "".join(ch for ch in words[-1] if ch.isalnum())
        return Define(word) if word else None

    def _parse_translate(self, lower: str, original: str) -> Optional[VoiceCommand]:
        if "translate" not in lower:
            return None
        for name, code in TRANSLATE_LANGUAGES:
            if name in lower:
                return Translate(code)
        if " to " in lower:
            target = lower.split(" to ", 1)[1].strip()
            if target:
                return Translate(target)
        return None

    def _parse_search(self, lower: str, original: str) -> Optional[VoiceCommand]:
        for prefix in SEARCH_PREFIXES:
            if lower.startswith(prefix):
                query = original[len(prefix):].strip()
                if query:
                    return Search(query)
        return None

    def _parse_zoom(self, lower: str, original: str) -> Optional[VoiceCommand]:
        if "zoom in" in lower or lower in ("bigger", "larger"):
            return Zoom(ZoomDirection.IN)
        if "zoom out" in lower or lower == "smaller":
            return Zoom(ZoomDirection.OUT)
        return None
