"""Normalize a raw post-call payload into a structured feedback summary.

The provider hands back either a JSON document or an older plain-text
layout of labeled, blank-line separated sections. ``normalize`` tries JSON
first, falls back to the section parser, and never raises: bad input gives
an empty ``ParsedFeedback``.

The transcript scanner is best-effort and order-sensitive. It walks the
transcript once, top to bottom, holding a single pending-question slot:
an ``AI:`` line that looks like one of the survey questions fills the
slot, and the next ``User:`` line is taken as the answer. Phrasing it does
not recognize is skipped rather than guessed at.
"""

import json
import logging
import math
import re
from dataclasses import dataclass, field
from enum import Enum

logger = logging.getLogger(__name__)

AI_PREFIX = "AI:"
USER_PREFIX = "User:"

# (key, any-of phrases, all-of phrases); first match wins
QUESTION_PATTERNS = [
    ("satisfaction", ("how satisfied", "rate it"), ()),
    ("helpful", ("especially helpful", "impressive"), ()),
    ("suggestions", ("suggestions", "improve"), ()),
    ("future_interest", (), ("interested in", "future")),
]

RESPONSE_KEYS = tuple(key for key, _, _ in QUESTION_PATTERNS)

PLAIN_TEXT_LABELS = {
    "Summary:": "summary",
    "Feedback:": "feedback",
    "Transcript:": "transcript",
    "Duration:": "duration",
    "Ended:": "ended_reason",
}

_SECTION_SPLIT_RE = re.compile(r"\r?\n[ \t]*\r?\n")
_CLOCK_RE = re.compile(r"^(\d+):([0-5]\d)$")
_SECONDS_RE = re.compile(r"^(\d+(?:\.\d+)?)\s*(?:s|sec|secs|seconds)?$", re.IGNORECASE)


class FeedbackSource(Enum):
    STRUCTURED = "structured"
    PLAIN_TEXT = "plain_text"
    EMPTY = "empty"


@dataclass
class ParsedFeedback:
    source: FeedbackSource = FeedbackSource.EMPTY
    summary: str = ""
    transcript: str = ""
    duration: float | None = None
    ended_reason: str = ""
    status: str = ""
    # Free-text "Feedback:" section of the plain-text layout
    feedback: str = ""
    customer_responses: dict = field(default_factory=dict)

    @property
    def is_structured(self) -> bool:
        return self.source == FeedbackSource.STRUCTURED

    def to_dict(self) -> dict:
        return {
            "source": self.source.value,
            "summary": self.summary,
            "transcript": self.transcript,
            "duration": self.duration,
            "duration_display": format_duration(self.duration),
            "ended_reason": self.ended_reason,
            "status": self.status,
            "feedback": self.feedback,
            "customer_responses": {
                key: self.customer_responses[key]
                for key in RESPONSE_KEYS
                if key in self.customer_responses
            },
        }


def classify_question(text: str) -> str | None:
    """Map an agent utterance to a survey question key, or None."""
    lower = text.lower()
    for key, any_of, all_of in QUESTION_PATTERNS:
        if any_of and any(phrase in lower for phrase in any_of):
            return key
        if all_of and all(phrase in lower for phrase in all_of):
            return key
    return None


def extract_customer_responses(transcript: str) -> dict:
    """Recover survey answers from an ``AI:`` / ``User:`` transcript.

    Only the user line immediately answering a recognized question is kept,
    and each key is recorded once; later repeats of a question do not
    overwrite the first answer.
    """
    if not transcript:
        return {}

    responses: dict = {}
    pending_key = None
    for raw_line in transcript.splitlines():
        line = raw_line.strip()
        if line.startswith(AI_PREFIX):
            key = classify_question(line[len(AI_PREFIX):])
            if key:
                pending_key = key
        elif line.startswith(USER_PREFIX) and pending_key:
            answer = line[len(USER_PREFIX):].strip()
            if answer and pending_key not in responses:
                responses[pending_key] = answer
            pending_key = None
    return responses


def _seconds(value: float) -> float | None:
    return value if math.isfinite(value) and value >= 0 else None


def parse_duration(value) -> float | None:
    """Coerce a provider duration to seconds; unknown values give None."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        try:
            return _seconds(float(value))
        except OverflowError:
            return None
    if isinstance(value, str):
        text = value.strip()
        clock = _CLOCK_RE.match(text)
        if clock:
            return _seconds(float(clock.group(1)) * 60 + int(clock.group(2)))
        seconds = _SECONDS_RE.match(text)
        if seconds:
            return _seconds(float(seconds.group(1)))
    return None


def format_duration(seconds: float | None) -> str:
    """Render seconds as ``m:ss`` for display, ``N/A`` when unknown."""
    if seconds is None or not math.isfinite(seconds):
        return "N/A"
    total = int(seconds)
    return f"{total // 60}:{total % 60:02d}"


def _as_text(value) -> str:
    return value.strip() if isinstance(value, str) else ""


def _from_structured(data: dict) -> ParsedFeedback:
    analysis = data.get("analysis")
    analysis_summary = analysis.get("summary") if isinstance(analysis, dict) else None
    return ParsedFeedback(
        source=FeedbackSource.STRUCTURED,
        summary=_as_text(data.get("summary")) or _as_text(analysis_summary),
        transcript=_as_text(data.get("transcript")),
        duration=parse_duration(data.get("duration")),
        ended_reason=_as_text(data.get("endedReason") or data.get("ended_reason")),
        status=_as_text(data.get("status")),
    )


def _from_plain_text(text: str) -> ParsedFeedback:
    fields = {}
    for section in _SECTION_SPLIT_RE.split(text):
        section = section.lstrip()
        for label, name in PLAIN_TEXT_LABELS.items():
            if section.startswith(label):
                fields[name] = section[len(label):].strip()
                break
    return ParsedFeedback(
        source=FeedbackSource.PLAIN_TEXT,
        summary=fields.get("summary", ""),
        transcript=fields.get("transcript", ""),
        duration=parse_duration(fields.get("duration")),
        ended_reason=fields.get("ended_reason", ""),
        feedback=fields.get("feedback", ""),
    )


def _decode_structured(raw: str) -> dict | None:
    try:
        data = json.loads(raw)
    except (ValueError, TypeError):
        return None
    return data if isinstance(data, dict) else None


def normalize(raw: str | None) -> ParsedFeedback:
    """Turn a raw feedback blob into a ParsedFeedback. Never raises."""
    if not isinstance(raw, str) or not raw.strip():
        return ParsedFeedback()

    data = _decode_structured(raw)
    if data is not None:
        parsed = _from_structured(data)
    else:
        parsed = _from_plain_text(raw)

    parsed.customer_responses = extract_customer_responses(parsed.transcript)
    logger.debug(
        "Normalized feedback: source=%s responses=%s",
        parsed.source.value, sorted(parsed.customer_responses),
    )
    return parsed
