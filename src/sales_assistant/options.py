"""
Labeled reply options.

Replies are three persuasive alternatives written as

    Response A: ...
    Response B: ...
    Response C: ...

This module parses that grammar once into `LabeledOption` values so the rest
of the code never does substring arithmetic on reply text.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable, List, Optional

LABELS = ("A", "B", "C")

# "Response A:" through "Response C:", any casing.
OPTION_MARKER_RE = re.compile(r"response\s+([abc])\s*:", re.IGNORECASE)
FIRST_MARKER_RE = re.compile(r"response\s+a\s*:", re.IGNORECASE)
LATER_MARKER_RE = re.compile(r"response\s+[bc]\s*:", re.IGNORECASE)
LATER_REFERENCE_RE = re.compile(r"response\s+[bc]\b", re.IGNORECASE)
_LEADING_LABEL_RE = re.compile(r"^response\s+[abc]\s*:\s*", re.IGNORECASE)

FALLBACK_REPLY = (
    "Response A: I'd be happy to help you with that. Let me provide you with more information.\n\n"
    "Response B: That's a great question. Based on your needs, here's what I recommend.\n\n"
    "Response C: I understand your concern. Let's explore the best solution for you."
)

FAILURE_REPLY = "AI response generation failed. Please try again."


@dataclass(frozen=True)
class LabeledOption:
    label: str
    text: str


def collapse_whitespace(text: str) -> str:
    return " ".join((text or "").split())


def parse_labeled_options(text: str) -> List[LabeledOption]:
    """
    Parse every `Response X:` segment, in order of appearance.

    Text before the first marker is ignored. Returns [] if no marker exists.
    """
    if not text:
        return []

    markers = list(OPTION_MARKER_RE.finditer(text))
    options: List[LabeledOption] = []
    for index, marker in enumerate(markers):
        end = markers[index + 1].start() if index + 1 < len(markers) else len(text)
        options.append(
            LabeledOption(
                label=marker.group(1).upper(),
                text=collapse_whitespace(text[marker.end():end]),
            )
        )
    return options


def format_options(options: Iterable[LabeledOption]) -> str:
    return "\n".join(f"Response {option.label}: {option.text}" for option in options)


def option_by_label(options: Iterable[LabeledOption], label: str) -> Optional[LabeledOption]:
    label = label.upper()
    for option in options:
        if option.label == label:
            return option
    return None


def strip_later_references(text: str) -> str:
    """Cut `text` at the first mention of a later option; "" if nothing is left."""
    match = LATER_REFERENCE_RE.search(text)
    if match:
        text = text[:match.start()].strip()
    return text


def first_option_text(text: str) -> str:
    """
    The speakable part of a reply: the Response A segment.

    Falls back to the first line (label stripped) when the reply carries no
    Response A marker. Never returns text that mentions a later option.
    """
    if not text:
        return ""

    options = parse_labeled_options(text)
    first = option_by_label(options, "A")
    if first is not None:
        spoken = first.text
    else:
        first_line = text.split("\n", 1)[0]
        spoken = collapse_whitespace(_LEADING_LABEL_RE.sub("", first_line.strip()))

    return strip_later_references(spoken)
