"""
Learner pacing.

Slows narration for language learners by inserting punctuation pause
markers that narration providers render as silence. Timing alignment
never runs on the paced text directly: the character aligner resyncs
across the markers, and transcribed words have them stripped before
matching.
"""

import re

# Connective words that get a short breath before and after (Spanish)
CONNECTIVES = ("que", "pero", "y", "como")

SENTENCE_PAUSE = "....."
CLAUSE_PAUSE = "..."

_SENTENCE_END = re.compile(r"([.!?])\s+")
_TEXT_END = re.compile(r"([.!?])$")
_PARAGRAPH = re.compile(r"\n\s*\n")
_COMMA = re.compile(r",\s+")
_COLON = re.compile(r"[:;]\s+")
_CONNECTIVE = re.compile(r"\s+(" + "|".join(CONNECTIVES) + r")\s+", re.IGNORECASE)

_PAUSE_MARKERS = re.compile(r"\.{2,}|\u2026")
_DASHES = re.compile(r"[\u2010-\u2015]")
_QUOTES = re.compile(r"[\"\u201c\u201d\u2018\u2019]")
_WHITESPACE = re.compile(r"\s+")


def add_pause_markers(text: str) -> str:
    """
    Insert pause markers for slow learner narration.

    Args:
        text: Original segment text

    Returns:
        Text with pause markers, to be sent to the narration provider
    """
    paced = _SENTENCE_END.sub(r"\1" + SENTENCE_PAUSE + " ", text)
    paced = _TEXT_END.sub(r"\1" + SENTENCE_PAUSE, paced)

    paced = _PARAGRAPH.sub(CLAUSE_PAUSE + "\n\n", paced)
    paced = re.sub(r"(?<!\n)\n(?!\n)", CLAUSE_PAUSE + "\n", paced)

    paced = _COMMA.sub("," + CLAUSE_PAUSE + " ", paced)
    paced = _COLON.sub(lambda m: m.group(0) + CLAUSE_PAUSE + " ", paced)
    paced = _CONNECTIVE.sub(r".. \1. ", paced)
    return paced


def strip_pause_markers(text: str) -> str:
    """
    Remove pause markers and normalize punctuation noise.

    Args:
        text: Text as sent to the provider

    Returns:
        Clean text with single spaces
    """
    cleaned = _PAUSE_MARKERS.sub("", text)
    cleaned = _DASHES.sub("-", cleaned)
    cleaned = _QUOTES.sub("", cleaned)
    cleaned = _WHITESPACE.sub(" ", cleaned)
    return cleaned.strip()
