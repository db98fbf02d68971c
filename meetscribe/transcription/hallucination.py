"""Heuristics for spotting model hallucinations in transcript fragments."""

import logging
import re
from typing import Optional

logger = logging.getLogger(__name__)

CYRILLIC_PATTERN = re.compile(r"[\u0400-\u04FF]")
REPEATED_CHAR_PATTERN = re.compile(r"(.)\1{7,}", re.DOTALL)
REPEATED_TRIGRAM_PATTERN = re.compile(r"(.{3})\1{3,}", re.DOTALL)
WHITESPACE_PATTERN = re.compile(r"\s")
# A plain word (letters, inner apostrophes/hyphens) or a number, optional trailing punctuation
SIMPLE_TOKEN_PATTERN = re.compile(
    r"^(?:[^\W\d_]+(?:['’-][^\W\d_]+)*|\d+(?:[.,:]\d+)*)[.,!?;:]*$"
)
MAX_UNSPACED_LENGTH = 5


def hallucination_reason(text: str, expect_english: bool = True) -> Optional[str]:
    """Return why `text` looks hallucinated, or None if it looks like speech.

    The checks target failure modes observed from the live model during
    silence: Cyrillic output for an English meeting, endless stutter, and
    glued-together gibberish. They are deliberately narrow.
    """
    if expect_english and CYRILLIC_PATTERN.search(text):
        return "cyrillic"
    if REPEATED_CHAR_PATTERN.search(text):
        return "repeated-character"
    if REPEATED_TRIGRAM_PATTERN.search(text):
        return "repeated-sequence"
    stripped = text.strip()
    if (len(stripped) > MAX_UNSPACED_LENGTH
            and not WHITESPACE_PATTERN.search(stripped)
            and not SIMPLE_TOKEN_PATTERN.match(stripped)):
        return "unspaced-gibberish"
    return None


def is_hallucination(text: str, expect_english: bool = True) -> bool:
    return hallucination_reason(text, expect_english) is not None


class HallucinationFilter:
    """Callable filter that counts and logs what it rejects."""

    def __init__(self, expect_english: bool = True):
        self.expect_english = expect_english
        self.rejected_count = 0

    def __call__(self, text: str) -> bool:
        """True if the fragment should be kept."""
        reason = hallucination_reason(text, self.expect_english)
        if reason is None:
            return True
        self.rejected_count += 1
        logger.debug(f"Dropped hallucinated fragment ({reason}): {text[:60]!r}")
        return False
