"""Code-word detection on transcribed speech.

Runs on every few-second audio chunk, so it stays pure and allocation-light.
"""

import re
from dataclasses import dataclass
from typing import Optional, Set

FUZZY_THRESHOLD = 0.8

_EDGE_PUNCT = re.compile(r"^\W+|\W+$")


@dataclass(frozen=True)
class Detection:
    detected: bool
    confidence: float = 0.0
    matched_word: Optional[str] = None


def _normalize(text: str) -> str:
    return " ".join(text.lower().split())


def _bigrams(word: str) -> Set[str]:
    # Pad with word boundaries so first and last letters carry weight.
    padded = f" {word} "
    return {padded[i:i + 2] for i in range(len(padded) - 1)}


def similarity(a: str, b: str) -> float:
    """Dice coefficient over character bigram sets."""
    if a == b:
        return 1.0
    if len(a) < 2 or len(b) < 2:
        return 0.0
    x, y = _bigrams(a), _bigrams(b)
    return 2.0 * len(x & y) / (len(x) + len(y))


def detect(transcript: str, code_word: str) -> Detection:
    text = _normalize(transcript)
    word = _normalize(code_word)
    if not word or not text:
        return Detection(False)

    if word in text:
        return Detection(True, 1.0, code_word)

    for token in text.split():
        token = _EDGE_PUNCT.sub("", token)
        score = similarity(token, word)
        if score > FUZZY_THRESHOLD:
            return Detection(True, score, token)

    return Detection(False)
