"""Occasional one-character typos that get corrected by an edit."""

from __future__ import annotations

import random
import re
from dataclasses import dataclass
from typing import Optional

# Keys adjacent on the Russian ЙЦУКЕН and English QWERTY layouts
KEYBOARD_NEIGHBOURS: dict[str, str] = {
    "а": "фывс", "б": "нгют", "в": "апмсы", "г": "прштб", "д": "ваолж",
    "е": "нгпр", "ж": "длюэ", "з": "ячщх", "и": "тшщмб", "й": "цуке",
    "к": "уенгш", "л": "оджэ", "м": "итьбв", "н": "гкер", "о": "лдвар",
    "п": "еротив", "р": "олдгне", "с": "ывам", "т": "ипргбн",
    "у": "йкц", "ф": "ая", "х": "зъ", "ц": "йуч", "ч": "цзяс", "ш": "кгщи",
    "щ": "зхъш", "ъ": "хэ", "ы": "авс", "ь": "бмт", "э": "жъл", "ю": "бж",
    "я": "фчз",
    "q": "wa", "w": "qesa", "e": "wrds", "r": "etfd", "t": "rygf", "y": "tuhg",
    "u": "yijh", "i": "uokj", "o": "iplk", "p": "ol", "a": "qwsz",
    "s": "wedazx", "d": "erfsxc", "f": "rtgdcv", "g": "tyhfvb", "h": "yujgbn",
    "j": "uikhnm", "k": "iojlm", "l": "opk", "z": "asx", "x": "zsdc",
    "c": "xdfv", "v": "cfgb", "b": "vghn", "n": "bhjm", "m": "njk",
}

_WORD = re.compile(r"[^\W\d_]+")
_MIN_WORD_LENGTH = 4


@dataclass(frozen=True, slots=True)
class TypoResult:
    text: str
    original: Optional[str] = None

    @property
    def has_typo(self) -> bool:
        return self.original is not None


def _neighbour_swap(word: str, rng: random.Random) -> str:
    index = rng.randrange(1, len(word) - 1)
    letter = word[index]
    candidates = [c for c in KEYBOARD_NEIGHBOURS.get(letter.lower(), "") if c != letter.lower()]
    if not candidates:
        return word
    replacement = rng.choice(candidates)
    if letter.isupper():
        replacement = replacement.upper()
    return word[:index] + replacement + word[index + 1:]


def _skip_letter(word: str, rng: random.Random) -> str:
    index = rng.randrange(1, len(word) - 1)
    return word[:index] + word[index + 1:]


_MUTATIONS = (_neighbour_swap, _skip_letter)


def introduce_typo(text: str, probability: float, rng: random.Random) -> TypoResult:
    """With *probability*, return *text* with a single interior-letter typo.

    Only words of at least four letters are touched, and never their first
    or last letter. ``result.original`` holds the untouched text so the
    typo can be edited back exactly; a mutation that changes nothing counts
    as no typo.
    """
    if probability <= 0 or rng.random() >= probability:
        return TypoResult(text)

    words = [m for m in _WORD.finditer(text) if len(m.group()) >= _MIN_WORD_LENGTH]
    if not words:
        return TypoResult(text)

    match = rng.choice(words)
    mutate = rng.choice(_MUTATIONS)
    mutated = mutate(match.group(), rng)
    typo_text = text[: match.start()] + mutated + text[match.end():]

    if typo_text == text:
        return TypoResult(text)
    return TypoResult(typo_text, original=text)
