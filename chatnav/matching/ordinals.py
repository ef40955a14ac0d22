"""
Ordinal and positional selection matching.

The strict matcher recognizes a closed set of pure selection phrases and
never guesses. The embedded matcher pulls ordinals out of longer phrasing
and is only used by the clarification ladder.
"""

import re
import logging
from typing import List, Optional, Sequence

from .fuzzy import levenshtein

logger = logging.getLogger(__name__)

_ORDINAL_WORDS = ['first', 'second', 'third', 'fourth', 'fifth',
                  'sixth', 'seventh', 'eighth', 'ninth']
ORDINAL_TARGETS = _ORDINAL_WORDS + ['last']

# Words one edit away from an ordinal that are not selections
_NOT_ORDINALS = {'lists', 'lasts', 'least', 'blast', 'fifty', 'sixty', 'seventy', 'eighty',
                 'eight', 'tenth'}

# Known misspellings, including ones shorter than the edit-distance cutoff
_ORDINAL_TYPOS = {
    'frist': 'first', 'fisrt': 'first', 'frst': 'first',
    'sedond': 'second', 'secnd': 'second', 'secon': 'second', 'scond': 'second',
    'secod': 'second', 'sceond': 'second',
    'thrid': 'third', 'tird': 'third',
    'foruth': 'fourth', 'fouth': 'fourth',
    'fith': 'fifth', 'fifht': 'fifth',
}

_WORDS = '|'.join(ORDINAL_TARGETS)

_POLITE_SUFFIX = re.compile(r"\s*(pls|plz|please|thx|thanks|ty)\.?$", re.IGNORECASE)
_CONCATENATED = re.compile(rf"^({_WORDS})(option|one)$")

STRICT_PATTERN = re.compile(
    rf"^({_WORDS}|[1-9]|option\s*[1-9]"
    rf"|the\s+({_WORDS})\s+(one|option)"
    rf"|({'|'.join(_ORDINAL_WORDS)})\s+option|[a-e])$"
)

_STRICT_INDEX = {
    form.format(word): position
    for position, word in enumerate(_ORDINAL_WORDS)
    for form in ('{}', '{} option', 'the {} one', 'the {} option')
}

_LAST = {'last', 'the last one', 'the last option'}

_EMBEDDED_INDEX = {
    'one': 0, 'two': 1, 'three': 2, 'four': 3, 'five': 4,
    '1st': 0, '2nd': 1, '3rd': 2, '4th': 3, '5th': 4,
    'number one': 0, 'number two': 1, 'number three': 2, 'number four': 3, 'number five': 4,
    'the first': 0, 'the second': 1, 'the third': 2, 'the fourth': 3, 'the fifth': 4,
    'top': 0, 'upper': 0, 'top one': 0,
}

_PHRASE_ORDINALS = [
    (re.compile(r"\b(first|1st|number one)\b"), 0),
    (re.compile(r"\b(second|2nd|number two)\b"), 1),
    (re.compile(r"\b(third|3rd|number three)\b"), 2),
    (re.compile(r"\b(fourth|4th)\b"), 3),
    (re.compile(r"\b(fifth|5th)\b"), 4),
    (re.compile(r"\blast\b"), -1),
]


def _fix_token(token: str) -> str:
    if token in _ORDINAL_TYPOS:
        return _ORDINAL_TYPOS[token]
    if len(token) < 5 or token in ORDINAL_TARGETS or token in _NOT_ORDINALS:
        return token

    # Only a single edit is corrected; "sixth" and "fifth" are two apart
    matches = [ordinal for ordinal in ORDINAL_TARGETS if levenshtein(token, ordinal) == 1]
    return matches[0] if len(matches) == 1 else token


def normalize_ordinal_typos(text: str) -> str:
    """
    Normalize ordinal typos before selection matching.

    "ffirst" -> "first", "secondoption" -> "second option",
    "thrid" -> "third".
    """
    normalized = _POLITE_SUFFIX.sub('', text.lower().strip()).strip()
    normalized = normalized.rstrip('?!.').strip()
    normalized = re.sub(r"([a-z])\1+", r"\1", normalized)
    normalized = _CONCATENATED.sub(r"\1 \2", normalized)
    return ' '.join(_fix_token(t) for t in normalized.split())


def is_selection_shaped(text: str) -> bool:
    """True for pure ordinal / positional input such as "2", "the second one" or "d"."""
    return bool(STRICT_PATTERN.match(normalize_ordinal_typos(text)))


def is_pure_ordinal(text: str) -> bool:
    """Selection-shaped and not a letter badge"""
    normalized = normalize_ordinal_typos(text)
    return bool(STRICT_PATTERN.match(normalized)) and not re.fullmatch(r"[a-e]", normalized)


def badge_of(label: str) -> Optional[str]:
    """Trailing single-letter badge of a label, e.g. "Quick Links D" -> "d"."""
    match = re.search(r"\s([A-Za-z])$", label.strip())
    return match.group(1).lower() if match else None


def match_ordinal(text: str, labels: Sequence[str]) -> Optional[int]:
    """
    Strict ordinal match against a list of option labels.

    Returns the zero-based index or None. Single letters only select when
    some label carries that letter as its badge.
    """
    normalized = normalize_ordinal_typos(text)
    if not STRICT_PATTERN.match(normalized):
        return None

    count = len(labels)

    if normalized in _LAST:
        return count - 1 if count else None

    if re.fullmatch(r"[a-e]", normalized):
        for index, label in enumerate(labels):
            if badge_of(label) == normalized:
                return index
        return None

    option = re.fullmatch(r"option\s*([1-9])", normalized)
    if option:
        index = int(option.group(1)) - 1
    elif normalized.isdigit():
        index = int(normalized) - 1
    else:
        index = _STRICT_INDEX.get(normalized)

    if index is not None and 0 <= index < count:
        return index
    return None


def match_ordinal_embedded(text: str, labels: Sequence[str]) -> Optional[int]:
    """Relaxed ordinal extraction for phrasing like "I'll go with the second one"."""
    count = len(labels)
    if count == 0:
        return None

    strict = match_ordinal(text, labels)
    if strict is not None:
        return strict

    raw = _POLITE_SUFFIX.sub('', text.lower().strip()).strip().rstrip('?!.').strip()
    normalized = normalize_ordinal_typos(text)

    index = None
    for form in (raw, normalized):
        if form in _EMBEDDED_INDEX:
            index = _EMBEDDED_INDEX[form]
            break
        if form in ('bottom', 'lower', 'bottom one', 'the bottom one', 'the last', 'last one'):
            index = count - 1
            break
        if form in ('the other one', 'the other', 'other one', 'other') and count == 2:
            index = 1
            break

    if index is None:
        for pattern, position in _PHRASE_ORDINALS:
            if pattern.search(normalized):
                resolved = count - 1 if position < 0 else position
                if 0 <= resolved < count:
                    index = resolved
                    break

    if index is None and count <= 5:
        numeric = re.search(r"\b([1-5])\b", normalized)
        if numeric:
            index = int(numeric.group(1)) - 1

    if index is not None and 0 <= index < count:
        return index
    return None


_LABEL_NOISE = re.compile(r"^(open|select|pick|choose|show|go to|take me to|the)\s+")


def match_labels(text: str, labels: Sequence[str]) -> List[int]:
    """
    Indices of labels the input names.

    Exact label matches win; otherwise every label containing all input
    tokens is returned.
    """
    cleaned = re.sub(r"[^\w\s]", ' ', text.lower()).strip()
    previous = None
    while previous != cleaned:
        previous = cleaned
        cleaned = _LABEL_NOISE.sub('', cleaned).strip()
    if not cleaned:
        return []

    exact = [i for i, label in enumerate(labels) if label.lower().strip() == cleaned]
    if exact:
        return exact

    tokens = cleaned.split()
    contained = []
    for i, label in enumerate(labels):
        label_tokens = re.sub(r"[^\w\s]", ' ', label.lower()).split()
        if all(t in label_tokens for t in tokens):
            contained.append(i)
    return contained
