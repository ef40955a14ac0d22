"""
Fuzzy matching of free-form input against the command vocabulary.

Scores are deterministic and depend only on the input text and the phrase:
exact matches score 1.0, prefix matches 0.85-0.95, everything else is
derived from Levenshtein distance with a small boost for near-misses on
inputs of four or more characters.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Any, Iterable, Set

import numpy as np

logger = logging.getLogger(__name__)

FILLER_WORDS = {'please', 'pls', 'plz', 'thanks', 'thx', 'um', 'uh', 'hey'}

_PUNCTUATION = re.compile(r"[^\w\s-]")

HIGH = 'high'
MEDIUM = 'medium'
LOW = 'low'


def levenshtein(a: str, b: str) -> int:
    """Edit distance between two strings, one numpy row per character of b"""
    if a == b:
        return 0
    if not a:
        return len(b)
    if not b:
        return len(a)

    a_codes = np.array([ord(ch) for ch in a], dtype=np.int64)
    idx = np.arange(len(a) + 1, dtype=np.int64)
    prev = idx.copy()

    for i, ch in enumerate(b, start=1):
        cost = (a_codes != ord(ch)).astype(np.int64)
        row = np.empty_like(prev)
        row[0] = i
        # substitution and deletion
        row[1:] = np.minimum(prev[:-1] + cost, prev[1:] + 1)
        # insertion chain: row[j] = min(row[j], row[j-1] + 1)
        prev = np.minimum.accumulate(row - idx) + idx

    return int(prev[-1])


def singularize(word: str) -> str:
    if len(word) < 4:
        return word
    if word.endswith(('ss', 'us', 'is')):
        return word
    if word.endswith('ies'):
        return word[:-3] + 'y'
    if word.endswith('s'):
        return word[:-1]
    return word


def normalize_for_matching(text: str) -> str:
    """Lower-case, strip punctuation and filler, singularize the trailing noun"""
    cleaned = _PUNCTUATION.sub(' ', text.lower())
    tokens = [t for t in cleaned.split() if t not in FILLER_WORDS]
    if tokens:
        tokens[-1] = singularize(tokens[-1])
    return ' '.join(tokens)


def similarity_score(text: str, target: str) -> float:
    """Similarity in [0, 1] between user input and a vocabulary phrase"""
    left = text.lower().strip()
    right = target.lower().strip()

    if left == right:
        return 1.0

    if left and right and (right.startswith(left) or left.startswith(right)):
        ratio = min(len(left), len(right)) / max(len(left), len(right))
        return 0.85 + ratio * 0.1

    max_len = max(len(left), len(right))
    if max_len == 0:
        return 1.0

    distance = levenshtein(left, right)
    score = 1 - distance / max_len

    if distance <= 2 and len(left) >= 4:
        return min(score + 0.15, 0.95)

    return score


def confidence_band(score: float, high: float = 0.90, medium: float = 0.60) -> str:
    if score >= high:
        return HIGH
    if score >= medium:
        return MEDIUM
    return LOW


@dataclass
class FuzzyMatch:
    """Best-scoring phrase of one vocabulary entry"""
    command: Any
    phrase: str
    score: float
    confidence: str

    @property
    def label(self) -> str:
        return self.command.label


@dataclass
class Suggestion:
    """Typo-suggestion reply built from fuzzy matches"""
    kind: str  # confirm_single | choose_multiple | low_confidence
    message: str
    matches: List[FuzzyMatch] = field(default_factory=list)
    filtered_by_rejection: bool = False

    @property
    def labels(self) -> List[str]:
        return [m.label for m in self.matches]


def find_matches(text: str,
                 vocabulary: Iterable[Any],
                 rejected: Optional[Set[str]] = None,
                 floor: float = 0.5,
                 high: float = 0.90,
                 medium: float = 0.60) -> List[FuzzyMatch]:
    """
    Score every vocabulary entry against the input.

    Entries whose label is in the rejected set are removed before scoring.
    Results are sorted by score, ties keep vocabulary order.
    """
    rejected = rejected or set()
    raw = text.lower().strip()
    normalized = normalize_for_matching(text)
    matches = []

    for command in vocabulary:
        if command.label.casefold() in rejected:
            continue

        best_score = 0.0
        best_phrase = command.phrases[0]
        for phrase in command.phrases:
            score = max(similarity_score(raw, phrase), similarity_score(normalized, phrase))
            if score > best_score:
                best_score = score
                best_phrase = phrase

        if best_score >= floor:
            matches.append(FuzzyMatch(
                command=command,
                phrase=best_phrase,
                score=best_score,
                confidence=confidence_band(best_score, high, medium)
            ))

    matches.sort(key=lambda m: m.score, reverse=True)
    return matches


def default_suggestion_labels(vocabulary: Iterable[Any], rejected: Optional[Set[str]] = None,
                              limit: int = 3) -> List[str]:
    """Up to `limit` useful commands for the generic fallback, panels first"""
    rejected = rejected or set()
    usable = [c for c in vocabulary if c.label.casefold() not in rejected]
    panels = [c for c in usable if c.panel_id]
    core = [c for c in usable if not c.panel_id and c.label in ('Workspaces', 'Dashboard', 'Home')]

    labels: List[str] = []
    for command in panels[:2]:
        labels.append(command.label)
    if len(labels) < limit and core:
        labels.append(core[0].label)
    for command in usable:
        if len(labels) >= limit:
            break
        if command.label not in labels:
            labels.append(command.label)
    return labels[:limit]


def generic_fallback_message(labels: List[str]) -> str:
    if not labels:
        return "I'm not sure what you meant."
    return "I'm not sure what you meant. Try: " + ", ".join(l.lower() for l in labels) + "."


_ACTION_TEXT = {
    'open_panel': 'I can open it for you.',
    'navigate': 'I can take you there.',
    'answer_from_context': 'I can help with that.',
}


def build_suggestion(text: str,
                     vocabulary: List[Any],
                     rejected: Optional[Set[str]] = None,
                     thresholds: Optional[Dict[str, float]] = None) -> Suggestion:
    """
    Build the typo-suggestion reply for unrecognized input.

    One strong candidate asks for confirmation; two close candidates ask
    which one; otherwise a short list. Rejected labels are filtered before
    suggesting; if the best candidate was rejected and nothing else is at
    least medium confidence, the generic fallback is returned.
    """
    thresholds = thresholds or {}
    floor = thresholds.get('floor', 0.5)
    high = thresholds.get('high', 0.90)
    medium = thresholds.get('medium', 0.60)
    close_gap = thresholds.get('close_gap', 0.08)
    rejected = rejected or set()

    unfiltered = find_matches(text, vocabulary, None, floor, high, medium)
    matches = [m for m in unfiltered if m.label.casefold() not in rejected]
    rejected_top = bool(unfiltered) and unfiltered[0].label.casefold() in rejected

    if not matches or (rejected_top and matches[0].score < medium):
        labels = default_suggestion_labels(vocabulary, rejected)
        if rejected_top:
            logger.debug(f"Best fuzzy candidate for {text!r} was previously rejected")
        return Suggestion('low_confidence', generic_fallback_message(labels), [], rejected_top)

    top = matches[0]

    if top.score >= high:
        action_text = _ACTION_TEXT.get(top.command.action_kind.value, 'I can help with that.')
        return Suggestion('confirm_single', f"Did you mean {top.label}? {action_text}", [top])

    if len(matches) >= 2:
        second = matches[1]
        if top.score - second.score < close_gap and second.score >= 0.70:
            return Suggestion('choose_multiple', f"Did you mean {top.label} or {second.label}?",
                              [top, second])

    if top.score >= medium:
        return Suggestion('confirm_single', f"Did you mean {top.label}?", [top])

    shortlist = matches[:3]
    labels = [m.label for m in shortlist]
    return Suggestion('low_confidence', generic_fallback_message(labels), shortlist)
