"""
Deterministic input classifiers: commands, scope cues, stop, affirmation,
rejection, re-show and return phrases, plus command canonicalization.
"""

import re
import logging
from dataclasses import dataclass
from typing import Iterable, Optional

logger = logging.getLogger(__name__)

ACTION_VERBS = ('open', 'show', 'list', 'view', 'go', 'back', 'home', 'create',
                'rename', 'delete', 'remove', 'launch', 'close', 'navigate')

TARGET_NOUNS = ('panel', 'panels', 'widget', 'widgets', 'workspace', 'workspaces',
                'dashboard', 'home', 'recent', 'recents', 'links', 'link', 'quick',
                'entry', 'entries', 'note', 'notes', 'item', 'items', 'drawer')

_ORDINAL_LANGUAGE = re.compile(r"\b(first|second|third|fourth|fifth|sixth|seventh|eighth|ninth|last|[1-9])\b")

AFFIRMATION_PATTERN = re.compile(
    r"^(yes|yeah|yep|yup|sure|ok|okay|k|ya|ye|yea|mhm|uh\s*huh|go ahead|do it|proceed"
    r"|correct|right|exactly|confirm|confirmed)(\s+please)?$"
)

REJECTION_PATTERN = re.compile(
    r"^(no|nope|nah|negative|don't|not now|pass|wrong|incorrect|not that|no thanks)$"
)

REJECTION_PREFIXES = ('no', 'nope', 'nah', 'not')

STOP_PHRASES = ('stop', 'cancel', 'never mind', 'nevermind', 'forget it', 'skip',
                'quit', 'exit', 'abort', 'stop that', 'cancel that', 'none of these',
                'start over')

RETURN_PATTERN = re.compile(
    r"^((go\s+)?back to (the\s+)?(options|list|choices)|return to (the\s+)?(options|list)"
    r"|resume|continue|where were we)$"
)

RESHOW_PATTERNS = [
    re.compile(r"^show\s*(me\s*)?(the\s*)?options( again)?$"),
    re.compile(r"^(what\s*were\s*those|what\s*were\s*they)$"),
    re.compile(r"^i'?m\s*confused$"),
    re.compile(r"^(can\s*you\s*)?show\s*(me\s*)?(again|them)$"),
    re.compile(r"^remind\s*me$"),
    re.compile(r"^options$"),
]

QUESTION_INTENT_PATTERN = re.compile(
    r"^(what|how|where|when|why|who|which|can|could|would|should|tell|explain|help|is|are|do|does|did)\b"
)

COMMAND_START_PATTERN = re.compile(r"^(open|show|go|list|create|close|delete|rename|back|home|view|launch)\b")

_SCOPE_PATTERNS = [
    ('chat', re.compile(r"\b(back to options|from earlier options|from chat options?|from the chat|from chat|in chat)\b")),
    ('widget', re.compile(r"\b(from links panel\s*[a-z]?|from recent|from active widget|from the widget)\b")),
    ('dashboard', re.compile(r"\b(from dashboard|in dashboard|from active dashboard|from the dashboard)\b")),
    ('workspace', re.compile(r"\b(from workspace|in workspace|from active workspace|from the workspace)\b")),
]

_POLITE_PREFIX = re.compile(
    r"^(hey\s+)?((can|could|would)\s+you\s+)?((please|pls)\s+)?((open|show|view|go to|launch)\s+)?"
)


def _clean(text: str) -> str:
    normalized = text.lower().strip()
    normalized = re.sub(r"[?!.,]+$", '', normalized).strip()
    return re.sub(r"\s+", ' ', normalized)


@dataclass(frozen=True)
class ScopeCue:
    """Explicit scope named in the input"""
    scope: str  # chat | widget | dashboard | workspace | none
    cue_text: Optional[str] = None

    @property
    def present(self) -> bool:
        return self.scope != 'none'

    def strip_from(self, text: str) -> str:
        """Input with the cue removed, e.g. "2 from chat" -> "2"."""
        if not self.cue_text:
            return text
        stripped = re.sub(re.escape(self.cue_text), ' ', text.lower(), count=1)
        return re.sub(r"\s+", ' ', stripped).strip(' ,')


def resolve_scope_cue(text: str) -> ScopeCue:
    """Detect an explicit scope cue. Chat cues take precedence, then widget, dashboard, workspace."""
    normalized = _clean(text)
    for scope, pattern in _SCOPE_PATTERNS:
        match = pattern.search(normalized)
        if match:
            return ScopeCue(scope, match.group(0))
    return ScopeCue('none')


def is_explicit_command(text: str, known_nouns: Optional[Iterable[str]] = None) -> bool:
    """
    Action verb plus a target noun (or a known vocabulary label).

    Input carrying ordinal language is never an explicit command, so
    "open the second one" stays a selection.
    """
    normalized = _clean(text)
    if _ORDINAL_LANGUAGE.search(normalized):
        return False

    tokens = re.sub(r"[^\w\s-]", ' ', normalized).split()
    verb_positions = [i for i, t in enumerate(tokens) if t in ACTION_VERBS]
    if not verb_positions:
        return False

    first_verb = verb_positions[0]
    rest = tokens[first_verb + 1:]
    if any(t in TARGET_NOUNS for t in rest):
        return True

    tail = ' '.join(rest)
    for noun in known_nouns or ():
        noun = noun.lower().strip()
        if noun and re.search(r"\b" + re.escape(noun) + r"\b", tail):
            return True
    return False


def is_stop_phrase(text: str) -> bool:
    return _clean(text) in STOP_PHRASES


def is_affirmation(text: str) -> bool:
    return bool(AFFIRMATION_PATTERN.match(_clean(text)))


def is_rejection(text: str) -> bool:
    """Exact rejection phrase or a rejection-prefix token ("no", "nope", "nah", "not")."""
    normalized = _clean(text)
    if REJECTION_PATTERN.match(normalized):
        return True
    tokens = re.sub(r"[^\w\s']", ' ', normalized).split()
    return bool(tokens) and tokens[0] in REJECTION_PREFIXES


def is_return_phrase(text: str) -> bool:
    return bool(RETURN_PATTERN.match(_clean(text)))


def is_reshow_phrase(text: str) -> bool:
    normalized = _clean(text)
    normalized = re.sub(r"optins|optons|optiosn", 'options', normalized)
    return any(p.match(normalized) for p in RESHOW_PATTERNS)


def has_question_intent(text: str) -> bool:
    normalized = text.lower().strip()
    return bool(QUESTION_INTENT_PATTERN.match(normalized)) or normalized.endswith('?')


def is_new_question_or_command(text: str, known_nouns: Optional[Iterable[str]] = None) -> bool:
    normalized = _clean(text)
    return (has_question_intent(text)
            or bool(COMMAND_START_PATTERN.match(normalized))
            or is_explicit_command(text, known_nouns))


def canonicalize_command_input(text: str) -> str:
    """
    Canonical form for command and noun matching.

    Strips polite prefixes ("hey can you please open"), leading articles and
    trailing filler ("please", "thanks", "now").
    """
    normalized = _clean(text)
    normalized = _POLITE_PREFIX.sub('', normalized, count=1).strip()
    normalized = re.sub(r"^(the|a|an)\s+", '', normalized).strip()
    normalized = re.sub(r"\s+(pls|please|plz|thanks|thx|now)$", '', normalized).strip()
    return re.sub(r"\s+", ' ', normalized)
