"""
Reply templates. Everything the user reads that did not come from the
general-answer model is produced here.
"""

from typing import List, Optional, Sequence

from ..core.types import Candidate

STOP_ACK = "Okay, stopped."
NOTHING_TO_STOP = "Okay."
WHAT_INSTEAD = "Okay — what would you like instead?"
CONTEXT_STALE = "I don't see that anymore — want me to show it again?"
NOT_UNDERSTOOD = "I'm not sure what you meant."
NEED_RESHOW = "I don't have enough context to answer that. Could you show me what you're referring to again?"
YES_TO_WHAT = "Yes to what? I don't have anything waiting for confirmation."
UNSUPPORTED = "I can't do that here."


def _join_labels(labels: Sequence[str]) -> str:
    if not labels:
        return ''
    if len(labels) == 1:
        return labels[0]
    return ', '.join(labels[:-1]) + ' and ' + labels[-1]


def numbered(candidates: Sequence[Candidate]) -> str:
    return ' '.join(f"{i}. {c.label}" for i, c in enumerate(candidates, start=1))


def grounded_clarifier(candidates: Sequence[Candidate]) -> str:
    """Re-show the same bounded candidates"""
    return f"I'm not sure which one you meant. Please choose: {numbered(candidates)}"


def which_one(candidates: Sequence[Candidate]) -> str:
    return f"Which one? {numbered(candidates)}"


def disambiguation(label: str, candidates: Sequence[Candidate]) -> str:
    return f"I found more than one {label}. Which one? {numbered(candidates)}"


def which_source(ordinal: str, chat_count: int, widget_title: str) -> str:
    return (f"Did you mean option {ordinal} from the chat options ({chat_count} shown) "
            f"or from {widget_title}?")


def rejection_reply(remaining: Optional[List[str]] = None) -> str:
    if remaining:
        return f"{WHAT_INSTEAD} You could also try {_join_labels(remaining)}."
    return WHAT_INSTEAD


def list_membership(item: str, labels: Sequence[str], present: bool) -> str:
    if present:
        return f"Yes, {item} is in the list."
    return f"No, only {_join_labels(list(labels))}."


def executed(label: Optional[str], verb: str = 'Opening') -> str:
    return f"{verb} {label}." if label else "Done."


def location(mode: str, drawer: Optional[str], focused: Optional[str], active_item: Optional[str]) -> str:
    parts = [f"You're on the {mode}"]
    if focused:
        parts.append(f"with {focused} focused")
    if drawer:
        parts.append(f"and the {drawer} drawer open")
    message = ' '.join(parts) + '.'
    if active_item:
        message += f" The active item is {active_item}."
    return message


def last_action(target_type: Optional[str], target_name: Optional[str]) -> str:
    if not target_name:
        return "You haven't done anything yet in this conversation."
    return f"Your last action was opening {target_name}" + (f" ({target_type})." if target_type else ".")


def verification(kind: str, target: str, found: bool) -> str:
    """Answer "did I ask you to open X" (kind=request) or "did I open X" (kind=action)"""
    if kind == 'request':
        return f"Yes, you asked me to open {target}." if found else f"No, you didn't ask me to open {target}."
    return f"Yes, you opened {target}." if found else f"No, you haven't opened {target}."


def entity_found(entity_type: str, name: str, entry_name: Optional[str]) -> str:
    if entry_name:
        return f"Yes, you have a {entity_type} called {name} in {entry_name}."
    return f"Yes, you have a {entity_type} called {name}."


def entity_missing(entity_type: str, name: str) -> str:
    return f"I couldn't find a {entity_type} called {name}."
