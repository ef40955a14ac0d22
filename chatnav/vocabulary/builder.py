"""
Command vocabulary builder.

Merges the static core commands with entries synthesized from visible
panels and third-party panel manifests. The result depends only on its
inputs, so it is memoized on them.
"""

import re
import logging
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Dict, List, Optional, Any, Iterable, Tuple

from ..core.types import Action, ActionKind
from ..core.exceptions import ManifestError
from ..matching.fuzzy import normalize_for_matching

logger = logging.getLogger(__name__)

SUPPORTED_MANIFEST_MAJOR = "1"

BUILTIN_PANEL_IDS = ('recent',)
QUICK_LINKS_PATTERN = re.compile(r"^quick-links-([a-z])$", re.IGNORECASE)
_LEADING_VERB = re.compile(r"^(show|open|view|display|list|get)\s+", re.IGNORECASE)


@dataclass(frozen=True)
class CommandDef:
    """One entry of the closed command vocabulary"""
    phrases: Tuple[str, ...]
    label: str
    action_kind: ActionKind
    intent_name: str
    panel_id: Optional[str] = None
    params: Tuple[Tuple[str, Any], ...] = ()

    def to_action(self) -> Action:
        params = (('intent', self.intent_name),) + tuple(self.params)
        return Action(
            kind=self.action_kind,
            target_id=self.panel_id or self.intent_name,
            target_name=self.label,
            params=params
        )

    @property
    def is_informational(self) -> bool:
        return self.action_kind == ActionKind.ANSWER_FROM_CONTEXT


@dataclass(frozen=True)
class ManifestIntent:
    name: str
    examples: Tuple[str, ...] = ()
    params_schema: Dict[str, Any] = field(default_factory=dict, compare=False)


@dataclass(frozen=True)
class PanelManifest:
    """Third-party panel chat manifest"""
    panel_id: str
    title: str
    version: str = "1.0"
    intents: Tuple[ManifestIntent, ...] = ()


CORE_VOCABULARY: Tuple[CommandDef, ...] = (
    CommandDef(
        phrases=('quick links', 'quicklinks', 'quick link', 'quicklink'),
        label='Quick Links',
        action_kind=ActionKind.OPEN_PANEL,
        intent_name='show_quick_links',
    ),
    CommandDef(
        phrases=('recent', 'recents', 'recent items', 'recently opened', 'open recent',
                 'show recent', 'list recent', 'view recent'),
        label='Recent',
        action_kind=ActionKind.OPEN_PANEL,
        intent_name='panel_intent',
        panel_id='recent',
    ),
    CommandDef(
        phrases=('workspaces', 'workspace', 'list workspaces', 'my workspaces', 'show workspaces'),
        label='Workspaces',
        action_kind=ActionKind.NAVIGATE,
        intent_name='list_workspaces',
    ),
    CommandDef(
        phrases=('dashboard', 'go to dashboard', 'back to dashboard', 'home dashboard'),
        label='Dashboard',
        action_kind=ActionKind.NAVIGATE,
        intent_name='go_to_dashboard',
    ),
    CommandDef(
        phrases=('home', 'go home', 'back home', 'main'),
        label='Home',
        action_kind=ActionKind.NAVIGATE,
        intent_name='go_home',
    ),
    CommandDef(
        phrases=('create workspace', 'new workspace', 'make workspace', 'add workspace'),
        label='Create Workspace',
        action_kind=ActionKind.NAVIGATE,
        intent_name='create_workspace',
    ),
    CommandDef(
        phrases=('where am i', 'current location', 'location'),
        label='Where am I?',
        action_kind=ActionKind.ANSWER_FROM_CONTEXT,
        intent_name='location_info',
    ),
    CommandDef(
        phrases=('what did i do', 'last action', 'what did i just do', 'what happened'),
        label='Last Action',
        action_kind=ActionKind.ANSWER_FROM_CONTEXT,
        intent_name='last_action',
    ),
)


def title_phrases(title: str) -> List[str]:
    """Bare title, normalized title and the common verb/possessive variants"""
    lower = title.lower().strip()
    candidates = [
        lower,
        normalize_for_matching(title),
        f"show {lower}",
        f"open {lower}",
        f"view {lower}",
        f"my {lower}",
        f"show my {lower}",
    ]
    phrases: List[str] = []
    for phrase in candidates:
        if phrase and phrase not in phrases:
            phrases.append(phrase)
    return phrases


def _quick_links_entry(panel_id: str, badge: str) -> CommandDef:
    badge_lower = badge.lower()
    return CommandDef(
        phrases=(f"quick links {badge_lower}", f"quick link {badge_lower}",
                 f"quicklinks {badge_lower}", f"links {badge_lower}",
                 f"show quick links {badge_lower}", f"open quick links {badge_lower}"),
        label=f"Quick Links {badge.upper()}",
        action_kind=ActionKind.OPEN_PANEL,
        intent_name='panel_intent',
        panel_id=panel_id,
    )


def _manifest_entry(manifest: PanelManifest) -> CommandDef:
    phrases = title_phrases(manifest.title)
    for intent in manifest.intents:
        for example in intent.examples:
            cleaned = _LEADING_VERB.sub('', example.lower()).strip()
            if cleaned and cleaned not in phrases:
                phrases.append(cleaned)
    return CommandDef(
        phrases=tuple(phrases),
        label=manifest.title,
        action_kind=ActionKind.OPEN_PANEL,
        intent_name='panel_intent',
        panel_id=manifest.panel_id,
    )


@lru_cache(maxsize=128)
def _build(core: Tuple[CommandDef, ...],
           visible_panels: Tuple[Tuple[str, Optional[str]], ...],
           manifests: Tuple[PanelManifest, ...]) -> Tuple[CommandDef, ...]:
    vocabulary = list(core)
    covered = {c.panel_id for c in core if c.panel_id}

    for panel_id, title in visible_panels:
        if panel_id in covered:
            continue
        match = QUICK_LINKS_PATTERN.match(panel_id)
        if match:
            vocabulary.append(_quick_links_entry(panel_id, match.group(1)))
            covered.add(panel_id)
        elif title:
            vocabulary.append(CommandDef(
                phrases=tuple(title_phrases(title)),
                label=title,
                action_kind=ActionKind.OPEN_PANEL,
                intent_name='panel_intent',
                panel_id=panel_id,
            ))
            covered.add(panel_id)

    for manifest in manifests:
        if manifest.panel_id in BUILTIN_PANEL_IDS or manifest.panel_id.startswith('quick-links-'):
            continue
        if manifest.panel_id in covered:
            continue
        covered.add(manifest.panel_id)
        vocabulary.append(_manifest_entry(manifest))

    logger.debug(f"Built vocabulary with {len(vocabulary)} entries")
    return tuple(vocabulary)


def _panel_key(panel: Any) -> Tuple[str, Optional[str]]:
    if isinstance(panel, str):
        return (panel, None)
    if isinstance(panel, (tuple, list)):
        return (panel[0], panel[1] if len(panel) > 1 else None)
    return (panel.id, getattr(panel, 'title', None))


def build_vocabulary(core: Iterable[CommandDef] = CORE_VOCABULARY,
                     visible_panels: Optional[Iterable[Any]] = None,
                     manifests: Optional[Iterable[PanelManifest]] = None) -> List[CommandDef]:
    """
    Build the merged command vocabulary.

    Args:
        core: Static command entries
        visible_panels: Panel ids, (id, title) pairs or widget summaries
        manifests: Parsed panel manifests

    Returns:
        Vocabulary entries; identical inputs give identical output and order
    """
    return list(_build(
        tuple(core),
        tuple(_panel_key(p) for p in visible_panels or ()),
        tuple(manifests or ())
    ))


def parse_manifest(data: Dict[str, Any]) -> Optional[PanelManifest]:
    """
    Parse a manifest dict. Returns None for incompatible versions.

    Raises:
        ManifestError: If required fields are missing or malformed
    """
    panel_id = data.get('panelId')
    title = data.get('title')
    if not isinstance(panel_id, str) or not isinstance(title, str) or not panel_id or not title.strip():
        raise ManifestError(f"Manifest missing panelId or title: {data!r}")

    version = str(data.get('version') or '1.0')
    if version.split('.')[0] != SUPPORTED_MANIFEST_MAJOR:
        logger.warning(f"Ignoring manifest {panel_id}: unsupported version {version}")
        return None

    intents = []
    for raw in data.get('intents') or []:
        if not isinstance(raw, dict) or not isinstance(raw.get('name'), str) or not raw['name']:
            raise ManifestError(f"Manifest {panel_id} has a malformed intent: {raw!r}")
        examples = raw.get('examples') or []
        schema = raw.get('paramsSchema') or {}
        if not isinstance(examples, list) or not all(isinstance(e, str) for e in examples):
            raise ManifestError(f"Manifest {panel_id} intent {raw['name']} has non-string examples")
        if not isinstance(schema, dict):
            raise ManifestError(f"Manifest {panel_id} intent {raw['name']} has a malformed paramsSchema")
        intents.append(ManifestIntent(
            name=raw['name'],
            examples=tuple(examples),
            params_schema=dict(schema)
        ))

    return PanelManifest(panel_id=panel_id, title=title, version=version, intents=tuple(intents))


def load_manifests(items: Iterable[Dict[str, Any]]) -> List[PanelManifest]:
    """Parse many manifests, skipping malformed and incompatible ones"""
    manifests = []
    for item in items:
        try:
            manifest = parse_manifest(item)
        except ManifestError as e:
            logger.warning(f"Skipping manifest: {e}")
            continue
        if manifest is not None:
            manifests.append(manifest)
    return manifests
