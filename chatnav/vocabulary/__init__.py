"""
Command vocabulary
"""

from .builder import (
    CommandDef, PanelManifest, ManifestIntent, CORE_VOCABULARY,
    build_vocabulary, parse_manifest, load_manifests
)

__all__ = [
    'CommandDef',
    'PanelManifest',
    'ManifestIntent',
    'CORE_VOCABULARY',
    'build_vocabulary',
    'parse_manifest',
    'load_manifests'
]
