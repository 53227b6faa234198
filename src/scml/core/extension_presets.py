"""
Named extension presets for targeted retrieval and analysis.

Presets are loaded from extension_presets.yaml next to this module. Anything
that is not a preset name is treated as a custom extension list separated by
commas, spaces or semicolons.
"""

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import yaml

from scml.core.addresses import normalize_extensions

logger = logging.getLogger(__name__)

_PRESETS_PATH = Path(__file__).parent / "extension_presets.yaml"

_presets_cache: dict[str, "ExtensionPreset"] | None = None

_SEPARATORS = re.compile(r"[,;\s]+")


@dataclass(frozen=True)
class ExtensionPreset:
    """A named group of file extensions."""

    key: str
    name: str
    description: str
    sensitivity: str
    extensions: tuple[str, ...]
    patterns: tuple[str, ...] = field(default_factory=tuple)


def load_presets() -> dict[str, ExtensionPreset]:
    """Load and cache presets keyed by their lower-case identifier."""
    global _presets_cache

    if _presets_cache is not None:
        return _presets_cache

    try:
        raw = yaml.safe_load(_PRESETS_PATH.read_text(encoding="utf-8")) or {}
    except (OSError, yaml.YAMLError) as e:
        logger.error(f"Failed to load extension presets: {e}")
        raw = {}

    presets = {}
    for key, entry in raw.items():
        extensions = tuple(sorted(normalize_extensions(str(e) for e in entry.get("extensions", []))))
        presets[key.lower()] = ExtensionPreset(
            key=key.lower(),
            name=entry.get("name", key),
            description=entry.get("description", ""),
            sensitivity=entry.get("sensitivity", "green"),
            extensions=extensions,
            patterns=tuple(entry.get("patterns", [])),
        )
    _presets_cache = presets
    return presets


def get_preset(name: str) -> Optional[ExtensionPreset]:
    """Look up a preset by key or display name, case-insensitively."""
    lowered = name.strip().lower()
    presets = load_presets()
    if lowered in presets:
        return presets[lowered]
    for preset in presets.values():
        if preset.name.lower() == lowered:
            return preset
    return None


def resolve_extensions(value: Optional[str]) -> frozenset[str]:
    """
    Turn a preset name or custom list into a normalized extension set.

    An empty or missing value means "all extensions" and yields an empty set.
    """
    if not value or not value.strip():
        return frozenset()
    preset = get_preset(value)
    if preset is not None:
        return frozenset(preset.extensions)
    return normalize_extensions(_SEPARATORS.split(value))
