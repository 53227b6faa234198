"""
Core Layer - Addresses, configuration, extension presets, targets and rules.
"""

from scml.core.addresses import (
    DATA_LIBRARY_DIR,
    FILE_LIBRARY_DIR,
    LIBRARY_MARKER_DIRS,
    SIDECAR_SUFFIX,
    ContentHashKey,
    LogicalFileAddress,
    matches_extensions,
    normalize_extensions,
)
from scml.core.config import SCMLConfig, load_config
from scml.core.extension_presets import (
    ExtensionPreset,
    get_preset,
    load_presets,
    resolve_extensions,
)
from scml.core.targets import Target, parse_target, read_targets_file

__all__ = [
    # Addresses
    "LogicalFileAddress",
    "ContentHashKey",
    "normalize_extensions",
    "matches_extensions",
    "DATA_LIBRARY_DIR",
    "FILE_LIBRARY_DIR",
    "LIBRARY_MARKER_DIRS",
    "SIDECAR_SUFFIX",
    # Config
    "SCMLConfig",
    "load_config",
    # Presets
    "ExtensionPreset",
    "get_preset",
    "load_presets",
    "resolve_extensions",
    # Targets
    "Target",
    "parse_target",
    "read_targets_file",
]
