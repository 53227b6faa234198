"""
Sensitivity rules module for SCML.

Declarative rule table, immutable registry and the engine that scores files
against it.
"""

from .definitions import DEFAULT_RULE_DEFINITIONS, TEXT_FILE_EXTENSIONS
from .engine import (
    MASK,
    SensitivityRuleEngine,
    content_score,
    generate_report,
    mask_secret,
    overall_risk,
)
from .models import (
    DEFAULT_MAX_CONTENT_BYTES,
    MatchResult,
    MatchScope,
    RuleMatchSummary,
    SensitivityReport,
    Severity,
    SeverityFindings,
    SnafflerRule,
)
from .registry import RuleRegistry, get_default_rule_registry

__all__ = [
    # Models
    "Severity",
    "MatchScope",
    "SnafflerRule",
    "MatchResult",
    "RuleMatchSummary",
    "SeverityFindings",
    "SensitivityReport",
    "DEFAULT_MAX_CONTENT_BYTES",
    # Rules
    "DEFAULT_RULE_DEFINITIONS",
    "TEXT_FILE_EXTENSIONS",
    "RuleRegistry",
    "get_default_rule_registry",
    # Engine
    "SensitivityRuleEngine",
    "generate_report",
    "overall_risk",
    "content_score",
    "mask_secret",
    "MASK",
]
