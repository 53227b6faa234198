"""
Immutable registry of sensitivity rules.
"""

import logging
from collections.abc import Iterable, Iterator
from typing import Optional

from scml.core.rules.definitions import DEFAULT_RULE_DEFINITIONS
from scml.core.rules.models import MatchScope, Severity, SnafflerRule

logger = logging.getLogger(__name__)


class RuleRegistry:
    """Read-only collection of rules, pre-split by scope."""

    def __init__(self, rules: Iterable[SnafflerRule]):
        rules = tuple(rules)
        names = [r.name for r in rules]
        duplicates = {n for n in names if names.count(n) > 1}
        if duplicates:
            raise ValueError(f"Duplicate rule names: {sorted(duplicates)}")

        self._rules = rules
        self._by_name = {r.name: r for r in rules}
        self._path_rules = tuple(r for r in rules if not r.scope.is_content)
        self._content_rules = tuple(r for r in rules if r.scope.is_content)

    @classmethod
    def from_definitions(cls, definitions: Iterable[tuple]) -> "RuleRegistry":
        """Build a registry from ``(name, description, scope, patterns, severity, score)`` rows."""
        rules = []
        for name, description, scope, patterns, severity, base_score in definitions:
            rules.append(
                SnafflerRule(
                    name=name,
                    description=description,
                    scope=MatchScope(scope),
                    patterns=tuple(patterns),
                    severity=Severity(severity),
                    base_score=base_score,
                )
            )
        return cls(rules)

    @property
    def rules(self) -> tuple[SnafflerRule, ...]:
        return self._rules

    @property
    def path_rules(self) -> tuple[SnafflerRule, ...]:
        """Rules evaluated against name, extension or path."""
        return self._path_rules

    @property
    def content_rules(self) -> tuple[SnafflerRule, ...]:
        """Rules evaluated line by line against file content."""
        return self._content_rules

    def get(self, name: str) -> Optional[SnafflerRule]:
        return self._by_name.get(name)

    def by_severity(self, severity: Severity) -> tuple[SnafflerRule, ...]:
        return tuple(r for r in self._rules if r.severity is severity)

    def __iter__(self) -> Iterator[SnafflerRule]:
        return iter(self._rules)

    def __len__(self) -> int:
        return len(self._rules)


_default_registry: Optional[RuleRegistry] = None


def get_default_rule_registry() -> RuleRegistry:
    """Return the process-wide registry of built-in rules, building it once."""
    global _default_registry
    if _default_registry is None:
        _default_registry = RuleRegistry.from_definitions(DEFAULT_RULE_DEFINITIONS)
        logger.debug(f"Loaded {len(_default_registry)} sensitivity rules")
    return _default_registry
