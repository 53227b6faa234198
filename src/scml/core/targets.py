"""
Target parsing.

A target is written ``[[domain\\]user[:password]@]host``; the credential part
is optional and falls back to whatever the command line or config supplies.
"""

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from scml.infrastructure.remote_store import Credentials

_TARGET_PATTERN = re.compile(
    r"^(?:(?:(?P<domain>[^\\@:]+)\\)?(?P<username>[^@:]+)(?::(?P<password>[^@]+))?@)?"
    r"(?P<address>.+)$"
)


@dataclass(frozen=True)
class Target:
    """A host to audit plus any credentials embedded in the target string."""

    address: str
    username: Optional[str] = None
    password: Optional[str] = None
    domain: Optional[str] = None

    def credentials(self, fallback: Optional[Credentials] = None) -> Credentials:
        """Merge embedded credentials over a fallback set."""
        fallback = fallback or Credentials()
        if self.username is None:
            return fallback
        return Credentials(
            username=self.username,
            password=self.password if self.password is not None else fallback.password,
            domain=self.domain if self.domain is not None else fallback.domain,
            use_current_user=False,
        )


def parse_target(text: str) -> Target:
    """Parse one target string."""
    text = text.strip()
    match = _TARGET_PATTERN.match(text)
    if match is None:
        return Target(address=text)
    return Target(
        address=match.group("address"),
        username=match.group("username"),
        password=match.group("password"),
        domain=match.group("domain"),
    )


def read_targets_file(path: Path | str) -> list[Target]:
    """Read targets one per line, skipping blanks and ``#`` comments."""
    targets = []
    for line in Path(path).read_text(encoding="utf-8").splitlines():
        stripped = line.strip()
        if stripped and not stripped.startswith("#"):
            targets.append(parse_target(stripped))
    return targets
