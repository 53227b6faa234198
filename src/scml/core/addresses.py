"""
Logical addresses and content hash keys.

A logical address names a file the way a human sees it
(``server/share/DataLib/PKG001/install.ps1``); the content hash key names
where its bytes really live (``FileLib/9F8A/9F8A1C2D``).
"""

import re
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Union

from scml.infrastructure.remote_store import CorruptDataError, join_remote_path

DATA_LIBRARY_DIR = "DataLib"
FILE_LIBRARY_DIR = "FileLib"
PACKAGE_LIBRARY_DIR = "PkgLib"
LIBRARY_MARKER_DIRS = (DATA_LIBRARY_DIR, FILE_LIBRARY_DIR, PACKAGE_LIBRARY_DIR)

SIDECAR_SUFFIX = ".INI"
SHARD_LENGTH = 4

_HASH_TOKEN = re.compile(r"^[A-Za-z0-9]+$")


@dataclass(frozen=True)
class LogicalFileAddress:
    """
    Human-readable location of a file in a content library.

    Attributes:
        server: Target label (host name or address)
        share: Share the library was found on
        relative_path: Share-relative path, forward-slash separated
    """

    server: str
    share: str
    relative_path: str

    @classmethod
    def parse(cls, text: str) -> "LogicalFileAddress":
        """
        Parse an inventory line.

        Accepts ``server/share/path`` as well as UNC form
        (``\\\\server\\share\\path``) and mixed separators.

        Raises:
            CorruptDataError: If the line has fewer than three segments
        """
        normalized = text.strip().replace("\\", "/")
        parts = [p for p in normalized.split("/") if p]
        if len(parts) < 3:
            raise CorruptDataError(f"Malformed logical address: {text!r}")
        return cls(server=parts[0], share=parts[1], relative_path="/".join(parts[2:]))

    def __str__(self) -> str:
        return f"{self.server}/{self.share}/{self.relative_path}"

    @property
    def key(self) -> str:
        """Case-insensitive identity used for deduplication."""
        return str(self).casefold()

    @property
    def unc(self) -> str:
        relative = self.relative_path.replace("/", "\\")
        return f"\\\\{self.server}\\{self.share}\\{relative}"

    @property
    def name(self) -> str:
        return self.relative_path.rsplit("/", 1)[-1]

    @property
    def parent(self) -> str:
        head, _, _ = self.relative_path.rpartition("/")
        return head

    @property
    def extension(self) -> str:
        """Lower-case extension without the dot, or empty string."""
        name = self.name
        if "." not in name.strip("."):
            return ""
        return name.rsplit(".", 1)[-1].lower()

    def sidecar_path(self, suffix: str = SIDECAR_SUFFIX) -> str:
        """Share-relative path of the metadata sidecar for this file."""
        return f"{self.relative_path}{suffix}"

    @property
    def library_root(self) -> str:
        """
        Share-relative directory holding DataLib/FileLib/PkgLib.

        Empty when the share itself is the library root.
        """
        segments = self.relative_path.split("/")
        for index, segment in enumerate(segments[:-1]):
            if segment.lower() == DATA_LIBRARY_DIR.lower():
                return "/".join(segments[:index])
        return ""


@dataclass(frozen=True)
class ContentHashKey:
    """Opaque alphanumeric token naming a file's physical content."""

    value: str

    def __post_init__(self) -> None:
        if not _HASH_TOKEN.match(self.value or ""):
            raise ValueError(f"Invalid content hash: {self.value!r}")

    def __str__(self) -> str:
        return self.value

    @property
    def shard(self) -> str:
        """Prefix used as the FileLib shard directory."""
        return self.value[:SHARD_LENGTH]

    def physical_path(self, library_root: str = "") -> str:
        """Share-relative path of the content blob."""
        return join_remote_path(library_root, FILE_LIBRARY_DIR, self.shard, self.value)

    def local_name(self, original_name: str, preserve_name: bool = False) -> str:
        """Local file name for a retrieved copy."""
        if preserve_name:
            return original_name
        return f"{self.shard}-{original_name}"


def normalize_extensions(extensions: Iterable[str]) -> frozenset[str]:
    """Lower-case extensions with leading dots and blanks removed."""
    return frozenset(
        e.strip().lstrip(".").lower() for e in extensions if e and e.strip().lstrip(".")
    )


def matches_extensions(
    target: Union[LogicalFileAddress, str],
    extensions: Iterable[str],
) -> bool:
    """
    Check a file against an extension filter.

    An empty filter matches everything. Comparison is case-insensitive.
    """
    wanted = extensions if isinstance(extensions, frozenset) else normalize_extensions(extensions)
    if not wanted:
        return True
    if isinstance(target, LogicalFileAddress):
        extension = target.extension
    else:
        name = target.replace("\\", "/").rsplit("/", 1)[-1]
        extension = name.rsplit(".", 1)[-1].lower() if "." in name.strip(".") else ""
    return extension in wanted
