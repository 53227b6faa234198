"""
Hash resolver.

Maps a logical address to the content hash recorded in its sidecar metadata
file. The hash names the blob under FileLib that holds the actual bytes.
"""

import codecs
import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from scml.core.addresses import SIDECAR_SUFFIX, ContentHashKey, LogicalFileAddress
from scml.infrastructure.remote_store import (
    AccessDeniedError,
    AuthenticationError,
    NotFoundError,
    RemoteStoreError,
    RemoteStoreSession,
)

logger = logging.getLogger(__name__)

# Key is case-insensitive (Hash=, HASH:, HashValue=), the token is not.
_HASH_PATTERN = re.compile(r"(?i:hash\w*)\s*[=:]\s*([A-Za-z0-9]+)")
_SIZE_PATTERN = re.compile(r"^\s*size\s*=\s*(\d+)\s*$", re.IGNORECASE | re.MULTILINE)


class ResolutionStatus(str, Enum):
    """Outcome of resolving one sidecar."""

    RESOLVED = "resolved"
    NOT_FOUND = "not_found"
    CORRUPT = "corrupt"
    ERROR = "error"


@dataclass(frozen=True)
class HashResolution:
    """Result of resolving a logical address to its content hash."""

    address: LogicalFileAddress
    status: ResolutionStatus
    hash_key: Optional[ContentHashKey] = None
    size: Optional[int] = None
    error: Optional[str] = None

    @property
    def resolved(self) -> bool:
        return self.status is ResolutionStatus.RESOLVED

    @property
    def physical_path(self) -> Optional[str]:
        """Share-relative path of the content blob, if resolved."""
        if self.hash_key is None:
            return None
        return self.hash_key.physical_path(self.address.library_root)


def decode_sidecar(data: bytes) -> str:
    """Decode sidecar bytes. Sidecars written by Windows tools are often UTF-16."""
    if data.startswith((codecs.BOM_UTF16_LE, codecs.BOM_UTF16_BE)):
        return data.decode("utf-16", errors="replace")
    return data.decode("utf-8-sig", errors="replace")


def parse_hash(text: str) -> Optional[ContentHashKey]:
    """Return the first ``Hash...=<token>`` value in sidecar text."""
    match = _HASH_PATTERN.search(text)
    if match is None:
        return None
    return ContentHashKey(match.group(1))


def parse_size(text: str) -> Optional[int]:
    match = _SIZE_PATTERN.search(text)
    return int(match.group(1)) if match else None


class HashResolver:
    """Reads sidecars through a session whose content share is already open."""

    def __init__(self, session: RemoteStoreSession, sidecar_suffix: str = SIDECAR_SUFFIX):
        self._session = session
        self._suffix = sidecar_suffix

    def resolve(self, address: LogicalFileAddress) -> HashResolution:
        """
        Resolve one address.

        Missing or unparseable sidecars are logged and reported through the
        returned status; only a rejected logon propagates.
        """
        sidecar = address.sidecar_path(self._suffix)
        try:
            data = self._session.read_file(sidecar)
        except NotFoundError as e:
            logger.warning(f"Sidecar not found for {address}: {e}")
            return HashResolution(address, ResolutionStatus.NOT_FOUND, error=str(e))
        except AuthenticationError as e:
            if not isinstance(e, AccessDeniedError):
                raise
            logger.warning(f"Access denied reading sidecar for {address}: {e}")
            return HashResolution(address, ResolutionStatus.ERROR, error=str(e))
        except (RemoteStoreError, OSError) as e:
            logger.warning(f"Error reading sidecar for {address}: {e}")
            return HashResolution(address, ResolutionStatus.ERROR, error=str(e))

        text = decode_sidecar(data)
        hash_key = parse_hash(text)
        if hash_key is None:
            logger.warning(f"No hash found in sidecar for {address}")
            return HashResolution(address, ResolutionStatus.CORRUPT, error="no hash token")

        logger.debug(f"Resolved {address.name} -> {hash_key}")
        return HashResolution(
            address,
            ResolutionStatus.RESOLVED,
            hash_key=hash_key,
            size=parse_size(text),
        )
