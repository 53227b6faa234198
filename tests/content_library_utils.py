"""Shared helpers for building fake content libraries in tests."""

import hashlib
from pathlib import Path

from hypothesis import strategies as st

from scml.infrastructure.fakes import InMemoryFileStore
from scml.infrastructure.remote_store import RetryConfig

CONTENT_SHARE = "SCCMContentLib$"


def hash_for(name: str) -> str:
    """Deterministic upper-case hex token for a file name."""
    return hashlib.sha1(name.encode("utf-8")).hexdigest().upper()[:16]


def sidecar_text(hash_value: str, size: int) -> str:
    return f"[File]\nHash={hash_value}\nSize={size}\n"


def add_library_file(
    store: InMemoryFileStore,
    package: str,
    name: str,
    data: bytes | str,
    share: str = CONTENT_SHARE,
    root: str = "",
    hash_value: str | None = None,
) -> str:
    """
    Add one logical file with its sidecar and content blob.

    Returns:
        The inventory line for the file
    """
    if isinstance(data, str):
        data = data.encode("utf-8")
    hash_value = hash_value or hash_for(f"{package}/{name}")
    prefix = f"{root}/" if root else ""
    store.add_file(share, f"{prefix}DataLib/{package}/{name}.INI", sidecar_text(hash_value, len(data)))
    store.add_file(share, f"{prefix}FileLib/{hash_value[:4]}/{hash_value}", data)
    return f"{store.server}/{share}/{prefix}DataLib/{package}/{name}"


def write_inventory(path: Path, lines: list[str]) -> Path:
    path.write_text("".join(f"{line}\n" for line in lines), encoding="utf-8")
    return path


def no_sleep_retry(delays: list[float] | None = None) -> RetryConfig:
    """Retry policy that records delays instead of sleeping."""
    recorded = delays if delays is not None else []
    return RetryConfig(sleep=recorded.append)


def populated_store(count: int, extension: str = "ps1") -> tuple[InMemoryFileStore, list[str]]:
    """Store with ``count`` files spread over a few packages."""
    store = InMemoryFileStore(server="srv")
    lines = []
    for index in range(count):
        package = f"PKG{index % 4:05d}"
        lines.append(
            add_library_file(store, package, f"file{index:03d}.{extension}", f"Write-Host {index}\n")
        )
    return store, lines


inventory_segment = st.text(
    alphabet=st.sampled_from("abcdefgABCDEFG0123456789_-."), min_size=1, max_size=8
).filter(lambda s: s.strip(".") != "")


@st.composite
def inventory_line(draw):
    """Generate a plausible inventory line in mixed case."""
    server = draw(st.sampled_from(["srv", "SRV", "dp01", "DP01"]))
    share = draw(st.sampled_from(["SCCMContentLib$", "sccmcontentlib$", "SMS_DP$"]))
    parts = draw(st.lists(inventory_segment, min_size=1, max_size=3))
    return "/".join([server, share, "DataLib", *parts])
