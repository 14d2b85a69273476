"""Versioned binary snapshot codec for frontier state.

Layout::

    b"PCFS" | version (1 byte) | zstd(UTF-8 JSON document)

The JSON document carries ``schema_version`` again so that a payload lifted
out of its envelope is still self-describing. Keys that a reader does not know
are ignored, which lets newer writers add fields without breaking older
readers of the same version.
"""

import json
from typing import Any, Dict, Optional

import zstandard as zstd

from ..errors import SnapshotDecodeError, SnapshotError, SnapshotVersionError
from ..request import CrawlCandidate, CrawlRequest

MAGIC = b"PCFS"
SCHEMA_VERSION = 1

_HEADER_SIZE = len(MAGIC) + 1


def encode_state(state: Dict[str, Any]) -> bytes:
    """Serialize a frontier state document into snapshot bytes.

    Args:
        state: JSON-compatible state document

    Returns:
        Snapshot bytes

    Raises:
        SnapshotError: if the state contains values JSON cannot represent
    """
    document = dict(state, schema_version=SCHEMA_VERSION)
    try:
        payload = json.dumps(document, sort_keys=True, separators=(",", ":")).encode("utf-8")
    except (TypeError, ValueError) as e:
        raise SnapshotError(f"Frontier state is not serializable: {e}") from e

    compressor = zstd.ZstdCompressor(level=10)
    return MAGIC + bytes([SCHEMA_VERSION]) + compressor.compress(payload)


def decode_state(data: bytes) -> Dict[str, Any]:
    """Parse snapshot bytes back into a state document.

    Raises:
        SnapshotDecodeError: if the data is not a well-formed snapshot
        SnapshotVersionError: if the snapshot uses an unknown schema version
    """
    if not isinstance(data, (bytes, bytearray, memoryview)):
        raise SnapshotDecodeError("Snapshot data must be bytes")
    data = bytes(data)

    if len(data) < _HEADER_SIZE or not data.startswith(MAGIC):
        raise SnapshotDecodeError("Not a frontier snapshot (bad magic header)")

    version = data[len(MAGIC)]
    if version != SCHEMA_VERSION:
        raise SnapshotVersionError(version)

    try:
        payload = zstd.ZstdDecompressor().decompress(data[_HEADER_SIZE:])
    except zstd.ZstdError as e:
        raise SnapshotDecodeError(f"Snapshot payload is corrupt: {e}") from e

    try:
        document = json.loads(payload.decode("utf-8"))
    except (UnicodeDecodeError, ValueError) as e:
        raise SnapshotDecodeError(f"Snapshot payload is not valid JSON: {e}") from e

    if not isinstance(document, dict):
        raise SnapshotDecodeError("Snapshot document must be a mapping")
    if document.get("schema_version") != SCHEMA_VERSION:
        raise SnapshotVersionError(document.get("schema_version"))

    return document


# =========================================================================
# Candidate (de)serialization
# =========================================================================

def candidate_to_dict(candidate: CrawlCandidate) -> Dict[str, Any]:
    request = candidate.crawl_request
    return {
        "url": request.url,
        "priority": request.priority,
        "metadata": request.metadata,
        "depth": candidate.crawl_depth,
        "referer": candidate.referer_url,
    }


def candidate_from_dict(raw: Any) -> CrawlCandidate:
    if not isinstance(raw, dict):
        raise SnapshotDecodeError(f"Invalid candidate entry: {raw!r}")

    try:
        request = CrawlRequest(
            url=raw["url"],
            priority=raw.get("priority", 0),
            metadata=raw.get("metadata"),
        )
        depth = raw.get("depth", 0)
        referer = raw.get("referer")
    except (KeyError, ValueError) as e:
        raise SnapshotDecodeError(f"Invalid candidate entry: {e}") from e

    if isinstance(depth, bool) or not isinstance(depth, int) or depth < 0:
        raise SnapshotDecodeError(f"Invalid candidate depth: {depth!r}")
    if referer is not None and not isinstance(referer, str):
        raise SnapshotDecodeError(f"Invalid candidate referer: {referer!r}")

    return CrawlCandidate(crawl_request=request, crawl_depth=depth, referer_url=referer)


def optional_candidate_from_dict(raw: Any) -> Optional[CrawlCandidate]:
    if raw is None:
        return None
    return candidate_from_dict(raw)
