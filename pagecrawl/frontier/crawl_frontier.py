"""Priority frontier with duplicate suppression for crawl requests.

The frontier:
- Orders candidates by descending priority, FIFO within a priority tier
- Suppresses requests whose canonical URL fingerprint was already accepted
- Assigns crawl depth (seeds at 0, derived requests at parent depth + 1)
- Drops requests that exceed the depth limit or fail the URL filter
- Exports and imports its complete state as a versioned snapshot
"""

import heapq
import logging
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

from ..config import FrontierConfig
from ..errors import EmptyFrontierError, SnapshotDecodeError
from ..request import CrawlCandidate, CrawlRequest
from ..url_tools import fingerprint, registered_domain
from .snapshot import (
    candidate_from_dict,
    candidate_to_dict,
    decode_state,
    encode_state,
    optional_candidate_from_dict,
)

logger = logging.getLogger(__name__)

# (request, referer_url) -> keep?
UrlFilter = Callable[[CrawlRequest, Optional[str]], bool]

# Heap entries sort on (-priority, sequence); sequences are unique so the
# candidate itself is never compared.
_QueueEntry = Tuple[int, int, CrawlCandidate]


class CrawlFrontier:
    """Ordered, deduplicated queue of crawl candidates."""

    def __init__(self, config: Optional[FrontierConfig] = None, url_filter: Optional[UrlFilter] = None):
        """Initialize an empty frontier.

        Args:
            config: Depth, duplicate and offsite policy
            url_filter: Optional caller predicate; requests it rejects are dropped
        """
        self.config = config or FrontierConfig()
        self.url_filter = url_filter

        self._queue: List[_QueueEntry] = []
        self._seen: Set[str] = set()
        self._next_sequence = 0
        self._current_candidate: Optional[CrawlCandidate] = None

        # Statistics
        self.requests_accepted = 0
        self.requests_dropped = 0

    # =========================================================================
    # Feeding
    # =========================================================================

    def feed_request(self, request: CrawlRequest, is_seed: bool) -> bool:
        """Offer a request to the frontier.

        Dropping a request (duplicate, too deep, filtered) is an expected
        outcome and is only reported through the return value.

        Args:
            request: Request to enqueue
            is_seed: Seeds get depth 0 and no referer; other requests derive
                from the candidate currently being processed

        Returns:
            True if a candidate was enqueued
        """
        parent = None if is_seed else self._current_candidate
        depth = parent.crawl_depth + 1 if parent else 0
        referer = parent.request_url if parent else None

        max_depth = self.config.max_crawl_depth
        if max_depth is not None and depth > max_depth:
            return self._drop(request, f"depth {depth} exceeds max {max_depth}")

        if not self._passes_filters(request, referer, is_seed):
            return self._drop(request, "filtered")

        if self.config.filter_duplicate_requests:
            key = fingerprint(request.url)
            if key in self._seen:
                return self._drop(request, "duplicate")
            self._seen.add(key)

        candidate = CrawlCandidate(crawl_request=request, crawl_depth=depth, referer_url=referer)
        heapq.heappush(self._queue, (-request.priority, self._next_sequence, candidate))
        self._next_sequence += 1
        self.requests_accepted += 1

        logger.debug(f"Enqueued: {request.url} (priority={request.priority}, depth={depth})")
        return True

    def _drop(self, request: CrawlRequest, reason: str) -> bool:
        self.requests_dropped += 1
        logger.debug(f"Dropped {request.url}: {reason}")
        return False

    def _passes_filters(self, request: CrawlRequest, referer: Optional[str], is_seed: bool) -> bool:
        allowed = self.config.allowed_domains
        if allowed or (self.config.filter_offsite_requests and referer and not is_seed):
            domain = registered_domain(request.url)
            if allowed and domain not in allowed:
                return False
            if self.config.filter_offsite_requests and referer and not is_seed:
                if domain != registered_domain(referer):
                    return False

        if self.url_filter is not None and not self.url_filter(request, referer):
            return False

        return True

    # =========================================================================
    # Consuming
    # =========================================================================

    def has_next_candidate(self) -> bool:
        return bool(self._queue)

    def get_next_candidate(self) -> CrawlCandidate:
        """Remove and return the highest-priority, earliest-inserted candidate.

        The returned candidate becomes the parent of requests fed afterwards.

        Raises:
            EmptyFrontierError: if there are no candidates
        """
        if not self._queue:
            raise EmptyFrontierError("The crawl frontier is empty")

        _, _, candidate = heapq.heappop(self._queue)
        self._current_candidate = candidate
        return candidate

    @property
    def current_candidate(self) -> Optional[CrawlCandidate]:
        return self._current_candidate

    def size(self) -> int:
        return len(self._queue)

    def seen_count(self) -> int:
        return len(self._seen)

    def __len__(self) -> int:
        return len(self._queue)

    # =========================================================================
    # Persistence
    # =========================================================================

    def to_state(self) -> Dict[str, Any]:
        return {
            "next_sequence": self._next_sequence,
            "current_candidate": (
                candidate_to_dict(self._current_candidate) if self._current_candidate else None
            ),
            "queue": [
                dict(candidate_to_dict(candidate), sequence=sequence)
                for _, sequence, candidate in sorted(self._queue, key=lambda e: (e[0], e[1]))
            ],
            "seen": sorted(self._seen),
        }

    def export_state(self) -> bytes:
        """Serialize queue, seen fingerprints and depth bookkeeping to snapshot bytes."""
        return encode_state(self.to_state())

    @classmethod
    def from_state(
        cls,
        data: bytes,
        config: Optional[FrontierConfig] = None,
        url_filter: Optional[UrlFilter] = None,
    ) -> 'CrawlFrontier':
        """Rebuild a frontier from snapshot bytes.

        Raises:
            SnapshotDecodeError: if the snapshot is malformed
            SnapshotVersionError: if the snapshot version is unsupported
        """
        document = decode_state(data)
        frontier = cls(config, url_filter)

        try:
            next_sequence = document["next_sequence"]
            raw_queue = document["queue"]
            raw_seen = document["seen"]
        except KeyError as e:
            raise SnapshotDecodeError(f"Snapshot is missing field {e}") from e

        if isinstance(next_sequence, bool) or not isinstance(next_sequence, int) or next_sequence < 0:
            raise SnapshotDecodeError(f"Invalid next_sequence: {next_sequence!r}")
        if not isinstance(raw_queue, list) or not isinstance(raw_seen, list):
            raise SnapshotDecodeError("Snapshot queue and seen set must be lists")
        if not all(isinstance(key, str) for key in raw_seen):
            raise SnapshotDecodeError("Snapshot seen set must contain strings")

        queue: List[_QueueEntry] = []
        sequences: Set[int] = set()
        for raw in raw_queue:
            candidate = candidate_from_dict(raw)
            sequence = raw.get("sequence")
            if (isinstance(sequence, bool) or not isinstance(sequence, int)
                    or sequence < 0 or sequence >= next_sequence or sequence in sequences):
                raise SnapshotDecodeError(f"Invalid queue sequence: {sequence!r}")
            sequences.add(sequence)
            queue.append((-candidate.priority, sequence, candidate))
        heapq.heapify(queue)

        frontier._queue = queue
        frontier._seen = set(raw_seen)
        frontier._next_sequence = next_sequence
        frontier._current_candidate = optional_candidate_from_dict(document.get("current_candidate"))

        logger.info(
            f"Crawl frontier restored: "
            f"{len(frontier._queue)} candidates in queue, "
            f"{len(frontier._seen)} fingerprints seen"
        )
        return frontier

    def save(self, path: str) -> None:
        """Write the snapshot to disk atomically (temp file + rename)."""
        target = Path(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = target.with_suffix(target.suffix + '.tmp')

        tmp_path.write_bytes(self.export_state())
        tmp_path.replace(target)

        logger.info(f"Persisted frontier with {len(self._queue)} candidates to {target}")

    @classmethod
    def load(
        cls,
        path: str,
        config: Optional[FrontierConfig] = None,
        url_filter: Optional[UrlFilter] = None,
    ) -> 'CrawlFrontier':
        return cls.from_state(Path(path).read_bytes(), config, url_filter)
