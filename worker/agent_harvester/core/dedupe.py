"""Identity-based deduplication within a batch and across a run."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Set

from agent_harvester.models import AgentRecord

logger = logging.getLogger(__name__)


def dedupe_records(records: Iterable[AgentRecord]) -> List[AgentRecord]:
    """Keep the first record for every identity key, preserving order."""
    seen: Set[str] = set()
    unique: List[AgentRecord] = []
    for record in records:
        key = record.identity_key
        if not key or key in seen:
            continue
        seen.add(key)
        unique.append(record)
    return unique


@dataclass
class RunState:
    """Mutable bookkeeping for one crawl invocation, owned by a single controller."""

    results_wanted: int
    seen_keys: Set[str] = field(default_factory=set)
    enqueued_urls: Set[str] = field(default_factory=set)
    saved: int = 0
    build_id: Optional[str] = None

    @property
    def remaining(self) -> int:
        return max(0, self.results_wanted - self.saved)

    @property
    def budget_exhausted(self) -> bool:
        return self.saved >= self.results_wanted

    def mark_enqueued(self, url: str) -> bool:
        """Record ``url`` as requested; ``False`` when it was already requested."""
        if url in self.enqueued_urls:
            return False
        self.enqueued_urls.add(url)
        return True

    def admit(self, records: Iterable[AgentRecord]) -> List[AgentRecord]:
        """Return unseen records up to the remaining budget and count them as saved.

        First-seen wins: a record whose key was saved earlier is dropped even
        if its fields differ.
        """
        admitted: List[AgentRecord] = []
        for record in records:
            if len(admitted) >= self.remaining:
                break
            key = record.identity_key
            if not key or key in self.seen_keys:
                logger.debug("Skipping already saved agent %s", key)
                continue
            self.seen_keys.add(key)
            admitted.append(record)
        self.saved += len(admitted)
        return admitted
