"""
Confirmation-stage classification of synonymous groups.

Groups arrive in first-stage order. A group with a member that already has
a call (from an earlier group, a checkpoint or the ignore set) is called
immediately. The rest are collected into batches; each batch is sent to
Batch CD-Search as one job and every group in it is called by the domain
superiority rule.

Decision rule for the informative hits of one query, in service order:

    no hits, or top hit not to a positive domain   -> negative
    top hit to a positive domain and only hit      -> positive
    otherwise
        e_target = e-value of the top hit
        e_other  = e-value of the first non-positive hit at rank 2 or 3
                   (+inf if both are positive or absent)
        superiority = log10(e_other) - log10(e_target)
        positive iff superiority >= threshold

An e_target of exactly 0 is maximal confidence and always positive.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Collection, Iterable, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol

from arbitrator.core.checkpoint import CheckpointStore
from arbitrator.core.parsers import parse_domain_hits, partition_by_query
from arbitrator.models.config import ArbitratorConfig
from arbitrator.models.hits import CallSet, DomainHit, SynonymousGroup

logger = logging.getLogger(__name__)

# Ranks after the top hit that may supply e_other
COMPETITOR_RANKS = 2


class DomainSearcher(Protocol):
    """Anything that runs one confirmation job for a batch of identifiers."""

    def search_batch(self, queries: Sequence[str]) -> str: ...


class CallSource(str, Enum):
    """Where a group's call came from."""

    KNOWN = "known"
    IGNORED = "ignored"
    CD_SEARCH = "cd-search"


@dataclass(frozen=True)
class CallRecord:
    """One row of the call report."""

    group: str
    members: tuple[str, ...]
    call: str
    source: CallSource
    superiority: float | None = None

    @classmethod
    def from_group(cls, group: SynonymousGroup, source: CallSource) -> CallRecord:
        return cls(
            group=group.representative,
            members=group.members,
            call=group.call_label,
            source=source,
            superiority=group.superiority,
        )

    def as_row(self) -> dict[str, Any]:
        return {
            "group": self.group,
            "members": " ".join(self.members),
            "call": self.call,
            "source": self.source.value,
            "superiority": self.superiority,
        }


def decide(
    hits: Sequence[DomainHit],
    positive_domains: Collection[str],
    threshold: float,
) -> tuple[bool, float | None]:
    """
    Apply the superiority rule to one query's informative hits.

    Args:
        hits: Informative hits in service order
        positive_domains: Accessions of the target domain(s)
        threshold: Minimum superiority for a positive call

    Returns:
        Tuple of (positive, superiority). Superiority is None when the call
        did not need it.
    """
    if not hits or hits[0].accession not in positive_domains:
        return False, None
    if len(hits) == 1:
        return True, None

    e_target = hits[0].expect_value
    e_other = math.inf
    for hit in hits[1 : 1 + COMPETITOR_RANKS]:
        if hit.accession not in positive_domains:
            e_other = hit.expect_value
            break

    if e_target == 0:
        return True, math.inf
    if e_other == 0:
        return False, -math.inf

    superiority = math.log10(e_other) - math.log10(e_target)
    return superiority >= threshold, superiority


class BatchClassifier:
    """
    Calls synonymous groups through the fast path or batched CD-Search jobs.

    The call set is checkpointed before each full batch is sent, after
    each batch is called and once more at the end, so an interrupted run
    loses at most the batch in flight.
    """

    def __init__(
        self,
        config: ArbitratorConfig,
        client: DomainSearcher,
        store: CheckpointStore,
        call_set: CallSet | None = None,
        ignore: Iterable[str] = (),
    ):
        self.positive_domains = config.positive_domains
        self.uninformative_domains = config.uninformative_domains
        self.superiority_threshold = config.superiority_threshold
        self.batch_size = config.batch_size
        self.client = client
        self.store = store
        self.call_set = call_set if call_set is not None else CallSet()
        self.ignore = frozenset(ignore)
        self.batches_sent = 0

    def known_call(self, group: SynonymousGroup) -> tuple[bool, CallSource] | None:
        """Return the call implied by an already-called member, if any."""
        for member in group:
            if member in self.ignore:
                return True, CallSource.IGNORED
            known = self.call_set.lookup(member)
            if known is not None:
                return known, CallSource.KNOWN
        return None

    def classify_groups(self, groups: Iterable[SynonymousGroup]) -> list[CallRecord]:
        """
        Call every group and record the calls.

        Raises:
            RemoteJobFailure: If a confirmation job fails; checkpointed calls are kept
            StuckJobError: If a confirmation job never completes
            ProtocolFormatError: If a CD-Search response is malformed
            ClassificationError: If a call conflicts with an existing one
        """
        records: list[CallRecord] = []
        batch: list[SynonymousGroup] = []
        in_batch: dict[str, SynonymousGroup] = {}
        followers: list[tuple[SynonymousGroup, SynonymousGroup]] = []
        seen = 0

        for group in groups:
            seen += 1
            known = self.known_call(group)
            if known is not None:
                positive, source = known
                group.classify(positive)
                self.call_set.record(group)
                records.append(CallRecord.from_group(group, source))
                logger.debug("Group %d (%s) is known %s", seen, group.representative, group.call_label)
                continue

            leader = next((in_batch[m] for m in group if m in in_batch), None)
            if leader is not None:
                followers.append((group, leader))
                continue

            batch.append(group)
            for member in group:
                in_batch[member] = group
            if len(batch) == self.batch_size:
                self.store.save(self.call_set)
                records.extend(self._classify_batch(batch, followers))
                batch, in_batch, followers = [], {}, []

        if batch:
            records.extend(self._classify_batch(batch, followers))
        self.store.save(self.call_set)

        logger.info(
            "Classified %d group(s) with %d CD-Search batch(es): %d positive, %d negative calls",
            seen,
            self.batches_sent,
            len(self.call_set.positive),
            len(self.call_set.negative),
        )
        return records

    def _classify_batch(
        self,
        batch: list[SynonymousGroup],
        followers: list[tuple[SynonymousGroup, SynonymousGroup]],
    ) -> list[CallRecord]:
        n_members = sum(len(group) for group in batch)
        logger.info(
            "%d positives so far; sending CD-Search batch of %d groups (%d sequences)",
            len(self.call_set.positive),
            len(batch),
            n_members,
        )

        text = self.client.search_batch([group.representative for group in batch])
        self.batches_sent += 1
        hits = parse_domain_hits(text, self.uninformative_domains)
        by_query = partition_by_query(hits, len(batch))

        records: list[CallRecord] = []
        for index, group in enumerate(batch, start=1):
            positive, superiority = decide(
                by_query[index], self.positive_domains, self.superiority_threshold
            )
            group.classify(positive, superiority)
            self.call_set.record(group)
            records.append(CallRecord.from_group(group, CallSource.CD_SEARCH))
            logger.debug(
                "Group %s called %s (superiority=%s)",
                group.representative,
                group.call_label,
                superiority,
            )

        for follower, leader in followers:
            follower.classify(leader.called_positive, leader.superiority)
            self.call_set.record(follower)
            records.append(CallRecord.from_group(follower, CallSource.KNOWN))

        self.store.save(self.call_set)
        return records
