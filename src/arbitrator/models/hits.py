"""
Data models for search hits and classification state.

HitRecord and DomainHit are read-only views of rows returned by the
first-stage BLASTP search and the Batch CD-Search confirmation. A
SynonymousGroup carries the write-once call for a set of interchangeable
identifiers, and a CallSet holds the disjoint positive and negative calls
accumulated during a run.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from typing import ClassVar

from pydantic import BaseModel, Field

from arbitrator.core.constants import MIN_HIT_FIELDS
from arbitrator.core.exceptions import ClassificationError


class HitRecord(BaseModel):
    """
    Single row of first-stage tabular BLASTP output.

    NCBI returns 13 whitespace-separated columns:
    query acc.ver, subject acc.ver, % identity, alignment length, mismatches,
    gap opens, q. start, q. end, s. start, s. end, evalue, bit score, % positives

    Attributes:
        query_id: Seed accession the search was run for
        subject_id: Subject accession (one per line under current settings)
        percent_identity: Percent identity (0-100)
        alignment_length: Alignment length in residues
        expect_value: Expectation value
        bit_score: Bit score
        percent_positives: Percent positive-scoring positions
    """

    query_id: str = Field(description="Query accession (seed)")
    subject_id: str = Field(description="Subject accession")
    percent_identity: float = Field(ge=0, le=100, description="Percent identity")
    alignment_length: int = Field(ge=0, description="Alignment length")
    expect_value: float = Field(ge=0, description="Expectation value")
    bit_score: float = Field(ge=0, description="Bit score")
    percent_positives: float = Field(ge=0, le=100, description="Percent positives")

    model_config = {"frozen": True}

    @classmethod
    def from_line(cls, line: str) -> HitRecord:
        """
        Parse one line of tabular output.

        Args:
            line: Whitespace-delimited BLAST output line

        Returns:
            Parsed HitRecord

        Raises:
            ValueError: If fewer than 13 fields are present or a number
                cannot be parsed
        """
        fields = line.split()
        if len(fields) < MIN_HIT_FIELDS:
            msg = f"Expected at least {MIN_HIT_FIELDS} fields in hit line, got {len(fields)}"
            raise ValueError(msg)

        return cls(
            query_id=fields[0],
            subject_id=fields[1],
            percent_identity=float(fields[2]),
            alignment_length=int(fields[3]),
            expect_value=float(fields[10]),
            bit_score=float(fields[11]),
            percent_positives=float(fields[12]),
        )


class DomainHit(BaseModel):
    """
    Single hit from a Batch CD-Search confirmation job.

    Attributes:
        query_index: 1-based position of the query within the submitted batch
        query_id: Query label as reported, e.g. "Q#1 - >WP_012345.1"
        hit_type: "Specific", "Non-specific", "Superfamily" or "Multi-dom"
        pssm_id: PSSM identifier of the matched domain model
        accession: Domain accession, e.g. cd02040
        short_name: Short domain name
        expect_value: Expectation value of the domain hit
        bit_score: Bit score of the domain hit
    """

    RETAINED_HIT_TYPES: ClassVar[frozenset[str]] = frozenset({"specific", "non-specific"})

    query_index: int = Field(ge=1, description="1-based query position in batch")
    query_id: str = Field(description="Query label")
    hit_type: str = Field(description="CD-Search hit type")
    pssm_id: str = Field(default="", description="PSSM identifier")
    accession: str = Field(description="Domain accession")
    short_name: str = Field(default="", description="Short domain name")
    expect_value: float = Field(ge=0, description="Expectation value")
    bit_score: float = Field(default=0.0, description="Bit score")

    model_config = {"frozen": True}


class SynonymousGroup:
    """
    Identifiers with an identical first-stage hit profile.

    All members are equivalent for classification, so only the first
    member (the representative) is sent to the confirmation search. The
    call is write-once: classifying again with a different outcome raises
    ClassificationError.
    """

    __slots__ = ("_called_positive", "_is_called", "_members", "expect_value", "superiority")

    def __init__(self, members: Iterable[str], expect_value: float | None = None) -> None:
        self._members: tuple[str, ...] = tuple(members)
        if not self._members:
            msg = "A synonymous group needs at least one member"
            raise ValueError(msg)
        self.expect_value = expect_value
        self.superiority: float | None = None
        self._is_called = False
        self._called_positive = False

    @property
    def members(self) -> tuple[str, ...]:
        return self._members

    @property
    def representative(self) -> str:
        """First member, submitted on behalf of the whole group."""
        return self._members[0]

    @property
    def is_called(self) -> bool:
        return self._is_called

    @property
    def called_positive(self) -> bool:
        return self._called_positive

    def classify(self, positive: bool, superiority: float | None = None) -> None:
        """
        Set the group's call.

        Args:
            positive: True for a positive call
            superiority: Log-scale margin that decided the call, if any

        Raises:
            ClassificationError: If the group was already called differently
        """
        if self._is_called:
            if self._called_positive != positive:
                raise ClassificationError(
                    f"Group {self.representative} is already called "
                    f"{self.call_label}; refusing to change the call",
                )
            return
        self._is_called = True
        self._called_positive = positive
        self.superiority = superiority

    @property
    def call_label(self) -> str:
        if not self._is_called:
            return "uncalled"
        return "positive" if self._called_positive else "negative"

    def __len__(self) -> int:
        return len(self._members)

    def __iter__(self) -> Iterator[str]:
        return iter(self._members)

    def __contains__(self, identifier: object) -> bool:
        return identifier in self._members

    def __repr__(self) -> str:
        return (
            f"SynonymousGroup({len(self._members)} member(s): {' '.join(self._members)}, "
            f"expect={self.expect_value}, call={self.call_label})"
        )


class CallSet:
    """
    Disjoint positive and negative identifier sets.

    Grows monotonically during a run. Adding an identifier to one side
    while it is on the other raises ClassificationError, so
    positive & negative is empty at every observation point.
    """

    def __init__(
        self,
        positive: Iterable[str] = (),
        negative: Iterable[str] = (),
    ) -> None:
        self._positive: set[str] = set()
        self._negative: set[str] = set()
        self.add_positive(positive)
        self.add_negative(negative)

    @property
    def positive(self) -> frozenset[str]:
        return frozenset(self._positive)

    @property
    def negative(self) -> frozenset[str]:
        return frozenset(self._negative)

    def add_positive(self, identifiers: Iterable[str]) -> None:
        identifiers = set(identifiers)
        conflicts = identifiers & self._negative
        if conflicts:
            raise ClassificationError(
                f"Cannot call {_preview(conflicts)} positive: already called negative",
                suggestion="Remove the conflicting identifiers from the checkpoint or ignore files.",
            )
        self._positive |= identifiers

    def add_negative(self, identifiers: Iterable[str]) -> None:
        identifiers = set(identifiers)
        conflicts = identifiers & self._positive
        if conflicts:
            raise ClassificationError(
                f"Cannot call {_preview(conflicts)} negative: already called positive",
                suggestion="Remove the conflicting identifiers from the checkpoint or ignore files.",
            )
        self._negative |= identifiers

    def record(self, group: SynonymousGroup) -> None:
        """Add every member of a called group to the matching side."""
        if not group.is_called:
            raise ClassificationError(f"Group {group.representative} has not been called")
        if group.called_positive:
            self.add_positive(group.members)
        else:
            self.add_negative(group.members)

    def lookup(self, identifier: str) -> bool | None:
        """Return True/False for a known call, None if the identifier is unknown."""
        if identifier in self._positive:
            return True
        if identifier in self._negative:
            return False
        return None

    def __len__(self) -> int:
        return len(self._positive) + len(self._negative)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, CallSet):
            return NotImplemented
        return self._positive == other._positive and self._negative == other._negative

    def __repr__(self) -> str:
        return f"CallSet(positive={len(self._positive)}, negative={len(self._negative)})"


def _preview(identifiers: set[str], limit: int = 5) -> str:
    shown = ", ".join(sorted(identifiers)[:limit])
    if len(identifiers) > limit:
        shown += f"... and {len(identifiers) - limit} more"
    return shown
