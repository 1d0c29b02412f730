"""Unit tests for hit, group and call set models."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from arbitrator.core.exceptions import ClassificationError
from arbitrator.models.hits import CallSet, DomainHit, HitRecord, SynonymousGroup


class TestHitRecord:
    """Tests for parsing first-stage tabular lines."""

    def test_from_line(self):
        line = "P00459.1\tWP_000001.1\t98.5\t290\t4\t0\t1\t290\t1\t290\t1e-150\t500\t99.0"
        hit = HitRecord.from_line(line)
        assert hit.query_id == "P00459.1"
        assert hit.subject_id == "WP_000001.1"
        assert hit.percent_identity == 98.5
        assert hit.alignment_length == 290
        assert hit.expect_value == 1e-150
        assert hit.bit_score == 500.0
        assert hit.percent_positives == 99.0

    def test_from_line_collapses_whitespace(self):
        line = "P00459.1   WP_000001.1  98.5 290 4 0 1 290 1 290   0.0 500 99.0"
        assert HitRecord.from_line(line).expect_value == 0.0

    def test_too_few_fields(self):
        with pytest.raises(ValueError, match="at least 13"):
            HitRecord.from_line("P00459.1\tWP_000001.1\t98.5")

    def test_is_frozen(self):
        line = "P00459.1\tWP_000001.1\t98.5\t290\t4\t0\t1\t290\t1\t290\t1e-150\t500\t99.0"
        hit = HitRecord.from_line(line)
        with pytest.raises(ValidationError):
            hit.subject_id = "other"


class TestDomainHit:
    def test_query_index_is_one_based(self):
        with pytest.raises(ValidationError):
            DomainHit(query_index=0, query_id="q", hit_type="Specific", accession="cd1", expect_value=1)


class TestSynonymousGroup:
    """Write-once classification."""

    def test_representative_is_first_member(self):
        group = SynonymousGroup(["WP_1.1", "WP_2.1"], expect_value=1e-20)
        assert group.representative == "WP_1.1"
        assert len(group) == 2
        assert "WP_2.1" in group
        assert list(group) == ["WP_1.1", "WP_2.1"]

    def test_empty_group_rejected(self):
        with pytest.raises(ValueError):
            SynonymousGroup([])

    def test_starts_uncalled(self):
        group = SynonymousGroup(["WP_1.1"])
        assert not group.is_called
        assert group.call_label == "uncalled"

    def test_classify_once(self):
        group = SynonymousGroup(["WP_1.1"])
        group.classify(True, superiority=5.0)
        assert group.is_called
        assert group.called_positive
        assert group.superiority == 5.0
        assert group.call_label == "positive"

    def test_reclassify_same_value_is_noop(self):
        group = SynonymousGroup(["WP_1.1"])
        group.classify(False)
        group.classify(False)
        assert group.call_label == "negative"

    def test_reclassify_different_value_raises(self):
        """A second call with a different outcome must not change the call."""
        group = SynonymousGroup(["WP_1.1"])
        group.classify(True)
        with pytest.raises(ClassificationError):
            group.classify(False)
        assert group.called_positive


class TestCallSet:
    """Disjoint positive and negative sets."""

    def test_initial_sets(self):
        calls = CallSet(positive={"A"}, negative={"B"})
        assert calls.positive == {"A"}
        assert calls.negative == {"B"}
        assert len(calls) == 2

    def test_conflicting_initial_sets_raise(self):
        with pytest.raises(ClassificationError):
            CallSet(positive={"A"}, negative={"A"})

    def test_add_negative_conflict(self):
        calls = CallSet(positive={"A"})
        with pytest.raises(ClassificationError):
            calls.add_negative(["A"])
        assert calls.positive & calls.negative == frozenset()

    def test_add_positive_conflict(self):
        calls = CallSet(negative={"A"})
        with pytest.raises(ClassificationError):
            calls.add_positive(["B", "A"])
        assert "B" not in calls.positive

    def test_record_group(self):
        calls = CallSet()
        group = SynonymousGroup(["A", "B"])
        group.classify(True)
        calls.record(group)
        assert calls.positive == {"A", "B"}

    def test_record_uncalled_group_raises(self):
        with pytest.raises(ClassificationError):
            CallSet().record(SynonymousGroup(["A"]))

    def test_lookup(self):
        calls = CallSet(positive={"A"}, negative={"B"})
        assert calls.lookup("A") is True
        assert calls.lookup("B") is False
        assert calls.lookup("C") is None

    def test_equality(self):
        assert CallSet({"A"}, {"B"}) == CallSet(["A"], ["B"])
        assert CallSet({"A"}) != CallSet({"B"})
