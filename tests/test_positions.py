#!/usr/bin/env python3
"""
Tests for gap classification, gap removal and position mapping.

The position mapper anchors each reference row onto its test row through the
ungapped residues and labels every column of both rows.
"""

import pytest
from msa_scorer import (
    ABSENT,
    AlignmentMismatchError,
    ContractViolationError,
    Label,
    LabelKind,
    is_gap,
    map_positions,
    map_positions_canonical,
    remove_gaps,
)


def residue(index):
    return Label.aligned_to_residue(index)


def gap(index):
    return Label.aligned_to_gap(index)


class TestGapClassifier:
    """Test the gap/masked character predicate."""

    def test_default_gap_characters(self):
        for char in "*-X?":
            assert is_gap(char)

    def test_residues_are_not_gaps(self):
        for char in "ACDEFGHIKLMNPQRSTVWYacgt.":
            assert not is_gap(char)

    def test_lowercase_x_is_a_residue(self):
        """Only upper-case X is masked."""
        assert is_gap('X')
        assert not is_gap('x')

    def test_custom_gap_characters(self):
        assert is_gap('.', gap_characters=".-")
        assert not is_gap('X', gap_characters=".-")


class TestRemoveGaps:
    """Test conversion of aligned strings to raw residues."""

    def test_strips_every_gap_character(self):
        assert remove_gaps("A-C*D?XE") == "ACDE"

    def test_keeps_order(self):
        aligned = "--M-K?V*L-X-A"
        raw = remove_gaps(aligned)
        assert raw == "MKVLA"
        assert not any(is_gap(c) for c in raw)

    def test_all_gaps(self):
        assert remove_gaps("-*?X") == ""

    def test_no_gaps(self):
        assert remove_gaps("ACGT") == "ACGT"

    def test_custom_gap_characters(self):
        assert remove_gaps("A.C-G", gap_characters=".") == "AC-G"


class TestLabel:
    """Test the tagged column label."""

    def test_absent_is_not_informative(self):
        assert ABSENT.kind is LabelKind.ABSENT
        assert ABSENT.index is None
        assert not ABSENT.informative

    def test_aligned_to_gap_is_not_informative(self):
        assert not gap(3).informative

    def test_aligned_to_residue_is_informative(self):
        assert residue(3).informative

    def test_index_zero_keeps_its_kind(self):
        """Index 0 aligned to a gap stays distinct from index 0 aligned to a residue."""
        assert gap(0) != residue(0)
        assert not gap(0).informative
        assert residue(0).informative


class TestMapPositions:
    """Test companion-aware position mapping."""

    def test_trimmed_reference_with_companion_gap(self):
        """Reference covers CDE of ACDEFG; the companion has a gap opposite D."""
        mapped = map_positions("ACDE-FG", "CD-E", "C-DE")

        assert mapped.ref_labels == (residue(0), gap(1), ABSENT, residue(3))
        assert mapped.test_labels == (
            ABSENT, residue(0), residue(1), residue(3), ABSENT, ABSENT, ABSENT
        )

    def test_test_labels_point_at_reference_columns(self):
        """Each anchored test residue carries the column of the same residue in the reference."""
        test, ref = "ACDE-FG", "CD-E"
        mapped = map_positions(test, ref, "CDEE")
        for column, label in enumerate(mapped.test_labels):
            if label.kind is LabelKind.ABSENT:
                continue
            assert ref[label.index] == test[column]

    def test_label_lengths_match_inputs(self):
        mapped = map_positions("--MKV-LA--", "KV-L", "KVAL")
        assert len(mapped.test_labels) == 10
        assert len(mapped.ref_labels) == 4

    def test_reference_gaps_are_absent(self):
        mapped = map_positions("AC", "-A-C", "GGGG")
        assert mapped.ref_labels == (ABSENT, residue(1), ABSENT, residue(3))
        assert mapped.test_labels == (residue(1), residue(3))

    def test_residues_outside_window_are_absent(self):
        mapped = map_positions("MKVLAE", "VL", "VL")
        assert mapped.test_labels == (
            ABSENT, ABSENT, residue(0), residue(1), ABSENT, ABSENT
        )

    def test_index_zero_aligned_to_gap(self):
        mapped = map_positions("AC", "AC", "-C")
        assert mapped.ref_labels == (gap(0), residue(1))
        assert not mapped.ref_labels[0].informative

    def test_anchors_at_first_occurrence(self):
        mapped = map_positions("AAA", "AA", "AA")
        assert mapped.test_labels == (residue(0), residue(1), ABSENT)

    def test_empty_reference_row(self):
        """A reference row of only gaps anchors trivially and labels nothing."""
        mapped = map_positions("ACD", "---", "ACD")
        assert mapped.test_labels == (ABSENT, ABSENT, ABSENT)
        assert mapped.ref_labels == (ABSENT, ABSENT, ABSENT)

    def test_masked_characters_are_gaps(self):
        mapped = map_positions("A?C", "AC", "A*")
        assert mapped.ref_labels == (residue(0), gap(1))
        assert mapped.test_labels == (residue(0), ABSENT, residue(1))

    def test_companion_length_mismatch(self):
        with pytest.raises(ContractViolationError, match="same length"):
            map_positions("ACDE", "CDE", "CD")

    def test_reference_not_in_test(self):
        with pytest.raises(AlignmentMismatchError, match="not a valid subset") as excinfo:
            map_positions("ACDEFG", "C-DF", "CGDF")
        assert excinfo.value.test_aligned == "ACDEFG"
        assert excinfo.value.ref_aligned == "C-DF"

    def test_mismatch_reports_closest_location(self):
        """The closest infix of CDF in ACDEFG is one edit away."""
        with pytest.raises(AlignmentMismatchError) as excinfo:
            map_positions("ACDEFG", "CDF", "CDF")
        assert excinfo.value.closest is not None
        assert excinfo.value.closest[2] == 1
        assert "closest match" in str(excinfo.value)

    def test_mismatch_against_empty_test(self):
        with pytest.raises(AlignmentMismatchError) as excinfo:
            map_positions("---", "A", "A")
        assert excinfo.value.closest is None

    def test_mismatch_is_a_value_error(self):
        with pytest.raises(ValueError):
            map_positions("AAAA", "C", "C")


class TestMapPositionsCanonical:
    """Test canonical-index mapping without a companion row."""

    def test_trimmed_reference(self):
        mapped = map_positions_canonical("ACDE-FG", "CD-E")
        assert mapped.ref_labels == (residue(0), residue(1), ABSENT, residue(2))
        assert mapped.test_labels == (
            ABSENT, residue(0), residue(1), residue(2), ABSENT, ABSENT, ABSENT
        )

    def test_label_lengths_match_inputs(self):
        mapped = map_positions_canonical("-MKVLA-", "KV-L")
        assert len(mapped.test_labels) == 7
        assert len(mapped.ref_labels) == 4

    def test_reference_not_in_test(self):
        with pytest.raises(AlignmentMismatchError):
            map_positions_canonical("ACDEFG", "GA")
