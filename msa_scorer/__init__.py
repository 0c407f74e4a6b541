#!/usr/bin/env python3
"""
Copyright (c) 2025, Josh Walker

Redistribution and use in source and binary forms, with or without
modification, are permitted provided that the following conditions are met:

1. Redistributions of source code must retain the above copyright notice, this
   list of conditions and the following disclaimer.

2. Redistributions in binary form must reproduce the above copyright notice,
   this list of conditions and the following disclaimer in the documentation
   and/or other materials provided with the distribution.

THIS SOFTWARE IS PROVIDED BY THE COPYRIGHT HOLDERS AND CONTRIBUTORS "AS IS"
AND ANY EXPRESS OR IMPLIED WARRANTIES, INCLUDING, BUT NOT LIMITED TO, THE
IMPLIED WARRANTIES OF MERCHANTABILITY AND FITNESS FOR A PARTICULAR PURPOSE ARE
DISCLAIMED. IN NO EVENT SHALL THE COPYRIGHT HOLDER OR CONTRIBUTORS BE LIABLE
FOR ANY DIRECT, INDIRECT, INCIDENTAL, SPECIAL, EXEMPLARY, OR CONSEQUENTIAL
DAMAGES (INCLUDING, BUT NOT LIMITED TO, PROCUREMENT OF SUBSTITUTE GOODS OR
SERVICES; LOSS OF USE, DATA, OR PROFITS; OR BUSINESS INTERRUPTION) HOWEVER
CAUSED AND ON ANY THEORY OF LIABILITY, WHETHER IN CONTRACT, STRICT LIABILITY,
OR TORT (INCLUDING NEGLIGENCE OR OTHERWISE) ARISING IN ANY WAY OUT OF THE USE
OF THIS SOFTWARE, EVEN IF ADVISED OF THE POSSIBILITY OF SUCH DAMAGE.

MSA Scorer: compare a test multiple sequence alignment against a reference

This module scores how well a test MSA reproduces the homology pairs asserted
by a reference MSA. The reference may be built over a trimmed, contiguous
window of each test sequence, so every reference row is first anchored onto
its test row through the ungapped residues, and both alignments are then
reduced to per-column labels that can be paired and counted.

The result is a confusion-matrix style summary (true positives, false
positives, false negatives and the pair totals) over all sequence pairs.
"""

import edlib
import logging
from dataclasses import dataclass, field
from enum import Enum
from itertools import combinations
from typing import Optional

logger = logging.getLogger(__name__)

# Characters treated as alignment gaps or masked/unresolved positions
DEFAULT_GAP_CHARACTERS = "*-X?"


class MSAScorerError(Exception):
    """Base class for every error raised while scoring alignments."""


class AlignmentMismatchError(MSAScorerError, ValueError):
    """Reference residues are not a contiguous run of the test residues."""

    def __init__(self, test_aligned, ref_aligned, closest=None):
        message = (
            "reference sequence is not a valid subset of the test sequence\n"
            f"test: {test_aligned}\n"
            f"ref:  {ref_aligned}"
        )
        if closest is not None:
            start, end, distance = closest
            message += (
                f"\nclosest match: test residues {start}-{end} "
                f"with {distance} edit(s)"
            )
        super().__init__(message)
        self.test_aligned = test_aligned
        self.ref_aligned = ref_aligned
        self.closest = closest


class ContractViolationError(MSAScorerError, RuntimeError):
    """An internal invariant was broken; the statistics would be wrong."""


class MSAValidationError(MSAScorerError, ValueError):
    """Input alignments are malformed or do not describe the same sequences."""


@dataclass(frozen=True)
class ScoringParams:
    """
    Parameters controlling how alignments are compared.

    Attributes:
        gap_characters: Characters that denote a gap or a masked position.
        use_companion_gaps: Label reference columns using the other sequence of
                            the pair, so residues aligned to a gap are never
                            paired. Disabling this falls back to plain
                            canonical indices and pair-set intersection.
    """
    gap_characters: str = DEFAULT_GAP_CHARACTERS
    use_companion_gaps: bool = True

    def __post_init__(self):
        if not isinstance(self.gap_characters, str) or not self.gap_characters:
            raise ValueError(
                f"gap_characters must be a non-empty string, got: {self.gap_characters!r}"
            )


# Default parameters (companion-aware labelling)
DEFAULT_SCORING_PARAMS = ScoringParams()

# Canonical-index labelling without companion disambiguation
CANONICAL_SCORING_PARAMS = ScoringParams(use_companion_gaps=False)


class LabelKind(Enum):
    ABSENT = "absent"
    ALIGNED_TO_GAP = "aligned_to_gap"
    ALIGNED_TO_RESIDUE = "aligned_to_residue"


@dataclass(frozen=True)
class Label:
    """
    Label for one alignment column.

    Fields:
        kind: ABSENT when the column has no correspondent in the reference,
              ALIGNED_TO_GAP when the residue is in the reference but faces a
              gap in the companion row, ALIGNED_TO_RESIDUE otherwise
        index: Reference coordinate carried by the label (None when absent)
    """
    kind: LabelKind
    index: Optional[int] = None

    @classmethod
    def aligned_to_gap(cls, index):
        return cls(LabelKind.ALIGNED_TO_GAP, index)

    @classmethod
    def aligned_to_residue(cls, index):
        return cls(LabelKind.ALIGNED_TO_RESIDUE, index)

    @property
    def informative(self):
        """True if this column can take part in a homology pair."""
        return self.kind is LabelKind.ALIGNED_TO_RESIDUE


ABSENT = Label(LabelKind.ABSENT)


@dataclass(frozen=True)
class MappedPositions:
    """Parallel label arrays for one sequence's test and reference rows."""
    test_labels: tuple
    ref_labels: tuple


@dataclass(frozen=True)
class PairScore:
    """Pair counts contributed by one or more sequence pairs.

    Fields:
        true_positives: Reference pairs reproduced by the test alignment
        false_positives: Test pairs between reference residues that the reference does not assert
        false_negatives: Reference pairs missed by the test alignment
        total_ref: Homology pairs in the reference alignment
        total_test: Pairs in the test alignment between residues both present in the reference
    """
    true_positives: int = 0
    false_positives: int = 0
    false_negatives: int = 0
    total_ref: int = 0
    total_test: int = 0

    def __add__(self, other):
        if not isinstance(other, PairScore):
            return NotImplemented
        return PairScore(
            true_positives=self.true_positives + other.true_positives,
            false_positives=self.false_positives + other.false_positives,
            false_negatives=self.false_negatives + other.false_negatives,
            total_ref=self.total_ref + other.total_ref,
            total_test=self.total_test + other.total_test,
        )


@dataclass
class ScoreAccumulator:
    """Run-wide totals, folded from per-pair scores in any order."""
    total: PairScore = field(default_factory=PairScore)
    comparisons: int = 0

    def add(self, score):
        self.total = self.total + score
        self.comparisons += 1
        return self

    def merge(self, other):
        """Fold in another accumulator, e.g. one built over a disjoint set of pairs."""
        self.total = self.total + other.total
        self.comparisons += other.comparisons
        return self


def is_gap(char, gap_characters=DEFAULT_GAP_CHARACTERS):
    """
    Check whether a single aligned character is a gap or masked position.

    Args:
        char (str): Single alignment character
        gap_characters (str): Characters treated as gaps

    Returns:
        bool: True for gap/masked characters

    Examples:
        >>> is_gap('-')
        True
        >>> is_gap('A')
        False
    """
    return char in gap_characters


def remove_gaps(aligned, gap_characters=DEFAULT_GAP_CHARACTERS):
    """Return the raw residues of an aligned string, in order."""
    return ''.join(c for c in aligned if not is_gap(c, gap_characters))


def _closest_infix(test_ungapped, ref_ungapped):
    """
    Find where the reference residues come closest to occurring in the test.

    Uses edlib infix alignment (HW mode) so the reference may sit anywhere in
    the test sequence without end penalties.

    Returns:
        tuple: (start, end, edit_distance) in ungapped test coordinates,
        end inclusive. None if no location could be computed.
    """
    if not test_ungapped or not ref_ungapped:
        return None
    result = edlib.align(ref_ungapped, test_ungapped, mode="HW", task="locations")
    if result['editDistance'] == -1 or not result['locations']:
        return None
    start, end = result['locations'][0]
    return start, end, result['editDistance']


def _anchor_reference(test_aligned, ref_aligned, test_ungapped, ref_ungapped):
    """Return the offset of the reference residues within the test residues."""
    start = test_ungapped.find(ref_ungapped)
    if start == -1:
        raise AlignmentMismatchError(
            test_aligned, ref_aligned, _closest_infix(test_ungapped, ref_ungapped)
        )
    return start


def map_positions(test_aligned, ref_aligned, companion_ref_aligned,
                  gap_characters=DEFAULT_GAP_CHARACTERS):
    """
    Label the columns of a sequence's test and reference rows.

    The reference row is anchored onto the test row through the ungapped
    residues: the reference residues must form a contiguous run of the test
    residues. Reference coordinates are reference alignment columns.

    Reference labels, per column:
    - gap in the reference row: ABSENT
    - residue facing a gap in the companion row: ALIGNED_TO_GAP(column)
    - residue facing a residue in the companion row: ALIGNED_TO_RESIDUE(column)

    Test labels, per column:
    - gap, or residue outside the reference window: ABSENT
    - residue inside the window: ALIGNED_TO_RESIDUE(column of the same residue
      in the reference row)

    The companion's gaps only affect the reference labels. A test residue that
    the reference leaves unpaired still takes part in test pairs, so pairing
    it in the test alignment counts as a false positive.

    Example:
        test_aligned = "ACDE-FG", ref_aligned = "CD-E", companion = "C-DE"
        ref labels:  C->residue(0), D->gap(1), '-'->absent, E->residue(3)
        test labels: A, '-', F, G absent; C->0, D->1, E->3

    Args:
        test_aligned (str): The sequence's row in the test alignment
        ref_aligned (str): The sequence's row in the reference alignment
        companion_ref_aligned (str): The other sequence's reference row
        gap_characters (str): Characters treated as gaps

    Returns:
        MappedPositions: test_labels (len(test_aligned)) and
                         ref_labels (len(ref_aligned))

    Raises:
        ContractViolationError: If the two reference rows differ in length
        AlignmentMismatchError: If the reference residues are not found in the test
    """
    if len(ref_aligned) != len(companion_ref_aligned):
        raise ContractViolationError(
            f"Reference rows must have same length: ref={len(ref_aligned)}, "
            f"companion={len(companion_ref_aligned)}"
        )

    test_ungapped = remove_gaps(test_aligned, gap_characters)
    ref_ungapped = remove_gaps(ref_aligned, gap_characters)
    start = _anchor_reference(test_aligned, ref_aligned, test_ungapped, ref_ungapped)
    end = start + len(ref_ungapped)

    # residue_columns[k] is the reference column of the k-th reference residue
    ref_labels = []
    residue_columns = []
    for column, (char, companion_char) in enumerate(zip(ref_aligned, companion_ref_aligned)):
        if is_gap(char, gap_characters):
            ref_labels.append(ABSENT)
            continue
        residue_columns.append(column)
        if is_gap(companion_char, gap_characters):
            ref_labels.append(Label.aligned_to_gap(column))
        else:
            ref_labels.append(Label.aligned_to_residue(column))

    test_labels = []
    pos = 0
    for char in test_aligned:
        if is_gap(char, gap_characters):
            test_labels.append(ABSENT)
            continue
        if start <= pos < end:
            test_labels.append(Label.aligned_to_residue(residue_columns[pos - start]))
        else:
            test_labels.append(ABSENT)
        pos += 1

    return MappedPositions(tuple(test_labels), tuple(ref_labels))


def map_positions_canonical(test_aligned, ref_aligned,
                            gap_characters=DEFAULT_GAP_CHARACTERS):
    """
    Label columns with canonical reference indices, without a companion row.

    Every reference residue gets its 0-based index in the ungapped reference
    and the matching test residue gets the same index. Nothing is marked as
    aligned to a gap, so the labels alone cannot tell a reproduced pair from
    a coincidental one; scoring has to intersect pair sets instead.

    Raises:
        AlignmentMismatchError: If the reference residues are not found in the test
    """
    test_ungapped = remove_gaps(test_aligned, gap_characters)
    ref_ungapped = remove_gaps(ref_aligned, gap_characters)
    start = _anchor_reference(test_aligned, ref_aligned, test_ungapped, ref_ungapped)
    end = start + len(ref_ungapped)

    ref_labels = []
    pos = 0
    for char in ref_aligned:
        if is_gap(char, gap_characters):
            ref_labels.append(ABSENT)
        else:
            ref_labels.append(Label.aligned_to_residue(pos))
            pos += 1

    test_labels = []
    pos = 0
    for char in test_aligned:
        if is_gap(char, gap_characters):
            test_labels.append(ABSENT)
            continue
        if start <= pos < end:
            test_labels.append(Label.aligned_to_residue(pos - start))
        else:
            test_labels.append(ABSENT)
        pos += 1

    return MappedPositions(tuple(test_labels), tuple(ref_labels))


def make_pairs(labels_a, labels_b):
    """
    Build the candidate homology pairs between two rows of one alignment.

    Args:
        labels_a, labels_b: Label arrays for the same alignment (same width)

    Returns:
        list: (index_a, index_b) tuples in column order, one for each column
              where both labels are informative
    """
    if len(labels_a) != len(labels_b):
        raise ContractViolationError(
            f"Label arrays must have same length: a={len(labels_a)}, b={len(labels_b)}"
        )
    return [
        (a.index, b.index)
        for a, b in zip(labels_a, labels_b)
        if a.informative and b.informative
    ]


def count_matching_pairs(pairs):
    """Count pairs whose two sides resolve to the same reference coordinate."""
    return sum(1 for a, b in pairs if a == b)


def compare_pairs(seq_a, seq_b, params=None):
    """
    Score one pair of sequences.

    Args:
        seq_a, seq_b (tuple): (test_aligned, ref_aligned) for each sequence
        params (ScoringParams, optional): Defaults to DEFAULT_SCORING_PARAMS

    Returns:
        PairScore: Counts for this sequence pair. FN = total_ref - TP and
                   FP = total_test - TP.

    Raises:
        AlignmentMismatchError: If either reference row is not found in its test row
        ContractViolationError: If the counts are inconsistent
    """
    if params is None:
        params = DEFAULT_SCORING_PARAMS

    test_a, ref_a = seq_a
    test_b, ref_b = seq_b
    gaps = params.gap_characters

    if params.use_companion_gaps:
        mapped_a = map_positions(test_a, ref_a, ref_b, gaps)
        mapped_b = map_positions(test_b, ref_b, ref_a, gaps)
    else:
        mapped_a = map_positions_canonical(test_a, ref_a, gaps)
        mapped_b = map_positions_canonical(test_b, ref_b, gaps)

    test_pairs = make_pairs(mapped_a.test_labels, mapped_b.test_labels)
    ref_pairs = make_pairs(mapped_a.ref_labels, mapped_b.ref_labels)

    if params.use_companion_gaps:
        # Both residues anchored to the same reference column, which only
        # happens when that column holds a reference pair
        true_positives = count_matching_pairs(test_pairs)
    else:
        true_positives = len(set(test_pairs) & set(ref_pairs))

    score = PairScore(
        true_positives=true_positives,
        false_positives=len(test_pairs) - true_positives,
        false_negatives=len(ref_pairs) - true_positives,
        total_ref=len(ref_pairs),
        total_test=len(test_pairs),
    )
    if score.false_negatives < 0:
        raise ContractViolationError(
            f"More true positives ({true_positives}) than reference pairs ({len(ref_pairs)})"
        )
    return score


def score_alignments(test_rows, ref_rows, params=None):
    """
    Score every unordered pair of sequences and sum the results.

    Args:
        test_rows: Aligned strings of the test alignment
        ref_rows: Aligned strings of the reference alignment, in the same
                  sequence order as test_rows
        params (ScoringParams, optional): Defaults to DEFAULT_SCORING_PARAMS

    Returns:
        ScoreAccumulator: Totals over n*(n-1)/2 comparisons

    Example:
        >>> acc = score_alignments(["AC-D", "ACGD"], ["C-D", "CGD"])
        >>> acc.total.true_positives, acc.total.total_ref
        (2, 2)
    """
    if params is None:
        params = DEFAULT_SCORING_PARAMS
    if len(test_rows) != len(ref_rows):
        raise ContractViolationError(
            f"Test and reference must have same number of sequences: "
            f"test={len(test_rows)}, ref={len(ref_rows)}"
        )

    accumulator = ScoreAccumulator()
    rows = list(zip(test_rows, ref_rows))
    for (i, seq_a), (j, seq_b) in combinations(enumerate(rows), 2):
        score = compare_pairs(seq_a, seq_b, params)
        logger.debug("pair (%d, %d): %s", i, j, score)
        accumulator.add(score)

    logger.info(
        "Scored %d sequence pairs: TP=%d FP=%d FN=%d totalRef=%d totalTest=%d",
        accumulator.comparisons,
        accumulator.total.true_positives,
        accumulator.total.false_positives,
        accumulator.total.false_negatives,
        accumulator.total.total_ref,
        accumulator.total.total_test,
    )
    return accumulator
