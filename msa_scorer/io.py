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

Loading and pairing of test/reference alignment files.

Alignment files are parsed with Bio.AlignIO. The format is sniffed from the
first non-blank line unless given explicitly, so FASTA, Clustal, Stockholm,
Nexus, GCG MSF and (interleaved or sequential) Phylip files are accepted
interchangeably.
"""

import logging
import re
from dataclasses import dataclass
from io import StringIO
from pathlib import Path

from Bio import AlignIO
from Bio.AlignIO.PhylipIO import RelaxedPhylipIterator, SequentialPhylipIterator
from Bio.Nexus.Nexus import NexusError

from msa_scorer import MSAValidationError

logger = logging.getLogger(__name__)

SUPPORTED_FORMATS = (
    "fasta", "clustal", "stockholm", "nexus", "msf",
    "phylip-relaxed", "phylip-sequential",
)

# "<nseq> <width>", optionally followed by Phylip option letters
_PHYLIP_HEADER = re.compile(r'^\s*\d+\s+\d+(\s+[A-Za-z]+)*\s*$')


class RelaxedSequentialPhylipIterator(SequentialPhylipIterator):
    """Sequential Phylip with whitespace-delimited names of any length."""

    _split_id = RelaxedPhylipIterator._split_id


@dataclass(frozen=True)
class AlignedSequence:
    """One row of an alignment: sequence name and aligned characters."""
    name: str
    aligned: str

    def __len__(self):
        return len(self.aligned)


def detect_format(path):
    """
    Guess the Bio.AlignIO format name of an alignment file.

    Args:
        path: Alignment file path

    Returns:
        str: One of SUPPORTED_FORMATS

    Raises:
        MSAValidationError: If the file is empty or the layout is not recognised
    """
    with open(path) as handle:
        for line in handle:
            line = line.strip()
            if line:
                break
        else:
            raise MSAValidationError(f"Alignment file is empty: {path}")

    if line.startswith('>'):
        return "fasta"
    if line.startswith(('CLUSTAL', 'MUSCLE')):
        return "clustal"
    if line.startswith('# STOCKHOLM'):
        return "stockholm"
    if line.upper().startswith('#NEXUS'):
        return "nexus"
    if line.startswith(('PileUp', '!!')) or 'MSF:' in line:
        return "msf"
    if _PHYLIP_HEADER.match(line):
        return "phylip-relaxed"
    raise MSAValidationError(f"Unrecognised alignment format in {path}: {line[:40]!r}")


def _read_phylip(path, sequential=False):
    """
    Read a relaxed Phylip file, interleaved or sequential.

    Option letters after the header counts are dropped. Unless sequential is
    requested, the interleaved reader is tried first; the file is re-read as
    sequential if that fails or yields rows that disagree with the header.
    """
    with open(path) as handle:
        lines = handle.read().splitlines()
    while lines and not lines[0].strip():
        lines.pop(0)
    if not lines:
        raise ValueError("empty Phylip file")
    parts = lines[0].split()
    if len(parts) < 2:
        raise ValueError("First line should have two integers")
    count, width = int(parts[0]), int(parts[1])
    lines[0] = f"{count} {width}"
    text = "\n".join(lines) + "\n"

    if not sequential:
        try:
            alignment = next(RelaxedPhylipIterator(StringIO(text)))
        except ValueError as e:
            logger.debug("Interleaved Phylip read of %s failed (%s), trying sequential", path, e)
        else:
            if len(alignment) == count and all(len(record) == width for record in alignment):
                return alignment
            logger.debug("Interleaved Phylip read of %s disagrees with header, trying sequential", path)
    return next(RelaxedSequentialPhylipIterator(StringIO(text)))


def load_alignment(path, fmt=None):
    """
    Read an alignment file into AlignedSequence rows, in file order.

    MSF gaps ('.' and '~') are normalised to '-' by Bio.AlignIO; Stockholm
    '.' gaps are normalised here.

    Args:
        path: Alignment file path
        fmt (str, optional): Bio.AlignIO format name; sniffed when omitted

    Returns:
        list: AlignedSequence rows

    Raises:
        MSAValidationError: If the file cannot be parsed
    """
    path = Path(path)
    if fmt is None:
        fmt = detect_format(path)
    logger.debug("Reading %s as %s", path, fmt)
    try:
        if fmt in ("phylip-relaxed", "phylip-sequential"):
            alignment = _read_phylip(path, sequential=(fmt == "phylip-sequential"))
        else:
            alignment = AlignIO.read(str(path), fmt)
    except (ValueError, AssertionError, NexusError) as e:
        raise MSAValidationError(f"Could not read {path} as {fmt}: {e}") from e

    sequences = []
    for record in alignment:
        aligned = str(record.seq)
        if fmt == "stockholm":
            aligned = aligned.replace('.', '-')
        sequences.append(AlignedSequence(record.id, aligned))
    return sequences


def _check_width(sequences, label):
    width = len(sequences[0])
    for seq in sequences:
        if len(seq) != width:
            raise MSAValidationError(
                f"Sequences of uneven length in {label} MSA: "
                f"{seq.name} has {len(seq)}, expected {width}"
            )
    return width


def pair_alignments(test_sequences, ref_sequences):
    """
    Sort both alignments by name and check they describe the same sequences.

    Checks, in order: neither alignment is empty, sequence counts agree,
    names agree pairwise after sorting, names are unique, widths are uniform
    within each alignment, and the reference is no wider than the test.

    Returns:
        tuple: (test, ref) lists sorted by name, in matching order

    Raises:
        MSAValidationError: On the first failed check
    """
    test = sorted(test_sequences, key=lambda s: s.name)
    ref = sorted(ref_sequences, key=lambda s: s.name)

    if not test or not ref:
        raise MSAValidationError("Test and reference MSAs must both contain sequences")
    if len(test) != len(ref):
        raise MSAValidationError(
            f"Test and reference MSAs have different number of sequences: "
            f"test={len(test)}, ref={len(ref)}"
        )
    for test_seq, ref_seq in zip(test, ref):
        if test_seq.name != ref_seq.name:
            raise MSAValidationError(
                f"Test ({test_seq.name}) and ref ({ref_seq.name}) have different names"
            )
    for previous, current in zip(test, test[1:]):
        if previous.name == current.name:
            raise MSAValidationError(f"Duplicate sequence name: {current.name}")

    test_width = _check_width(test, "test")
    ref_width = _check_width(ref, "reference")
    if ref_width > test_width:
        raise MSAValidationError(
            f"Reference MSA is longer than test MSA: ref={ref_width}, test={test_width}"
        )
    return test, ref
