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

Command line entry point: msa-scorer TestMSA RefMSA
"""

import argparse
import logging
import sys
from dataclasses import dataclass

from msa_scorer import (
    MSAScorerError,
    ScoringParams,
    DEFAULT_GAP_CHARACTERS,
    score_alignments,
)
from msa_scorer.io import SUPPORTED_FORMATS, load_alignment, pair_alignments

logger = logging.getLogger(__name__)

REPORT_COLUMNS = ("#TruePos", "FalsePos", "FalseNeg", "totalRef", "totalTest")

EPILOG = """\
TestMSA / RefMSA can be in FASTA/MSF/Phylip/Interleaved/Clustal format.

Results look like this:

#Comparing TestMSA.fas (seq:4;l=112) => REF RefMSA.fas(seq:4;l=78)
#TruePos       FalsePos       FalseNeg       totalRef       totalTest
346            59             110            456            405

The first line (commented with #) is a header for confirming input.
The counters are defined as follows:
  TruePos   : homologous pairs in the RefMSA found in the TestMSA
  FalsePos  : pairs of RefMSA characters aligned in the TestMSA but not in the RefMSA
  FalseNeg  : homologous pairs in the RefMSA not found in the TestMSA
  totalRef  : homologous pairs in the RefMSA (TruePos + FalseNeg)
  totalTest : pairs in the TestMSA between RefMSA characters (TruePos + FalsePos)
TrueNeg is not reported: it is every other pair that could be formed from
RefMSA characters.
"""


@dataclass(frozen=True)
class ReportFormat:
    """Layout of the text report."""
    column_width: int = 15

    def __post_init__(self):
        if self.column_width < 1:
            raise ValueError(f"column_width must be positive, got: {self.column_width}")


DEFAULT_REPORT_FORMAT = ReportFormat()


def format_header(test_path, test, ref_path, ref):
    return (
        f"#Comparing {test_path} (seq:{len(test)};l={len(test[0])}) "
        f"=> REF {ref_path}(seq:{len(ref)};l={len(ref[0])})"
    )


def format_report(score, report_format=None):
    """Render the counter table as two left-justified rows."""
    if report_format is None:
        report_format = DEFAULT_REPORT_FORMAT
    width = report_format.column_width
    values = (
        score.true_positives,
        score.false_positives,
        score.false_negatives,
        score.total_ref,
        score.total_test,
    )
    header = ''.join(name.ljust(width) for name in REPORT_COLUMNS)
    row = ''.join(str(value).ljust(width) for value in values)
    return f"{header.rstrip()}\n{row.rstrip()}"


def build_parser():
    parser = argparse.ArgumentParser(
        prog="msa-scorer",
        description="Compare a test MSA to a reference MSA that may contain only "
                    "a subset of each test sequence.",
        epilog=EPILOG,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("test_msa", help="Test alignment file")
    parser.add_argument("ref_msa", help="Reference alignment file")
    parser.add_argument("--format", choices=SUPPORTED_FORMATS, default=None,
                        help="Format of both files (default: detect)")
    parser.add_argument("--test-format", choices=SUPPORTED_FORMATS, default=None,
                        help="Format of the test file (overrides --format)")
    parser.add_argument("--ref-format", choices=SUPPORTED_FORMATS, default=None,
                        help="Format of the reference file (overrides --format)")
    parser.add_argument("--canonical", action="store_true",
                        help="Label by canonical residue index and intersect pair sets "
                             "instead of using the companion reference row")
    parser.add_argument("--gap-chars", default=DEFAULT_GAP_CHARACTERS,
                        help=f"Gap and masked characters (default: {DEFAULT_GAP_CHARACTERS!r})")
    parser.add_argument("-v", "--verbose", action="count", default=0,
                        help="Increase logging verbosity (-v info, -vv debug)")
    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)

    level = logging.WARNING
    if args.verbose == 1:
        level = logging.INFO
    elif args.verbose > 1:
        level = logging.DEBUG
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")

    try:
        params = ScoringParams(
            gap_characters=args.gap_chars,
            use_companion_gaps=not args.canonical,
        )
        test = load_alignment(args.test_msa, args.test_format or args.format)
        ref = load_alignment(args.ref_msa, args.ref_format or args.format)
        test, ref = pair_alignments(test, ref)
        print(format_header(args.test_msa, test, args.ref_msa, ref))
        accumulator = score_alignments(
            [s.aligned for s in test], [s.aligned for s in ref], params
        )
    except (MSAScorerError, ValueError, OSError) as e:
        logger.debug("Run aborted", exc_info=True)
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print(format_report(accumulator.total))
    return 0


if __name__ == "__main__":
    sys.exit(main())
