from __future__ import annotations

import logging
from typing import Iterable, List

from .models import ExtendedInterval, Read, Strand
from .validation import validate_fragment_length

logger = logging.getLogger(__name__)


def extend_read(read: Read, fragment_length: int) -> ExtendedInterval:
    """Resize a read to ``fragment_length`` keeping its 5' end fixed.

    Forward reads grow to the right of their start; reverse reads grow to the
    left of their alignment end. Reverse fragments running off the start of the
    chromosome are clipped to position 1.
    """
    validate_fragment_length(fragment_length)
    if read.strand is Strand.FORWARD:
        start = read.start
        end = read.start + fragment_length - 1
    else:
        end = read.end
        start = max(1, end - fragment_length + 1)
    return ExtendedInterval(chrom=read.chrom, start=start, end=end, strand=read.strand)


def extend_reads(reads: Iterable[Read], fragment_length: int) -> List[ExtendedInterval]:
    """Extend every read to the fragment length (output follows input order)."""
    validate_fragment_length(fragment_length)
    return [extend_read(r, fragment_length) for r in reads]
