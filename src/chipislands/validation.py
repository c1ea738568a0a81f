from __future__ import annotations

import numbers
from pathlib import Path
from typing import Union

from .errors import InvalidParameterError


AUTO = "auto"


def check_bam_index(bam_path: str | Path) -> None:
    """Ensure a BAM has an index; raise ValueError with fix instructions."""
    bam = Path(bam_path)
    bai1 = bam.with_suffix(bam.suffix + ".bai")
    bai2 = bam.with_suffix(".bai")
    if bai1.exists() or bai2.exists():
        return
    raise ValueError(
        "BAM is not indexed. Run: samtools index " + str(bam)
    )


def validate_fragment_length(fragment_length: int) -> int:
    if isinstance(fragment_length, bool) or not isinstance(fragment_length, numbers.Integral):
        raise InvalidParameterError(
            f"fragment_length must be an integer, got {fragment_length!r}"
        )
    if fragment_length <= 0:
        raise InvalidParameterError(f"fragment_length must be > 0, got {fragment_length}")
    return fragment_length


def validate_threshold(threshold: int) -> int:
    if isinstance(threshold, bool) or not isinstance(threshold, numbers.Integral):
        raise InvalidParameterError(f"threshold must be an integer, got {threshold!r}")
    if threshold < 0:
        raise InvalidParameterError(f"threshold must be >= 0, got {threshold}")
    return threshold


def validate_min_width(min_width: int) -> int:
    if isinstance(min_width, bool) or not isinstance(min_width, numbers.Integral):
        raise InvalidParameterError(f"min_width must be an integer, got {min_width!r}")
    if min_width < 1:
        raise InvalidParameterError(f"min_width must be >= 1, got {min_width}")
    return min_width


def parse_fragment_length(value: Union[str, int]) -> Union[str, int]:
    """Parse a fragment length setting: ``"auto"`` or a positive integer."""
    if isinstance(value, numbers.Integral) and not isinstance(value, bool):
        return validate_fragment_length(int(value))
    text = str(value).strip().lower()
    if text == AUTO:
        return AUTO
    try:
        n = int(text)
    except ValueError:
        raise InvalidParameterError(
            f"fragment_length must be 'auto' or a positive integer, got {value!r}"
        ) from None
    return validate_fragment_length(n)
