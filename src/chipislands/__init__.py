"""ChIPIslands: coverage-island peak calling for ChIP-seq reads.

Public API is intentionally small; most users should use the CLI:

    chipislands call --bam ... --threshold ... --outdir ...

"""

from __future__ import annotations

__all__ = ["__version__"]

__version__ = "0.1.0"
