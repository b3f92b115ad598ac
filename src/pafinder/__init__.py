"""pafinder: private allele detection from per-population allele-frequency estimates.

Public API is intentionally small; most users should use the CLI:

    pafinder scan -in In_FPA.txt -out Out_FPA.txt

"""

from __future__ import annotations

__all__ = ["__version__"]

__version__ = "0.1.0"
