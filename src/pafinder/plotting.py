from __future__ import annotations

import logging
from pathlib import Path
from typing import List

import matplotlib.pyplot as plt

logger = logging.getLogger(__name__)


def plot_private_alleles_per_pop(
    *,
    per_pop: List[int],
    out_png: str | Path,
    title: str = "Private alleles per population",
) -> None:
    out_png = Path(out_png)
    out_png.parent.mkdir(parents=True, exist_ok=True)

    labels = [str(i + 1) for i in range(len(per_pop))]

    plt.figure()
    plt.bar(labels, [int(v) for v in per_pop])
    plt.xlabel("Population id")
    plt.ylabel("Private allele count")
    plt.title(title)
    if len(labels) > 20:
        plt.xticks(rotation=90)
    plt.tight_layout()
    plt.savefig(out_png, dpi=160)
    plt.close()


def plot_log_prob_hist(
    *,
    bin_edges: List[float],
    counts: List[int],
    out_png: str | Path,
    neg_inf: int = 0,
    title: str = "Private allele occurrence probability",
) -> None:
    """Histogram of log10 P(private allele).

    The leftmost bin also holds values below its edge. ``-inf`` values are not
    drawn; their count goes into the title.
    """
    out_png = Path(out_png)
    out_png.parent.mkdir(parents=True, exist_ok=True)

    if len(bin_edges) != len(counts) + 1:
        raise ValueError("bin_edges must have length len(counts)+1")

    widths = [bin_edges[i + 1] - bin_edges[i] for i in range(len(counts))]
    centers = [bin_edges[i] + widths[i] / 2.0 for i in range(len(counts))]

    if neg_inf:
        title = f"{title} ({neg_inf} at -inf)"

    plt.figure()
    plt.bar(centers, counts, width=widths, align="center")
    plt.xlabel("log10 P(private allele)")
    plt.ylabel("Private allele count")
    plt.title(title)
    plt.tight_layout()
    plt.savefig(out_png, dpi=160)
    plt.close()
