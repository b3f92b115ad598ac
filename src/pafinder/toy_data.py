from __future__ import annotations

import random
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from .parser import FIELDS_PER_POP
from .utils import ensure_outdir

_BASES = ["A", "C", "G", "T"]
_POP_COLUMNS = ["n1", "n2", "cov", "Nc", "best_p", "best_q", "best_error", "best_H", "pol_llstat"]


def toy_header(num_pops: int) -> str:
    cols = ["scaffold", "site", "ref_nuc"]
    for i in range(1, num_pops + 1):
        cols.extend(f"{c}_{i}" for c in _POP_COLUMNS)
    return "\t".join(cols)


def pop_fields(
    n1: str = "NA",
    n2: str = "NA",
    cov: int = 0,
    nc: Optional[float] = None,
    p: Optional[float] = None,
    q: Optional[float] = None,
    error: float = 0.001,
    h: Optional[float] = None,
    stat: Optional[float] = None,
) -> List[str]:
    """Nine columns for one population; None renders as NA."""

    def fmt(x: Optional[float]) -> str:
        return "NA" if x is None else f"{x:g}"

    if h is None and p is not None:
        h = 2.0 * p * (1.0 - p)
    return [n1, n2, str(cov), fmt(nc), fmt(p), fmt(q), fmt(error), fmt(h), fmt(stat)]


def toy_line(scaffold: str, site: int, ref_nuc: str, pops: Sequence[List[str]]) -> str:
    fields = [scaffold, str(site), ref_nuc]
    for p in pops:
        assert len(p) == FIELDS_PER_POP
        fields.extend(p)
    return "\t".join(fields)


def _random_pop(rng: random.Random, ref: str, alt: str) -> List[str]:
    cov = rng.randint(0, 60)
    if cov < 5:
        return pop_fields(cov=cov)
    nc = round(cov * rng.uniform(0.5, 1.0), 2)
    if rng.random() < 0.6:
        return pop_fields(ref, cov=cov, nc=nc, p=1.0, q=0.0, stat=0.0)
    p = round(rng.uniform(0.5, 0.99), 4)
    stat = round(rng.uniform(0.0, 40.0), 3)
    return pop_fields(ref, alt, cov=cov, nc=nc, p=p, q=round(1.0 - p, 4), stat=stat)


def make_toy_data(*, out_path: str | Path, num_pops: int = 3, num_sites: int = 50, seed: int = 7) -> Dict[str, object]:
    """Write a small combined allele-frequency table for demos/tests.

    The first two sites are fixed: a site where every population shares the
    reference allele, and a site where population 1 alone carries a
    well-supported second allele. The rest are random.

    Returns
    -------
    dict
        Path of the table and its dimensions.
    """
    if num_pops < 2:
        raise ValueError("num_pops must be >= 2")
    out = Path(out_path)
    ensure_outdir(out.parent)
    rng = random.Random(seed)

    lines = [toy_header(num_pops)]
    shared = [pop_fields("A", cov=30, nc=28.0, p=1.0, q=0.0, stat=0.0) for _ in range(num_pops)]
    lines.append(toy_line("scaffold_1", 100, "A", shared))

    private = [pop_fields("A", "G", cov=40, nc=36.0, p=0.8, q=0.2, stat=25.0)]
    private += [pop_fields("A", cov=30, nc=28.0, p=1.0, q=0.0, stat=0.0) for _ in range(num_pops - 1)]
    lines.append(toy_line("scaffold_1", 101, "A", private))

    for i in range(max(0, num_sites - 2)):
        ref = rng.choice(_BASES)
        alt = rng.choice([b for b in _BASES if b != ref])
        pops = [_random_pop(rng, ref, alt) for _ in range(num_pops)]
        lines.append(toy_line("scaffold_1", 102 + i, ref, pops))

    out.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return {"input": str(out), "num_pops": num_pops, "num_sites": max(num_sites, 2)}
