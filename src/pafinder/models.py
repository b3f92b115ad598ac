from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple


@dataclass(frozen=True)
class AnalysisConfig:
    """Thresholds shared by every site.

    Attributes
    ----------
    min_nc:
        Minimum effective number of sampled chromosomes for a population to be
        considered at a site.
    cv:
        Chi-square critical value for the per-population polymorphism test
        (default: 95th percentile, 1 d.f.).
    missing_token:
        Literal used by the upstream estimator for "no estimate".
    """

    min_nc: float = 20.0
    cv: float = 5.991
    missing_token: str = "NA"


@dataclass(frozen=True)
class PopulationObservation:
    """ML estimates for one population at one site.

    ``n1`` is None when the estimator produced no call for the population; in
    that case the numeric fields are not parsed and are None as well.
    """

    pop_id: int  # 1-based, header order
    n1: Optional[str]
    n2: Optional[str]
    coverage: int
    nc: Optional[float]
    best_p: Optional[float]
    best_q: Optional[float]
    error_estimate: Optional[float]
    best_h: Optional[float]
    pol_llstat: Optional[float]

    def is_eligible(self, min_nc: float) -> bool:
        return self.n1 is not None and self.nc is not None and self.nc >= min_nc


@dataclass(frozen=True)
class SiteRecord:
    scaffold: str
    site: int
    ref_nuc: str
    populations: Tuple[PopulationObservation, ...]

    @property
    def tot_cov(self) -> int:
        # all populations, eligible or not
        return sum(p.coverage for p in self.populations)


@dataclass(frozen=True)
class AlleleFrequency:
    """Frequencies of one allele across the eligible populations at a site."""

    allele: str
    carriers: Tuple[Tuple[int, float], ...]  # (pop_id, frequency)
    mean_freq: float

    @property
    def num_pops(self) -> int:
        return len(self.carriers)


@dataclass(frozen=True)
class PrivateAlleleResult:
    allele: str
    id_pop: int
    focal_freq: float
    total_freq: float
    log_prob: float
    maf: float


@dataclass(frozen=True)
class SiteResult:
    """Per-site summary handed to the output writer."""

    scaffold: str
    site: int
    ref_nuc: str
    tot_cov: int
    ne_pops: int
    num_alleles: int
    maf: Optional[float]
    private_alleles: Tuple[PrivateAlleleResult, ...] = ()
