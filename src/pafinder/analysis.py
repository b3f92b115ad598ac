from __future__ import annotations

import logging
import math
from functools import reduce
from typing import Dict, List, Optional, Sequence, Tuple

from .models import AlleleFrequency, AnalysisConfig, PopulationObservation, PrivateAlleleResult, SiteRecord, SiteResult
from .parser import RecordParseError

logger = logging.getLogger(__name__)

_LN10 = math.log(10.0)


def eligible_populations(site: SiteRecord, min_nc: float) -> List[PopulationObservation]:
    """Populations with ML estimates and Nc >= min_nc, in header order."""
    return [p for p in site.populations if p.is_eligible(min_nc)]


def supports_polymorphism(pop: PopulationObservation, cv: float) -> bool:
    """True if the secondary allele passes the polymorphism test (strictly above cv)."""
    return pop.n2 is not None and pop.pol_llstat is not None and pop.pol_llstat > cv


def build_allele_set(
    eligible: Sequence[PopulationObservation],
    cv: float,
) -> Tuple[List[str], int, float]:
    """Collect the distinct alleles segregating among eligible populations.

    Every eligible population contributes its primary allele; its secondary
    allele is added only when the polymorphism statistic exceeds ``cv``.
    Order is first appearance.

    Returns
    -------
    alleles, ne_pops, sum_nc
    """
    alleles: List[str] = []
    sum_nc = 0.0
    for pop in eligible:
        assert pop.n1 is not None and pop.nc is not None
        sum_nc += pop.nc
        if pop.n1 not in alleles:
            alleles.append(pop.n1)
        if supports_polymorphism(pop, cv) and pop.n2 not in alleles:
            alleles.append(pop.n2)  # type: ignore[arg-type]
    return alleles, len(eligible), sum_nc


def aggregate_allele_frequencies(
    alleles: Sequence[str],
    eligible: Sequence[PopulationObservation],
) -> List[AlleleFrequency]:
    """Per-allele carrier frequencies and the mean over all eligible populations.

    The mean divides by the number of eligible populations, so populations
    without the allele count as frequency zero. Raises RecordParseError when a
    carrier has no estimate for the allele it carries.
    """
    ne_pops = len(eligible)
    out: List[AlleleFrequency] = []
    for allele in alleles:
        carriers: List[Tuple[int, float]] = []
        for pop in eligible:
            if pop.n1 == allele:
                freq, name = pop.best_p, "best_p"
            elif pop.n2 == allele:
                freq, name = pop.best_q, "best_q"
            else:
                continue
            if freq is None:
                raise RecordParseError(f"{name}[pop {pop.pop_id}] is missing for allele {allele}")
            carriers.append((pop.pop_id, float(freq)))
        sum_freq = sum(f for _, f in carriers)
        out.append(AlleleFrequency(allele=allele, carriers=tuple(carriers), mean_freq=sum_freq / ne_pops))
    return out


def minor_allele_frequency(freqs: Sequence[AlleleFrequency]) -> Optional[float]:
    """Smallest mean frequency over the site's alleles; None if there are none."""
    if not freqs:
        return None
    return reduce(lambda acc, af: af.mean_freq if af.mean_freq < acc else acc, freqs[1:], freqs[0].mean_freq)


def private_allele_log_prob(total_freq: float, nc_focal: float, nc_other: float) -> float:
    """log10 of P(seen in the focal sample, absent from all others).

    prob = (1 - (1 - f)^Nc_focal) * (1 - f)^Nc_other under binomial sampling at
    the pooled frequency ``f``. Evaluated in log space; returns ``-inf`` when
    the probability is zero (``f == 0``, or ``f == 1`` with other samples).
    """
    if total_freq <= 0.0:
        return float("-inf")
    if total_freq >= 1.0:
        # (1 - f) == 0 and 0**0 == 1
        p_seen = 1.0 if nc_focal > 0 else 0.0
        p_absent = 0.0 if nc_other > 0 else 1.0
        prob = p_seen * p_absent
        return math.log10(prob) if prob > 0 else float("-inf")

    log_q = math.log1p(-total_freq)  # ln(1 - f)
    p_seen = -math.expm1(nc_focal * log_q)
    if p_seen <= 0.0:
        return float("-inf")
    return math.log10(p_seen) + nc_other * log_q / _LN10


def detect_private_alleles(
    freqs: Sequence[AlleleFrequency],
    eligible: Sequence[PopulationObservation],
    sum_nc: float,
    maf: float,
) -> List[PrivateAlleleResult]:
    """Alleles carried by exactly one eligible population, given >= 2 eligible populations."""
    if len(eligible) < 2:
        return []
    nc_by_pop: Dict[int, float] = {p.pop_id: float(p.nc) for p in eligible}  # type: ignore[arg-type]

    out: List[PrivateAlleleResult] = []
    for af in freqs:
        if af.num_pops != 1:
            continue
        id_pop, focal_freq = af.carriers[0]
        nc_focal = nc_by_pop[id_pop]
        nc_other = sum_nc - nc_focal
        out.append(
            PrivateAlleleResult(
                allele=af.allele,
                id_pop=id_pop,
                focal_freq=focal_freq,
                total_freq=af.mean_freq,
                log_prob=private_allele_log_prob(af.mean_freq, nc_focal, nc_other),
                maf=maf,
            )
        )
    return out


def analyze_site(site: SiteRecord, config: AnalysisConfig) -> SiteResult:
    """Run the full per-site pipeline."""
    eligible = eligible_populations(site, config.min_nc)
    alleles, ne_pops, sum_nc = build_allele_set(eligible, config.cv)

    private: List[PrivateAlleleResult] = []
    maf: Optional[float] = None
    if alleles:
        freqs = aggregate_allele_frequencies(alleles, eligible)
        maf = minor_allele_frequency(freqs)
        assert maf is not None
        private = detect_private_alleles(freqs, eligible, sum_nc, maf)

    if private:
        logger.debug(
            "%s:%d private allele(s) %s",
            site.scaffold,
            site.site,
            ",".join(f"{r.allele}@pop{r.id_pop}" for r in private),
        )

    return SiteResult(
        scaffold=site.scaffold,
        site=site.site,
        ref_nuc=site.ref_nuc,
        tot_cov=site.tot_cov,
        ne_pops=ne_pops,
        num_alleles=len(alleles),
        maf=maf,
        private_alleles=tuple(private),
    )
