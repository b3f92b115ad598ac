"""Readers for the combined per-population allele-frequency table.

Layout
------
Header: three site columns (scaffold, site, ref_nuc) followed by nine columns
per population. Data lines use the same layout, with the nine population
fields in this order::

    n1 n2 coverage Nc best_p best_q error_estimate best_H pol_llstat

A literal missing token (``NA`` by default) marks absent estimates.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional, TextIO, Tuple

from .models import PopulationObservation, SiteRecord

logger = logging.getLogger(__name__)

SITE_FIELDS = 3
FIELDS_PER_POP = 9


class HeaderError(ValueError):
    """Raised when the column header cannot be interpreted."""


class RecordParseError(ValueError):
    """Raised for a data line that does not match the header layout."""

    def __init__(self, message: str, *, line_no: Optional[int] = None) -> None:
        self.reason = message
        self.line_no = line_no
        if line_no is not None:
            message = f"line {line_no}: {message}"
        super().__init__(message)


@dataclass(frozen=True)
class Header:
    num_pops: int
    site_labels: Tuple[str, ...]
    pop_labels: Tuple[Tuple[str, ...], ...]
    trailing_tokens: int

    @property
    def expected_tokens(self) -> int:
        return SITE_FIELDS + FIELDS_PER_POP * self.num_pops


def parse_header(line: str) -> Header:
    """Interpret the header line; num_pops = floor((tokens - 3) / 9)."""
    tokens = line.split()
    if len(tokens) < SITE_FIELDS:
        raise HeaderError(
            f"Header has {len(tokens)} column(s); expected at least {SITE_FIELDS} "
            "(scaffold, site, ref_nuc) followed by 9 columns per population."
        )
    pop_tokens = tokens[SITE_FIELDS:]
    num_pops = len(pop_tokens) // FIELDS_PER_POP
    trailing = len(pop_tokens) % FIELDS_PER_POP
    groups = tuple(
        tuple(pop_tokens[i * FIELDS_PER_POP : (i + 1) * FIELDS_PER_POP]) for i in range(num_pops)
    )
    return Header(
        num_pops=num_pops,
        site_labels=tuple(tokens[:SITE_FIELDS]),
        pop_labels=groups,
        trailing_tokens=trailing,
    )


def read_header(fh: TextIO) -> Header:
    line = fh.readline()
    if not line or not line.strip():
        raise HeaderError("Cannot read the header line (input is empty).")
    return parse_header(line)


def _parse_optional_float(token: str, name: str, missing: str, line_no: Optional[int]) -> Optional[float]:
    if token == missing:
        return None
    try:
        return float(token)
    except ValueError:
        raise RecordParseError(f"{name}={token!r} is not a number", line_no=line_no) from None


def _parse_int(token: str, name: str, line_no: Optional[int]) -> int:
    try:
        return int(token)
    except ValueError:
        raise RecordParseError(f"{name}={token!r} is not an integer", line_no=line_no) from None


def _parse_population(
    pop_id: int,
    fields: List[str],
    missing: str,
    line_no: Optional[int],
) -> PopulationObservation:
    n1_tok, n2_tok, cov_tok = fields[0], fields[1], fields[2]
    coverage = _parse_int(cov_tok, f"coverage[pop {pop_id}]", line_no)
    if coverage < 0:
        raise RecordParseError(f"coverage[pop {pop_id}]={coverage} is negative", line_no=line_no)

    if n1_tok == missing:
        # No ML estimates: the numeric fields are never looked at.
        return PopulationObservation(
            pop_id=pop_id,
            n1=None,
            n2=None,
            coverage=coverage,
            nc=None,
            best_p=None,
            best_q=None,
            error_estimate=None,
            best_h=None,
            pol_llstat=None,
        )

    nums = [
        _parse_optional_float(tok, f"{name}[pop {pop_id}]", missing, line_no)
        for tok, name in zip(fields[3:], ("Nc", "best_p", "best_q", "error", "best_H", "pol_llstat"))
    ]
    nc, best_p, best_q, error_estimate, best_h, pol_llstat = nums
    n2 = None if n2_tok == missing else n2_tok

    return PopulationObservation(
        pop_id=pop_id,
        n1=n1_tok,
        n2=n2,
        coverage=coverage,
        nc=nc,
        best_p=best_p,
        best_q=best_q,
        error_estimate=error_estimate,
        best_h=best_h,
        pol_llstat=pol_llstat,
    )


def parse_site_line(
    line: str,
    num_pops: int,
    *,
    missing_token: str = "NA",
    trailing_tokens: int = 0,
    line_no: Optional[int] = None,
) -> SiteRecord:
    """Parse one data line into a SiteRecord.

    A line holds ``3 + 9 * num_pops`` fields, optionally followed by up to
    ``trailing_tokens`` extra fields (the header's incomplete last group),
    which are ignored. Raises RecordParseError for any other field count or
    for a field that cannot be converted.
    """
    tokens = line.split()
    expected = SITE_FIELDS + FIELDS_PER_POP * num_pops
    if not expected <= len(tokens) <= expected + trailing_tokens:
        if trailing_tokens:
            wanted = f"{expected}-{expected + trailing_tokens}"
        else:
            wanted = str(expected)
        raise RecordParseError(
            f"expected {wanted} fields for {num_pops} population(s), found {len(tokens)}",
            line_no=line_no,
        )

    scaffold, site_tok, ref_nuc = tokens[0], tokens[1], tokens[2]
    site = _parse_int(site_tok, "site", line_no)

    pops: List[PopulationObservation] = []
    for i in range(num_pops):
        start = SITE_FIELDS + i * FIELDS_PER_POP
        pops.append(_parse_population(i + 1, tokens[start : start + FIELDS_PER_POP], missing_token, line_no))

    return SiteRecord(scaffold=scaffold, site=site, ref_nuc=ref_nuc, populations=tuple(pops))
