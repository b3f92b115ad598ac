from __future__ import annotations

import logging
import math
import time
from collections import deque
from concurrent.futures import Future, ProcessPoolExecutor
from dataclasses import dataclass
from functools import partial
from pathlib import Path
from typing import Deque, Dict, Iterable, Iterator, List, Optional, Tuple

import numpy as np
from tqdm import tqdm

from .analysis import analyze_site
from .models import AnalysisConfig, PrivateAlleleResult, SiteResult
from .parser import Header, RecordParseError, parse_site_line, read_header
from .utils import chunked, open_textmaybe_gzip
from .validation import check_header, validate_config

logger = logging.getLogger(__name__)

OUTPUT_COLUMNS = [
    "scaffold",
    "site",
    "ref_nuc",
    "tot_cov",
    "ne_pops",
    "num_alleles",
    "private_allele",
    "id_pop",
    "focal_frequency",
    "total_frequency",
    "log_prob_pa",
    "MAF",
]

_MAX_LOGGED_ERRORS = 20
_LOG_PROB_BINS = np.linspace(-30.0, 0.0, 61)


class ScanIOError(OSError):
    """Raised when the input or output file cannot be opened."""


@dataclass(frozen=True)
class LineOutcome:
    line_no: int
    result: Optional[SiteResult]
    error: Optional[str] = None


def format_result_row(site: SiteResult, pa: PrivateAlleleResult) -> str:
    return (
        f"{site.scaffold}\t{site.site}\t{site.ref_nuc}\t{site.tot_cov}\t"
        f"{site.ne_pops}\t{site.num_alleles}\t{pa.allele}\t{pa.id_pop}\t"
        f"{pa.focal_freq:.6f}\t{pa.total_freq:.6f}\t{pa.log_prob:.6f}\t{pa.maf:.6f}\n"
    )


def iter_result_rows(site: SiteResult) -> Iterator[str]:
    """One output row per private allele; nothing for sites without one."""
    for pa in site.private_alleles:
        yield format_result_row(site, pa)


def analyze_line(line_no: int, line: str, header: Header, config: AnalysisConfig) -> LineOutcome:
    try:
        record = parse_site_line(
            line,
            header.num_pops,
            missing_token=config.missing_token,
            trailing_tokens=header.trailing_tokens,
            line_no=line_no,
        )
        result = analyze_site(record, config)
    except RecordParseError as e:
        return LineOutcome(line_no=line_no, result=None, error=e.reason)
    return LineOutcome(line_no=line_no, result=result)


def _analyze_chunk(
    chunk: List[Tuple[int, str]],
    header: Header,
    config: AnalysisConfig,
) -> List[LineOutcome]:
    return [analyze_line(line_no, line, header, config) for line_no, line in chunk]


def iter_site_outcomes(
    lines: Iterable[Tuple[int, str]],
    *,
    header: Header,
    config: AnalysisConfig,
    threads: int = 1,
    chunk_size: int = 2000,
) -> Iterator[LineOutcome]:
    """Analyze numbered lines, yielding outcomes in input order.

    With ``threads > 1`` chunks are analyzed in a process pool; at most
    ``4 * threads`` chunks are in flight and results are consumed in
    submission order.
    """
    if threads <= 1:
        for line_no, line in lines:
            yield analyze_line(line_no, line, header, config)
        return

    worker = partial(_analyze_chunk, header=header, config=config)
    max_pending = 4 * threads
    pending: Deque[Future] = deque()
    with ProcessPoolExecutor(max_workers=threads) as ex:
        try:
            for chunk in chunked(lines, chunk_size):
                pending.append(ex.submit(worker, chunk))
                if len(pending) >= max_pending:
                    yield from pending.popleft().result()
            while pending:
                yield from pending.popleft().result()
        finally:
            for fut in pending:
                fut.cancel()


def _numbered_data_lines(fh: Iterable[str], counts: Dict[str, int]) -> Iterator[Tuple[int, str]]:
    # header is line 1
    for line_no, line in enumerate(fh, start=2):
        counts["lines_total"] += 1
        if not line.strip():
            counts["lines_blank"] += 1
            continue
        yield line_no, line


def inspect_input(input_path: str | Path) -> Header:
    """Read only the header of the input table."""
    try:
        fh = open_textmaybe_gzip(input_path, "rt")
    except OSError as e:
        raise ScanIOError(f"Cannot open {input_path} for reading.") from e
    with fh:
        header = read_header(fh)
    check_header(header)
    return header


def scan_file(
    *,
    input_path: str | Path,
    output_path: str | Path,
    config: AnalysisConfig = AnalysisConfig(),
    threads: int = 1,
    chunk_size: int = 2000,
    strict: bool = False,
    progress: bool = True,
) -> Dict[str, object]:
    """Main workhorse: read the table, detect private alleles, write the TSV, return a summary dict."""
    t0 = time.time()
    validate_config(config)
    if threads < 1:
        raise ValueError("threads must be >= 1")
    if chunk_size < 1:
        raise ValueError("chunk_size must be >= 1")

    try:
        in_fh = open_textmaybe_gzip(input_path, "rt")
    except OSError as e:
        raise ScanIOError(f"Cannot open {input_path} for reading.") from e

    with in_fh:
        header = read_header(in_fh)
        check_header(header)
        num_pops = header.num_pops
        print(f"{num_pops} populations to be analyzed")
        logger.info("%d populations to be analyzed (min_Nc=%s, cv=%s)", num_pops, config.min_nc, config.cv)

        try:
            out_fh = open_textmaybe_gzip(output_path, "wt")
        except OSError as e:
            raise ScanIOError(f"Cannot open {output_path} for writing.") from e

        counts = {
            "lines_total": 0,
            "lines_blank": 0,
            "lines_skipped_malformed": 0,
            "sites_analyzed": 0,
            "sites_no_eligible_pops": 0,
            "sites_single_eligible_pop": 0,
            "sites_polymorphic": 0,
            "sites_with_private_alleles": 0,
            "private_alleles_total": 0,
            "log_prob_neg_inf": 0,
        }
        per_pop = [0] * num_pops
        log_prob_counts = np.zeros(len(_LOG_PROB_BINS) - 1, dtype=np.int64)

        with out_fh:
            out_fh.write("\t".join(OUTPUT_COLUMNS) + "\n")

            it: Iterable[LineOutcome] = iter_site_outcomes(
                _numbered_data_lines(in_fh, counts),
                header=header,
                config=config,
                threads=threads,
                chunk_size=chunk_size,
            )
            if progress:
                it = tqdm(it, unit="site", desc="Scanning sites")

            for outcome in it:
                if outcome.result is None:
                    if strict:
                        raise RecordParseError(outcome.error or "malformed line", line_no=outcome.line_no)
                    counts["lines_skipped_malformed"] += 1
                    if counts["lines_skipped_malformed"] <= _MAX_LOGGED_ERRORS:
                        logger.warning("Skipping line %d: %s", outcome.line_no, outcome.error)
                    elif counts["lines_skipped_malformed"] == _MAX_LOGGED_ERRORS + 1:
                        logger.warning("Further malformed lines are counted but not logged.")
                    continue

                res = outcome.result
                counts["sites_analyzed"] += 1
                if res.ne_pops == 0:
                    counts["sites_no_eligible_pops"] += 1
                elif res.ne_pops == 1:
                    counts["sites_single_eligible_pop"] += 1
                if res.num_alleles >= 2:
                    counts["sites_polymorphic"] += 1
                if not res.private_alleles:
                    continue

                counts["sites_with_private_alleles"] += 1
                counts["private_alleles_total"] += len(res.private_alleles)
                finite = []
                for pa in res.private_alleles:
                    per_pop[pa.id_pop - 1] += 1
                    if math.isinf(pa.log_prob):
                        counts["log_prob_neg_inf"] += 1
                    else:
                        finite.append(pa.log_prob)
                if finite:
                    clipped = np.clip(finite, _LOG_PROB_BINS[0], _LOG_PROB_BINS[-1])
                    log_prob_counts += np.histogram(clipped, bins=_LOG_PROB_BINS)[0]

                out_fh.writelines(iter_result_rows(res))

    if counts["lines_skipped_malformed"]:
        logger.warning("%d malformed line(s) skipped", counts["lines_skipped_malformed"])

    dt = time.time() - t0
    return {
        "input_path": str(input_path),
        "output_path": str(output_path),
        "min_nc": float(config.min_nc),
        "cv": float(config.cv),
        "missing_token": config.missing_token,
        "num_pops": num_pops,
        "threads": int(threads),
        "counts": counts,
        "private_alleles_per_pop": per_pop,
        "log_prob_hist": {
            "bin_edges": _LOG_PROB_BINS.tolist(),
            "counts": log_prob_counts.tolist(),
        },
        "runtime_seconds": float(dt),
    }
