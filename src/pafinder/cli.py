from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Optional

from . import __version__
from .models import AnalysisConfig
from .plotting import plot_log_prob_hist, plot_private_alleles_per_pop
from .report import render_report
from .scanner import ScanIOError, inspect_input, scan_file
from .toy_data import make_toy_data
from .utils import ensure_outdir, write_json
from .validation import validate_config

DEFAULT_INPUT = "In_FPA.txt"
DEFAULT_OUTPUT = "Out_FPA.txt"


def _setup_logging(verbosity: int, *, logfile: Optional[Path] = None) -> None:
    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity >= 2:
        level = logging.DEBUG

    log_fmt = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
    logging.basicConfig(level=level, format=log_fmt, stream=sys.stderr)

    if logfile is not None:
        logfile.parent.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(logfile)
        fh.setLevel(level)
        fh.setFormatter(logging.Formatter(log_fmt))
        logging.getLogger().addHandler(fh)


def _log_path(outdir: Path, name: str) -> Path:
    return outdir / "logs" / name


def _handle_error(err: Exception, *, log_path: Optional[Path] = None) -> int:
    if isinstance(err, ScanIOError):
        msg = str(err)
    else:
        msg = f"{err.__class__.__name__}: {err}"

    sys.stderr.write(msg + "\n")
    if log_path is not None:
        sys.stderr.write(f"See log: {log_path}\n")
    return 1


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="pafinder",
        description=(
            "pafinder: find private alleles (alleles seen in exactly one of several "
            "sufficiently sampled populations) from per-population ML allele-frequency estimates."
        ),
    )
    p.add_argument("--version", action="version", version=f"pafinder {__version__}")

    sub = p.add_subparsers(dest="cmd", required=True)

    # -----------------
    # quickstart
    # -----------------
    sub.add_parser(
        "quickstart",
        help="Print ready-to-run recipes for common scenarios.",
    )

    # -----------------
    # make-toy-data
    # -----------------
    t = sub.add_parser(
        "make-toy-data",
        help="Write a small synthetic input table for demos/tests.",
    )
    t.add_argument("--out", required=True, help="Output path for the toy table.")
    t.add_argument("--num-pops", type=int, default=3, help="Number of populations (>= 2).")
    t.add_argument("--num-sites", type=int, default=50, help="Number of sites.")
    t.add_argument("--seed", type=int, default=7, help="Random seed.")

    # -----------------
    # scan
    # -----------------
    s = sub.add_parser(
        "scan",
        help="Scan a combined allele-frequency table and report private alleles.",
    )
    s.add_argument(
        "-in",
        "--input",
        default=DEFAULT_INPUT,
        help=f"Input table (.txt or .txt.gz; default: {DEFAULT_INPUT}).",
    )
    s.add_argument(
        "-out",
        "--output",
        default=DEFAULT_OUTPUT,
        help=f"Output TSV (default: {DEFAULT_OUTPUT}).",
    )
    s.add_argument(
        "-min_Nc",
        "--min-nc",
        dest="min_nc",
        type=float,
        default=20.0,
        help="Minimum effective number of sampled chromosomes required in a population.",
    )
    s.add_argument(
        "-cv",
        "--cv",
        type=float,
        default=5.991,
        help="Chi-square critical value for the polymorphism test.",
    )
    s.add_argument("--missing-token", default="NA", help="Token marking missing estimates.")
    s.add_argument("--threads", type=int, default=1, help="Worker processes (1 = no pool).")
    s.add_argument("--chunk-size", type=int, default=2000, help="Lines per worker task.")
    s.add_argument(
        "--strict",
        action="store_true",
        help="Stop at the first malformed line instead of skipping it.",
    )
    s.add_argument(
        "--report-dir",
        default=None,
        help="Write summary.json, plots and report.html into this directory.",
    )
    s.add_argument("--no-progress", action="store_true", help="Disable the progress bar.")
    s.add_argument("--log-file", default=None, help="Also write log messages to this file.")
    s.add_argument("--dry-run", action="store_true", help="Validate inputs and print planned outputs.")
    s.add_argument("-v", "--verbose", action="count", default=0, help="Increase verbosity (-v/-vv).")

    return p


# -----------------
# Command handlers
# -----------------

def cmd_quickstart() -> int:
    lines = [
        "pafinder quickstart (copy/paste):",
        "",
        "1) Default file names (In_FPA.txt -> Out_FPA.txt):",
        "   pafinder scan",
        "",
        "2) Custom thresholds:",
        "   pafinder scan \\",
        "     -in combined_gfe.txt \\",
        "     -out private_alleles.tsv \\",
        "     -min_Nc 15 \\",
        "     -cv 3.841",
        "",
        "3) Large input on 8 cores with an HTML report:",
        "   pafinder scan \\",
        "     -in combined_gfe.txt.gz \\",
        "     -out private_alleles.tsv \\",
        "     --threads 8 \\",
        "     --report-dir results/",
        "   Outputs: private_alleles.tsv, results/report.html, results/summary.json",
        "",
        "Tip: use 'pafinder make-toy-data --out toy.txt' to get a small input to try.",
    ]
    print("\n".join(lines))
    return 0


def cmd_make_toy_data(args: argparse.Namespace) -> int:
    try:
        summary = make_toy_data(
            out_path=Path(args.out).expanduser().resolve(),
            num_pops=int(args.num_pops),
            num_sites=int(args.num_sites),
            seed=int(args.seed),
        )
    except Exception as e:
        return _handle_error(e)
    print(json.dumps(summary, indent=2))
    return 0


def cmd_scan(args: argparse.Namespace) -> int:
    report_dir = Path(args.report_dir).expanduser().resolve() if args.report_dir else None
    if args.log_file:
        log_path: Optional[Path] = Path(args.log_file).expanduser().resolve()
    elif report_dir is not None:
        log_path = _log_path(report_dir, "scan.log")
    else:
        log_path = None
    _setup_logging(args.verbose, logfile=None if args.dry_run else log_path)

    logger = logging.getLogger("pafinder")
    logger.info("pafinder %s", __version__)

    try:
        config = AnalysisConfig(
            min_nc=float(args.min_nc),
            cv=float(args.cv),
            missing_token=str(args.missing_token),
        )
        validate_config(config)

        if args.dry_run:
            header = inspect_input(args.input)
            print("Dry-run: inputs look OK.")
            print(f"{header.num_pops} populations to be analyzed")
            print(f"Thresholds: min_Nc={config.min_nc} cv={config.cv}")
            print("Planned outputs:")
            print(f"  private alleles -> {args.output}")
            if report_dir is not None:
                print(f"  report.html -> {report_dir / 'report.html'}")
                print(f"  summary.json -> {report_dir / 'summary.json'}")
            return 0

        run = scan_file(
            input_path=args.input,
            output_path=args.output,
            config=config,
            threads=int(args.threads),
            chunk_size=int(args.chunk_size),
            strict=bool(args.strict),
            progress=not bool(args.no_progress),
        )
        logger.info(
            "%d private allele(s) at %d of %d site(s)",
            run["counts"]["private_alleles_total"],
            run["counts"]["sites_with_private_alleles"],
            run["counts"]["sites_analyzed"],
        )

        if report_dir is not None:
            outdir = ensure_outdir(report_dir)
            write_json(outdir / "summary.json", run)

            plots_dir = outdir / "plots"
            per_pop_png = plots_dir / "private_alleles_per_pop.png"
            log_prob_png = plots_dir / "log_prob_hist.png"
            plot_private_alleles_per_pop(per_pop=run["private_alleles_per_pop"], out_png=per_pop_png)
            plot_log_prob_hist(
                bin_edges=run["log_prob_hist"]["bin_edges"],
                counts=run["log_prob_hist"]["counts"],
                neg_inf=run["counts"]["log_prob_neg_inf"],
                out_png=log_prob_png,
            )
            render_report(
                outdir=outdir,
                version=__version__,
                run=run,
                plots={
                    "per_pop": str(Path("plots") / per_pop_png.name),
                    "log_prob_hist": str(Path("plots") / log_prob_png.name),
                },
            )

        print(str(args.output))
        return 0
    except Exception as e:
        return _handle_error(e, log_path=log_path)


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    try:
        args = parser.parse_args(argv)
    except SystemExit as e:
        # argparse exits 0 for --help/--version and 2 for usage errors
        return 0 if not e.code else 1

    if args.cmd == "quickstart":
        return cmd_quickstart()
    if args.cmd == "make-toy-data":
        return cmd_make_toy_data(args)
    if args.cmd == "scan":
        return cmd_scan(args)

    parser.print_usage(sys.stderr)
    return 1


if __name__ == "__main__":
    raise SystemExit(main())
