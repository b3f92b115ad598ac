import json
import subprocess
import sys
from pathlib import Path

from pafinder.toy_data import make_toy_data


def _run_cli(args: list[str]) -> subprocess.CompletedProcess:
    return subprocess.run(
        [sys.executable, "-m", "pafinder"] + args,
        check=False,
        capture_output=True,
        text=True,
    )


def test_quickstart_output() -> None:
    cp = _run_cli(["quickstart"])
    assert cp.returncode == 0
    assert "pafinder scan" in cp.stdout
    assert "-min_Nc" in cp.stdout


def test_unknown_option_is_usage_error() -> None:
    cp = _run_cli(["scan", "-bogus", "1"])
    assert cp.returncode == 1
    assert "usage" in cp.stderr.lower()


def test_missing_input_message(tmp_path: Path) -> None:
    cp = _run_cli(["scan", "-in", str(tmp_path / "missing.txt"), "-out", str(tmp_path / "o.tsv")])
    assert cp.returncode == 1
    assert "Cannot open" in cp.stderr
    assert not (tmp_path / "o.tsv").exists()


def test_invalid_threshold_exit_code(tmp_path: Path) -> None:
    toy = make_toy_data(out_path=tmp_path / "toy.txt")
    cp = _run_cli(["scan", "-in", toy["input"], "-out", str(tmp_path / "o.tsv"), "-min_Nc", "-5"])
    assert cp.returncode == 1
    assert "min_Nc" in cp.stderr


def test_scan_dry_run_does_not_write_outputs(tmp_path: Path) -> None:
    toy = make_toy_data(out_path=tmp_path / "toy.txt", num_pops=4)
    out = tmp_path / "private.tsv"
    cp = _run_cli(["scan", "-in", toy["input"], "-out", str(out), "--dry-run"])
    assert cp.returncode == 0
    assert "Dry-run" in cp.stdout
    assert "4 populations to be analyzed" in cp.stdout
    assert not out.exists()


def test_make_toy_data_and_scan_with_report(tmp_path: Path) -> None:
    toy_path = tmp_path / "toy.txt"
    cp = _run_cli(["make-toy-data", "--out", str(toy_path), "--num-pops", "3"])
    assert cp.returncode == 0
    assert toy_path.exists()

    out = tmp_path / "private.tsv"
    report_dir = tmp_path / "report"
    cp = _run_cli(
        [
            "scan",
            "-in",
            str(toy_path),
            "-out",
            str(out),
            "-min_Nc",
            "20",
            "-cv",
            "5.991",
            "--report-dir",
            str(report_dir),
            "--no-progress",
        ]
    )
    assert cp.returncode == 0, cp.stderr
    assert "3 populations to be analyzed" in cp.stdout
    assert out.exists()
    assert (report_dir / "report.html").exists()
    assert (report_dir / "plots" / "log_prob_hist.png").exists()

    summary = json.loads((report_dir / "summary.json").read_text(encoding="utf-8"))
    assert summary["num_pops"] == 3
    assert summary["counts"]["private_alleles_total"] >= 1

    rows = out.read_text(encoding="utf-8").splitlines()
    assert rows[0].startswith("scaffold\tsite\tref_nuc\ttot_cov")
    # the fixed second toy site: population 1 alone carries G
    assert rows[1].split("\t")[:8] == ["scaffold_1", "101", "A", "100", "3", "2", "G", "1"]
