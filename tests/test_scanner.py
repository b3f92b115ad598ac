import gzip
from pathlib import Path

import pytest

from pafinder.models import AnalysisConfig
from pafinder.parser import HeaderError, RecordParseError
from pafinder.scanner import OUTPUT_COLUMNS, ScanIOError, scan_file
from pafinder.toy_data import make_toy_data, pop_fields, toy_header, toy_line


def write_table(path: Path, lines: list[str]) -> Path:
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return path


def read_rows(path: Path) -> list[list[str]]:
    lines = path.read_text(encoding="utf-8").splitlines()
    assert lines[0].split("\t") == OUTPUT_COLUMNS
    return [line.split("\t") for line in lines[1:]]


def two_pop_table(tmp_path: Path) -> Path:
    return write_table(
        tmp_path / "in.txt",
        [
            toy_header(2),
            toy_line(
                "scaf1",
                5,
                "A",
                [pop_fields("A", cov=31, nc=30.0, p=1.0), pop_fields("A", cov=29, nc=30.0, p=1.0)],
            ),
            toy_line(
                "scaf1",
                6,
                "A",
                [pop_fields("A", cov=31, nc=30.0, p=0.9), pop_fields("T", cov=29, nc=30.0, p=0.95)],
            ),
        ],
    )


def test_scan_writes_one_row_per_private_allele(tmp_path: Path) -> None:
    out = tmp_path / "out.tsv"
    run = scan_file(input_path=two_pop_table(tmp_path), output_path=out, progress=False)

    rows = read_rows(out)
    assert len(rows) == 2
    assert rows[0][:9] == ["scaf1", "6", "A", "60", "2", "2", "A", "1", "0.900000"]
    assert rows[0][9] == "0.450000"
    assert rows[0][11] == "0.450000"
    assert rows[1][6:10] == ["T", "2", "0.950000", "0.475000"]
    assert float(rows[1][10]) < 0

    counts = run["counts"]
    assert counts["sites_analyzed"] == 2
    assert counts["sites_with_private_alleles"] == 1
    assert counts["private_alleles_total"] == 2
    assert run["num_pops"] == 2
    assert run["private_alleles_per_pop"] == [1, 1]
    assert sum(run["log_prob_hist"]["counts"]) == 2


def test_scan_header_only_output_when_nothing_found(tmp_path: Path) -> None:
    src = write_table(
        tmp_path / "in.txt",
        [toy_header(2), toy_line("s", 1, "C", [pop_fields("C", cov=30, nc=30.0, p=1.0)] * 2)],
    )
    out = tmp_path / "out.tsv"
    scan_file(input_path=src, output_path=out, progress=False)
    assert read_rows(out) == []


def test_zero_frequency_private_allele_is_negative_infinity(tmp_path: Path) -> None:
    src = write_table(
        tmp_path / "in.txt",
        [
            toy_header(2),
            toy_line(
                "s",
                1,
                "C",
                [pop_fields("G", cov=30, nc=30.0, p=0.0), pop_fields("C", cov=30, nc=30.0, p=1.0)],
            ),
        ],
    )
    out = tmp_path / "out.tsv"
    run = scan_file(input_path=src, output_path=out, progress=False)
    rows = read_rows(out)
    g = [r for r in rows if r[6] == "G"][0]
    assert g[10] == "-inf"
    assert run["counts"]["log_prob_neg_inf"] == 1


def test_malformed_lines_are_skipped_and_counted(tmp_path: Path) -> None:
    table = two_pop_table(tmp_path)
    lines = table.read_text(encoding="utf-8").splitlines()
    lines.insert(1, "scaf1\t4\tA\tA\tNA")
    lines.insert(2, "")
    write_table(table, lines)

    out = tmp_path / "out.tsv"
    run = scan_file(input_path=table, output_path=out, progress=False)
    assert run["counts"]["lines_skipped_malformed"] == 1
    assert run["counts"]["lines_blank"] == 1
    assert run["counts"]["sites_analyzed"] == 2
    assert len(read_rows(out)) == 2


def test_strict_mode_stops_on_malformed_line(tmp_path: Path) -> None:
    table = two_pop_table(tmp_path)
    lines = table.read_text(encoding="utf-8").splitlines()
    lines.insert(2, "scaf1\tnot_a_site\tA" + "\tNA" * 18)
    write_table(table, lines)

    with pytest.raises(RecordParseError) as exc:
        scan_file(input_path=table, output_path=tmp_path / "out.tsv", strict=True, progress=False)
    assert exc.value.line_no == 3


def test_process_pool_preserves_input_order(tmp_path: Path) -> None:
    toy = make_toy_data(out_path=tmp_path / "toy.txt", num_pops=4, num_sites=120, seed=11)

    serial = tmp_path / "serial.tsv"
    pooled = tmp_path / "pooled.tsv"
    scan_file(input_path=toy["input"], output_path=serial, progress=False)
    run = scan_file(
        input_path=toy["input"],
        output_path=pooled,
        threads=2,
        chunk_size=7,
        progress=False,
    )
    assert pooled.read_text(encoding="utf-8") == serial.read_text(encoding="utf-8")
    assert run["counts"]["sites_analyzed"] == 120
    assert len(read_rows(pooled)) >= 1


def test_gzip_input_and_thresholds(tmp_path: Path) -> None:
    plain = two_pop_table(tmp_path)
    gz = tmp_path / "in.txt.gz"
    with gzip.open(gz, "wt") as fh:
        fh.write(plain.read_text(encoding="utf-8"))

    out = tmp_path / "out.tsv"
    run = scan_file(
        input_path=gz,
        output_path=out,
        config=AnalysisConfig(min_nc=40.0),
        progress=False,
    )
    assert read_rows(out) == []
    assert run["counts"]["sites_no_eligible_pops"] == 2


def test_missing_input_and_empty_header(tmp_path: Path) -> None:
    with pytest.raises(ScanIOError, match="for reading"):
        scan_file(input_path=tmp_path / "nope.txt", output_path=tmp_path / "o.tsv", progress=False)

    empty = tmp_path / "empty.txt"
    empty.write_text("", encoding="utf-8")
    with pytest.raises(HeaderError):
        scan_file(input_path=empty, output_path=tmp_path / "o.tsv", progress=False)


def test_unwritable_output(tmp_path: Path) -> None:
    with pytest.raises(ScanIOError, match="for writing"):
        scan_file(
            input_path=two_pop_table(tmp_path),
            output_path=tmp_path / "no_such_dir" / "out.tsv",
            progress=False,
        )


def test_invalid_thresholds(tmp_path: Path) -> None:
    with pytest.raises(ValueError):
        scan_file(
            input_path=two_pop_table(tmp_path),
            output_path=tmp_path / "o.tsv",
            config=AnalysisConfig(min_nc=-1.0),
            progress=False,
        )


def test_trailing_partial_group_is_ignored_in_header_and_data(tmp_path: Path) -> None:
    pops = [pop_fields("A", cov=31, nc=30.0, p=0.9), pop_fields("T", cov=29, nc=30.0, p=0.95)]
    src = write_table(
        tmp_path / "in.txt",
        [
            toy_header(2) + "\tnote1\tnote2",
            toy_line("scaf1", 6, "A", pops) + "\tx\ty",
            toy_line("scaf1", 7, "A", pops),
            toy_line("scaf1", 8, "A", pops) + "\tx\ty\tz",
        ],
    )
    out = tmp_path / "out.tsv"
    run = scan_file(input_path=src, output_path=out, progress=False)

    rows = read_rows(out)
    assert [(r[1], r[6]) for r in rows] == [("6", "A"), ("6", "T"), ("7", "A"), ("7", "T")]
    assert run["num_pops"] == 2
    assert run["counts"]["lines_skipped_malformed"] == 1


def test_missing_frequency_only_matters_for_carriers(tmp_path: Path) -> None:
    src = write_table(
        tmp_path / "in.txt",
        [
            toy_header(3),
            toy_line(
                "scaf1",
                1,
                "A",
                [
                    pop_fields("A", cov=31, nc=30.0, p=0.9),
                    pop_fields("T", cov=29, nc=30.0, p=0.95),
                    pop_fields("G", cov=5, nc=5.0, p=None),
                ],
            ),
            toy_line(
                "scaf1",
                2,
                "A",
                [
                    pop_fields("A", "C", cov=31, nc=30.0, p=0.9, q=None, stat=1.0),
                    pop_fields("T", cov=29, nc=30.0, p=0.95),
                    pop_fields(cov=0),
                ],
            ),
            toy_line(
                "scaf1",
                3,
                "A",
                [
                    pop_fields("A", cov=31, nc=30.0, p=None),
                    pop_fields("T", cov=29, nc=30.0, p=0.95),
                    pop_fields(cov=0),
                ],
            ),
        ],
    )
    out = tmp_path / "out.tsv"
    run = scan_file(input_path=src, output_path=out, progress=False)

    rows = read_rows(out)
    assert [(r[1], r[6], r[7]) for r in rows] == [
        ("1", "A", "1"),
        ("1", "T", "2"),
        ("2", "A", "1"),
        ("2", "T", "2"),
    ]
    assert run["counts"]["lines_skipped_malformed"] == 1

    with pytest.raises(RecordParseError) as exc:
        scan_file(input_path=src, output_path=out, strict=True, progress=False)
    assert exc.value.line_no == 4
    assert "best_p" in str(exc.value)
