"""
Tests for the text report, findings CSV, cleanup scripts and in-place writer.
"""

import csv
from pathlib import Path

from scml.core.rules import SensitivityRuleEngine, generate_report
from scml.services.report_writers import (
    BATCH_CSV_HEADER,
    INPLACE_CSV_HEADER,
    InPlaceResultsWriter,
    derive_results_paths,
    render_batch_script,
    render_powershell_script,
    write_cleanup_scripts,
    write_findings_csv,
    write_text_report,
)


def _results():
    engine = SensitivityRuleEngine()
    return (
        engine.match_path("out/ABCD-unattend.xml", "ABCD-unattend.xml")
        + engine.match_path("out/web.config", "web.config")
        + engine.match_path("out/readme.txt", "readme.txt")
        + engine.match_content("out/deploy.ps1", ["x = 1", 'password = "Secret123"'])
    )


def _read_csv(path):
    with open(path, encoding="utf-8", newline="") as handle:
        return list(csv.reader(handle))


class TestTextReport:
    def test_summary_and_file_blocks(self, tmp_path):
        results = _results()
        report = generate_report(results)

        path = write_text_report(tmp_path / "report.txt", report, results, Path("out"))

        text = path.read_text(encoding="utf-8")
        assert text.startswith("Content Library Sensitivity Analysis Report\n")
        assert f"Overall Risk Score: {report.overall_risk_score}/100" in text
        assert "File: ABCD-unattend.xml" in text
        assert "Full Path: out/web.config" in text
        assert "Match: password=***MASKED***" in text
        # Worst file first
        assert text.index("File: ABCD-unattend.xml") < text.index("File: readme.txt")


class TestFindingsCsv:
    def test_header_and_ordering(self, tmp_path):
        results = _results()

        rows = _read_csv(write_findings_csv(tmp_path / "findings.csv", results))

        assert tuple(rows[0]) == BATCH_CSV_HEADER
        assert len(rows) == len(results) + 1
        assert rows[1][1] == "BLACK"
        assert rows[-1][1] == "GREEN"
        content = [r for r in rows[1:] if r[5]]
        assert content == [
            ["out/deploy.ps1", "RED", "Script_Credentials",
             "Scripts potentially containing credentials", "85", "2", "password=***MASKED***"]
        ]


class TestCleanupScripts:
    def test_black_deleted_with_prompt_red_commented(self):
        report = generate_report(_results())

        bat = render_batch_script(report)

        assert 'del /P "out/ABCD-unattend.xml"' in bat
        assert 'REM del "out/web.config"' in bat
        assert 'REM del "out/deploy.ps1"' in bat
        assert "readme.txt" not in bat
        assert "\r\n" in bat

    def test_powershell_script(self):
        report = generate_report(_results())

        ps1 = render_powershell_script(report)

        assert "$criticalFiles = @(" in ps1
        assert "    'out/ABCD-unattend.xml'" in ps1
        assert "# Remove-Item -LiteralPath 'out/web.config'" in ps1
        assert "Read-Host 'Delete this file? (Y/N)'" in ps1

    def test_single_quotes_escaped(self):
        engine = SensitivityRuleEngine()
        report = generate_report(engine.match_path("out/bob's.kdbx", "bob's.kdbx"))

        assert "'out/bob''s.kdbx'" in render_powershell_script(report)

    def test_no_critical_section_without_black_files(self):
        report = generate_report(SensitivityRuleEngine().match_path("a/web.config", "web.config"))

        assert "$criticalFiles" not in render_powershell_script(report)
        assert "del /P" not in render_batch_script(report)

    def test_write_both_scripts(self, tmp_path):
        bat, ps1 = write_cleanup_scripts(tmp_path, generate_report(_results()))

        assert bat.read_bytes().count(b"\r\n") > 5
        assert ps1.name == "cleanup_sensitive_files.ps1"


class TestDeriveResultsPaths:
    def test_default_is_derived_from_inventory(self, tmp_path):
        inventory = tmp_path / "inventory.txt"
        assert derive_results_paths(inventory, None) == (
            tmp_path / "inventory_snaffler_results.txt",
            tmp_path / "inventory_snaffler_results.csv",
        )

    def test_collision_with_inventory_is_avoided(self, tmp_path):
        inventory = tmp_path / "inventory.txt"
        text, _ = derive_results_paths(inventory, tmp_path / "inventory.txt")
        assert text == tmp_path / "inventory_snaffler_results.txt"

    def test_csv_sibling_never_overwrites_inventory(self, tmp_path):
        inventory = tmp_path / "targets.csv"

        text, table = derive_results_paths(inventory, tmp_path / "targets.txt")

        assert (text, table) == (
            tmp_path / "targets_snaffler_results.txt",
            tmp_path / "targets_snaffler_results.csv",
        )

    def test_csv_inventory_default_keeps_outputs_apart(self, tmp_path):
        text, table = derive_results_paths(tmp_path / "targets.csv", None)

        assert text.name == "targets_snaffler_results.txt"
        assert table.name == "targets_snaffler_results.csv"

    def test_csv_output_would_open_one_file_twice(self, tmp_path):
        text, table = derive_results_paths(tmp_path / "inventory.txt", tmp_path / "findings.csv")

        assert text != table
        assert text.name == "inventory_snaffler_results.txt"

    def test_inventory_without_suffix(self, tmp_path):
        inventory = tmp_path / "inventory"
        text, table = derive_results_paths(inventory, None)
        assert text.name == "inventory_snaffler_results.txt"
        assert table.name == "inventory_snaffler_results.csv"

    def test_explicit_path_kept(self, tmp_path):
        target = tmp_path / "findings.txt"
        assert derive_results_paths(tmp_path / "inventory.txt", target) == (
            target,
            tmp_path / "findings.csv",
        )


class TestInPlaceResultsWriter:
    def test_writes_flushed_blocks_and_csv(self, tmp_path):
        engine = SensitivityRuleEngine()
        address = "srv/SCCMContentLib$/DataLib/PKG001/install.ps1"
        matches = engine.analyse_remote(address, b'password = "Secret123"\n')
        writer = InPlaceResultsWriter(tmp_path / "results.txt", tmp_path / "inventory.txt")

        with writer:
            writer.write_file(address, 23, matches)
            writer.write_file("srv/share/DataLib/empty.bin", 4, [])
            partial = (tmp_path / "results.txt").read_text(encoding="utf-8")
            assert f"[FILE] {address}" in partial
            writer.write_summary(files_analysed=2, files_skipped=1)

        text = (tmp_path / "results.txt").read_text(encoding="utf-8")
        assert text.startswith("=== IN-PLACE SENSITIVITY ANALYSIS REPORT ===")
        assert "[SIZE] 23 bytes" in text
        assert "empty.bin" not in text
        assert "Files With Findings: 1" in text
        rows = _read_csv(tmp_path / "results.csv")
        assert tuple(rows[0]) == INPLACE_CSV_HEADER
        assert len(rows) == len(matches) + 1
        assert all(row[0] == address for row in rows[1:])
