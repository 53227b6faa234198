"""
Tests for the sensitivity rule registry, engine and report aggregation.
"""

import pytest

from scml.core.addresses import LogicalFileAddress
from scml.core.rules import (
    MASK,
    MatchScope,
    RuleRegistry,
    SensitivityRuleEngine,
    Severity,
    SnafflerRule,
    content_score,
    generate_report,
    get_default_rule_registry,
    mask_secret,
    overall_risk,
)


@pytest.fixture
def engine():
    return SensitivityRuleEngine()


def _content_matches(results):
    return [r for r in results if r.rule.scope is MatchScope.FILE_CONTENT]


class TestRegistry:
    def test_default_registry_is_shared(self):
        assert get_default_rule_registry() is get_default_rule_registry()

    def test_rules_split_by_scope(self):
        registry = get_default_rule_registry()

        assert len(registry.path_rules) + len(registry.content_rules) == len(registry)
        assert all(r.scope is MatchScope.FILE_CONTENT for r in registry.content_rules)
        assert registry.get("Private_Keys").severity is Severity.BLACK

    def test_patterns_compiled_once(self):
        rule = get_default_rule_registry().get("Script_Credentials")
        assert len(rule.compiled_patterns) == len(rule.patterns)

    def test_duplicate_names_rejected(self):
        rule = SnafflerRule("Dup", "d", MatchScope.FILE_NAME, (r"x",), Severity.GREEN, 1)
        with pytest.raises(ValueError):
            RuleRegistry([rule, rule])

    def test_by_severity(self):
        black = get_default_rule_registry().by_severity(Severity.BLACK)
        assert {r.name for r in black} >= {"Unattend_Files", "KeePass_Database"}


class TestContentScan:
    def test_script_password_assignment(self, engine, tmp_path):
        script = tmp_path / "9F8A-install.ps1"
        script.write_text('Write-Host "setup"\npassword = "Secret123"\nexit 0\n', encoding="utf-8")

        results = engine.analyse_file(script)

        content = _content_matches(results)
        assert len(content) == 1
        assert content[0].severity is Severity.RED
        assert content[0].rule_name == "Script_Credentials"
        assert content[0].matched_text == f"password={MASK}"
        assert content[0].line_number == 2
        assert ">>> Line 2:" in content[0].context
        assert "PowerShell_Scripts" in {r.rule_name for r in results}

    def test_oversized_file_keeps_name_match_only(self, tmp_path):
        big = tmp_path / "unattend.xml"
        line = "<Password><Value>password = 'hunter2'</Value></Password>\n"
        big.write_text(line * (15 * 1024 * 1024 // len(line) + 1), encoding="utf-8")

        results = SensitivityRuleEngine().analyse_file(big)

        assert big.stat().st_size > 15 * 1024 * 1024 - len(line)
        assert "Unattend_Files" in {r.rule_name for r in results}
        assert _content_matches(results) == []

    def test_binary_extension_not_content_scanned(self, engine, tmp_path):
        blob = tmp_path / "tool.exe"
        blob.write_bytes(b'password = "Secret123"\n')

        assert engine.analyse_file(blob) == []

    def test_missing_file_yields_path_matches(self, engine, tmp_path):
        results = engine.analyse_file(tmp_path / "gone.kdbx")
        assert [r.rule_name for r in results] == ["KeePass_Database"]

    def test_context_lines_are_bounded(self, tmp_path):
        engine = SensitivityRuleEngine(context_lines=1, context_width=10)
        lines = ["a" * 40, "b", "token = 'abcdefghijklmnopqrstuvwxyz'", "c", "d"]

        match = _content_matches(engine.match_content("f.ps1", lines))[0]

        rendered = match.context.splitlines()
        assert len(rendered) == 3
        assert rendered[1].startswith(">>> Line 3: ")
        assert rendered[1].endswith("...")

    def test_each_regex_match_is_a_result(self, engine):
        results = engine.match_content("f.txt", ["a@example.com b@example.org"])
        assert [r.rule_name for r in results] == ["Email_Addresses", "Email_Addresses"]

    def test_path_rules_use_whole_path(self, engine):
        results = engine.match_path("out/srv/share/app/.git/config", "config")
        assert "Source_Control" in {r.rule_name for r in results}


class TestAnalyseRemote:
    def test_uses_logical_address_and_bytes(self, engine):
        address = LogicalFileAddress.parse("srv/SCCMContentLib$/DataLib/PKG001/web.config")

        results = engine.analyse_remote(address, b'<add key="x" value="y"/>\npwd = "abc"\n')

        names = {r.rule_name for r in results}
        assert {"Config_Files_Sensitive", "Config_Files_General", "Script_Credentials"} <= names
        assert all(r.file_path == str(address) for r in results)

    def test_without_data_only_path_rules(self, engine):
        results = engine.analyse_remote("srv/share/DataLib/PKG/id_rsa.pem")
        assert [r.rule_name for r in results] == ["Private_Keys"]

    def test_data_over_ceiling_is_not_scanned(self):
        engine = SensitivityRuleEngine(max_content_bytes=16)
        results = engine.analyse_remote("srv/share/DataLib/a.ps1", b'password = "Secret123"\n')
        assert _content_matches(results) == []


class TestScoring:
    def test_mask_secret(self):
        assert mask_secret("pwd: hunter2") == f"pwd={MASK}"
        assert mask_secret("nothing here") == "nothing here"
        assert mask_secret("x" * 60) == "x" * 50 + "..."

    def test_content_score_bonuses(self):
        assert content_score(75, "abc") == 75
        assert content_score(75, 'password = "Secret123"') == 85
        assert content_score(95, "k=" + "v" * 60) == 100

    def test_overall_risk(self, engine):
        results = engine.match_path("a/unattend.xml", "unattend.xml")
        # Black (100) + Green XML (5)
        assert overall_risk(results) == 10
        assert overall_risk(results * 20) == 100


class TestReport:
    def test_empty_report(self):
        report = generate_report([])

        assert report.total_matches == 0
        assert report.overall_risk_score == 0
        assert report.risk_rating.startswith("MINIMAL")

    def test_groups_most_severe_first(self, engine):
        results = (
            engine.match_path("a/readme.txt", "readme.txt")
            + engine.match_path("b/install.ps1", "install.ps1")
            + engine.match_path("c/key.pem", "key.pem")
        )

        report = generate_report(results)

        assert [f.severity for f in report.findings] == [
            Severity.BLACK,
            Severity.YELLOW,
            Severity.GREEN,
        ]
        assert report.total_files == 3
        assert report.files_with_severity(Severity.BLACK) == ["c/key.pem"]

    def test_file_severity_is_its_maximum(self, engine):
        results = engine.match_path("x/unattend.xml", "unattend.xml")

        report = generate_report(results)

        assert report.file_max_severity == {"x/unattend.xml": Severity.BLACK}
        assert report.files_with_severity(Severity.GREEN) == []

    def test_rules_ordered_by_match_count(self, engine):
        results = engine.match_path("a.txt", "a.txt") + engine.match_content(
            "b.txt", ["x@example.com y@example.com"]
        )

        green = generate_report(results).findings[0]

        assert [r.rule_name for r in green.rule_matches] == ["Email_Addresses", "Log_Files"]
        assert green.rule_matches[0].files == ["b.txt"]
