"""
Tests for extension presets and target parsing.
"""

from scml.core.extension_presets import get_preset, load_presets, resolve_extensions
from scml.core.targets import Target, parse_target, read_targets_file
from scml.infrastructure.remote_store import Credentials


class TestPresets:
    def test_presets_loaded(self):
        presets = load_presets()

        assert {"baseline", "credentials", "scripts", "critical", "quick"} <= set(presets)
        assert "ps1" in presets["scripts"].extensions
        assert all(not e.startswith(".") for p in presets.values() for e in p.extensions)

    def test_lookup_by_key_or_name(self):
        assert get_preset("Credentials") is get_preset("credentials")
        assert get_preset("SCCM").key == "sccm"
        assert get_preset("no-such-preset") is None

    def test_resolve_preset(self):
        assert resolve_extensions("scripts") == frozenset(get_preset("scripts").extensions)

    def test_resolve_custom_list(self):
        assert resolve_extensions(".PS1, xml;bat  cmd") == {"ps1", "xml", "bat", "cmd"}

    def test_resolve_empty_means_everything(self):
        assert resolve_extensions(None) == frozenset()
        assert resolve_extensions("   ") == frozenset()


class TestTargets:
    def test_bare_host(self):
        assert parse_target("dp01.corp.local") == Target(address="dp01.corp.local")

    def test_user_password_host(self):
        target = parse_target("svc_sccm:Winter2024!@10.0.0.5")

        assert target.address == "10.0.0.5"
        assert target.username == "svc_sccm"
        assert target.password == "Winter2024!"
        assert target.domain is None

    def test_domain_user_host(self):
        target = parse_target("CORP\\svc_sccm@dp01")

        assert target.domain == "CORP"
        assert target.username == "svc_sccm"
        assert target.password is None

    def test_embedded_credentials_override_fallback(self):
        fallback = Credentials(username="other", password="pw", domain="CORP")

        merged = parse_target("svc@dp01").credentials(fallback)

        assert merged.username == "svc"
        assert merged.password == "pw"
        assert merged.domain == "CORP"
        assert merged.qualified_username == "CORP\\svc"

    def test_without_embedded_credentials_fallback_used(self):
        fallback = Credentials(use_current_user=True)
        assert parse_target("dp01").credentials(fallback) is fallback

    def test_read_targets_file(self, tmp_path):
        path = tmp_path / "targets.txt"
        path.write_text("# distribution points\ndp01\n\n  svc@dp02  \n", encoding="utf-8")

        targets = read_targets_file(path)

        assert [t.address for t in targets] == ["dp01", "dp02"]
        assert targets[1].username == "svc"
