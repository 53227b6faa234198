"""
Tests for logical addresses, content hash keys and extension filters.
"""

import pytest

from scml.core.addresses import (
    ContentHashKey,
    LogicalFileAddress,
    matches_extensions,
    normalize_extensions,
)
from scml.infrastructure.remote_store import CorruptDataError


class TestLogicalFileAddress:
    def test_parse_slash_form(self):
        address = LogicalFileAddress.parse("srv/SCCMContentLib$/DataLib/PKG001/install.ps1")

        assert address.server == "srv"
        assert address.share == "SCCMContentLib$"
        assert address.relative_path == "DataLib/PKG001/install.ps1"
        assert address.name == "install.ps1"
        assert address.parent == "DataLib/PKG001"
        assert address.extension == "ps1"

    def test_parse_unc_form(self):
        address = LogicalFileAddress.parse("\\\\srv\\SCCMContentLib$\\DataLib\\PKG001\\setup.xml\n")

        assert str(address) == "srv/SCCMContentLib$/DataLib/PKG001/setup.xml"
        assert address.unc == "\\\\srv\\SCCMContentLib$\\DataLib\\PKG001\\setup.xml"

    @pytest.mark.parametrize("text", ["", "srv", "srv/share", "  /srv//  "])
    def test_parse_rejects_short_lines(self, text):
        with pytest.raises(CorruptDataError):
            LogicalFileAddress.parse(text)

    def test_key_is_case_insensitive(self):
        a = LogicalFileAddress.parse("SRV/Share/DataLib/a.xml")
        b = LogicalFileAddress.parse("srv/share/datalib/A.XML")

        assert a.key == b.key
        assert a != b

    def test_extension_edge_cases(self):
        assert LogicalFileAddress("s", "h", "DataLib/README").extension == ""
        assert LogicalFileAddress("s", "h", "DataLib/.hidden").extension == ""
        assert LogicalFileAddress("s", "h", "DataLib/archive.tar.GZ").extension == "gz"

    def test_sidecar_path(self):
        address = LogicalFileAddress.parse("srv/share/DataLib/PKG001/install.ps1")

        assert address.sidecar_path() == "DataLib/PKG001/install.ps1.INI"
        assert address.sidecar_path(".ini") == "DataLib/PKG001/install.ps1.ini"

    def test_library_root_at_share_root(self):
        address = LogicalFileAddress.parse("srv/SCCMContentLib$/DataLib/PKG001/install.ps1")
        assert address.library_root == ""

    def test_library_root_nested_in_admin_share(self):
        address = LogicalFileAddress.parse("srv/ADMIN$/SCCMContentLib/DataLib/PKG001/install.ps1")
        assert address.library_root == "SCCMContentLib"


class TestContentHashKey:
    def test_fetch_path_and_local_name(self):
        key = ContentHashKey("9F8A1C2D")

        assert key.shard == "9F8A"
        assert key.physical_path() == "FileLib/9F8A/9F8A1C2D"
        assert key.local_name("install.ps1") == "9F8A-install.ps1"
        assert key.local_name("install.ps1", preserve_name=True) == "install.ps1"

    def test_physical_path_under_nested_root(self):
        key = ContentHashKey("ABCDEF12")
        assert key.physical_path("SCCMContentLib") == "SCCMContentLib/FileLib/ABCD/ABCDEF12"

    def test_short_hash_uses_whole_value_as_shard(self):
        assert ContentHashKey("AB").shard == "AB"

    @pytest.mark.parametrize("value", ["", "9F8A-1C2D", "../etc", "ab cd"])
    def test_rejects_non_alphanumeric(self, value):
        with pytest.raises(ValueError):
            ContentHashKey(value)


class TestExtensionFilters:
    def test_normalize(self):
        assert normalize_extensions([".PS1", "xml ", "", " .", "Bat"]) == {"ps1", "xml", "bat"}

    def test_empty_filter_matches_everything(self):
        assert matches_extensions("anything.bin", [])

    def test_matches_address_and_string(self):
        address = LogicalFileAddress.parse("srv/share/DataLib/PKG/Setup.PS1")

        assert matches_extensions(address, ["ps1"])
        assert matches_extensions("C:\\out\\unattend.XML", [".xml"])
        assert not matches_extensions("notes.txt", ["xml", "ps1"])
        assert not matches_extensions("Makefile", ["xml"])
