"""
Tests for single-session retrieval and explicit path fetching.
"""

import pytest

from scml.core.addresses import LogicalFileAddress
from scml.infrastructure.fakes import InMemoryFileStore
from scml.infrastructure.remote_store import (
    AccessDeniedError,
    AuthenticationError,
    TransientNetworkError,
)
from scml.services.download_models import MANIFEST_NAME, DownloadManifest
from scml.services.download_service import DownloadService, fetch_paths, read_path_list
from scml.services.statistics import RunStatistics
from tests.content_library_utils import (
    CONTENT_SHARE,
    add_library_file,
    no_sleep_retry,
    populated_store,
    write_inventory,
)


def _library():
    store = InMemoryFileStore(server="srv")
    lines = [
        add_library_file(store, "PKG001", "install.ps1", 'password = "Secret123"\n', hash_value="9F8A1C2D"),
        add_library_file(store, "PKG001", "unattend.xml", "<unattend/>\n"),
        add_library_file(store, "PKG002", "readme.txt", "hello\n"),
    ]
    return store, lines


def _service(store, statistics=None, **kwargs):
    session = store.session()
    session.connect()
    return DownloadService(
        session, statistics=statistics, retry_config=no_sleep_retry(), **kwargs
    )


class TestDownloadService:
    def test_downloads_filtered_entries_with_hash_prefix(self, tmp_path):
        store, lines = _library()
        inventory = write_inventory(tmp_path / "inventory.txt", lines)
        out = tmp_path / "out"

        result = _service(store).download_files(inventory, ["ps1", "xml"], out)

        assert result.candidates == 2
        assert result.downloaded == 2
        assert (out / "9F8A-install.ps1").read_text() == 'password = "Secret123"\n'
        assert not any(p.name.endswith("readme.txt") for p in out.iterdir())

    def test_preserve_filenames(self, tmp_path):
        store, lines = _library()
        inventory = write_inventory(tmp_path / "inventory.txt", lines)

        _service(store, preserve_filenames=True).download_files(inventory, ["ps1"], tmp_path / "out")

        assert (tmp_path / "out" / "install.ps1").is_file()

    def test_rerun_reads_nothing(self, tmp_path):
        store, lines = _library()
        inventory = write_inventory(tmp_path / "inventory.txt", lines)
        out = tmp_path / "out"
        _service(store).download_files(inventory, [], out)
        reads_after_first = store.read_count

        statistics = RunStatistics()
        result = _service(store, statistics).download_files(inventory, [], out)

        assert store.read_count == reads_after_first
        assert result.downloaded == 0
        assert result.already_present == 3
        assert statistics.get("files_already_present") == 3

    def test_existing_file_without_manifest_is_not_refetched(self, tmp_path):
        store, lines = _library()
        inventory = write_inventory(tmp_path / "inventory.txt", lines)
        out = tmp_path / "out"
        out.mkdir()
        (out / "9F8A-install.ps1").write_text("already here")

        result = _service(store).download_files(inventory, ["ps1"], out)

        assert result.already_present == 1
        assert store.reads_of("FileLib/9F8A/9F8A1C2D") == 0
        assert DownloadManifest(out).local_path(LogicalFileAddress.parse(lines[0])) is not None

    def test_unresolved_entries_are_counted(self, tmp_path):
        store, lines = _library()
        lines.append("srv/SCCMContentLib$/DataLib/PKG003/missing.ps1")
        inventory = write_inventory(tmp_path / "inventory.txt", lines)
        statistics = RunStatistics()

        result = _service(store, statistics).download_files(inventory, ["ps1"], tmp_path / "out")

        assert result.downloaded == 1
        assert result.unresolved == 1
        assert statistics.get("hashes_unresolved") == 1

    def test_read_failure_counts_and_continues(self, tmp_path):
        store, lines = _library()
        store.fail_read(CONTENT_SHARE, "FileLib/9F8A/9F8A1C2D", TransientNetworkError("reset"))
        inventory = write_inventory(tmp_path / "inventory.txt", lines)

        result = _service(store).download_files(inventory, [], tmp_path / "out")

        assert result.failed == 1
        assert result.downloaded == 2
        assert result.failures[0][0].endswith("install.ps1")
        assert not list((tmp_path / "out").glob("*.part"))

    def test_rejected_logon_propagates(self, tmp_path):
        store, lines = _library()
        store.fail_read(CONTENT_SHARE, "FileLib/9F8A/9F8A1C2D", AuthenticationError("logon failure"))
        inventory = write_inventory(tmp_path / "inventory.txt", lines)

        with pytest.raises(AuthenticationError):
            _service(store).download_files(inventory, ["ps1"], tmp_path / "out")

    def test_denied_share_fails_its_entries(self, tmp_path):
        store, lines = _library()
        store.denied_shares.add(CONTENT_SHARE)
        inventory = write_inventory(tmp_path / "inventory.txt", lines)

        result = _service(store).download_files(inventory, [], tmp_path / "out")

        assert result.failed == 3
        assert result.downloaded == 0

    def test_other_servers_are_ignored(self, tmp_path):
        store, lines = _library()
        lines.append("dp99/SCCMContentLib$/DataLib/PKG001/other.ps1")
        inventory = write_inventory(tmp_path / "inventory.txt", lines)

        result = _service(store).download_files(inventory, ["ps1"], tmp_path / "out")

        assert result.candidates == 1

    def test_progress_callback(self, tmp_path):
        store, lines = populated_store(5)
        inventory = write_inventory(tmp_path / "inventory.txt", lines)
        calls = []

        _service(store, progress_callback=lambda c, t, m: calls.append((c, t))).download_files(
            inventory, [], tmp_path / "out"
        )

        assert calls[-1] == (5, 5)


class TestManifest:
    def test_round_trip_across_instances(self, tmp_path):
        address = LogicalFileAddress.parse("srv/share/DataLib/PKG/a.ps1")
        (tmp_path / "ABCD-a.ps1").write_text("x")

        DownloadManifest(tmp_path).record(address, "ABCD-a.ps1")
        reloaded = DownloadManifest(tmp_path)

        assert reloaded.local_path(address) == tmp_path / "ABCD-a.ps1"
        assert (tmp_path / MANIFEST_NAME).is_file()

    def test_missing_local_file_is_not_present(self, tmp_path):
        address = LogicalFileAddress.parse("srv/share/DataLib/PKG/a.ps1")
        manifest = DownloadManifest(tmp_path)
        manifest.record(address, "gone.ps1")

        assert manifest.local_path(address) is None


class TestFetchPaths:
    def _store(self):
        store = InMemoryFileStore(server="srv")
        store.add_file("Share", "Apps/tool/config.xml", "<config/>")
        store.add_file("Share", "Apps/tool/run.bat", "@echo off")
        store.add_file("Other$", "x.txt", "x")
        return store

    def test_keeps_directory_layout(self, tmp_path):
        store = self._store()
        addresses = [
            LogicalFileAddress.parse("\\\\srv\\Share\\Apps\\tool\\config.xml"),
            LogicalFileAddress.parse("srv/Other$/x.txt"),
        ]

        result = fetch_paths(addresses, lambda server: store.session(), tmp_path, no_sleep_retry())

        assert result.downloaded == 2
        assert (tmp_path / "srv" / "Share" / "Apps" / "tool" / "config.xml").read_text() == "<config/>"
        assert (tmp_path / "srv" / "Other$" / "x.txt").is_file()

    def test_existing_files_are_skipped(self, tmp_path):
        store = self._store()
        address = LogicalFileAddress.parse("srv/Share/Apps/tool/run.bat")
        fetch_paths([address], lambda server: store.session(), tmp_path, no_sleep_retry())

        result = fetch_paths([address], lambda server: store.session(), tmp_path, no_sleep_retry())

        assert result.already_present == 1
        assert store.read_count == 1

    def test_missing_file_fails_only_itself(self, tmp_path):
        store = self._store()
        addresses = [
            LogicalFileAddress.parse("srv/Share/Apps/tool/missing.xml"),
            LogicalFileAddress.parse("srv/Share/Apps/tool/run.bat"),
        ]

        result = fetch_paths(addresses, lambda server: store.session(), tmp_path, no_sleep_retry())

        assert result.failed == 1
        assert result.downloaded == 1

    def test_denied_share_fails_its_group(self, tmp_path):
        store = self._store()
        store.denied_shares.add("Share")
        addresses = [
            LogicalFileAddress.parse("srv/Share/Apps/tool/config.xml"),
            LogicalFileAddress.parse("srv/Share/Apps/tool/run.bat"),
            LogicalFileAddress.parse("srv/Other$/x.txt"),
        ]

        result = fetch_paths(addresses, lambda server: store.session(), tmp_path, no_sleep_retry())

        assert result.failed == 2
        assert result.downloaded == 1

    def test_unreachable_server_fails_its_entries(self, tmp_path):
        store = self._store()
        store.connect_failures.extend([TransientNetworkError("timed out")] * 2)

        result = fetch_paths(
            [LogicalFileAddress.parse("srv/Share/Apps/tool/run.bat")],
            lambda server: store.session(),
            tmp_path,
            no_sleep_retry(),
        )

        assert result.failed == 1

    def test_rejected_logon_propagates(self, tmp_path):
        store = self._store()
        store.connect_failures.append(AuthenticationError("STATUS_LOGON_FAILURE"))

        with pytest.raises(AuthenticationError):
            fetch_paths(
                [LogicalFileAddress.parse("srv/Share/Apps/tool/run.bat")],
                lambda server: store.session(),
                tmp_path,
                no_sleep_retry(),
            )

    def test_access_denied_on_connect_fails_entries(self, tmp_path):
        store = self._store()
        store.connect_failures.append(AccessDeniedError("denied"))

        result = fetch_paths(
            [LogicalFileAddress.parse("srv/Share/Apps/tool/run.bat")],
            lambda server: store.session(),
            tmp_path,
            no_sleep_retry(),
        )

        assert result.failed == 1


def test_read_path_list_skips_comments_and_malformed(tmp_path):
    path = tmp_path / "paths.txt"
    path.write_text("# comment\n\n\\\\srv\\Share\\a.xml\nbogus\nsrv/Share/b.xml\n", encoding="utf-8")

    addresses = read_path_list(path)

    assert [str(a) for a in addresses] == ["srv/Share/a.xml", "srv/Share/b.xml"]
