"""
Tests for the services container and the session backends it hands out.
"""

import pytest
from smbprotocol.exceptions import SMBAuthenticationError, SMBOSError
from smbprotocol.header import NtStatus

from scml.core.config import SCMLConfig
from scml.core.targets import parse_target
from scml.infrastructure.remote_store import (
    AccessDeniedError,
    AuthenticationError,
    Credentials,
    LocalStoreSession,
    ManagedSession,
    NotFoundError,
    RemoteStoreError,
    TransientNetworkError,
)
from scml.infrastructure.remote_store.smb import SmbStoreSession, _translate
from scml.services.container import create_services


@pytest.fixture
def local_library(tmp_path):
    share = tmp_path / "dp01" / "SCCMContentLib$"
    (share / "DataLib" / "PKG001").mkdir(parents=True)
    (share / "DataLib" / "PKG001" / "install.ps1.INI").write_text("Hash=9F8A1C2D\n")
    (share / "FileLib" / "9F8A").mkdir(parents=True)
    (share / "FileLib" / "9F8A" / "9F8A1C2D").write_text("Write-Host hi\n")
    return tmp_path


class TestCreateServices:
    def test_retry_policy_from_config(self):
        config = SCMLConfig()
        config.retry.max_attempts = 3
        config.retry.base_delay = 0.5

        services = create_services(config=config)

        assert services.retry_config.max_attempts == 3
        assert services.retry_config.base_delay == 0.5
        assert services.engine.max_content_bytes == config.analysis.max_content_bytes

    def test_credentials_from_config(self):
        config = SCMLConfig()
        config.connection.username = "svc"
        config.connection.domain = "CORP"

        services = create_services(config=config)

        assert services.credentials.username == "svc"
        assert services.credentials.domain == "CORP"
        assert not services.credentials.use_current_user

    def test_no_username_means_current_user(self):
        assert create_services(config=SCMLConfig()).credentials.use_current_user

    def test_explicit_credentials_win(self):
        credentials = Credentials(username="cli-user", password="pw")
        config = SCMLConfig()
        config.connection.username = "svc"

        assert create_services(config=config, credentials=credentials).credentials is credentials


class TestCreateSession:
    def test_local_sessions_are_managed(self, local_library):
        services = create_services(config=SCMLConfig(), local_root=local_library)

        session = services.create_session("dp01")

        assert isinstance(session, ManagedSession)
        assert isinstance(session.backend, LocalStoreSession)
        session.connect()
        session.open_share("sccmcontentlib$")
        assert session.read_file("datalib/pkg001/install.ps1.ini") == b"Hash=9F8A1C2D\n"
        assert [e.name for e in session.list_entries("DataLib")] == ["PKG001"]

    def test_local_root_without_server_directory(self, local_library):
        services = create_services(config=SCMLConfig(), local_root=local_library / "dp01")

        session = services.create_session("anything")
        session.connect()
        session.open_share("SCCMContentLib$")

        assert session.server == "anything"

    def test_smb_session_uses_target_credentials(self):
        services = create_services(
            config=SCMLConfig(), credentials=Credentials(username="default", password="pw")
        )
        services.register_targets([parse_target("CORP\\svc:secret@dp02")])

        session = services.create_session("DP02")

        assert isinstance(session.backend, SmbStoreSession)
        assert session.server == "DP02"
        assert session.backend._credentials.qualified_username == "CORP\\svc"

    def test_sessions_share_one_throttle(self):
        services = create_services(config=SCMLConfig())
        first = services.create_session("dp01")
        second = services.create_session("dp01")

        assert first._throttle is second._throttle is services.auth_throttle


class TestLocalStoreSession:
    def test_missing_root(self, tmp_path):
        with pytest.raises(NotFoundError):
            LocalStoreSession(tmp_path / "missing").connect()

    def test_path_traversal_rejected(self, local_library):
        session = LocalStoreSession(local_library / "dp01")
        session.connect()
        session.open_share("SCCMContentLib$")

        with pytest.raises(NotFoundError):
            session.read_file("../SCCMContentLib$/FileLib/9F8A/9F8A1C2D")

    def test_requires_open_share(self, local_library):
        session = LocalStoreSession(local_library / "dp01")
        session.connect()

        with pytest.raises(RemoteStoreError):
            session.list_entries("")
        assert not session.is_alive()


class TestSmbErrorTranslation:
    def test_authentication(self):
        error = _translate(SMBAuthenticationError("Failed to authenticate"), "Connect")
        assert isinstance(error, AuthenticationError)
        assert not isinstance(error, AccessDeniedError)

    def test_missing_path(self):
        missing = SMBOSError(NtStatus.STATUS_OBJECT_NAME_NOT_FOUND, "\\\\dp01\\share\\x")
        error = _translate(missing, "Read")
        assert isinstance(error, NotFoundError)

    def test_socket_errors_are_transient(self):
        assert isinstance(_translate(ConnectionResetError("reset"), "Read"), TransientNetworkError)

    def test_logon_text_is_authentication(self):
        assert isinstance(_translate(ValueError("STATUS_LOGON_FAILURE"), "Connect"), AuthenticationError)

    def test_unc_requires_share(self):
        session = SmbStoreSession("dp01")
        with pytest.raises(RemoteStoreError):
            session.list_entries("DataLib")
