"""
Centralized services container module for SCML.

Builds the shared pieces every command needs from configuration: the retry
policy, the authentication throttle, the rule engine, the run statistics and
a session factory that hands out managed sessions for a target label.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from scml.core.config import SCMLConfig, load_config
from scml.core.rules import SensitivityRuleEngine
from scml.core.targets import Target
from scml.infrastructure.remote_store import (
    AuthenticationThrottle,
    Credentials,
    LocalStoreSession,
    ManagedSession,
    RemoteStoreSession,
    RetryConfig,
)
from scml.infrastructure.remote_store.smb import SmbStoreSession
from scml.services.statistics import RunStatistics

logger = logging.getLogger(__name__)


@dataclass
class ServicesContainer:
    """
    Container holding the shared service instances for one run.

    Attributes:
        config: Application configuration
        credentials: Default credentials for targets without embedded ones
        retry_config: Retry policy for connect and share-open calls
        auth_throttle: Throttle shared by every session in the run
        statistics: Run statistics accumulator
        engine: Sensitivity rule engine
        local_root: Serve sessions from this directory instead of the network
        targets: Targets whose embedded credentials override the defaults
    """

    config: SCMLConfig
    credentials: Credentials
    retry_config: RetryConfig
    auth_throttle: AuthenticationThrottle
    statistics: RunStatistics
    engine: SensitivityRuleEngine
    local_root: Optional[Path] = None
    targets: dict[str, Target] = field(default_factory=dict)

    def register_targets(self, targets: list[Target]) -> None:
        for target in targets:
            self.targets[target.address.lower()] = target

    def create_session(self, label: str) -> RemoteStoreSession:
        """
        Create an unconnected managed session for a target label.

        Args:
            label: Host name or address of the target

        Returns:
            A ManagedSession wrapping the SMB or local backend
        """
        backend: RemoteStoreSession
        if self.local_root is not None:
            server_dir = self.local_root / label
            root = server_dir if server_dir.is_dir() else self.local_root
            backend = LocalStoreSession(root, server=label)
        else:
            target = self.targets.get(label.lower())
            credentials = target.credentials(self.credentials) if target else self.credentials
            backend = SmbStoreSession(
                label,
                credentials=credentials,
                port=self.config.connection.port,
                timeout=self.config.connection.timeout,
            )

        session_config = self.config.session
        return ManagedSession(
            backend,
            keepalive_seconds=session_config.keepalive_seconds,
            reconnect_attempts=session_config.reconnect_attempts,
            reconnect_pause=session_config.reconnect_pause,
            auth_throttle=self.auth_throttle,
        )


def create_engine(config: SCMLConfig) -> SensitivityRuleEngine:
    """Rule engine configured from the analysis section."""
    return SensitivityRuleEngine(
        max_content_bytes=config.analysis.max_content_bytes,
        context_lines=config.analysis.context_lines,
        context_width=config.analysis.context_width,
    )


def create_services(
    config_path: Optional[Path] = None,
    credentials: Optional[Credentials] = None,
    local_root: Optional[Path] = None,
    config: Optional[SCMLConfig] = None,
) -> ServicesContainer:
    """
    Create and initialize all services.

    Args:
        config_path: Optional path to a configuration file. Ignored when
            ``config`` is given.
        credentials: Default credentials. If None, they are taken from the
            connection section of the configuration.
        local_root: Serve sessions from a local directory tree
        config: Preloaded configuration

    Returns:
        ServicesContainer ready for the services to use.
    """
    config = config or load_config(config_path)

    if credentials is None:
        connection = config.connection
        credentials = Credentials(
            username=connection.username or None,
            domain=connection.domain or None,
            use_current_user=connection.use_current_user or not connection.username,
        )

    retry_config = RetryConfig(
        max_attempts=config.retry.max_attempts,
        base_delay=config.retry.base_delay,
        max_delay=config.retry.max_delay,
    )

    if local_root is not None:
        logger.info(f"Using local store at {local_root}")

    return ServicesContainer(
        config=config,
        credentials=credentials,
        retry_config=retry_config,
        auth_throttle=AuthenticationThrottle(min_interval=config.session.auth_min_interval),
        statistics=RunStatistics(),
        engine=create_engine(config),
        local_root=Path(local_root) if local_root is not None else None,
    )
