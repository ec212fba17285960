"""
AWS client handles.

A ``ClientSet`` owns the provider clients for one region/profile pair.
Managers borrow it per call; the ``ClientFactory`` caches one set per
``ClientConfig`` until it is explicitly invalidated.
"""

import logging
from typing import Any, Dict, Optional

import boto3

from config import ClientConfig

logger = logging.getLogger(__name__)


class ClientSet:
    """Lazily-created AWS clients sharing one session."""

    def __init__(self, config: ClientConfig, session: Optional[boto3.Session] = None):
        """
        Initialize client set.

        Args:
            config: Region and profile to use
            session: Pre-built session (created from config if not provided)
        """
        self.config = config
        self._session = session or self._create_session()
        self._clients: Dict[str, Any] = {}

    def _create_session(self) -> boto3.Session:
        session_args = {}
        if self.config.region:
            session_args["region_name"] = self.config.region
        if self.config.profile:
            session_args["profile_name"] = self.config.profile
        return boto3.Session(**session_args)

    def _get_client(self, service: str) -> Any:
        """Get or create AWS client for a service."""
        if service not in self._clients:
            self._clients[service] = self._session.client(service)
        return self._clients[service]

    @property
    def region(self) -> Optional[str]:
        """Region the clients talk to."""
        return self.config.region or self._session.region_name

    @property
    def cloudformation(self) -> Any:
        return self._get_client("cloudformation")

    @property
    def s3(self) -> Any:
        return self._get_client("s3")

    @property
    def lambda_client(self) -> Any:
        return self._get_client("lambda")

    @property
    def ec2(self) -> Any:
        return self._get_client("ec2")

    @property
    def ecr(self) -> Any:
        return self._get_client("ecr")


class ClientFactory:
    """Build and cache client sets per configuration."""

    def __init__(self) -> None:
        self._cache: Dict[ClientConfig, ClientSet] = {}

    def get(self, config: ClientConfig) -> ClientSet:
        """Get the cached client set for a config, building it on first use."""
        if config not in self._cache:
            logger.debug(
                f"Creating AWS clients (profile={config.profile}, region={config.region})"
            )
            self._cache[config] = ClientSet(config)
        return self._cache[config]

    def invalidate(self) -> None:
        """Drop all cached client sets, e.g. after credentials change."""
        self._cache.clear()
