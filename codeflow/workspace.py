"""Wiring of the persistence core from configuration."""

import logging

import httpx

from .config import Config
from .history import HttpRemoteHistoryStore, HybridHistoryStore, NullRemoteHistoryStore
from .identity import Identity, IdentityProvider, StaticIdentityProvider
from .remote import RemoteClient
from .storage import LocalTier
from .vcs import HttpRemoteCommitStore, LocalCommitLog, NullRemoteCommitStore, SyncEngine

logger = logging.getLogger(__name__)


class Workspace:
    """Local tier, remote stores, sync engine and history for one process.

    Remote handles are created here and injected; when no remote URL is
    configured, null stores take their place.
    """

    def __init__(
        self,
        config: Config,
        identity_provider: IdentityProvider | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize the workspace.

        Args:
            config: Loaded configuration.
            identity_provider: Source of the current identity. Defaults to the
                user configured in ``config.user``.
            transport: Optional httpx transport for the remote client.
        """
        self.config = config
        self.identity_provider = identity_provider or StaticIdentityProvider(
            config.user.user_id, config.user.display_name
        )
        self.tier = LocalTier(config.storage.db_path)

        self.client: RemoteClient | None = None
        if config.remote.configured:
            self.client = RemoteClient(
                config.remote.url,
                timeout=config.remote.timeout_seconds,
                max_retries=config.remote.max_retries,
                backoff_seconds=config.remote.backoff_seconds,
                transport=transport,
            )
            commit_store = HttpRemoteCommitStore(self.client)
            history_store = HttpRemoteHistoryStore(self.client)
        else:
            logger.info("No remote configured, working offline")
            commit_store = NullRemoteCommitStore()
            history_store = NullRemoteHistoryStore()

        self.sync = SyncEngine(self.tier, commit_store)
        self.history = HybridHistoryStore(self.tier, history_store)

    @property
    def identity(self) -> Identity:
        return self.identity_provider.current_identity()

    @property
    def commits(self) -> LocalCommitLog:
        """Commit log of the current identity."""
        return self.sync.log_for(self.identity)

    async def close(self) -> None:
        if self.client:
            await self.client.close()
        self.tier.close()
