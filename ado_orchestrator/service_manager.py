"""
Service Manager wiring the services of one Azure DevOps configuration
Owns the shared transport and cache and closes them on shutdown
"""
import logging
from typing import Any, Dict, Optional

from .cache import Cache
from .config import AdoConfig
from .services.bulk_update_service import BulkUpdateOrchestrator
from .services.link_service import LinkManager
from .services.sprint_service import SprintService
from .services.test_plan_service import TestPlanManager
from .services.workitem_service import WorkItemRepository
from .transport import Transport

logger = logging.getLogger(__name__)


class ServiceManager:
    """
    Builds and owns every service for one organization/project/credential.

    All services share one Transport (one HTTP session) and, when caching
    is enabled, one Cache.

    Example:
        config = AdoConfig.from_env()

        async with ServiceManager(config) as manager:
            items = await manager.workitems.query({"sprint": "25.Q4.07"})
    """

    def __init__(
        self,
        config: AdoConfig,
        transport: Optional[Transport] = None,
        cache: Optional[Cache] = None
    ):
        """
        Initialize service manager

        Args:
            config: Instance configuration
            transport: Pre-built transport (built from config when omitted)
            cache: Pre-built cache (built from config when omitted and enabled)
        """
        self.config = config
        self.transport = transport or Transport(config)

        if cache is None and config.cache_enabled:
            cache = Cache(
                default_ttl_seconds=config.cache_ttl_seconds,
                max_size=config.cache_max_size
            )
        self.cache = cache

        self.workitems = WorkItemRepository(self.transport, self.cache)
        self.links = LinkManager(self.transport, self.workitems)
        self.sprints = SprintService(self.transport, self.cache)
        self.test_plans = TestPlanManager(self.transport, self.workitems)
        self.bulk_updates = BulkUpdateOrchestrator(self.workitems, config)

        self._open = False

    async def open(self) -> "ServiceManager":
        """Open the transport session and start cache cleanup."""
        if not self._open:
            await self.transport.open()
            if self.cache is not None:
                self.cache.start_cleanup()
            self._open = True
            logger.info(
                f"Connected to {self.config.organization_url} (project: {self.config.project})"
            )
        return self

    async def close(self) -> None:
        """Close the transport and stop cache cleanup."""
        if self.cache is not None:
            await self.cache.close()
        await self.transport.close()
        self._open = False

    async def __aenter__(self) -> "ServiceManager":
        return await self.open()

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    def get_statistics(self) -> Dict[str, Any]:
        """Connection and cache statistics."""
        return {
            "organization_url": self.config.organization_url,
            "project": self.config.project,
            "team": self.config.team,
            "open": self._open,
            "cache": self.workitems.get_cache_stats(),
        }

    def __repr__(self) -> str:
        return (
            f"ServiceManager(org='{self.config.organization_url}', "
            f"project='{self.config.project}', open={self._open})"
        )
