"""
Authenticated access to the Azure DevOps API through the azure-devops SDK.

One Connection hands out the typed clients (work item tracking, core,
work, test plan). Every SDK call goes through `Transport.call`, which runs
the blocking call in a worker thread, maps SDK exceptions onto the error
taxonomy and retries 429/503 failures with bounded exponential backoff.
"""
import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional

from azure.devops.connection import Connection
from msrest.authentication import Authentication

from .auth import build_credentials
from .config import AdoConfig
from .decorators import PerformanceMonitor, handle_ado_error, retry_on_transient_error

logger = logging.getLogger(__name__)

# Calls slower than this are logged as warnings
SLOW_REQUEST_THRESHOLD_MS = 2000.0

# Guard against a server that keeps handing back the same token
MAX_PAGES = 1000

USER_AGENT = "ado-orchestrator"


class Transport:
    """
    SDK facade shared by every service of one configuration.

    Example:
        transport = Transport(config)
        await transport.open()
        iterations = await transport.call(
            transport.work_client.get_team_iterations,
            team_context=TeamContext(project="MyProject")
        )
        await transport.close()
    """

    def __init__(
        self,
        config: AdoConfig,
        credentials: Optional[Authentication] = None,
        connection: Optional[Connection] = None
    ):
        """
        Initialize the transport.

        Args:
            config: Instance configuration
            credentials: msrest credentials (built from config when omitted)
            connection: Pre-built azure-devops Connection
        """
        self.config = config
        self._credentials = credentials
        self._connection = connection
        self._clients: Dict[str, Any] = {}

        self._call_with_retry = retry_on_transient_error(
            max_retries=config.max_retries,
            base_delay=config.retry_base_delay,
            max_delay=config.retry_max_delay
        )(handle_ado_error(self._call))

    @property
    def connection(self) -> Connection:
        """Lazy-load the azure-devops Connection"""
        if self._connection is None:
            if self._credentials is None:
                self._credentials = build_credentials(self.config)
            self._connection = Connection(
                base_url=self.config.organization_url,
                creds=self._credentials,
                user_agent=USER_AGENT
            )
        return self._connection

    def get_client(self, client_type: str):
        """
        Get (and cache) one SDK client.

        Args:
            client_type: 'work_item_tracking', 'core', 'work' or 'test_plan'
        """
        if client_type not in self._clients:
            factory = getattr(self.connection.clients, f"get_{client_type}_client")
            client = factory()
            # Retries are handled above the client, on 429/503 only
            client.config.retry_policy.retries = 0
            client.config.connection.timeout = self.config.timeout_seconds
            self._clients[client_type] = client
        return self._clients[client_type]

    @property
    def wit_client(self):
        return self.get_client('work_item_tracking')

    @property
    def core_client(self):
        return self.get_client('core')

    @property
    def work_client(self):
        return self.get_client('work')

    @property
    def test_plan_client(self):
        return self.get_client('test_plan')

    def work_item_url(self, work_item_id: int) -> str:
        """Canonical URL used as the target of a work item relation."""
        return f"{self.config.organization_url}/_apis/wit/workItems/{work_item_id}"

    async def open(self):
        """Build the connection and its credentials."""
        logger.debug(f"Transport opened for {self.connection.base_url}")

    async def close(self):
        """Drop the SDK clients and release the credential."""
        self._clients.clear()
        close_credentials = getattr(self._credentials, 'close', None)
        if close_credentials:
            close_credentials()
        logger.debug("Transport closed")

    async def call(self, func: Callable[..., Any], *args, **kwargs) -> Any:
        """
        Run one SDK client call.

        Args:
            func: Bound SDK client method, e.g. transport.wit_client.get_work_items
            *args, **kwargs: Passed through to the SDK method

        Returns:
            Whatever the SDK method returns

        Raises:
            TransportError: Or one of its subclasses
        """
        return await self._call_with_retry(func, *args, **kwargs)

    async def call_paged(self, func: Callable[..., Any], **kwargs) -> List[Any]:
        """
        Run a list call, following continuation tokens.

        SDK list methods return either a plain list or a response object
        carrying `value` and `continuation_token`.

        Returns:
            Concatenation of every page
        """
        items: List[Any] = []

        for _ in range(MAX_PAGES):
            page = await self.call(func, **kwargs)
            if page is None:
                return items

            items.extend(getattr(page, 'value', page) or [])

            token = getattr(page, 'continuation_token', None)
            if not token:
                return items
            kwargs['continuation_token'] = token

        logger.warning(f"Stopped paging {_call_name(func)} after {MAX_PAGES} pages")
        return items

    async def _call(self, func: Callable[..., Any], *args, **kwargs) -> Any:
        name = _call_name(func)
        logger.debug(f"Calling {name}")
        async with PerformanceMonitor(name, warn_threshold_ms=SLOW_REQUEST_THRESHOLD_MS):
            return await asyncio.to_thread(func, *args, **kwargs)


def _call_name(func: Callable[..., Any]) -> str:
    return getattr(func, '__name__', None) or repr(func)
