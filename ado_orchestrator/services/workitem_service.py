"""
Work Item repository for Azure DevOps operations
Handles queries, batched reads, creation and field updates of work items
"""
import logging
from collections.abc import Mapping
from typing import Any, Dict, List, Optional, Union

from azure.devops.v7_1.work.models import TeamContext
from azure.devops.v7_1.work_item_tracking.models import Wiql

from ..cache import Cache, CachedService
from ..constants import ExpandOptions, QueryLimits
from ..decorators import log_execution, wrap_operation_errors
from ..errors import NotFoundError
from ..models import WorkItem, WorkItemQuery
from ..patch import build_create_document, build_update_document
from ..transport import Transport
from ..validation import (
    ValidationError,
    require,
    validate_fields,
    validate_work_item_id,
    validate_work_item_ids,
)
from ..wiql import build_wiql

logger = logging.getLogger(__name__)

ITEM_KEY = "workitem"
QUERY_KEY = "query"


class WorkItemRepository(CachedService):
    """
    Work item reads and writes with optional caching.

    Cache keys:
        workitem:{id}:{expand}   one fetched item
        query:{signature}        result of one structured query

    Writes invalidate immediately: an update drops every entry of that
    id plus all query results; a create drops all query results.

    Every invalidation also bumps a generation counter (per id, and one
    for query results). A read only stores its result if the generation
    it saw before calling Azure DevOps is still current, so a read that
    was in flight during a write never re-populates the cache with the
    pre-write value.
    """

    def __init__(
        self,
        transport: Transport,
        cache: Optional[Cache] = None,
        cache_ttl: Optional[int] = None
    ):
        """
        Initialize work item repository

        Args:
            transport: Shared Azure DevOps transport
            cache: Optional cache (None disables caching)
            cache_ttl: TTL override for this repository's entries
        """
        super().__init__(cache, cache_namespace="", cache_ttl=cache_ttl)
        self.transport = transport
        self._item_generations: Dict[int, int] = {}
        self._query_generation = 0

    @property
    def wit_client(self):
        return self.transport.wit_client

    @log_execution(level=logging.DEBUG)
    @wrap_operation_errors("Failed to query work items")
    async def query(self, request: Union[WorkItemQuery, Mapping]) -> List[WorkItem]:
        """
        Run a structured work item query.

        When the request lists work_item_ids the query step is skipped and
        the items are fetched directly. Otherwise the WIQL is executed and
        the matching items are fetched with their relations.

        Args:
            request: WorkItemQuery or its dict form

        Returns:
            Matching work items (empty list when nothing matches)

        Raises:
            ValidationError: If the request is malformed
        """
        if isinstance(request, Mapping):
            request = WorkItemQuery.from_dict(request)
        elif not isinstance(request, WorkItemQuery):
            raise ValidationError("query request must be a WorkItemQuery or a mapping")

        expand = request.expand or ExpandOptions.RELATIONS
        project = self.transport.config.project
        wiql = build_wiql(request, project)

        if wiql is None:
            ids = validate_work_item_ids(request.work_item_ids, "work_item_ids")
            return await self._fetch(ids, expand)

        signature = request.signature()
        cached = self._get_cached(QUERY_KEY, signature)
        if cached is not None:
            return list(cached)

        generation = self._query_generation
        result = await self.transport.call(
            self.wit_client.query_by_wiql,
            Wiql(query=wiql),
            team_context=TeamContext(project=request.project or project)
        )
        ids = self._extract_ids(result)
        logger.info(f"WIQL query matched {len(ids)} work items")

        items = await self._fetch(ids, expand) if ids else []
        if generation == self._query_generation:
            self._set_cached(tuple(items), QUERY_KEY, signature)
        else:
            logger.debug("Work items changed during the query; result not cached")
        return items

    @staticmethod
    def _extract_ids(result: Any) -> List[int]:
        """Ids from a WIQL result: flat work_items or link work_item_relations targets."""
        if result is None:
            return []

        if result.work_items is not None:
            return [item.id for item in result.work_items]

        ids: List[int] = []
        for relation in result.work_item_relations or []:
            target_id = relation.target.id if relation.target else None
            if target_id is not None and target_id not in ids:
                ids.append(target_id)
        return ids

    @wrap_operation_errors("Failed to get work items")
    async def get_by_ids(self, ids: List[int], expand: Optional[str] = None) -> List[WorkItem]:
        """
        Fetch work items by id, in request order.

        Cached items are served from the cache; misses are fetched in
        batches of at most 200 ids.

        Raises:
            ValidationError: If the id list is empty or holds an invalid id
        """
        ids = validate_work_item_ids(ids)
        return await self._fetch(ids, expand)

    @wrap_operation_errors("Failed to get work item")
    async def get(self, work_item_id: int, expand: Optional[str] = None) -> WorkItem:
        """Fetch a single work item."""
        work_item_id = validate_work_item_id(work_item_id)
        items = await self._fetch([work_item_id], expand)
        if not items:
            raise NotFoundError(work_item_id=work_item_id)
        return items[0]

    async def _fetch(self, ids: List[int], expand: Optional[str]) -> List[WorkItem]:
        expand_key = expand or ExpandOptions.NONE
        found: Dict[int, WorkItem] = {}
        missing: List[int] = []

        for work_item_id in ids:
            cached = self._get_cached(ITEM_KEY, work_item_id, expand_key)
            if cached is not None:
                found[work_item_id] = cached
            else:
                missing.append(work_item_id)

        for start in range(0, len(missing), QueryLimits.BATCH_SIZE):
            chunk = missing[start:start + QueryLimits.BATCH_SIZE]
            generations = {i: self._item_generations.get(i, 0) for i in chunk}

            work_items = await self.transport.call(
                self.wit_client.get_work_items,
                ids=chunk,
                expand=expand
            )
            for work_item in work_items or []:
                if work_item is None:
                    continue
                item = WorkItem.from_sdk(work_item)
                found[item.id] = item
                if generations.get(item.id) == self._item_generations.get(item.id, 0):
                    self._set_cached(item, ITEM_KEY, item.id, expand_key)

        logger.debug(f"Fetched {len(missing)} work items, {len(ids) - len(missing)} from cache")
        return [found[i] for i in ids if i in found]

    @wrap_operation_errors("Failed to create work item")
    async def create(
        self,
        work_item_type: str,
        title: str,
        fields: Optional[Mapping] = None
    ) -> WorkItem:
        """
        Create a work item.

        Args:
            work_item_type: Type name (e.g. "Task", "Test Case")
            title: Work item title
            fields: Additional field values keyed by reference name

        Returns:
            The created work item
        """
        require(work_item_type, "work_item_type")
        require(title, "title")
        fields = validate_fields(fields, allow_empty=True)

        created = await self.transport.call(
            self.wit_client.create_work_item,
            document=build_create_document(work_item_type, title, fields),
            project=self.transport.config.project,
            type=work_item_type
        )

        item = WorkItem.from_sdk(created)
        self._invalidate_queries()
        logger.info(f"Created {work_item_type} {item.id}")
        return item

    @wrap_operation_errors("Failed to update work item")
    async def update(
        self,
        work_item_id: int,
        fields: Mapping,
        comment: Optional[str] = None
    ) -> WorkItem:
        """
        Update fields on a work item with a single PATCH.

        Args:
            work_item_id: Work item to update
            fields: Field values keyed by reference name
            comment: Optional history comment

        Returns:
            The updated work item
        """
        work_item_id = validate_work_item_id(work_item_id)
        fields = validate_fields(fields)

        updated = await self.transport.call(
            self.wit_client.update_work_item,
            document=build_update_document(fields, comment),
            id=work_item_id,
            project=self.transport.config.project
        )

        item = WorkItem.from_sdk(updated)
        self.invalidate(work_item_id)
        logger.info(f"Updated work item {work_item_id}: {', '.join(fields)}")
        return item

    def invalidate(self, work_item_id: int):
        """Drop every cached entry of one work item and all query results."""
        self._item_generations[work_item_id] = self._item_generations.get(work_item_id, 0) + 1
        self._invalidate_prefix(ITEM_KEY, work_item_id)
        self._invalidate_queries()

    def _invalidate_queries(self):
        self._query_generation += 1
        self._invalidate_prefix(QUERY_KEY)
