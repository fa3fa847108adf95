"""
Link service for Azure DevOps work items
Creates typed relations between two work items
"""
import logging
from typing import Optional, Union

from ..constants import LinkType
from ..decorators import wrap_operation_errors
from ..models import WorkItem
from ..patch import build_relation_document
from ..transport import Transport
from ..validation import ValidationError, validate_work_item_id
from .workitem_service import WorkItemRepository

logger = logging.getLogger(__name__)


class LinkManager:
    """Creates links from a source work item to a target work item"""

    def __init__(self, transport: Transport, repository: Optional[WorkItemRepository] = None):
        """
        Args:
            transport: Shared Azure DevOps transport
            repository: Repository whose cache entries are dropped on link
        """
        self.transport = transport
        self.repository = repository

    @wrap_operation_errors("Failed to create link")
    async def create(
        self,
        source_id: int,
        target_id: int,
        link_type: Union[LinkType, str],
        comment: Optional[str] = None
    ) -> WorkItem:
        """
        Add one relation on the source work item.

        Only the source item is patched; Azure DevOps maintains the
        reverse end of the link on the target.

        Args:
            source_id: Work item receiving the relation
            target_id: Work item the relation points to
            link_type: LinkType, reference name or alias ("child", "tested-by", ...)
            comment: Optional comment stored on the relation

        Returns:
            The updated source work item

        Raises:
            ValidationError: For invalid ids, a self-link or an unknown link type
        """
        source_id = validate_work_item_id(source_id, "source_id")
        target_id = validate_work_item_id(target_id, "target_id")
        if source_id == target_id:
            raise ValidationError("A work item cannot be linked to itself")

        try:
            link_type = LinkType.parse(link_type)
        except ValueError as e:
            raise ValidationError(str(e)) from e

        document = build_relation_document(
            link_type,
            self.transport.work_item_url(target_id),
            comment
        )
        updated = await self.transport.call(
            self.transport.wit_client.update_work_item,
            document=document,
            id=source_id,
            project=self.transport.config.project
        )

        if self.repository is not None:
            self.repository.invalidate(source_id)

        logger.info(f"Linked {source_id} -> {target_id} ({link_type.value})")
        return WorkItem.from_sdk(updated)
